"""Filter parsing and the shared defect predicate.

Every analytics view funnels its user-supplied filters through
:func:`build_predicate` so date, severity, status and defect type filtering
behave the same way regardless of which view asked for them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:
    from .resolver import ResolvedDefect

SEVERITIES = ("High", "Medium", "Low")
STATUSES = ("Open", "In Progress", "Resolved")
WASH_TYPES = ("Size set", "SMS", "Proto", "Production", "Fitting Sample")
COMPARISON_TYPES = ("fabric-vs-style", "composition-vs-defect", "time-vs-severity")


class FilterError(ValueError):
    """Raised when a filter value cannot be used by the analytics engine."""


def parse_datetime(val) -> datetime | None:
    """Return ``val`` as a naive UTC ``datetime`` or ``None``."""

    if not val:
        return None

    if isinstance(val, datetime):
        parsed = val
    elif isinstance(val, date):
        return datetime.combine(val, time.min)
    else:
        text = str(val).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(val) -> date | None:
    parsed = parse_datetime(val)
    return parsed.date() if parsed else None


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max)


def _pick(args: Mapping[str, Any], *names: str) -> str | None:
    for name in names:
        value = args.get(name)
        if value not in (None, ""):
            return str(value).strip() or None
    return None


def _check_choice(value: str | None, choices: tuple[str, ...], label: str) -> str | None:
    if value is None:
        return None
    if value not in choices:
        raise FilterError(
            f"Invalid {label} value '{value}'. Must be one of: {', '.join(choices)}."
        )
    return value


@dataclass(frozen=True)
class AnalyticsFilters:
    """Filter criteria accepted by every analytics view."""

    start_date: date | None = None
    end_date: date | None = None
    severity: str | None = None
    status: str | None = None
    defect_type: str | None = None
    wash_type: str | None = None
    comparison_type: str | None = None
    metric: str | None = None

    def __post_init__(self) -> None:
        _check_choice(self.severity, SEVERITIES, "severity")
        _check_choice(self.status, STATUSES, "status")
        _check_choice(self.wash_type, WASH_TYPES, "wash type")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise FilterError("Start date cannot be after end date.")

    @classmethod
    def from_mapping(cls, args: Mapping[str, Any] | None) -> "AnalyticsFilters":
        """Build filters from query-string style ``args``.

        Both the dashboard's camelCase names (``startDate``) and snake_case
        names (``start_date``) are accepted. Dates must be ISO formatted.
        """

        args = args or {}
        raw_start = _pick(args, "startDate", "start_date")
        raw_end = _pick(args, "endDate", "end_date")
        start = parse_date(raw_start)
        end = parse_date(raw_end)
        if (raw_start and start is None) or (raw_end and end is None):
            raise FilterError("Invalid date format. Please use YYYY-MM-DD format.")

        return cls(
            start_date=start,
            end_date=end,
            severity=_pick(args, "severity"),
            status=_pick(args, "status"),
            defect_type=_pick(args, "defectType", "defect_type"),
            wash_type=_pick(args, "washType", "wash_type"),
            comparison_type=_pick(args, "comparisonType", "comparison_type"),
            metric=_pick(args, "metric"),
        )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "severity": self.severity,
            "status": self.status,
            "defectType": self.defect_type,
            "washType": self.wash_type,
            "comparisonType": self.comparison_type,
            "metric": self.metric,
        }


def build_predicate(
    filters: AnalyticsFilters,
    *,
    use_severity: bool = True,
    use_status: bool = True,
    use_defect_type: bool = True,
) -> Callable[["ResolvedDefect"], bool]:
    """Return a predicate selecting resolved defects that match ``filters``.

    The date range is inclusive of the whole ``end_date`` day. Each bound is
    applied on its own when only one is supplied; a defect with no detected
    date never matches a date-bounded filter.
    """

    lower = datetime.combine(filters.start_date, time.min) if filters.start_date else None
    upper = end_of_day(filters.end_date) if filters.end_date else None
    severity = filters.severity if use_severity else None
    status = filters.status if use_status else None
    defect_type = filters.defect_type if use_defect_type else None

    def _matches(defect: "ResolvedDefect") -> bool:
        if lower or upper:
            detected = defect.detected_date
            if detected is None:
                return False
            if lower and detected < lower:
                return False
            if upper and detected > upper:
                return False
        if severity and defect.severity != severity:
            return False
        if status and defect.status != status:
            return False
        if defect_type and defect.defect_type.id != defect_type:
            return False
        return True

    return _matches
