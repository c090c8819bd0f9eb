"""Weighted grouping helpers shared by every analytics view."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence, TypeVar

from .resolver import record_weight

T = TypeVar("T")

KeyFn = Callable[[T], Any]
WeightFn = Callable[[T], float]
LabelFn = Callable[[T, Hashable], Mapping[str, Any]]
ExtraFn = Callable[[list[T]], Mapping[str, Any]]

SEVERITY_FIELDS = {
    "High": "highSeverity",
    "Medium": "mediumSeverity",
    "Low": "lowSeverity",
}


def format_percentage(count: float, total: float, digits: int = 1) -> str:
    """Return ``count / total * 100`` formatted with ``digits`` decimals.

    A zero or missing ``total`` yields ``"0.0"`` (or ``"0.00"``) instead of
    ``nan``/``inf``.
    """

    if not total:
        return f"{0:.{digits}f}"
    return f"{count / total * 100:.{digits}f}"


def _distinct_keys(value) -> list:
    if isinstance(value, (list, tuple, set, frozenset)):
        keys: list = []
        for item in value:
            if item not in keys:
                keys.append(item)
        return keys
    return [value]


def total_weight(records: Iterable[T], weight_fn: WeightFn | None = None) -> float:
    weight_fn = weight_fn or record_weight
    return sum(weight_fn(record) for record in records)


def group_records(records: Iterable[T], key_fn: KeyFn) -> dict[Hashable, list[T]]:
    """Group ``records`` by ``key_fn`` preserving first-seen key order.

    ``key_fn`` may return a list of keys for multi-valued dimensions; a
    record joins each distinct key once.
    """

    groups: dict[Hashable, list[T]] = {}
    for record in records:
        for key in _distinct_keys(key_fn(record)):
            groups.setdefault(key, []).append(record)
    return groups


def aggregate(
    records: Sequence[T],
    key_fn: KeyFn,
    weight_fn: WeightFn | None = None,
    label_fn: LabelFn | None = None,
    *,
    total: float | None = None,
    digits: int = 1,
    extra_fn: ExtraFn | None = None,
) -> list[dict[str, Any]]:
    """Group ``records`` and return ranked, percentage-annotated rows.

    Each row is ``{**label_fn(first_record, key), "count", "percentage",
    **extra_fn(members)}``. ``count`` is the summed weight of the group and
    ``percentage`` is computed against ``total`` which defaults to the summed
    weight of ``records``; callers pass an explicit ``total`` when a group
    should be expressed against another denominator. Rows are sorted by
    ``count`` descending and ties keep first-seen order.
    """

    weight_fn = weight_fn or record_weight
    records = list(records)
    denominator = total_weight(records, weight_fn) if total is None else total

    rows: list[dict[str, Any]] = []
    for key, members in group_records(records, key_fn).items():
        row: dict[str, Any] = dict(label_fn(members[0], key)) if label_fn else {"name": key}
        row["count"] = sum(weight_fn(member) for member in members)
        if extra_fn is not None:
            row.update(extra_fn(members))
        rows.append(row)

    for row in rows:
        row["percentage"] = format_percentage(row["count"], denominator, digits)

    rows.sort(key=lambda item: item["count"], reverse=True)
    return rows


def aggregate_nested(
    records: Sequence[T],
    key_fn: KeyFn,
    inner_key_fn: KeyFn,
    weight_fn: WeightFn | None = None,
    label_fn: LabelFn | None = None,
    inner_label_fn: LabelFn | None = None,
    *,
    total: float | None = None,
    digits: int = 1,
    inner_field: str = "orders",
    extra_fn: ExtraFn | None = None,
    inner_extra_fn: ExtraFn | None = None,
) -> list[dict[str, Any]]:
    """Two-level aggregation; each group carries its own ranked breakdown.

    Inner percentages are expressed against the outer group's count.
    """

    def _with_breakdown(members: list[T]) -> dict[str, Any]:
        extra = dict(extra_fn(members)) if extra_fn else {}
        extra[inner_field] = aggregate(
            members,
            inner_key_fn,
            weight_fn,
            inner_label_fn,
            digits=digits,
            extra_fn=inner_extra_fn,
        )
        return extra

    return aggregate(
        records,
        key_fn,
        weight_fn,
        label_fn,
        total=total,
        digits=digits,
        extra_fn=_with_breakdown,
    )


def severity_split(records: Iterable, weight_fn: WeightFn | None = None) -> dict[str, float]:
    """Weighted High/Medium/Low sub-counts of ``records``."""

    weight_fn = weight_fn or record_weight
    split = {field: 0 for field in SEVERITY_FIELDS.values()}
    for record in records:
        field = SEVERITY_FIELDS.get(getattr(record, "severity", None))
        if field:
            split[field] += weight_fn(record)
    return split


def distinct_sum(
    records: Iterable[T],
    key_fn: Callable[[T], Hashable | None],
    value_fn: Callable[[T], float],
) -> float:
    """Sum ``value_fn`` once per distinct, non-``None`` key."""

    seen: dict[Hashable, float] = {}
    for record in records:
        key = key_fn(record)
        if key is None or key in seen:
            continue
        seen[key] = value_fn(record) or 0
    return sum(seen.values())
