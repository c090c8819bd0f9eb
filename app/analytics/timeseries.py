"""Bucket defects into day, week or month series."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Iterable

from .aggregator import SEVERITY_FIELDS
from .resolver import ResolvedDefect, record_weight

DAY = "day"
WEEK = "week"
MONTH = "month"


def select_granularity(start: date | None, end: date | None) -> str:
    """Pick the bucket size from the requested span.

    Up to 31 days is daily, up to 365 days weekly, anything longer monthly.
    Without both bounds the series is monthly.
    """

    if not start or not end:
        return MONTH
    days = (end - start).days
    if days <= 31:
        return DAY
    if days <= 365:
        return WEEK
    return MONTH


def bucket_key(moment: date | datetime, granularity: str) -> str:
    """Zero-padded key that sorts chronologically as a string."""

    if granularity == DAY:
        return moment.strftime("%Y-%m-%d")
    if granularity == WEEK:
        iso_year, iso_week, _ = moment.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == MONTH:
        return moment.strftime("%Y-%m")
    raise ValueError(f"Unknown granularity: {granularity}")


def bucket(
    records: Iterable[ResolvedDefect],
    start: date | None = None,
    end: date | None = None,
    granularity: str | None = None,
    *,
    key_name: str = "date",
    date_fn: Callable[[ResolvedDefect], datetime | None] | None = None,
) -> list[dict]:
    """Return weighted counts per time bucket with a severity split.

    Only buckets containing at least one dated record are emitted, in
    ascending key order.
    """

    granularity = granularity or select_granularity(start, end)
    date_fn = date_fn or (lambda record: record.detected_date)

    buckets: dict[str, dict] = {}
    for record in records:
        moment = date_fn(record)
        if moment is None:
            continue
        key = bucket_key(moment, granularity)
        entry = buckets.get(key)
        if entry is None:
            entry = {key_name: key, "count": 0}
            entry.update({field: 0 for field in SEVERITY_FIELDS.values()})
            buckets[key] = entry
        weight = record_weight(record)
        entry["count"] += weight
        field = SEVERITY_FIELDS.get(record.severity)
        if field:
            entry[field] += weight

    return [buckets[key] for key in sorted(buckets)]
