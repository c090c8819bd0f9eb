"""Discretise continuous wash-recipe attributes into labelled ranges."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

import pandas as pd

from .aggregator import format_percentage


@dataclass(frozen=True)
class BinRange:
    """Half-open numeric range ``[min, max)`` with a display label."""

    min: float
    max: float
    label: str

    def contains(self, value: float) -> bool:
        return self.min <= value < self.max


TEMPERATURE_RANGES: tuple[BinRange, ...] = (
    BinRange(0, 31, "0-30°C"),
    BinRange(31, 51, "31-50°C"),
    BinRange(51, 71, "51-70°C"),
    BinRange(71, 91, "71-90°C"),
    BinRange(91, math.inf, "91°C+"),
)

WATER_VOLUME_RANGES: tuple[BinRange, ...] = (
    BinRange(0, 51, "0-50L"),
    BinRange(51, 101, "51-100L"),
    BinRange(101, 201, "101-200L"),
    BinRange(201, 501, "201-500L"),
    BinRange(501, math.inf, "501L+"),
)

DURATION_RANGES: tuple[BinRange, ...] = (
    BinRange(0, 16, "0-15min"),
    BinRange(16, 31, "16-30min"),
    BinRange(31, 61, "31-60min"),
    BinRange(61, 121, "61-120min"),
    BinRange(121, math.inf, "121min+"),
)

_LOWER_BOUND = re.compile(r"-?\d+(?:\.\d+)?")


def representative_value(samples: Iterable) -> float | None:
    """Return the maximum valid numeric sample, or ``None`` when there is none.

    A multi-step recipe is represented by its *maximum* step value, never the
    average: a recipe with steps at 20, 45 and 95°C bins as ``91°C+``.
    """

    series = pd.to_numeric(pd.Series(list(samples), dtype="object"), errors="coerce").astype(float)
    valid = series[series.abs() < math.inf]
    if valid.empty:
        return None
    return float(valid.max())


def find_bin(value: float | None, ranges: Sequence[BinRange]) -> BinRange | None:
    """Return the range holding ``value``; values below the first range clamp into it."""

    if value is None or math.isnan(value) or not ranges:
        return None
    if value < ranges[0].min:
        return ranges[0]
    for candidate in ranges:
        if candidate.contains(value):
            return candidate
    return None


def _lower_bound(label: str) -> float:
    match = _LOWER_BOUND.search(label)
    return float(match.group()) if match else math.inf


def bin_values(
    values_with_weight: Iterable[tuple[float | Sequence[float | None] | None, float]],
    ranges: Sequence[BinRange],
    *,
    total: float | None = None,
    digits: int = 1,
) -> list[dict]:
    """Accumulate weights per range and return the non-empty bins.

    Each item is ``(value, weight)``. ``value`` may be a sequence of
    representative values when one weighted record relates to several
    parents; the record then contributes its weight at most once per bin.
    Items without a usable value land in no bin. Rows are ordered by the
    numeric lower bound of their label.
    """

    counts: dict[str, float] = {}
    by_label = {candidate.label: candidate for candidate in ranges}
    binned_weight = 0.0

    for value, weight in values_with_weight:
        values = value if isinstance(value, (list, tuple)) else [value]
        labels: list[str] = []
        for item in values:
            found = find_bin(item, ranges)
            if found is not None and found.label not in labels:
                labels.append(found.label)
        if not labels:
            continue
        binned_weight += weight
        for label in labels:
            counts[label] = counts.get(label, 0) + weight

    denominator = binned_weight if total is None else total
    rows = []
    for label in sorted(counts, key=_lower_bound):
        candidate = by_label[label]
        rows.append(
            {
                "name": label,
                "min": candidate.min,
                "max": None if math.isinf(candidate.max) else candidate.max,
                "count": counts[label],
                "percentage": format_percentage(counts[label], denominator, digits),
            }
        )
    return rows
