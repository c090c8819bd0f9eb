"""Cross-dimension comparison helpers: scatter pairing and correlation."""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Mapping, Sequence

from .aggregator import group_records
from .resolver import ResolvedDefect, record_weight


def correlate(xs: Iterable[float], ys: Iterable[float]) -> float | None:
    """Pearson product-moment correlation of two paired series.

    ``None`` when either series is empty, the lengths differ, a value is not
    numeric, or either series is constant.
    """

    try:
        xs = [float(value) for value in xs]
        ys = [float(value) for value in ys]
    except (TypeError, ValueError):
        return None

    n = len(xs)
    if n == 0 or n != len(ys):
        return None

    mean_x = math.fsum(xs) / n
    mean_y = math.fsum(ys) / n
    dx = [x - mean_x for x in xs]
    dy = [y - mean_y for y in ys]
    var_x = math.fsum(d * d for d in dx)
    var_y = math.fsum(d * d for d in dy)

    # Rounding leaves a tiny residual variance for constant float series.
    if var_x <= 1e-12 * max(1.0, math.fsum(x * x for x in xs)):
        return None
    if var_y <= 1e-12 * max(1.0, math.fsum(y * y for y in ys)):
        return None
    if math.isnan(var_x) or math.isnan(var_y):
        return None

    covariance = math.fsum(a * b for a, b in zip(dx, dy))
    return max(-1.0, min(1.0, covariance / math.sqrt(var_x * var_y)))


def scatter_build(
    rows_a: Sequence[Mapping[str, Any]],
    rows_b: Sequence[Mapping[str, Any]],
    *,
    a_field: str = "a",
    b_field: str = "b",
    value_key: str = "count",
    label_key: str = "name",
) -> list[dict[str, Any]]:
    """Pair two ranked groupings by rank position.

    The i-th row of ``rows_a`` is paired with the i-th row of ``rows_b``
    whether or not the two entities ever share an order. Pairing stops at
    the shorter grouping.
    """

    points = []
    for rank, (row_a, row_b) in enumerate(zip(rows_a, rows_b), start=1):
        points.append(
            {
                "rank": rank,
                "x": row_a.get(value_key, 0),
                "y": row_b.get(value_key, 0),
                a_field: row_a.get(label_key),
                b_field: row_b.get(label_key),
            }
        )
    return points


def composite_scatter(
    records: Iterable[ResolvedDefect],
    x_fn: Callable[[ResolvedDefect], str],
    y_fn: Callable[[ResolvedDefect], str],
    detail_fn: Callable[[ResolvedDefect], Mapping[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """One point per ``x|y`` composite key with severity and detail rows."""

    points = []
    groups = group_records(records, lambda record: f"{x_fn(record)}|{y_fn(record)}")
    for members in groups.values():
        first = members[0]
        point = {
            "x": x_fn(first),
            "y": y_fn(first),
            "size": 0,
            "count": 0,
            "severityCounts": {"High": 0, "Medium": 0, "Low": 0},
            "defects": [],
        }
        for record in members:
            weight = record_weight(record)
            point["size"] += weight
            point["count"] += 1
            if record.severity in point["severityCounts"]:
                point["severityCounts"][record.severity] += weight
            if detail_fn is not None:
                point["defects"].append(dict(detail_fn(record)))
        points.append(point)
    return points
