import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.analytics.aggregator import (
    aggregate,
    aggregate_nested,
    distinct_sum,
    format_percentage,
    severity_split,
    total_weight,
)
from app.analytics.resolver import resolve_defects


def _defect(count, fabric, order_id=None, severity=None):
    return {
        "defectCount": count,
        "severity": severity,
        "orderId": {
            "id": order_id or f"{fabric}-order",
            "orderQty": 50,
            "keyNo": f"{fabric}-key",
            "fabric": {"id": fabric.lower(), "name": fabric},
        },
    }


def test_by_fabric_weights_defect_counts():
    defects = resolve_defects(
        [
            _defect(2, "Denim"),
            _defect(1, "Denim"),
            _defect(3, "Denim"),
            _defect(4, "Cotton"),
        ]
    )

    rows = aggregate(
        defects,
        lambda d: d.order.fabric.key,
        label_fn=lambda d, _key: {"name": d.order.fabric.name},
    )

    assert rows == [
        {"name": "Denim", "count": 6, "percentage": "60.0"},
        {"name": "Cotton", "count": 4, "percentage": "40.0"},
    ]


def test_counts_conserve_total_weight_and_percentages_close():
    defects = resolve_defects(
        [_defect(n, fabric) for n, fabric in [(1, "A"), (2, "B"), (3, "C"), (5, "A"), (7, "D")]]
    )
    rows = aggregate(defects, lambda d: d.order.fabric.name)

    assert sum(row["count"] for row in rows) == total_weight(defects) == 18
    assert abs(sum(float(row["percentage"]) for row in rows) - 100.0) <= 0.05 * len(rows)


def test_ties_keep_first_seen_order():
    defects = resolve_defects([_defect(2, "Zed"), _defect(5, "Mid"), _defect(2, "Alpha")])
    rows = aggregate(defects, lambda d: d.order.fabric.name)

    assert [row["name"] for row in rows] == ["Mid", "Zed", "Alpha"]


def test_missing_or_invalid_defect_count_weighs_one():
    defects = resolve_defects(
        [
            {"defectCount": None},
            {"defectCount": "abc"},
            {"defectCount": 0},
            {"defectCount": -3},
            {},
        ]
    )
    assert total_weight(defects) == 5


def test_multi_valued_keys_count_once_per_key():
    rows = aggregate(
        [{"defectCount": 3, "tags": ["x", "y", "x"]}],
        lambda record: record["tags"],
    )
    assert rows == [
        {"name": "x", "count": 3, "percentage": "100.0"},
        {"name": "y", "count": 3, "percentage": "100.0"},
    ]


def test_explicit_total_and_zero_denominator():
    records = [{"defectCount": 1}]
    assert aggregate(records, lambda r: "a", total=4)[0]["percentage"] == "25.0"
    assert aggregate(records, lambda r: "a", total=0)[0]["percentage"] == "0.0"
    assert format_percentage(3, 0, 2) == "0.00"
    assert format_percentage(1, 3, 2) == "33.33"


def test_nested_breakdown_uses_outer_count():
    defects = resolve_defects(
        [
            _defect(3, "Denim", order_id="o1"),
            _defect(1, "Denim", order_id="o2"),
            _defect(2, "Linen", order_id="o3"),
        ]
    )
    rows = aggregate_nested(
        defects,
        lambda d: d.order.fabric.name,
        lambda d: d.order.id,
        inner_label_fn=lambda d, key: {"orderId": key},
    )

    denim = rows[0]
    assert denim["name"] == "Denim"
    assert denim["count"] == 4
    assert denim["orders"] == [
        {"orderId": "o1", "count": 3, "percentage": "75.0"},
        {"orderId": "o2", "count": 1, "percentage": "25.0"},
    ]


def test_severity_split_and_distinct_sum():
    defects = resolve_defects(
        [
            _defect(2, "Denim", order_id="o1", severity="High"),
            _defect(1, "Denim", order_id="o1", severity="Low"),
            _defect(4, "Denim", order_id="o2", severity="Unknown"),
        ]
    )

    assert severity_split(defects) == {"highSeverity": 2, "mediumSeverity": 0, "lowSeverity": 1}
    assert distinct_sum(defects, lambda d: d.order.id, lambda d: d.order.order_qty) == 100
