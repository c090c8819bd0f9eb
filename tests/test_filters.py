import os
import sys
from datetime import date

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.analytics.filters import AnalyticsFilters, FilterError, build_predicate
from app.analytics.resolver import resolve_defect


def test_from_mapping_accepts_camel_and_snake_case():
    filters = AnalyticsFilters.from_mapping(
        {"startDate": "2024-01-01", "end_date": "2024-01-31", "washType": "SMS", "severity": "High"}
    )

    assert filters.start_date == date(2024, 1, 1)
    assert filters.end_date == date(2024, 1, 31)
    assert filters.wash_type == "SMS"
    assert filters.to_dict()["startDate"] == "2024-01-01"


@pytest.mark.parametrize(
    "args, message",
    [
        ({"severity": "Critical"}, "Invalid severity"),
        ({"status": "Closed"}, "Invalid status"),
        ({"washType": "Bulk"}, "Invalid wash type"),
        ({"startDate": "01/02/2024"}, "Invalid date format"),
        ({"startDate": "2024-02-01", "endDate": "2024-01-01"}, "Start date cannot be after end date"),
    ],
)
def test_invalid_filters_raise(args, message):
    with pytest.raises(FilterError, match=message):
        AnalyticsFilters.from_mapping(args)


def test_end_date_includes_the_whole_day():
    predicate = build_predicate(AnalyticsFilters(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31)))

    assert predicate(resolve_defect({"detectedDate": "2024-01-31T23:59:59"}))
    assert predicate(resolve_defect({"detectedDate": "2024-01-01T00:00:00"}))
    assert not predicate(resolve_defect({"detectedDate": "2024-02-01T00:00:00"}))
    assert not predicate(resolve_defect({}))


def test_single_bound_is_applied_on_its_own():
    predicate = build_predicate(AnalyticsFilters(start_date=date(2024, 6, 1)))

    assert predicate(resolve_defect({"detectedDate": "2030-01-01"}))
    assert not predicate(resolve_defect({"detectedDate": "2024-05-31"}))


def test_predicate_matches_severity_status_and_type():
    filters = AnalyticsFilters(severity="High", status="Open", defect_type="t1")
    defect = resolve_defect({"severity": "High", "status": "Open", "defectType": {"id": "t1"}})
    other = resolve_defect({"severity": "Low", "status": "Open", "defectType": {"id": "t1"}})

    assert build_predicate(filters)(defect)
    assert not build_predicate(filters)(other)
    assert build_predicate(filters, use_severity=False)(other)
