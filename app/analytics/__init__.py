"""Garment defect analytics engine."""

from .filters import AnalyticsFilters, FilterError
from .service import AnalyticsError, AnalyticsService, ReferenceNotFoundError
from .snapshot import SnapshotProvider

__all__ = [
    "AnalyticsError",
    "AnalyticsFilters",
    "AnalyticsService",
    "FilterError",
    "ReferenceNotFoundError",
    "SnapshotProvider",
]
