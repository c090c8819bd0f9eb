"""In-memory record provider over a caller-supplied snapshot."""

from __future__ import annotations

from typing import Any, Mapping

from .filters import AnalyticsFilters


def _rows(snapshot: Mapping[str, Any], *names: str) -> list[dict] | None:
    for name in names:
        value = snapshot.get(name)
        if isinstance(value, list):
            return [row for row in value if isinstance(row, Mapping)]
    return None


def _row_id(row: Mapping[str, Any]) -> str | None:
    value = row.get("id", row.get("_id"))
    return str(value) if value not in (None, "") else None


class SnapshotProvider:
    """Serve analytics input from a dictionary of record lists.

    Accepted keys are ``defects``, ``orders``, ``washRecipes`` (or
    ``wash_recipes``) and ``defectTypes`` (or ``defect_types``). When the
    ``orders`` or ``defectTypes`` lists are absent they are derived from the
    relations embedded in the defect records. Filtering is left to the
    engine, so every defect is returned as is.
    """

    def __init__(self, snapshot: Mapping[str, Any] | None = None):
        self.snapshot = snapshot or {}

    @property
    def defects(self) -> list[dict]:
        return _rows(self.snapshot, "defects") or []

    def _embedded(self, *names: str) -> list[dict]:
        found: dict[str, dict] = {}
        for defect in self.defects:
            for name in names:
                value = defect.get(name)
                if isinstance(value, Mapping) and _row_id(value):
                    found.setdefault(_row_id(value), dict(value))
                    break
        return list(found.values())

    def fetch_defects(self, filters: AnalyticsFilters | None = None):
        return self.defects, None

    def fetch_orders(self, order_ids: list[str]):
        orders = _rows(self.snapshot, "orders")
        if orders is None:
            orders = self._embedded("order", "orderId", "order_id")
        wanted = {str(order_id) for order_id in order_ids or []}
        return [row for row in orders if _row_id(row) in wanted], None

    def fetch_wash_recipes(self, order_ids: list[str] | None = None):
        recipes = _rows(self.snapshot, "washRecipes", "wash_recipes") or []
        if order_ids is None:
            return recipes, None
        wanted = {str(order_id) for order_id in order_ids}
        selected = []
        for row in recipes:
            order = row.get("orderId", row.get("order_id", row.get("order")))
            order_id = _row_id(order) if isinstance(order, Mapping) else order
            if order_id is not None and str(order_id) in wanted:
                selected.append(row)
        return selected, None

    def fetch_defect_types(self):
        types = _rows(self.snapshot, "defectTypes", "defect_types")
        if types is None:
            types = self._embedded("defectType", "defect_type")
        return types, None
