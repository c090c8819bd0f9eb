"""Analytics orchestrator: fetch, resolve, filter and aggregate defect views.

``AnalyticsService`` is the single entry point used by the Flask blueprint and
the stand-alone FastAPI app. It is given a record provider (Supabase backed in
production, :class:`~app.analytics.snapshot.SnapshotProvider` elsewhere) and
returns plain JSON-serialisable dictionaries. Fetch failures surface as
:class:`AnalyticsError`; no view ever returns a partial payload.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Protocol

from .aggregator import (
    aggregate,
    aggregate_nested,
    distinct_sum,
    format_percentage,
    group_records,
    severity_split,
    total_weight,
)
from .binning import (
    DURATION_RANGES,
    TEMPERATURE_RANGES,
    WATER_VOLUME_RANGES,
    bin_values,
    representative_value,
)
from .comparison import composite_scatter, correlate, scatter_build
from .filters import COMPARISON_TYPES, SEVERITIES, AnalyticsFilters, FilterError, build_predicate
from .resolver import (
    UNKNOWN_COMPOSITION,
    UNKNOWN_ORDER,
    ResolvedDefect,
    ResolvedRecipe,
    group_recipes_by_order,
    resolve_defects,
    resolve_order,
)
from .timeseries import MONTH, bucket, select_granularity

logger = logging.getLogger(__name__)

FetchResult = tuple[list[dict] | None, str | None]

DEFAULT_LAUNDRY_DEFECT_TYPE = "laundry Defects"
TOP_ITEM_CATEGORIES = {
    "fabric": "byFabric",
    "style": "byStyle",
    "composition": "byComposition",
}


class AnalyticsError(RuntimeError):
    """Raised when a view cannot be computed from the upstream data."""


class ReferenceNotFoundError(AnalyticsError):
    """Raised when a reference entity required by a view does not exist."""


class RecordProvider(Protocol):
    """Data access contract; each method returns ``(rows, error)``."""

    def fetch_defects(self, filters: AnalyticsFilters) -> FetchResult: ...

    def fetch_orders(self, order_ids: list[str]) -> FetchResult: ...

    def fetch_wash_recipes(self, order_ids: list[str] | None = None) -> FetchResult: ...

    def fetch_defect_types(self) -> FetchResult: ...


NESTED = "nested"
LOOKUP = "lookup"


@dataclass(frozen=True)
class WashView:
    """Describes one flavour of the wash-recipe pipeline.

    ``defect_type_name`` restricts the view to one named defect category and
    makes its absence a hard error. ``recipe_source`` chooses how recipes are
    joined to orders: ``nested`` reads them from each defect's order,
    ``lookup`` fetches the recipe table separately and indexes it by order id.
    """

    name: str
    error_message: str
    defect_type_name: str | None = None
    recipe_source: str = NESTED


LAUNDRY_VIEW = WashView(
    name="laundry",
    error_message="Failed to fetch wash recipe defect analytics",
    defect_type_name=DEFAULT_LAUNDRY_DEFECT_TYPE,
    recipe_source=LOOKUP,
)

OVERVIEW_VIEW = WashView(
    name="overview",
    error_message="Failed to fetch wash recipe analytics",
)


def _average(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


class AnalyticsService:
    """Facade over the aggregation engine for one record provider."""

    def __init__(
        self,
        provider: RecordProvider,
        *,
        laundry_defect_type: str = DEFAULT_LAUNDRY_DEFECT_TYPE,
    ) -> None:
        self.provider = provider
        self.laundry_view = replace(LAUNDRY_VIEW, defect_type_name=laundry_defect_type)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    @staticmethod
    def _unwrap(result: FetchResult, message: str) -> list[dict]:
        rows, error = result
        if error:
            logger.error("%s: %s", message, error)
            raise AnalyticsError(f"{message}: {error}")
        return list(rows or [])

    def _load_defects(
        self,
        filters: AnalyticsFilters,
        message: str,
        **predicate_options: bool,
    ) -> list[ResolvedDefect]:
        rows = self._unwrap(self.provider.fetch_defects(filters), message)
        predicate = build_predicate(filters, **predicate_options)
        defects = [defect for defect in resolve_defects(rows) if predicate(defect)]
        logger.debug("%d of %d defects matched filters", len(defects), len(rows))
        return defects

    def _produced_items(self, defects: list[ResolvedDefect], message: str) -> float:
        """Sum ``orderQty`` once per distinct order referenced by ``defects``."""

        order_ids = list(dict.fromkeys(d.order.id for d in defects if d.has_order))
        if not order_ids:
            return 0
        rows = self._unwrap(self.provider.fetch_orders(order_ids), message)
        orders = [resolve_order(row) for row in rows]
        return distinct_sum(orders, lambda order: order.id, lambda order: order.order_qty)

    def _find_defect_type(self, name: str, message: str) -> dict:
        rows = self._unwrap(self.provider.fetch_defect_types(), message)
        wanted = name.strip().casefold()
        for row in rows:
            if str(row.get("name") or "").strip().casefold() == wanted:
                return row
        raise ReferenceNotFoundError(f"Defect type '{name}' not found")

    # ------------------------------------------------------------------
    # General defect analytics
    # ------------------------------------------------------------------
    def get_defect_analytics(self, filters: AnalyticsFilters | None = None) -> dict[str, Any]:
        """Summary plus every defect dimension for the filtered defects."""

        filters = filters or AnalyticsFilters()
        message = "Failed to fetch defect analytics"
        defects = self._load_defects(filters, message)
        total = total_weight(defects)
        produced = self._produced_items(defects, message)

        return {
            "summary": {
                "totalDefects": total,
                "totalProducedItems": produced,
                "defectRatio": format_percentage(total, produced, 2),
                "defectsByStatus": aggregate(defects, lambda d: d.status or "Unknown"),
                "defectsBySeverity": aggregate(defects, lambda d: d.severity or "Unknown"),
            },
            "byFabric": aggregate(
                defects,
                lambda d: d.order.fabric.key,
                label_fn=lambda d, _key: {
                    "id": d.order.fabric.id,
                    "name": d.order.fabric.name,
                    "code": d.order.fabric.code,
                    "composition": d.order.fabric.composition_label,
                },
            ),
            "byStyle": aggregate_nested(
                defects,
                lambda d: d.order.style.key,
                lambda d: d.order.key_no,
                label_fn=lambda d, _key: {
                    "id": d.order.style.id,
                    "name": d.order.style.name,
                    "styleNo": d.order.style.style_no,
                    "brand": d.order.style.brand.name,
                },
                inner_label_fn=lambda d, key: {"keyNo": key, "orderNo": d.order.order_no},
            ),
            "byComposition": self._by_composition(defects),
            "byDefectType": aggregate(
                defects,
                lambda d: d.defect_type.id or d.defect_type.name,
                label_fn=lambda d, _key: {"id": d.defect_type.id, "name": d.defect_type.name},
            ),
            "byDefectPlace": aggregate(
                defects,
                lambda d: d.defect_place.id or d.defect_place.name,
                label_fn=lambda d, _key: {"id": d.defect_place.id, "name": d.defect_place.name},
            ),
            "byDefectProcess": aggregate(
                defects,
                lambda d: d.defect_process.id or d.defect_process.name,
                label_fn=lambda d, _key: {
                    "id": d.defect_process.id,
                    "name": d.defect_process.name,
                },
            ),
            "byLine": aggregate(
                defects,
                lambda d: d.production_line.name,
                label_fn=lambda d, _key: {
                    "name": d.production_line.name,
                    "lineNumber": d.production_line.line_number,
                    "efficiency": d.production_line.efficiency,
                },
                extra_fn=lambda members: {
                    "totalProduced": distinct_sum(
                        members, lambda d: d.order.id, lambda d: d.order.order_qty
                    )
                },
            ),
            "trendData": bucket(defects, granularity=MONTH, key_name="month"),
        }

    @staticmethod
    def _by_composition(defects: list[ResolvedDefect]) -> list[dict]:
        def _keys(defect: ResolvedDefect) -> list[str]:
            items = defect.order.fabric.compositions
            return [item.id or item.name for item in items] or [UNKNOWN_COMPOSITION]

        def _label(defect: ResolvedDefect, key) -> dict:
            for item in defect.order.fabric.compositions:
                if (item.id or item.name) == key:
                    return {"id": item.id, "name": item.name}
            return {"id": None, "name": UNKNOWN_COMPOSITION}

        return aggregate(defects, _keys, label_fn=_label)

    def get_top_defective_items(
        self,
        category: str,
        limit: int = 5,
        filters: AnalyticsFilters | None = None,
    ) -> list[dict]:
        """Top ``limit`` fabrics, styles or compositions by weighted count."""

        field = TOP_ITEM_CATEGORIES.get(category)
        if field is None:
            raise FilterError("Invalid category specified")
        if limit <= 0:
            limit = 5
        return self.get_defect_analytics(filters)[field][:limit]

    # ------------------------------------------------------------------
    # Wash recipe analytics
    # ------------------------------------------------------------------
    def get_wash_recipe_defect_analytics(
        self, filters: AnalyticsFilters | None = None
    ) -> dict[str, Any]:
        """Laundry-category defects broken down by wash recipe chemistry."""

        return self._run_wash_view(self.laundry_view, filters or AnalyticsFilters())

    def get_wash_recipe_overview(self, filters: AnalyticsFilters | None = None) -> dict[str, Any]:
        """Wash breakdown over all filtered defects using nested order recipes."""

        return self._run_wash_view(OVERVIEW_VIEW, filters or AnalyticsFilters())

    def _fetch_wash_inputs(
        self, view: WashView, filters: AnalyticsFilters
    ) -> tuple[list[dict], dict[str, tuple[ResolvedRecipe, ...]] | None]:
        if view.recipe_source != LOOKUP:
            return self._unwrap(self.provider.fetch_defects(filters), view.error_message), None

        with ThreadPoolExecutor(max_workers=2) as pool:
            defects_future = pool.submit(self.provider.fetch_defects, filters)
            recipes_future = pool.submit(self.provider.fetch_wash_recipes)
            defect_result = defects_future.result()
            recipe_result = recipes_future.result()

        defect_rows = self._unwrap(defect_result, view.error_message)
        recipe_rows = self._unwrap(recipe_result, view.error_message)
        return defect_rows, group_recipes_by_order(recipe_rows)

    def _run_wash_view(self, view: WashView, filters: AnalyticsFilters) -> dict[str, Any]:
        category_id = None
        if view.defect_type_name:
            category = self._find_defect_type(view.defect_type_name, view.error_message)
            category_id = str(category.get("id")) if category.get("id") is not None else None

        defect_rows, recipes_by_order = self._fetch_wash_inputs(view, filters)
        predicate = build_predicate(filters, use_defect_type=category_id is None)
        defects = [
            defect
            for defect in resolve_defects(defect_rows, recipes_by_order=recipes_by_order)
            if predicate(defect)
        ]
        if view.defect_type_name:
            wanted = view.defect_type_name.strip().casefold()
            defects = [
                defect
                for defect in defects
                if (category_id is not None and defect.defect_type.id == category_id)
                or defect.defect_type.name.strip().casefold() == wanted
            ]
        total = total_weight(defects)

        def _recipes_for(defect: ResolvedDefect) -> tuple[ResolvedRecipe, ...]:
            recipes = defect.order.wash_recipes
            if filters.wash_type:
                recipes = tuple(r for r in recipes if r.wash_type == filters.wash_type)
            return recipes

        contributions = [(defect, _recipes_for(defect)) for defect in defects]
        contributions = [(defect, recipes) for defect, recipes in contributions if recipes]
        wash_total = sum(defect.weight for defect, _ in contributions)
        logger.debug(
            "%s wash view: %d defects, %d linked to wash recipes",
            view.name,
            len(defects),
            len(contributions),
        )

        def _weight(item) -> int:
            return item[0].weight

        def _binned(attribute: str, ranges) -> list[dict]:
            values = [
                ([representative_value(r.samples(attribute)) for r in recipes], defect.weight)
                for defect, recipes in contributions
            ]
            return bin_values(values, ranges, total=wash_total)

        recipes = self._recipe_rows(defects, recipes_by_order, filters)
        densities = [float(row["defectDensity"]) for row in recipes]
        with_defects = [row for row in recipes if row["defectCount"] > 0]

        return {
            "summary": {
                "totalDefects": total,
                "totalWashRecipeDefects": wash_total,
                "washRecipeDefectRatio": format_percentage(wash_total, total),
                "totalRecipes": len(recipes),
                "totalRecipesWithDefects": len(with_defects),
                "averageDefectDensity": f"{_average(densities):.2f}",
            },
            "byWashType": aggregate(
                contributions,
                lambda item: [r.wash_type for r in item[1]],
                _weight,
                total=wash_total,
            ),
            "byChemical": aggregate(
                contributions,
                lambda item: [c.name for r in item[1] for c in r.chemicals],
                _weight,
                total=wash_total,
            ),
            "byProcess": aggregate(
                contributions,
                lambda item: [p.name for r in item[1] for p in r.processes],
                _weight,
                label_fn=lambda item, key: {
                    "name": key,
                    "type": next(
                        (p.type for r in item[1] for p in r.processes if p.name == key), None
                    ),
                },
                total=wash_total,
            ),
            "byTemperature": _binned("temp", TEMPERATURE_RANGES),
            "byWaterVolume": _binned("liters", WATER_VOLUME_RANGES),
            "byDuration": _binned("time", DURATION_RANGES),
            "recipes": recipes,
            "processTypeAnalytics": self._process_type_rollup(recipes),
            "washTypeAnalytics": self._wash_type_rollup(recipes),
            "topDefectiveRecipes": recipes[:10],
            "lowestDefectiveRecipes": sorted(
                with_defects, key=lambda row: float(row["defectDensity"])
            )[:10],
        }

    @staticmethod
    def _process_type_rollup(recipes: list[dict]) -> list[dict]:
        """Defect load per recipe process type across the recipe rows."""

        rows = []
        groups = group_records(recipes, lambda row: row["processTypes"])
        for process_type, members in groups.items():
            defects = sum(row["defectCount"] for row in members)
            rows.append(
                {
                    "type": process_type,
                    "totalDefects": defects,
                    "recipeCount": len(members),
                    "averageDefectsPerRecipe": f"{defects / len(members):.2f}",
                }
            )
        return rows

    @staticmethod
    def _wash_type_rollup(recipes: list[dict]) -> list[dict]:
        rows = []
        for wash_type, members in group_records(recipes, lambda row: row["washType"]).items():
            rows.append(
                {
                    "type": wash_type,
                    "totalDefects": sum(row["defectCount"] for row in members),
                    "recipeCount": len(members),
                    "averageDefectRatio": (
                        f"{_average(float(row['defectDensity']) for row in members):.2f}"
                    ),
                }
            )
        return rows

    @staticmethod
    def _recipe_rows(
        defects: list[ResolvedDefect],
        recipes_by_order: dict[str, tuple[ResolvedRecipe, ...]] | None,
        filters: AnalyticsFilters,
    ) -> list[dict]:
        """One row per recipe with the defect density of its order."""

        if recipes_by_order is not None:
            candidates = [r for recipes in recipes_by_order.values() for r in recipes]
        else:
            candidates = [r for d in defects for r in d.order.wash_recipes]

        recipes: dict[Any, ResolvedRecipe] = {}
        for recipe in candidates:
            if filters.wash_type and recipe.wash_type != filters.wash_type:
                continue
            recipes.setdefault(recipe.id or (recipe.order_id, recipe.wash_code), recipe)

        defects_by_order = group_records(
            [d for d in defects if d.has_order], lambda d: d.order.id
        )

        rows = []
        for recipe in recipes.values():
            order_defects = defects_by_order.get(recipe.order_id, [])
            order = order_defects[0].order if order_defects else None
            order_qty = recipe.order_qty or (order.order_qty if order else 0)
            order_no = recipe.order_no
            if order is not None and order_no == UNKNOWN_ORDER:
                order_no = order.order_no
            count = total_weight(order_defects)
            split = {severity: 0 for severity in reversed(SEVERITIES)}
            for defect in order_defects:
                if defect.severity in split:
                    split[defect.severity] += defect.weight
            rows.append(
                {
                    "recipeId": recipe.id,
                    "washCode": recipe.wash_code,
                    "washType": recipe.wash_type,
                    "orderNo": order_no,
                    "articleNo": recipe.article_no,
                    "orderQty": order_qty,
                    "processTypes": list(dict.fromkeys(p.type for p in recipe.processes)),
                    "defectCount": count,
                    "defectDensity": format_percentage(count, order_qty, 2),
                    "severityDistribution": split,
                    "topDefectTypes": [
                        {"name": row["name"], "count": row["count"]}
                        for row in aggregate(order_defects, lambda d: d.defect_name.name)[:3]
                    ],
                }
            )

        rows.sort(key=lambda row: float(row["defectDensity"]), reverse=True)
        return rows

    # ------------------------------------------------------------------
    # Comparison analytics
    # ------------------------------------------------------------------
    def get_comparison_data(self, filters: AnalyticsFilters | None = None) -> dict[str, Any]:
        """Cross-dimension comparison selected by ``filters.comparison_type``."""

        filters = filters or AnalyticsFilters()
        handlers: dict[str, Callable[[AnalyticsFilters], dict[str, Any]]] = {
            "fabric-vs-style": self._fabric_vs_style,
            "composition-vs-defect": self._composition_vs_defect,
            "time-vs-severity": self._time_vs_severity,
        }
        comparison_type = filters.comparison_type
        if comparison_type not in COMPARISON_TYPES:
            raise FilterError("Invalid comparison type")

        result = handlers[comparison_type](filters)
        result["insights"] = {
            "message": f"Insights for {comparison_type} comparison generated successfully.",
            "filters": filters.to_dict(),
        }
        return result

    def _fabric_vs_style(self, filters: AnalyticsFilters) -> dict[str, Any]:
        defects = self._load_defects(filters, "Failed to fetch comparison data")

        fabric_rows = aggregate(
            defects,
            lambda d: d.order.fabric.key,
            label_fn=lambda d, _key: {
                "id": d.order.fabric.id,
                "name": d.order.fabric.name,
                "code": d.order.fabric.code,
                "compositionsFormatted": d.order.fabric.composition_label,
            },
            extra_fn=severity_split,
        )

        def _style_extra(members: list[ResolvedDefect]) -> dict[str, Any]:
            count = total_weight(members)
            quantity = distinct_sum(members, lambda d: d.order.id, lambda d: d.order.order_qty)
            return {
                **severity_split(members),
                "totalOrderQty": quantity,
                "defectRatio": format_percentage(count, quantity, 2),
            }

        style_rows = aggregate(
            defects,
            lambda d: d.order.style.key,
            label_fn=lambda d, _key: {
                "id": d.order.style.id,
                "name": d.order.style.name,
                "styleNo": d.order.style.style_no,
                "brandName": d.order.style.brand.name,
            },
            extra_fn=_style_extra,
        )

        scatter = scatter_build(
            fabric_rows, style_rows, a_field="fabricName", b_field="styleName"
        )
        return {
            "scatterData": scatter,
            "fabricDefects": fabric_rows,
            "styleDefects": style_rows,
            "fabricStyleMatrix": composite_scatter(
                defects,
                lambda d: d.order.fabric.name,
                lambda d: d.order.style.name,
                lambda d: {
                    "orderNo": d.order.order_no,
                    "keyNo": d.order.key_no,
                    "severity": d.severity,
                    "count": d.weight,
                },
            ),
            "correlationScore": correlate(
                [point["x"] for point in scatter], [point["y"] for point in scatter]
            ),
        }

    def _composition_vs_defect(self, filters: AnalyticsFilters) -> dict[str, Any]:
        defects = self._load_defects(filters, "Failed to fetch comparison data")

        composition_rows = self._composition_data(defects)
        defect_type_rows = aggregate_nested(
            defects,
            lambda d: d.defect_type.id or d.defect_type.name,
            lambda d: d.defect_name.id or d.defect_name.name,
            label_fn=lambda d, _key: {"id": d.defect_type.id, "name": d.defect_type.name},
            inner_label_fn=lambda d, _key: {"id": d.defect_name.id, "name": d.defect_name.name},
            inner_field="defects",
            extra_fn=severity_split,
            inner_extra_fn=severity_split,
        )
        pairs = scatter_build(
            composition_rows,
            defect_type_rows,
            a_field="composition",
            b_field="defectType",
        )

        return {
            "scatterData": composite_scatter(
                defects,
                lambda d: d.order.fabric.dominant_composition.name,
                lambda d: d.defect_type.name,
                lambda d: {
                    "fabricName": d.order.fabric.name,
                    "defectName": d.defect_name.name,
                    "severity": d.severity,
                    "count": d.weight,
                    "compositions": d.order.fabric.composition_label,
                },
            ),
            "compositionData": composition_rows,
            "defectTypeData": defect_type_rows,
            "correlationScore": correlate(
                [point["x"] for point in pairs], [point["y"] for point in pairs]
            ),
        }

    @staticmethod
    def _composition_data(defects: list[ResolvedDefect]) -> list[dict]:
        """Composition items with the fabrics using them and their defect load."""

        fabric_counts: dict[str, float] = {}
        fabrics = {}
        for defect in defects:
            fabric = defect.order.fabric
            fabrics.setdefault(fabric.key, fabric)
            fabric_counts[fabric.key] = fabric_counts.get(fabric.key, 0) + defect.weight

        items: dict[str, dict] = {}
        for key, fabric in fabrics.items():
            for comp in fabric.compositions:
                entry = items.setdefault(
                    comp.id or comp.name,
                    {"id": comp.id, "name": comp.name, "fabrics": []},
                )
                entry["fabrics"].append(
                    {
                        "id": fabric.id,
                        "name": fabric.name,
                        "value": comp.value,
                        "defectCount": fabric_counts[key],
                    }
                )

        rows = []
        for entry in items.values():
            count = sum(item["defectCount"] for item in entry["fabrics"])
            rows.append(
                {
                    **entry,
                    "fabricCount": len(entry["fabrics"]),
                    "averageValue": round(_average(f["value"] for f in entry["fabrics"]), 2),
                    "totalDefectCount": count,
                    "count": count,
                }
            )
        rows.sort(key=lambda row: row["count"], reverse=True)
        return rows

    def _time_vs_severity(self, filters: AnalyticsFilters) -> dict[str, Any]:
        message = "Failed to fetch comparison data"
        rows = self._unwrap(self.provider.fetch_defects(filters), message)
        resolved = resolve_defects(rows)
        predicate = build_predicate(filters)
        defects = [d for d in resolved if predicate(d)]
        trend_predicate = build_predicate(filters, use_severity=False)
        trend_defects = [d for d in resolved if trend_predicate(d)]
        dated_predicate = build_predicate(
            filters, use_severity=False, use_status=False, use_defect_type=False
        )
        resolved_defects = [
            d
            for d in resolved
            if dated_predicate(d) and d.status == "Resolved" and d.resolved_date and d.detected_date
        ]

        granularity = select_granularity(filters.start_date, filters.end_date)
        series = bucket(defects, filters.start_date, filters.end_date, granularity)

        return {
            "granularity": granularity,
            "timeSeriesData": series,
            "severityTrends": self._severity_trends(trend_defects, resolved_defects),
            "correlationScore": correlate(
                range(len(series)), [entry["highSeverity"] for entry in series]
            ),
        }

    @staticmethod
    def _severity_trends(
        defects: list[ResolvedDefect], resolved_defects: list[ResolvedDefect]
    ) -> dict[str, Any]:
        counts = {severity: 0 for severity in SEVERITIES}
        for defect in defects:
            if defect.severity in counts:
                counts[defect.severity] += defect.weight
        total = sum(counts.values())

        grouped = group_records(resolved_defects, lambda d: d.severity)
        resolution_times = {}
        for severity in SEVERITIES:
            members = grouped.get(severity, [])
            hours = [
                (d.resolved_date - d.detected_date).total_seconds() / 3600 for d in members
            ]
            resolution_times[severity] = {
                "averageResolutionTime": round(_average(hours), 2),
                "count": len(members),
            }

        return {
            "counts": counts,
            "total": total,
            "percentages": {
                severity: format_percentage(count, total, 2) for severity, count in counts.items()
            },
            "resolutionTimes": resolution_times,
        }
