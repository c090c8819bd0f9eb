from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import Body, FastAPI, HTTPException

from app.analytics import (
    AnalyticsError,
    AnalyticsFilters,
    AnalyticsService,
    FilterError,
    SnapshotProvider,
)


app = FastAPI(title="Garment Defect Analytics API")

_EXAMPLE = {
    "snapshot": {
        "defects": [
            {
                "id": "d1",
                "severity": "High",
                "status": "Open",
                "detectedDate": "2024-03-05",
                "defectCount": 2,
                "defectType": {"id": "t1", "name": "Stitching"},
                "orderId": {
                    "id": "o1",
                    "orderNo": "PO-1001",
                    "orderQty": 500,
                    "fabric": {"id": "f1", "name": "Denim"},
                    "style": {"id": "s1", "name": "Slim Jean"},
                },
            }
        ]
    },
    "filters": {"startDate": "2024-03-01", "endDate": "2024-03-31"},
}


def _run(payload: Dict[str, Any], compute: Callable[[AnalyticsService, AnalyticsFilters], Any]):
    service = AnalyticsService(SnapshotProvider(payload.get("snapshot") or {}))
    try:
        filters = AnalyticsFilters.from_mapping(payload.get("filters") or {})
        data = compute(service, filters)
    except FilterError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except AnalyticsError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"success": True, "data": data}


@app.post("/analytics")
def analytics_endpoint(payload: Dict[str, Any] = Body(..., example=_EXAMPLE)):
    return _run(payload, lambda service, filters: service.get_defect_analytics(filters))


@app.post("/wash-recipes")
def wash_recipes_endpoint(payload: Dict[str, Any]):
    return _run(
        payload, lambda service, filters: service.get_wash_recipe_defect_analytics(filters)
    )


@app.post("/comparison")
def comparison_endpoint(payload: Dict[str, Any]):
    return _run(payload, lambda service, filters: service.get_comparison_data(filters))


# To run locally:
#   uvicorn api_defect_analytics:app --reload --port 8080
