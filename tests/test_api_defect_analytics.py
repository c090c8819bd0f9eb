import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient

import api_defect_analytics
from sample_snapshot import build_snapshot


client = TestClient(api_defect_analytics.app)


def test_analytics_endpoint_computes_over_snapshot():
    resp = client.post(
        "/analytics",
        json={"snapshot": build_snapshot(), "filters": {"startDate": "2024-04-01"}},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["summary"]["totalDefects"] == 1
    assert body["data"]["byFabric"][0]["name"] == "Unknown Fabric"


def test_wash_recipes_endpoint():
    resp = client.post("/wash-recipes", json={"snapshot": build_snapshot()})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["summary"]["totalWashRecipeDefects"] == 5
    assert data["byTemperature"][-1]["max"] is None


def test_comparison_endpoint_rejects_bad_filters():
    resp = client.post(
        "/comparison",
        json={"snapshot": build_snapshot(), "filters": {"comparisonType": "style-vs-moon"}},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid comparison type"

    resp = client.post("/analytics", json={"snapshot": {}, "filters": {"severity": "Huge"}})
    assert resp.status_code == 400


def test_missing_laundry_category_is_unprocessable():
    snapshot = build_snapshot()
    snapshot["defectTypes"] = []

    resp = client.post("/wash-recipes", json={"snapshot": snapshot})

    assert resp.status_code == 422
