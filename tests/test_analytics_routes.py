import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import app as app_module
from app import create_app, db
from sample_snapshot import build_snapshot


@pytest.fixture
def app_instance(monkeypatch):
    monkeypatch.setattr(app_module, "create_client", lambda url, key: object())
    monkeypatch.setenv("SECRET_KEY", "test")
    monkeypatch.setenv("SUPABASE_URL", "http://localhost")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.delenv("LAUNDRY_DEFECT_TYPE", raising=False)
    monkeypatch.delenv("ANALYTICS_PAGE_SIZE", raising=False)
    app = create_app()
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app_instance, monkeypatch):
    snapshot = build_snapshot()
    calls = []

    def fake_fetch_defects(filters=None):
        calls.append(filters)
        return snapshot["defects"], None

    def fake_fetch_orders(order_ids):
        wanted = set(order_ids)
        return [row for row in snapshot["orders"] if row["id"] in wanted], None

    monkeypatch.setattr(db, "fetch_defects", fake_fetch_defects)
    monkeypatch.setattr(db, "fetch_orders", fake_fetch_orders)
    monkeypatch.setattr(db, "fetch_wash_recipes", lambda order_ids=None: (snapshot["washRecipes"], None))
    monkeypatch.setattr(db, "fetch_defect_types", lambda: (snapshot["defectTypes"], None))

    test_client = app_instance.test_client()
    test_client.fetch_calls = calls
    return test_client


def test_create_app_reads_analytics_config(app_instance):
    assert app_instance.config["LAUNDRY_DEFECT_TYPE"] == "laundry Defects"
    assert app_instance.config["ANALYTICS_PAGE_SIZE"] == 1000


def test_invalid_page_size_falls_back(monkeypatch):
    monkeypatch.setattr(app_module, "create_client", lambda url, key: object())
    monkeypatch.setenv("SECRET_KEY", "test")
    monkeypatch.setenv("SUPABASE_URL", "http://localhost")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setenv("ANALYTICS_PAGE_SIZE", "lots")

    assert create_app().config["ANALYTICS_PAGE_SIZE"] == 1000


def test_defect_analytics_envelope(client):
    resp = client.get("/api/defect-analytics/?startDate=2024-03-01&endDate=2024-03-31")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["data"]["summary"]["totalDefects"] == 6
    assert client.fetch_calls[0].start_date.isoformat() == "2024-03-01"


def test_invalid_severity_returns_400(client):
    resp = client.get("/api/defect-analytics/?severity=Critical")

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert "Invalid severity" in body["message"]
    assert client.fetch_calls == []


def test_invalid_date_returns_400(client):
    resp = client.get("/api/defect-analytics/?startDate=yesterday")

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid date format. Please use YYYY-MM-DD format."


def test_fetch_error_returns_500(client, monkeypatch):
    monkeypatch.setattr(db, "fetch_defects", lambda filters=None: (None, "timeout"))

    resp = client.get("/api/defect-analytics/")

    assert resp.status_code == 500
    assert resp.get_json() == {
        "success": False,
        "message": "Failed to fetch defect analytics: timeout",
    }


def test_wash_recipe_routes(client):
    resp = client.get("/api/defect-analytics/wash-recipes?washType=SMS")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["summary"]["totalDefects"] == 5
    assert [row["name"] for row in data["byWashType"]] == ["SMS"]

    resp = client.get("/api/defect-analytics/wash-recipes/overview")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["summary"]["totalDefects"] == 7


def test_missing_laundry_category_returns_500(client, monkeypatch):
    monkeypatch.setattr(db, "fetch_defect_types", lambda: ([{"id": "t2", "name": "Stitching"}], None))

    resp = client.get("/api/defect-analytics/wash-recipes")

    assert resp.status_code == 500
    assert "not found" in resp.get_json()["message"]


def test_comparison_route(client):
    resp = client.get("/api/defect-analytics/comparison?comparisonType=time-vs-severity")
    assert resp.status_code == 200
    assert "severityTrends" in resp.get_json()["data"]

    resp = client.get("/api/defect-analytics/comparison?comparisonType=nope")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid comparison type"


def test_top_items_route(client):
    resp = client.get("/api/defect-analytics/top/fabric/1")
    assert resp.status_code == 200
    assert [row["name"] for row in resp.get_json()["data"]] == ["Denim"]

    resp = client.get("/api/defect-analytics/top/style")
    assert len(resp.get_json()["data"]) == 3

    resp = client.get("/api/defect-analytics/top/brand/2")
    assert resp.status_code == 400
