"""
API tests -- FastAPI endpoints via TestClient (no live server or database needed).
"""
import pytest
from fastapi.testclient import TestClient

import src.api.routers.ask as ask_router
import src.api.routers.collections as collections_router
from src.api.main import app
from src.compiler.plan import QueryAnswer
from src.core.errors import PipelineExecutionError, PlanParseError, RecommendationNotFoundError

client = TestClient(app)


@pytest.fixture
def db_patched(monkeypatch, fake_db):
    monkeypatch.setattr(collections_router, "get_database", lambda: fake_db)
    return fake_db



def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"



def test_ask_returns_answer(monkeypatch):
    seen = {}

    def fake_answer(query, target_collection_names=None, mode=None):
        seen.update(query=query, names=target_collection_names, mode=mode)
        return QueryAnswer(
            query=query,
            interpretation="Orders per region",
            primary_collection="orders",
            targeted_collections=["orders"],
            pipeline=[{"$match": {}}],
            results=[{"region": "East", "count": 2}],
            narrative_answer="Found 1 result(s)",
        )

    monkeypatch.setattr(ask_router, "answer_query", fake_answer)
    resp = client.post("/ask", json={"query": "orders by region", "collection_names": ["orders"], "mode": "mock"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["primary_collection"] == "orders"
    assert data["chart_spec"] is None
    assert data["can_visualize"] is False
    assert seen == {"query": "orders by region", "names": ["orders"], "mode": "mock"}


def test_ask_validation_error():
    resp = client.post("/ask", json={"query": "x"})
    assert resp.status_code == 422


@pytest.mark.parametrize("error,status,code", [
    (PlanParseError("no json"), 502, "plan_parse_error"),
    (PipelineExecutionError("boom", pipeline="[]", collection="orders"), 502, "pipeline_execution_error"),
])
def test_ask_typed_errors_rendered(monkeypatch, error, status, code):
    def failing(*args, **kwargs):
        raise error

    monkeypatch.setattr(ask_router, "answer_query", failing)
    resp = client.post("/ask", json={"query": "orders by region"})
    assert resp.status_code == status
    body = resp.json()["error"]
    assert body["code"] == code
    assert body["message"] == error.message


def test_ask_untyped_error_is_500(monkeypatch):
    def failing(*args, **kwargs):
        raise ValueError("unexpected")

    monkeypatch.setattr(ask_router, "answer_query", failing)
    resp = client.post("/ask", json={"query": "orders by region"})
    assert resp.status_code == 500



def test_plan_endpoint_dry_run(monkeypatch, fake_db):
    from src.compiler import service

    monkeypatch.setattr(
        ask_router, "compile_query",
        lambda query, target_collection_names=None, mode=None: service.compile_query(
            query, target_collection_names, mode=mode, db=fake_db),
    )
    resp = client.post("/ask/plan", json={"query": "orders by month", "mode": "mock"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["primary_collection"] == "orders"
    assert data["pipeline"][0]["$group"]["_id"] == {"$month": "$orderDate"}
    assert fake_db["orders"].calls == []



def test_visualize_unknown_id_is_404(monkeypatch):
    def failing(recommendation_id, selected_ids):
        raise RecommendationNotFoundError("Recommendation not found or expired")

    monkeypatch.setattr(ask_router, "render_recommendations", failing)
    resp = client.post("/ask/visualize", json={"recommendation_id": "abc"})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "recommendation_not_found"


def test_visualize_defaults_to_primary(monkeypatch):
    seen = {}

    def fake_render(recommendation_id, selected_ids):
        seen["ids"] = selected_ids
        return {"recommendation_id": recommendation_id, "primary_collection": "orders",
                "row_count": 0, "charts": [], "diagnostics": []}

    monkeypatch.setattr(ask_router, "render_recommendations", fake_render)
    resp = client.post("/ask/visualize", json={"recommendation_id": "abc"})
    assert resp.status_code == 200
    assert seen["ids"] == ["primary"]



def test_cache_stats_and_sweep(fresh_cache):
    resp = client.get("/ask/cache/stats")
    assert resp.status_code == 200
    assert resp.json()["size"] == 0
    resp = client.post("/ask/cache/sweep")
    assert resp.json() == {"swept": 0}



def test_collections_list(db_patched):
    resp = client.get("/collections")
    assert resp.status_code == 200
    items = resp.json()["collections"]
    assert [c["collection_name"] for c in items] == ["orders", "orders_legacy"]
    assert items[0]["date_fields"] == ["orderDate"]


def test_collection_detail(db_patched):
    resp = client.get("/collections/orders_legacy")
    assert resp.status_code == 200
    assert resp.json()["fields"]["orderDate"] == "string"


def test_collection_detail_missing(db_patched):
    resp = client.get("/collections/invoices")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "collection_not_found"


def test_store_unavailable_rendered(db_patched):
    from pymongo.errors import AutoReconnect

    db_patched.error = AutoReconnect("connection reset")
    resp = client.get("/collections")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "document_store_error"
