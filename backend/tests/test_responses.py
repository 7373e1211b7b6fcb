from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ielts_api.errors import AuthenticationError, InfrastructureError, NotFoundError
from ielts_api.responses import envelope, paginate, pagination_meta, register_exception_handlers
from ielts_api.settings import settings

ENVELOPE_KEYS = {"success", "message", "data", "errors", "timestamp"}


@pytest.fixture
def error_app():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaput")

    @app.get("/infra")
    async def infra():
        raise InfrastructureError("database is down")

    @app.get("/missing")
    async def missing():
        raise NotFoundError("Thing not found")

    @app.get("/denied")
    async def denied():
        raise AuthenticationError("No authorization header provided", kind="missing_credentials")

    @app.get("/items/{item_id}")
    async def item(item_id: int):
        return {"id": item_id}

    return TestClient(app, raise_server_exceptions=False)


def test_envelope_shape():
    body = envelope(True, "ok", {"x": 1})
    assert set(body) == ENVELOPE_KEYS
    assert body["timestamp"].endswith("Z")
    datetime.fromisoformat(body["timestamp"][:-1])


def test_unhandled_error_has_trace_outside_production(error_app):
    res = error_app.get("/boom")
    assert res.status_code == 500
    body = res.json()
    assert ENVELOPE_KEYS <= set(body)
    assert body["success"] is False
    assert "RuntimeError" in body["trace"]


def test_production_hides_trace(error_app, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    body = error_app.get("/boom").json()
    assert "trace" not in body
    assert body["message"] == "Internal server error"
    assert error_app.get("/infra").json().get("trace") is None


def test_app_errors_render_with_status_and_kind(error_app):
    res = error_app.get("/infra")
    assert res.status_code == 500
    assert res.json()["errors"] == [{"code": "infrastructure", "message": "database is down"}]
    assert "trace" in res.json()

    res = error_app.get("/missing")
    assert res.status_code == 404
    assert "trace" not in res.json()

    res = error_app.get("/denied")
    assert res.status_code == 401
    assert res.json()["errors"][0]["code"] == "missing_credentials"


def test_unknown_route_and_bad_param_use_envelope(error_app):
    res = error_app.get("/nowhere")
    assert res.status_code == 404
    assert res.json()["success"] is False

    res = error_app.get("/items/abc")
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"
    assert res.json()["errors"][0]["field"] == "item_id"


def test_paginate_clamps():
    assert paginate(0, 0) == (1, 1, 0)
    assert paginate(3, 500) == (3, 100, 200)
    assert pagination_meta(2, 10, 25) == {"page": 2, "limit": 10, "total": 25, "pages": 3}
