"""Request logging, metrics middleware and error envelope tests."""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI, HTTPException

from src.app.api.errors import register_exception_handlers
from src.app.api.middleware.logging import LoggingMiddleware, redact_path
from src.app.core.errors import PersistenceError
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/v1/contracts/sign/AbC123xyz", "/api/v1/contracts/sign/[token]"),
        ("/api/v1/contracts/view/AbC123xyz", "/api/v1/contracts/view/[token]"),
        ("/api/v1/firm-offers/public/AbC123", "/api/v1/firm-offers/public/[token]"),
        ("/api/v1/firm-offers/speaker/AbC123/respond", "/api/v1/firm-offers/speaker/[token]/respond"),
        ("/api/v1/deals", "/api/v1/deals"),
    ],
)
def test_redact_path(path, expected):
    assert redact_path(path) == expected


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    register_exception_handlers(app)

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    @app.get("/db")
    async def db():
        raise PersistenceError("Database operation failed: get_deal", detail="password=hunter2")

    @app.get("/unwired")
    async def unwired():
        raise HTTPException(status_code=503, detail="Contract engine not available")

    @app.get("/metrics")
    async def metrics():
        return get_metrics_response()

    return app


async def test_request_id_and_metrics():
    app = _app()
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/ok")
        metrics = await client.get("/metrics")

    assert resp.status_code == 200
    assert len(resp.headers["x-request-id"]) == 36
    assert 'http_requests_total{endpoint="/ok"' in metrics.text


@pytest.mark.parametrize(
    "incoming,reused",
    [("0b7c2f9e-3c1d-4f5a-9d2e-6a8b1c4d5e6f", True), ("not-a-uuid", False)],
)
async def test_upstream_request_id(incoming, reused):
    app = _app()
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/ok", headers={"X-Request-ID": incoming})

    assert (resp.headers["x-request-id"] == incoming) is reused
    assert len(resp.headers["x-request-id"]) == 36


async def test_persistence_detail_is_not_leaked():
    app = _app()
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get("/db")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": {"code": "persistence_error", "message": "A database error occurred"}
    }
    assert "hunter2" not in resp.text


@pytest.mark.parametrize(
    "path,status_code,error",
    [
        ("/unwired", 503, {"code": "unavailable", "message": "Contract engine not available"}),
        ("/no-such-route", 404, {"code": "not_found", "message": "Not Found"}),
    ],
)
async def test_http_exceptions_use_error_envelope(path, status_code, error):
    app = _app()
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        resp = await client.get(path)

    assert resp.status_code == status_code
    assert resp.json() == {"error": error}
