from __future__ import annotations

import json

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.types import Scope

from foresight.errors import BusinessRuleError
from foresight.observability.instrument import log_job
from foresight.observability.logging import redact_secrets
from foresight.observability.middleware import (
    register_request_middleware,
    unhandled_exception_handler,
)


def _build_app():
    app = FastAPI()
    register_request_middleware(app)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app


def test_request_context_adds_request_id_header():
    app = _build_app()

    @app.get("/ok")
    def ok_route():
        return {"ok": True}

    client = TestClient(app)
    resp = client.get("/ok")
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-Id")


def test_unhandled_exception_returns_request_id():
    scope: Scope = {"type": "http", "method": "GET", "path": "/", "headers": []}
    request = Request(scope)
    request.state.request_id = "abc-123"
    response = unhandled_exception_handler(request, RuntimeError("boom"))
    assert response.status_code == 500
    body = json.loads(response.body)
    assert body["ok"] is False
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert body["meta"]["params"] == {"request_id": "abc-123"}


def test_log_job_passes_results_and_errors_through():
    @log_job("unit.ok")
    def ok_job(n):
        return list(range(n))

    @log_job("unit.rejected")
    def rejected_job():
        raise BusinessRuleError({"field": ["nope"]})

    assert ok_job(3) == [0, 1, 2]
    with pytest.raises(BusinessRuleError):
        rejected_job()


@pytest.mark.anyio
async def test_log_job_wraps_coroutines():
    @log_job("unit.async")
    async def async_job():
        return {"done": True}

    assert await async_job() == {"done": True}


def test_secrets_are_redacted_from_log_events():
    event = redact_secrets(None, "info", {
        "event": "organization.api_key_updated",
        "api_key": "sk-live-123",
        "Authorization": "Bearer abc",
        "organization_id": 7,
    })
    assert event["api_key"] == "[redacted]"
    assert event["Authorization"] == "[redacted]"
    assert event["organization_id"] == 7
