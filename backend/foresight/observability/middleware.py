from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from foresight.schemas.common import fail, meta_now

from .metrics import REQUEST_COUNTER, REQUEST_LATENCY, record_latency

logger = structlog.get_logger("http")

# Probes and scrapes are logged at debug so they do not drown user traffic
QUIET_PATHS = frozenset({"/metrics", "/api/health", "/api/health/latency"})


async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=str(request.url.path),
    )
    try:
        response = await call_next(request)
    except Exception:
        duration = (time.perf_counter() - start) * 1000
        _record(request, duration, "500")
        logger.exception("request.error", status_code=500, duration_ms=round(duration, 2))
        structlog.contextvars.clear_contextvars()
        raise

    duration = (time.perf_counter() - start) * 1000
    _record(request, duration, str(response.status_code))
    log = logger.debug if request.url.path in QUIET_PATHS else logger.info
    # For streamed chat replies this is time-to-headers, not time-to-last-chunk
    log("request.completed", status_code=response.status_code, duration_ms=round(duration, 2))
    response.headers["X-Request-Id"] = request_id
    structlog.contextvars.clear_contextvars()
    return response


def _route_label(request: Request) -> str:
    # Templated path keeps metric cardinality bounded (/api/groups/{group_id})
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _record(request: Request, duration_ms: float, status: str) -> None:
    path = _route_label(request)
    record_latency(path, duration_ms)
    REQUEST_COUNTER.labels(path=path, method=request.method, status=status).inc()
    REQUEST_LATENCY.labels(path=path, method=request.method).observe(duration_ms / 1000)


def register_request_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500 in the read envelope; the request id lets support find the log line."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "request.unhandled_exception",
        exc_type=type(exc).__name__,
        error=str(exc),
    )
    return fail(
        code="INTERNAL_ERROR",
        message="Internal Server Error",
        status_code=500,
        meta=meta_now(request_id=request_id),
    )
