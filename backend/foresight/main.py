# foresight/main.py
from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

# Import router objects explicitly to avoid module name collisions
from foresight import __version__
from foresight.routers.health import router as health_router
from foresight.routers.auth import router as auth_router
from foresight.routers.groups import router as groups_router
from foresight.routers.predictions import router as predictions_router
from foresight.routers.forecasts import router as forecasts_router
from foresight.routers.categories import router as categories_router
from foresight.routers.organization import router as organization_router
from foresight.routers.conversations import router as conversations_router
from foresight.routers.chat import router as chat_router
from foresight.routers.leaderboard import router as leaderboard_router
from foresight.db.session import init_db
from foresight.errors import ForesightError
from foresight.observability.logging import configure_logging
from foresight.observability.middleware import register_request_middleware, unhandled_exception_handler
from foresight.observability.metrics import router as observability_router
from foresight.scheduler.setup import init_scheduler, shutdown_scheduler
from foresight.schemas.common import fail, fail_from
from foresight.security.middleware import SecurityHeadersMiddleware
from foresight.config import get_settings

configure_logging()
logger = structlog.get_logger(__name__)

DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tables are created eagerly so brand-new dev databases don't 500
    init_db()
    await init_scheduler(app)
    logger.info("app.started", version=__version__)
    try:
        yield
    finally:
        await shutdown_scheduler()


def foresight_error_handler(request: Request, exc: ForesightError):
    return fail_from(exc)


def request_validation_handler(request: Request, exc: RequestValidationError):
    details = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        details.setdefault(loc[0] if loc else "_form", []).append(err.get("msg", "Invalid value"))
    return fail(code="VALIDATION_FAILED", message="Invalid request", status_code=400, details=details)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Foresight", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Conversation-Id", "X-Request-Id"],
        max_age=86400
    )

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    if settings.FORCE_HTTPS:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        SecurityHeadersMiddleware,
        csp=settings.CONTENT_SECURITY_POLICY,
        hsts_max_age=settings.HSTS_MAX_AGE,
        enable_hsts=settings.FORCE_HTTPS,
    )

    register_request_middleware(app)
    app.add_exception_handler(ForesightError, foresight_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Public routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(observability_router)

    # Private routers resolve the caller through their own RequestContext dependencies
    app.include_router(organization_router)
    app.include_router(groups_router)
    app.include_router(categories_router)
    app.include_router(forecasts_router)
    app.include_router(predictions_router)
    app.include_router(conversations_router)
    app.include_router(chat_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
