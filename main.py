from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from api import ws as ws_routes
from api.matches import router as match_router
from config import Settings, get_settings
from config_validator import validate_env
from core.logging_config import setup_logging
from core.rate_limit import build_limiter
from core.sentry_config import init_sentry, report_to_sentry
from db.session import Database
from middleware.body_limit import BodySizeLimitMiddleware
from middleware.error_handler import (
    add_exception_handlers,
    register_alert_hook,
    request_id_middleware,
)
from middleware.security_headers import SecurityHeadersMiddleware
from monitoring.metrics import router as metrics_router
from realtime.hub import BroadcastHub
from realtime.redis_relay import RedisRelay
from routes import health

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application Lifecycle
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and the broadcast hub; close both on shutdown."""
    settings: Settings = app.state.settings
    validate_env(settings.api_env)

    database: Database = app.state.db
    await database.connect()
    await database.create_all()

    hub = BroadcastHub()
    app.state.hub = hub
    app.state.broadcaster = hub

    relay: Optional[RedisRelay] = None
    if settings.redis_url:
        relay = RedisRelay(hub, settings.redis_url, settings.redis_channel)
        await relay.start()
        app.state.broadcaster = relay
    app.state.relay = relay

    logger.info(
        "%s API starting",
        settings.app_name,
        extra={"environment": settings.api_env, "version": settings.api_version},
    )
    try:
        yield
    finally:
        logger.info("%s API shutting down", settings.app_name)
        if relay is not None:
            await relay.close()
        await hub.close()
        await database.disconnect()


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    if settings.configure_logging:
        setup_logging(
            level=settings.log_level,
            json_output=settings.log_json,
            log_file=settings.log_file,
        )

    application = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Sports matches and live commentary. Connect to /ws for a push-only "
            "feed of match and commentary events."
        ),
        version=settings.api_version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.db = Database(settings.database_url, echo=settings.database_echo)

    # -------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------

    limiter = build_limiter(settings)
    for probe in (health.health_check, health.liveness, health.readiness):
        limiter.exempt(probe)
    application.state.limiter = limiter
    application.add_middleware(SlowAPIMiddleware)

    # -------------------------------------------------------------------
    # Middleware  (last added runs first)
    # -------------------------------------------------------------------

    application.add_middleware(BodySizeLimitMiddleware, max_size=settings.max_body_bytes)
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials="*" not in settings.origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Request timing and access logging.
    @application.middleware("http")
    async def access_log_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1_000
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"
        logger.info(
            "%s %s %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_host": request.client.host if request.client else "unknown",
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        return response

    application.middleware("http")(request_id_middleware)

    # -------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------

    add_exception_handlers(application)

    # -------------------------------------------------------------------
    # Routers
    # -------------------------------------------------------------------

    application.include_router(health.router, tags=["System"])
    application.include_router(metrics_router)
    application.include_router(ws_routes.router, tags=["WebSocket"])
    application.include_router(match_router, prefix="/matches", tags=["Matches"])

    @application.get("/", tags=["System"], summary="Root liveness check")
    def root() -> dict[str, str]:
        """Returns a quick confirmation that the API process is alive."""
        return {"status": f"{settings.app_name} API running"}

    if init_sentry(settings):
        register_alert_hook(report_to_sentry)

    return application


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
