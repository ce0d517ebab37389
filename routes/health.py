"""
Health probes.

``/health`` reports each dependency the feed needs (database, broadcast hub)
plus host metrics; ``/health/live`` and ``/health/ready`` are the cheap
probes an orchestrator polls.
"""
import asyncio
import platform
import time
from datetime import datetime, timezone
from typing import Literal, Optional

import psutil
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["Health"])

_STARTED_AT = time.monotonic()
DB_PING_TIMEOUT_S = 2.0

Status = Literal["healthy", "unhealthy"]


class ComponentHealth(BaseModel):
    status: Status
    latency_ms: Optional[float] = None
    detail: Optional[str] = None


class HostMetrics(BaseModel):
    cpu_percent: float
    memory_percent: float
    memory_available_mb: float
    python_version: str
    os: str


class HealthReport(BaseModel):
    status: Status
    version: str
    environment: str
    uptime_seconds: float
    timestamp: str
    components: dict[str, ComponentHealth]
    system: HostMetrics


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def database_health(request: Request) -> ComponentHealth:
    started = time.perf_counter()
    try:
        await asyncio.wait_for(request.app.state.db.ping(), timeout=DB_PING_TIMEOUT_S)
    except Exception as exc:
        return ComponentHealth(status="unhealthy", detail=f"{type(exc).__name__}: {exc}")
    return ComponentHealth(
        status="healthy",
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
    )


def hub_health(request: Request) -> ComponentHealth:
    hub = getattr(request.app.state, "hub", None)
    if hub is None or hub.is_closed:
        return ComponentHealth(status="unhealthy", detail="broadcast hub is not running")
    return ComponentHealth(status="healthy", detail=f"{len(hub)} live connection(s)")


def relay_health(request: Request) -> Optional[ComponentHealth]:
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        return None
    if not relay.is_listening:
        return ComponentHealth(status="unhealthy", detail="relay listener stopped")
    if not relay.is_subscribed:
        return ComponentHealth(status="unhealthy", detail="resubscribing to redis")
    return ComponentHealth(status="healthy", detail=f"channel {relay.channel}")


def host_metrics() -> HostMetrics:
    memory = psutil.virtual_memory()
    return HostMetrics(
        cpu_percent=psutil.cpu_percent(interval=None),
        memory_percent=memory.percent,
        memory_available_mb=round(memory.available / 1_048_576, 1),
        python_version=platform.python_version(),
        os=platform.system(),
    )


@router.get(
    "",
    summary="Dependency and host health",
    response_model=HealthReport,
    responses={503: {"description": "The database, the hub or the redis relay is down"}},
)
async def health_check(request: Request) -> JSONResponse:
    settings = request.app.state.settings
    components = {
        "database": await database_health(request),
        "broadcast_hub": hub_health(request),
    }
    relay = relay_health(request)
    if relay is not None:
        components["redis_relay"] = relay
    healthy = all(c.status == "healthy" for c in components.values())

    report = HealthReport(
        status="healthy" if healthy else "unhealthy",
        version=settings.api_version,
        environment=settings.api_env,
        uptime_seconds=round(time.monotonic() - _STARTED_AT, 2),
        timestamp=_now(),
        components=components,
        system=host_metrics(),
    )
    return JSONResponse(
        content=report.model_dump(),
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.get("/live", summary="Liveness probe")
async def liveness() -> dict:
    return {"status": "alive", "timestamp": _now()}


@router.get(
    "/ready",
    summary="Readiness probe",
    responses={503: {"description": "Not ready to serve traffic"}},
)
async def readiness(request: Request) -> dict:
    checks = [await database_health(request), hub_health(request), relay_health(request)]
    if any(c is not None and c.status != "healthy" for c in checks):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database, broadcast hub or redis relay unavailable",
        )
    return {"status": "ready", "timestamp": _now()}
