"""JSON error envelope: request_id, timestamp, status, error, message, path, details, trace_id, stack (dev only)."""
from __future__ import annotations

import logging
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import AppBaseException, ErrorDetail

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again after 15 minutes"
REQUEST_ID_HEADER = "X-Request-ID"


class ErrorResponse(BaseModel):
    request_id: str
    timestamp: str
    status: int
    error: str
    message: str
    path: str
    details: list[ErrorDetail] = Field(default_factory=list)
    trace_id: Optional[str] = None
    stack: Optional[str] = None


def request_id_of(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or request.headers.get("X-Correlation-ID")
        or uuid.uuid4().hex
    )


def _render(
    request: Request,
    http_status: int,
    error_code: str,
    message: str,
    *,
    details: Optional[list[ErrorDetail]] = None,
    stack: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    request_id = request_id_of(request)
    body = ErrorResponse(
        request_id=request_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        status=http_status,
        error=error_code,
        message=message,
        path=request.url.path,
        details=details or [],
        trace_id=request.headers.get("X-Trace-ID") or request.headers.get("traceparent"),
        stack=stack,
    )
    return JSONResponse(
        status_code=http_status,
        content=body.model_dump(exclude_none=True),
        headers={REQUEST_ID_HEADER: request_id, **(headers or {})},
    )


def error_response(request: Request, exc: AppBaseException) -> JSONResponse:
    """Render an application exception from code that runs outside the handlers."""
    return _render(request, exc.http_status, exc.error_code, exc.message, details=exc.details)


def _log(request: Request, exc: Exception, level: int) -> None:
    logger.log(
        level,
        "%s %s failed: %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
        extra={
            "request_id": request_id_of(request),
            "client_host": request.client.host if request.client else "unknown",
        },
        exc_info=exc if level >= logging.ERROR else None,
    )


# ---------------------------------------------------------------------------
# Alert hook
# ---------------------------------------------------------------------------

AlertHook = Callable[[Request, Exception], Coroutine[Any, Any, None]]
_alert_hook: Optional[AlertHook] = None


def register_alert_hook(hook: Optional[AlertHook]) -> None:
    """Install an async ``hook(request, exc)`` called for every 5xx response."""
    global _alert_hook
    _alert_hook = hook


async def _alert(request: Request, exc: Exception) -> None:
    if _alert_hook is None:
        return
    try:
        await _alert_hook(request, exc)
    except Exception as hook_exc:
        logger.warning("Alert hook failed: %s", hook_exc)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def _on_app_exception(request: Request, exc: AppBaseException) -> JSONResponse:
    _log(request, exc, logging.WARNING)
    if exc.http_status >= 500:
        await _alert(request, exc)
    return error_response(request, exc)


async def _on_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    _log(request, exc, logging.INFO)
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Cannot find {request.url.path} on this server!"
    else:
        message = str(exc.detail)
    return _render(
        request,
        exc.status_code,
        f"HTTP_{exc.status_code}",
        message,
        headers=getattr(exc, "headers", None),
    )


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    _log(request, exc, logging.INFO)
    details = [
        ErrorDetail(
            code=err.get("type", "invalid"),
            message=err.get("msg", "invalid value"),
            # Drop the leading "body"/"query"/"path" segment
            field=".".join(str(part) for part in err.get("loc", ())[1:]) or None,
        )
        for err in exc.errors()
    ]
    return _render(
        request,
        422,
        "VALIDATION_ERROR",
        "Request validation failed.",
        details=details,
    )


def _on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # Sync: SlowAPIMiddleware calls this without awaiting it
    _log(request, exc, logging.WARNING)
    return _render(
        request,
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMIT_EXCEEDED",
        RATE_LIMIT_MESSAGE,
    )


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    _log(request, exc, logging.ERROR)
    await _alert(request, exc)

    settings = getattr(request.app.state, "settings", None)
    stack = None
    if settings is not None and settings.is_development:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return _render(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
        stack=stack,
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppBaseException, _on_app_exception)
    app.add_exception_handler(StarletteHTTPException, _on_http_exception)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(RateLimitExceeded, _on_rate_limited)
    app.add_exception_handler(Exception, _on_unhandled)


async def request_id_middleware(request: Request, call_next):
    request_id = request_id_of(request)
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
