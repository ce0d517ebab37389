"""
Per-client request throttling via slowapi.

One Limiter per application instance, so every app built by ``create_app``
starts with fresh counters. Limits apply to every HTTP route through
``SlowAPIMiddleware``; health probes are exempt.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import Settings


def build_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
        storage_uri="memory://",
    )
