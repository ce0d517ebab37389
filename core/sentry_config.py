import logging

import sentry_sdk

from config import Settings

logger = logging.getLogger(__name__)


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry for production monitoring.

    Does nothing unless SENTRY_DSN is configured. Returns whether Sentry is on.
    """
    if not settings.sentry_dsn:
        logger.debug("Sentry disabled (no SENTRY_DSN)")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.api_env,
        release=f"{settings.app_name.lower()}@{settings.api_version}",
    )
    logger.info("Sentry initialised", extra={"environment": settings.api_env})
    return True


async def report_to_sentry(request, exc: Exception) -> None:
    """Alert hook: forward handled 5xx errors, which the integration does not see."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("path", request.url.path)
        sentry_sdk.capture_exception(exc)
