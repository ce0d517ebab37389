"""
Cross-process fan-out through Redis pub/sub: every event is published to one
channel and whatever arrives on it (own publications included) is fed into
the local hub.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import redis.asyncio as redis
from pydantic import ValidationError as PayloadValidationError
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from core.exceptions import RegistryError
from realtime.events import BroadcastEvent
from realtime.hub import BroadcastHub

logger = logging.getLogger(__name__)

_TRANSIENT = (RedisError, OSError)


class RedisRelay:
    def __init__(
        self,
        hub: BroadcastHub,
        url: str,
        channel: str,
        client: Optional[Any] = None,
        reconnect_delay: float = 1.0,
    ) -> None:
        self.hub = hub
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self.reconnects = 0
        self._client = client if client is not None else redis.from_url(url)
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    @property
    def is_closed(self) -> bool:
        return self.hub.is_closed

    @property
    def is_listening(self) -> bool:
        return self._listener is not None and not self._listener.done()

    @property
    def is_subscribed(self) -> bool:
        return self._pubsub is not None

    async def start(self) -> None:
        await self._subscribe()
        self._listener = asyncio.create_task(self._listen(), name="redis-relay-listener")
        logger.info("Redis relay subscribed", extra={"channel": self.channel})

    # Start-up fails fast; once running, _resubscribe never gives up.
    @retry(stop=stop_after_attempt(5), wait=wait_fixed(2), reraise=True)
    async def _subscribe(self) -> None:
        await self._open_pubsub()

    async def _open_pubsub(self) -> None:
        await self._drop_pubsub()
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        self._pubsub = pubsub
        try:
            await pubsub.subscribe(self.channel)
        except Exception:
            await self._drop_pubsub()
            raise

    async def _drop_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except Exception as exc:
            logger.debug("Closing stale pubsub raised", extra={"error": repr(exc)})

    async def _resubscribe(self) -> None:
        async for attempt in AsyncRetrying(
            wait=wait_fixed(self.reconnect_delay),
            retry=retry_if_exception_type(_TRANSIENT),
            before_sleep=lambda state: logger.warning(
                "Redis relay resubscribe failed",
                extra={"attempt": state.attempt_number, "error": repr(state.outcome.exception())},
            ),
        ):
            with attempt:
                await self._open_pubsub()
        self.reconnects += 1
        logger.info("Redis relay resubscribed", extra={"channel": self.channel, "reconnects": self.reconnects})

    async def broadcast(self, event: BroadcastEvent) -> int:
        """Publish ``event``; returns the number of relay processes listening."""
        if self.hub.is_closed:
            raise RegistryError("broadcast hub is shut down")
        return await self._client.publish(self.channel, event.to_json())

    async def handle_message(self, raw: str | bytes) -> None:
        try:
            event = BroadcastEvent.from_json(raw)
        except PayloadValidationError as exc:
            logger.warning(
                "Dropping malformed relay message",
                extra={"channel": self.channel, "error": str(exc)},
            )
            return
        try:
            await self.hub.broadcast(event)
        except RegistryError:
            logger.debug("Relay message arrived after hub shutdown", extra={"event_type": event.type.value})

    async def _listen(self) -> None:
        while True:
            try:
                if self._pubsub is None:
                    await self._resubscribe()
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self.handle_message(message["data"])
                logger.warning("Redis relay subscription ended", extra={"channel": self.channel})
            except Exception as exc:
                logger.warning(
                    "Redis relay connection lost",
                    extra={"channel": self.channel, "error": f"{type(exc).__name__}: {exc}"},
                    exc_info=not isinstance(exc, _TRANSIENT),
                )
            await self._drop_pubsub()
            await asyncio.sleep(self.reconnect_delay)

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None
        await self._drop_pubsub()
        await self._client.aclose()
        logger.info("Redis relay closed", extra={"channel": self.channel})
