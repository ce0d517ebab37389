"""
Registry of live WebSocket subscribers and event fan-out.

The fan-out loop never awaits, so one broadcast is fully queued before the
next one starts and per-connection writers keep that order.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter

from core.exceptions import DeliveryError, RegistryError
from realtime.connection import CLOSE_GOING_AWAY, CLOSE_INTERNAL_ERROR, ConnectionAdapter
from realtime.events import BroadcastEvent

logger = logging.getLogger(__name__)


class BroadcastHub:
    def __init__(self) -> None:
        self._connections: dict[str, ConnectionAdapter] = {}
        self._lock = asyncio.Lock()
        self._closed = False
        self._stats: Counter[str] = Counter()
        self._closing: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._connections

    @property
    def is_closed(self) -> bool:
        return self._closed

    def stats(self) -> dict[str, int]:
        return {
            "connections_active": len(self._connections),
            "connections_total": self._stats["connections_total"],
            "broadcasts_total": self._stats["broadcasts_total"],
            "deliveries_total": self._stats["deliveries_total"],
            "delivery_failures_total": self._stats["delivery_failures_total"],
        }

    async def register(self, connection: ConnectionAdapter) -> str:
        async with self._lock:
            if self._closed:
                raise RegistryError("broadcast hub is shut down")
            if not connection.is_open:
                raise RegistryError(f"cannot register a {connection.state.value} connection")

            subscription_id = uuid.uuid4().hex
            self._connections[subscription_id] = connection
            self._stats["connections_total"] += 1

            async def _forget(_: ConnectionAdapter) -> None:
                await self._discard(subscription_id)

            connection.add_close_callback(_forget)

        logger.info(
            "WebSocket client registered",
            extra={
                "subscription_id": subscription_id,
                "peer": connection.peer,
                "active": len(self._connections),
            },
        )
        return subscription_id

    async def unregister(self, subscription_id: str) -> None:
        """Remove and close a connection. Unknown ids are ignored."""
        async with self._lock:
            connection = self._connections.pop(subscription_id, None)
        if connection is None:
            return

        await connection.close()
        logger.info(
            "WebSocket client unregistered",
            extra={"subscription_id": subscription_id, "active": len(self._connections)},
        )

    async def _discard(self, subscription_id: str) -> None:
        async with self._lock:
            removed = self._connections.pop(subscription_id, None)
        if removed is not None:
            logger.info(
                "WebSocket client dropped",
                extra={
                    "subscription_id": subscription_id,
                    "reason": removed.close_reason,
                    "active": len(self._connections),
                },
            )

    async def broadcast(self, event: BroadcastEvent) -> int:
        """Queue ``event`` everywhere; returns how many connections accepted it."""
        payload = event.to_json()

        async with self._lock:
            if self._closed:
                raise RegistryError("broadcast hub is shut down")
            targets = tuple(self._connections.items())
            self._stats["broadcasts_total"] += 1

        delivered = 0
        failed: list[str] = []
        for subscription_id, connection in targets:
            try:
                connection.send(payload)
            except DeliveryError as exc:
                failed.append(subscription_id)
                logger.warning(
                    "Broadcast delivery failed",
                    extra={
                        "subscription_id": subscription_id,
                        "event_type": event.type.value,
                        "error": exc.message,
                    },
                )
            except Exception:
                failed.append(subscription_id)
                logger.exception(
                    "Unexpected error delivering broadcast",
                    extra={"subscription_id": subscription_id, "event_type": event.type.value},
                )
            else:
                delivered += 1

        self._stats["deliveries_total"] += delivered
        self._stats["delivery_failures_total"] += len(failed)

        if failed:
            await self._drop(failed)

        logger.debug(
            "Broadcast queued",
            extra={"event_type": event.type.value, "delivered": delivered, "failed": len(failed)},
        )
        return delivered

    async def _drop(self, subscription_ids: list[str]) -> None:
        async with self._lock:
            dropped = [
                (sid, self._connections.pop(sid))
                for sid in subscription_ids
                if sid in self._connections
            ]
        for subscription_id, connection in dropped:
            task = asyncio.create_task(
                connection.close(CLOSE_INTERNAL_ERROR, "delivery failed"),
                name=f"ws-close:{subscription_id}",
            )
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
            logger.info(
                "WebSocket client dropped",
                extra={
                    "subscription_id": subscription_id,
                    "reason": "delivery failed",
                    "active": len(self._connections),
                },
            )

    async def close(self) -> None:
        """Close every connection and refuse further registrations/broadcasts."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            connections = list(self._connections.values())
            self._connections.clear()

        results = await asyncio.gather(
            *(c.close(CLOSE_GOING_AWAY, "server shutting down") for c in connections),
            return_exceptions=True,
        )
        for connection, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Error closing connection during shutdown",
                    extra={"peer": connection.peer, "error": repr(result)},
                )
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        logger.info("Broadcast hub closed", extra={"connections_closed": len(connections)})
