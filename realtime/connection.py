"""Per-client WebSocket wrapper with a bounded outbound queue and its own writer task."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import DeliveryError
from realtime.events import BroadcastEvent, EventType

logger = logging.getLogger(__name__)

CloseCallback = Callable[["ConnectionAdapter"], Awaitable[None]]

# RFC 6455 close codes
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionAdapter:
    def __init__(
        self,
        websocket: Any,
        *,
        send_timeout: float = 5.0,
        heartbeat_interval: float = 25.0,
        queue_size: int = 100,
    ) -> None:
        self.websocket = websocket
        self.send_timeout = send_timeout
        self.heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.CONNECTING
        self.close_code: Optional[int] = None
        self.close_reason: str = ""
        self.messages_sent = 0

        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._close_callbacks: list[CloseCallback] = []
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"ConnectionAdapter(peer={self.peer!r}, state={self.state.value})"

    @property
    def peer(self) -> str:
        client = getattr(self.websocket, "client", None)
        if client is None:
            return "unknown"
        return f"{client.host}:{client.port}"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def add_close_callback(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def accept(self) -> None:
        """Complete the handshake and start the writer and heartbeat tasks."""
        if self.state is not ConnectionState.CONNECTING:
            raise DeliveryError(f"cannot accept a {self.state.value} connection")

        await self.websocket.accept()
        self.state = ConnectionState.OPEN
        self._writer = asyncio.create_task(self._write_loop(), name=f"ws-writer:{self.peer}")
        if self.heartbeat_interval > 0:
            self._heartbeat = asyncio.create_task(
                self._heartbeat_loop(), name=f"ws-heartbeat:{self.peer}"
            )
        logger.debug("WebSocket accepted", extra={"peer": self.peer})

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING
        self.close_code = code
        self.close_reason = reason

        current = asyncio.current_task()
        tasks = [
            task for task in (self._writer, self._heartbeat)
            if task is not None and task is not current
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        dropped = self._discard_pending()

        try:
            await asyncio.wait_for(
                self.websocket.close(code=code, reason=reason), timeout=self.send_timeout
            )
        except Exception as exc:
            logger.debug(
                "WebSocket close failed",
                extra={"peer": self.peer, "error": f"{type(exc).__name__}: {exc}"},
            )

        self.state = ConnectionState.CLOSED
        self._closed.set()
        logger.debug(
            "WebSocket closed",
            extra={"peer": self.peer, "code": code, "reason": reason, "dropped": dropped},
        )

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                await callback(self)
            except Exception:
                logger.exception("Close callback failed", extra={"peer": self.peer})

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def send(self, payload: str) -> None:
        """Queue ``payload`` for delivery.

        Raises DeliveryError when the connection is not open or its queue is
        full; the caller decides whether that ends the connection.
        """
        if self.state is not ConnectionState.OPEN:
            raise DeliveryError(f"connection {self.peer} is {self.state.value}")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            raise DeliveryError(
                f"outbound queue full ({self._queue.maxsize}) for {self.peer}"
            ) from None

    async def flush(self) -> None:
        await self._queue.join()

    async def _write_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            failure: Optional[Exception] = None
            try:
                await asyncio.wait_for(
                    self.websocket.send_text(payload), timeout=self.send_timeout
                )
                self.messages_sent += 1
            except asyncio.TimeoutError as exc:
                failure = exc
                logger.warning(
                    "WebSocket send timed out",
                    extra={"peer": self.peer, "timeout_s": self.send_timeout},
                )
            except Exception as exc:
                failure = exc
                logger.warning(
                    "WebSocket send failed",
                    extra={"peer": self.peer, "error": f"{type(exc).__name__}: {exc}"},
                )
            finally:
                self._queue.task_done()

            if failure is not None:
                await self.close(CLOSE_INTERNAL_ERROR, "send failed")
                return

    def _discard_pending(self) -> int:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._queue.task_done()
            dropped += 1

    async def _heartbeat_loop(self) -> None:
        while self.state is ConnectionState.OPEN:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.send(BroadcastEvent(type=EventType.PING).to_json())
            except DeliveryError as exc:
                logger.warning("Heartbeat failed", extra={"peer": self.peer, "error": str(exc)})
                await self.close(CLOSE_INTERNAL_ERROR, "heartbeat failed")
                return

    async def receive_until_disconnect(self) -> None:
        """Read and discard client frames until the peer goes away, then close."""
        try:
            while self.state is ConnectionState.OPEN:
                message = await self.websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    logger.debug(
                        "Peer disconnected",
                        extra={"peer": self.peer, "code": message.get("code")},
                    )
                    break
        except Exception as exc:
            if not self.is_open:
                return
            logger.info(
                "WebSocket read failed",
                extra={"peer": self.peer, "error": f"{type(exc).__name__}: {exc}"},
            )
            await self.close(CLOSE_INTERNAL_ERROR, "read failed")
            return
        await self.close(CLOSE_GOING_AWAY, "peer disconnected")
