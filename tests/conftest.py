import asyncio
import json
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import Settings
from main import create_app
from realtime.connection import ConnectionAdapter
from realtime.hub import BroadcastHub


class FakeWebSocket:
    """Stand-in for a Starlette WebSocket that records what it is sent."""

    def __init__(self, *, send_delay=0.0, close_delay=0.0, fail_on_send=False, host="10.0.0.1", port=50000):
        self.client = SimpleNamespace(host=host, port=port)
        self.send_delay = send_delay
        self.close_delay = close_delay
        self.fail_on_send = fail_on_send
        self.sent = []
        self.accepted = False
        self.closed = False
        self.close_calls = 0
        self.close_code = None
        self._incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def send_text(self, data):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_on_send or self.closed:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def receive(self):
        return await self._incoming.get()

    def push(self, message):
        self._incoming.put_nowait(message)

    def disconnect(self, code=1000):
        self.push({"type": "websocket.disconnect", "code": code})

    async def close(self, code=1000, reason=None):
        self.close_calls += 1
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True
        self.close_code = code

    @property
    def events(self):
        return [json.loads(p) for p in self.sent]


@pytest.fixture
def make_socket():
    return FakeWebSocket


@pytest_asyncio.fixture
async def open_connection():
    """Factory for accepted ConnectionAdapters; all are closed at teardown."""
    created = []

    async def _open(websocket=None, cls=ConnectionAdapter, **kwargs):
        kwargs.setdefault("heartbeat_interval", 0)
        kwargs.setdefault("send_timeout", 1.0)
        conn = cls(websocket or FakeWebSocket(port=50000 + len(created)), **kwargs)
        await conn.accept()
        created.append(conn)
        return conn

    yield _open

    for conn in created:
        await conn.close()


@pytest_asyncio.fixture
async def hub():
    hub = BroadcastHub()
    yield hub
    await hub.close()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        api_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        rate_limit_enabled=False,
        configure_logging=False,
        ws_heartbeat_interval=0,
        redis_url=None,
        sentry_dsn=None,
    )


@pytest_asyncio.fixture
async def app(settings):
    application = create_app(settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
