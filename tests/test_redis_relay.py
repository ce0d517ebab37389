import asyncio
import json

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from core.exceptions import RegistryError
from realtime import events
from realtime.redis_relay import RedisRelay


class FakePubSub:
    def __init__(self, server):
        self.server = server
        self.channels = []
        self.messages = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels):
        if self.server.subscribe_errors:
            raise self.server.subscribe_errors.pop(0)
        self.channels.extend(channels)

    async def listen(self):
        if self.server.listen_errors:
            raise self.server.listen_errors.pop(0)
        while True:
            yield await self.messages.get()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    """Loops published messages straight back to open subscribers.

    Queue exceptions on ``listen_errors`` / ``subscribe_errors`` to make the
    next call fail.
    """

    def __init__(self):
        self.published = []
        self.pubsubs = []
        self.listen_errors = []
        self.subscribe_errors = []
        self.closed = False

    def pubsub(self, **kwargs):
        pubsub = FakePubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    async def publish(self, channel, message):
        self.published.append((channel, message))
        receivers = [p for p in self.pubsubs if not p.closed and channel in p.channels]
        for pubsub in receivers:
            pubsub.messages.put_nowait({"type": "message", "channel": channel, "data": message})
        return len(receivers)

    async def aclose(self):
        self.closed = True


@pytest_asyncio.fixture
async def redis_client():
    return FakeRedis()


@pytest_asyncio.fixture
async def relay(hub, redis_client):
    relay = RedisRelay(hub, "redis://unused", "matchwire:test", client=redis_client)
    await relay.start()
    yield relay
    await relay.close()


async def _wait_for_messages(conn, count, timeout=1.0):
    async def _poll():
        while len(conn.websocket.sent) < count:
            await asyncio.sleep(0.01)
            await conn.flush()

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_published_event_reaches_local_subscribers(hub, relay, redis_client, open_connection):
    conn = await open_connection()
    await hub.register(conn)

    listeners = await relay.broadcast(events.match_created({"id": 11}))
    await _wait_for_messages(conn, 1)

    assert listeners == 1
    channel, raw = redis_client.published[0]
    assert channel == "matchwire:test"
    assert json.loads(raw)["type"] == "match_created"
    assert conn.websocket.events[0]["data"] == {"id": 11}


@pytest.mark.asyncio
async def test_relay_preserves_publish_order(hub, relay, open_connection):
    conn = await open_connection()
    await hub.register(conn)

    for seq in range(1, 6):
        await relay.broadcast(events.commentary_added({"sequence": seq}))
    await _wait_for_messages(conn, 5)

    assert [e["data"]["sequence"] for e in conn.websocket.events] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_malformed_message_is_skipped(hub, relay, redis_client, open_connection):
    conn = await open_connection()
    await hub.register(conn)
    pubsub = redis_client.pubsubs[-1]

    pubsub.messages.put_nowait({"type": "message", "data": b"not json"})
    pubsub.messages.put_nowait({"type": "subscribe", "data": 1})
    await relay.broadcast(events.score_updated({"id": 3}))
    await _wait_for_messages(conn, 1)

    assert [e["type"] for e in conn.websocket.events] == ["score_updated"]


@pytest.mark.asyncio
async def test_broadcast_after_hub_shutdown(hub, relay, redis_client):
    await hub.close()

    with pytest.raises(RegistryError):
        await relay.broadcast(events.match_created({"id": 1}))
    assert redis_client.published == []


@pytest.mark.asyncio
async def test_close_releases_redis(hub, redis_client):
    relay = RedisRelay(hub, "redis://unused", "matchwire:test", client=redis_client)
    await relay.start()

    await relay.close()

    assert redis_client.pubsubs[-1].closed
    assert redis_client.closed


async def _wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [
        RedisTimeoutError("Timeout reading from socket"),
        RedisConnectionError("Connection reset by peer"),
        RuntimeError("unexpected reply"),
    ],
)
async def test_listener_resubscribes_after_read_error(hub, redis_client, open_connection, failure):
    conn = await open_connection()
    await hub.register(conn)
    redis_client.listen_errors.append(failure)
    relay = RedisRelay(hub, "redis://unused", "matchwire:test", client=redis_client, reconnect_delay=0.01)
    await relay.start()
    try:
        await _wait_until(lambda: relay.reconnects == 1)
        listeners = await relay.broadcast(events.match_created({"id": 5}))
        await _wait_for_messages(conn, 1)

        assert relay.is_listening
        assert relay.is_subscribed
    finally:
        await relay.close()

    assert listeners == 1
    assert redis_client.pubsubs[0].closed
    assert conn.websocket.events[0]["data"] == {"id": 5}


@pytest.mark.asyncio
async def test_resubscribe_keeps_retrying(hub, redis_client, open_connection):
    conn = await open_connection()
    await hub.register(conn)
    redis_client.listen_errors.append(RedisConnectionError("Connection closed by server"))
    relay = RedisRelay(hub, "redis://unused", "matchwire:test", client=redis_client, reconnect_delay=0.01)
    await relay.start()
    redis_client.subscribe_errors.extend(RedisConnectionError("Connection refused") for _ in range(8))
    try:
        await _wait_until(lambda: relay.reconnects == 1)
        await relay.broadcast(events.score_updated({"id": 9}))
        await _wait_for_messages(conn, 1)
    finally:
        await relay.close()

    assert redis_client.subscribe_errors == []
    assert [e["type"] for e in conn.websocket.events] == ["score_updated"]
