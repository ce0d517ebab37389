import asyncio

import pytest

from realtime import events
from realtime.connection import CLOSE_INTERNAL_ERROR

pytestmark = [pytest.mark.chaos, pytest.mark.asyncio]


async def test_broken_transport_is_removed_after_write(hub, open_connection, make_socket):
    alive = await open_connection()
    dead = await open_connection(make_socket(fail_on_send=True))
    await hub.register(alive)
    dead_id = await hub.register(dead)

    delivered = await hub.broadcast(events.match_created({"id": 1}))
    await asyncio.wait_for(dead.wait_closed(), timeout=1)
    await alive.flush()

    # Queued before the write failed, so it counts as handed off
    assert delivered == 2
    assert dead.close_code == CLOSE_INTERNAL_ERROR
    assert dead_id not in hub
    assert len(alive.websocket.sent) == 1

    assert await hub.broadcast(events.match_created({"id": 2})) == 1


async def test_peer_vanishing_mid_stream(hub, open_connection):
    staying = await open_connection()
    leaving = await open_connection()
    await hub.register(staying)
    leaving_id = await hub.register(leaving)
    reader = asyncio.create_task(leaving.receive_until_disconnect())

    await hub.broadcast(events.commentary_added({"sequence": 1}))
    leaving.websocket.disconnect(code=1006)
    await asyncio.wait_for(reader, timeout=1)
    await hub.broadcast(events.commentary_added({"sequence": 2}))
    await staying.flush()

    assert leaving_id not in hub
    assert [e["data"]["sequence"] for e in staying.websocket.events] == [1, 2]


async def test_many_dead_clients_do_not_block_shutdown(hub, open_connection, make_socket):
    for _ in range(20):
        await hub.register(await open_connection(make_socket(send_delay=30)))
    await hub.broadcast(events.match_created({"id": 1}))

    await asyncio.wait_for(hub.close(), timeout=2)

    assert len(hub) == 0
