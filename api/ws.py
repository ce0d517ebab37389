import logging

from fastapi import APIRouter, WebSocket

from core.exceptions import DeliveryError, RegistryError
from realtime.connection import ConnectionAdapter
from realtime.events import BroadcastEvent, EventType
from realtime.hub import BroadcastHub

logger = logging.getLogger(__name__)

router = APIRouter()

# "Try again later": the server is draining
CLOSE_TRY_AGAIN_LATER = 1013


@router.websocket("/ws")
async def live_feed(websocket: WebSocket) -> None:
    """
    Push-only live feed. Every client receives every broadcast event from
    the moment it is registered; there is no replay of earlier events.
    """
    hub: BroadcastHub = websocket.app.state.hub
    settings = websocket.app.state.settings

    if hub.is_closed:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
        return

    connection = ConnectionAdapter(
        websocket,
        send_timeout=settings.ws_send_timeout,
        heartbeat_interval=settings.ws_heartbeat_interval,
        queue_size=settings.ws_queue_size,
    )
    await connection.accept()

    try:
        subscription_id = await hub.register(connection)
    except RegistryError as exc:
        logger.info("WebSocket rejected", extra={"peer": connection.peer, "reason": exc.message})
        await connection.close(CLOSE_TRY_AGAIN_LATER, exc.message)
        return

    try:
        connection.send(
            BroadcastEvent(
                type=EventType.WELCOME,
                data={"subscriptionId": subscription_id, "message": "Connected to live updates"},
            ).to_json()
        )
    except DeliveryError as exc:
        logger.info("WebSocket closed before welcome", extra={"peer": connection.peer, "error": exc.message})

    try:
        await connection.receive_until_disconnect()
    finally:
        await hub.unregister(subscription_id)
