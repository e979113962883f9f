import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from travelbunk.db.database_redis import RedisManager, user_channel
from travelbunk.repositories.user_repository import normalize_id

logger = logging.getLogger(__name__)

router = APIRouter()

async def forward_channel(websocket: WebSocket, pubsub):
    """Relays every message from the subscribed Redis channel to the socket."""
    async for message in pubsub.listen():
        if message.get("type") != "message":
            continue
        await websocket.send_text(message["data"])

@router.websocket("/ws/notifications/{user_id}")
async def notifications_endpoint(websocket: WebSocket, user_id: str):
    """
    Real-time push for one user. Events published on notifications:<user_id>
    (request-received, request-responded) are forwarded as JSON text frames.
    Client frames are read only to notice the disconnect.
    """
    user_id = normalize_id(user_id)
    await websocket.accept()

    pubsub = RedisManager.get_client().pubsub()
    await pubsub.subscribe(user_channel(user_id))
    logger.info("[Notify_WS] %s subscribed", user_id)

    forwarder = asyncio.create_task(forward_channel(websocket, pubsub))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("[Notify_WS] %s disconnected", user_id)
    finally:
        forwarder.cancel()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("[Notify_WS] forwarder for %s stopped: %s", user_id, e)
        await pubsub.unsubscribe(user_channel(user_id))
        await pubsub.aclose()
