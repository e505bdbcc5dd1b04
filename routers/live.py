import asyncio
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from auth import decode_token
from events import hub, user_topic, Subscription
from exceptions import CampusRidesError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

async def forward_events(websocket: WebSocket, subscription: Subscription):
    while True:
        event = await subscription.next_event()
        await websocket.send_json(event)

@router.websocket("/ws/notifications")
async def notifications_feed(websocket: WebSocket, token: str):
    try:
        identity = decode_token(token)
    except CampusRidesError as e:
        await websocket.close(code=4401, reason=e.detail)
        return

    # Subscribed before accept so nothing published after the handshake is missed
    subscription = hub.subscribe(user_topic(identity["user_id"])).start()
    sender = None
    try:
        await websocket.accept()
        sender = asyncio.create_task(forward_events(websocket, subscription))
        # Incoming frames are ignored; reading is how a disconnect is noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Live feed closed for %s", identity["user_id"])
    finally:
        if sender:
            sender.cancel()
        subscription.stop()
