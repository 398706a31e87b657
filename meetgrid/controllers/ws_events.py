import asyncio
import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from meetgrid import state
from meetgrid.bus import EventBus
from meetgrid.config import get_settings
from meetgrid.events import PingEvent

router = APIRouter()

logger = logging.getLogger("meetgrid.ws.events")


@router.websocket("/ws/events/{event_id}")
async def websocket_event(websocket: WebSocket, event_id: str):
    """Forward participant changes for one event to an open event page."""
    await websocket.accept()
    if state.redis_client is None:
        await websocket.close(code=1011)
        return

    client_ip = websocket.headers.get("x-forwarded-for", websocket.client.host if websocket.client else "-")
    if "," in client_ip:
        client_ip = client_ip.split(",")[0].strip()
    logger.info("ws_events.accept event_id=%s ip=%s", event_id, client_ip)

    channel = EventBus.participants_channel(event_id)
    heartbeat_sec = get_settings().meetings.ws_heartbeat_sec
    pubsub = state.redis_client.pubsub()
    await pubsub.subscribe(channel)

    async def send_updates():
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await websocket.send_text(message["data"])
        except Exception as e:
            logger.info("ws_events.send_stopped event_id=%s err=%r", event_id, e)

    async def heartbeat():
        try:
            while True:
                await asyncio.sleep(heartbeat_sec)
                ping: PingEvent = {"type": "ping"}
                await websocket.send_text(json.dumps(ping))
        except Exception as e:
            logger.info("ws_events.heartbeat_stopped event_id=%s err=%r", event_id, e)

    update_task = asyncio.create_task(send_updates())
    heartbeat_task = asyncio.create_task(heartbeat())

    try:
        while True:
            data = await websocket.receive_text()
            if data == "pong":
                continue
    except WebSocketDisconnect:
        pass
    finally:
        update_task.cancel()
        heartbeat_task.cancel()
        await pubsub.unsubscribe(channel)
        if hasattr(pubsub, "aclose"):
            await pubsub.aclose()
        else:
            await pubsub.close()
        logger.info("ws_events.close event_id=%s ip=%s", event_id, client_ip)
