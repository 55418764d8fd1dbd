"""Change-feed WebSocket.

Each message is an invalidation signal; clients re-fetch the affected view.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.services.change_notifier import RECORD_SETS, notifier

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def change_feed(
    websocket: WebSocket,
    record_set: str,
    group_id: Optional[str] = None,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
):
    if record_set not in RECORD_SETS:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    filters = {k: v for k, v in (("group_id", group_id), ("user_id", user_id), ("email", email)) if v}
    async with notifier.subscribe(record_set, filters) as subscription:
        await websocket.accept()

        async def forward():
            async for signal in subscription:
                await websocket.send_json({"record_set": signal.record_set, "action": signal.action})

        forwarder = asyncio.create_task(forward())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Change feed client disconnected (%s %s)", record_set, filters)
        finally:
            forwarder.cancel()
            try:
                await forwarder
            except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                pass
