# live router: websocket change feed for open views
# pushes unread counts and entry/note change events from the subscription hub,
# plus a refresh tick so no view is staler than LIVE_REFRESH_SECONDS

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status
from fastapi.websockets import WebSocketDisconnect

from moodflow.config import settings
from moodflow.models.user import Viewer
from moodflow.services import notifications as notification_service
from moodflow.services.db import Database, get_db
from moodflow.services.entries import require_patient_access
from moodflow.services.errors import EngineError
from moodflow.services.identity import user_from_token
from moodflow.services.subscriptions import (
    QueueListener,
    entries_topic,
    hub,
    notes_topic,
    notifications_topic,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["live"])


async def _receive(websocket: WebSocket):
    # client messages are ignored; this only notices the disconnect
    while True:
        await websocket.receive_text()


async def _send(websocket: WebSocket, listener: QueueListener):
    while True:
        try:
            event = await asyncio.wait_for(listener.queue.get(), timeout=settings.LIVE_REFRESH_SECONDS)
        except asyncio.TimeoutError:
            event = {"type": "refresh"}
        await websocket.send_json(event)


@router.websocket("/ws/live")
async def live(
    websocket: WebSocket,
    token: str = Query(""),
    patient_id: Optional[str] = Query(None, alias="patientId"),
    db: Database = Depends(get_db),
):
    """stream change events for the caller and, optionally, one patient record"""
    user = await user_from_token(db, token)
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    viewer = Viewer.from_user(user)
    if patient_id:
        try:
            await require_patient_access(db, viewer, patient_id)
        except EngineError as e:
            logger.warning(f"Live subscription refused for {viewer.id} on {patient_id}: {e.detail}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    listener = QueueListener(hub)
    listener.listen(notifications_topic(viewer.id))
    if patient_id:
        listener.listen(entries_topic(patient_id))
        listener.listen(notes_topic(patient_id))

    tasks = []
    try:
        await websocket.send_json({"type": "connected"})
        count = await notification_service.unread_count(db, viewer.id)
        await websocket.send_json({"type": "unread", "count": count})

        tasks = [
            asyncio.create_task(_receive(websocket)),
            asyncio.create_task(_send(websocket, listener)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Live channel for {viewer.id} closed on error: {exc}")
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        listener.close()
        logger.info(f"Live channel closed for {viewer.id}")
