# notifications router: the caller's own notifications only

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from moodflow.models.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from moodflow.services import notifications as notification_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


def _doc_to_notification(doc: dict) -> NotificationResponse:
    return NotificationResponse(
        id=doc["notification_id"],
        type=doc["type"],
        title=doc.get("title", ""),
        message=doc.get("message", ""),
        data=doc.get("data", {}),
        createdAt=doc.get("created_at", ""),
        readAt=doc.get("read_at"),
    )


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    docs = await notification_service.list_notifications(db, current_user["id"], unread_only, limit)
    return [_doc_to_notification(d) for d in docs]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return UnreadCountResponse(count=await notification_service.unread_count(db, current_user["id"]))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    updated = await notification_service.mark_all_read(db, current_user["id"])
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not await notification_service.mark_read(db, notification_id, current_user["id"]):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
