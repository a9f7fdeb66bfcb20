# notification dispatcher: per-recipient notifications with monotonic read state
# appends to the notifications collection and pings the recipient's live channel

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from moodflow.config import settings
from moodflow.services.db import Database
from moodflow.services.subscriptions import hub, notifications_topic

logger = logging.getLogger(__name__)

COMMENT_CREATED = "comment_created"
MESSAGE_CREATED = "message_created"
ENTRY_SHARED = "entry_shared"
NOTIFICATION_TYPES = (COMMENT_CREATED, MESSAGE_CREATED, ENTRY_SHARED)


async def notify(
    db: Database,
    recipient_id: str,
    type: str,
    title: str,
    message: str,
    payload: Optional[dict] = None,
) -> dict:
    """append a notification row. not idempotent; callers avoid resending."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")

    doc = {
        "notification_id": uuid.uuid4().hex[:12],
        "recipient_id": recipient_id,
        "type": type,
        "title": title,
        "message": message,
        "data": payload or {},
        "created_at": datetime.now(timezone.utc).isoformat(),
        "read_at": None,
    }
    await db.notifications.insert_one(doc)
    logger.info(f"Notification {doc['notification_id']} ({type}) queued for {recipient_id}")

    # the row is stored; a failed live push is not a failed notification
    try:
        await _publish_unread(db, recipient_id, doc)
    except Exception as e:
        logger.warning(f"Live unread push for {recipient_id} failed: {e}")
    return doc


async def mark_read(db: Database, notification_id: str, recipient_id: str) -> bool:
    """mark one notification read. read_at is only ever set once."""
    existing = await db.notifications.find_one(
        {"notification_id": notification_id, "recipient_id": recipient_id}
    )
    if not existing:
        return False
    if existing.get("read_at") is None:
        await db.notifications.update_one(
            {"notification_id": notification_id, "recipient_id": recipient_id, "read_at": None},
            {"$set": {"read_at": datetime.now(timezone.utc).isoformat()}},
        )
        await _publish_unread(db, recipient_id)
    return True


async def mark_all_read(db: Database, recipient_id: str) -> int:
    result = await db.notifications.update_many(
        {"recipient_id": recipient_id, "read_at": None},
        {"$set": {"read_at": datetime.now(timezone.utc).isoformat()}},
    )
    if result.modified_count:
        await _publish_unread(db, recipient_id)
    return result.modified_count


async def unread_count(db: Database, recipient_id: str) -> int:
    """read straight from the collection; never cached"""
    return await db.notifications.count_documents({"recipient_id": recipient_id, "read_at": None})


async def list_notifications(
    db: Database,
    recipient_id: str,
    unread_only: bool = False,
    limit: Optional[int] = None,
) -> list[dict]:
    query: dict = {"recipient_id": recipient_id}
    if unread_only:
        query["read_at"] = None
    cursor = (
        db.notifications.find(query)
        .sort("created_at", -1)
        .limit(limit or settings.NOTIFICATION_PAGE_SIZE)
    )
    return [doc async for doc in cursor]


async def _publish_unread(db: Database, recipient_id: str, item: Optional[dict] = None):
    topic = notifications_topic(recipient_id)
    if not hub.subscriber_count(topic):
        return
    event = {"type": "unread", "count": await unread_count(db, recipient_id)}
    if item is not None:
        event["item"] = {k: v for k, v in item.items() if k != "_id"}
    await hub.publish(topic, event)
