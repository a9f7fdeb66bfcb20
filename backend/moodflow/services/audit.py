# audit log: append-only record of sensitive reads and refusals
# nothing in the api updates or deletes audit records

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from moodflow.config import settings
from moodflow.services.db import Database

logger = logging.getLogger(__name__)

# action tags
VIEW_PATIENT_DASHBOARD = "view_patient_dashboard"
GENERATE_AI_SUMMARY = "generate_ai_summary"
EXPORT_REPORT = "export_report"
EXPORT_DENIED = "export_denied"
READ_DENIED = "read_denied"
SPECIALTY_ISOLATION_VIOLATION = "specialty_isolation_violation"
CONNECTION_CREATED = "connection_created"
CONNECTION_REVOKED = "connection_revoked"
ACCOUNT_DELETED = "account_deleted"


async def record(
    db: Database,
    actor_id: str,
    action: str,
    target_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> bool:
    """append an audit record. returns False if the sink rejected it.

    audit failures are logged and swallowed so they never undo the
    operation being audited.
    """
    doc = {
        "actor_id": actor_id,
        "action": action,
        "target_id": target_id,
        "metadata": metadata or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await db.audit_logs.insert_one(doc)
    except Exception as e:
        logger.warning(f"Audit write failed for {action} by {actor_id}: {e}")
        return False
    return True


async def list_for_target(db: Database, target_id: str, limit: Optional[int] = None) -> list[dict]:
    """most recent audit records about a user, newest first"""
    limit = limit or settings.AUDIT_LOG_PAGE_SIZE
    cursor = db.audit_logs.find({"target_id": target_id}).sort("timestamp", -1).limit(limit)
    return [doc async for doc in cursor]
