# audit router: a patient reads who looked at their record

import logging

from fastapi import APIRouter, Depends, Query

from moodflow.models.audit import AuditRecordResponse
from moodflow.services import audit as audit_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import require_patient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditRecordResponse])
async def list_audit_records(
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    docs = await audit_service.list_for_target(db, current_user["id"], limit)
    return [
        AuditRecordResponse(
            actorId=d["actor_id"],
            action=d["action"],
            targetId=d.get("target_id"),
            metadata=d.get("metadata", {}),
            timestamp=d["timestamp"],
        )
        for d in docs
    ]
