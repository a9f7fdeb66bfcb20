# insights router: ai summaries over visible entries

import logging

from fastapi import APIRouter, Depends, Query

from moodflow.models.insight import SummaryResponse
from moodflow.models.user import Viewer
from moodflow.services import summary_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/insights", tags=["insights"])


@router.post("/{patient_id}/summary", response_model=SummaryResponse)
async def generate_summary(
    patient_id: str,
    window_days: int = Query(None, alias="windowDays", ge=1, le=365),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """summarize the entries the caller may see; audited as generate_ai_summary"""
    result = await summary_service.generate_summary(db, Viewer.from_user(current_user), patient_id, window_days)
    return SummaryResponse(
        patientId=result["patient_id"],
        summary=result["summary"],
        entryCount=result["entry_count"],
        windowDays=result["window_days"],
    )
