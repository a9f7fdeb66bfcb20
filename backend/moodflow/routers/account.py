# account router: patient account deletion

import logging

from fastapi import APIRouter, Depends

from moodflow.models.user import Viewer
from moodflow.services.account import delete_patient_account
from moodflow.services.db import Database, get_db
from moodflow.dependencies import require_patient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/account", tags=["account"])


@router.delete("")
async def delete_account(
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    """delete the calling patient and everything they own"""
    counts = await delete_patient_account(db, Viewer.from_user(current_user))
    return {"deleted": counts}
