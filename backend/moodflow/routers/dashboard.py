# dashboard router: professional overview of connected patients

import logging

from fastapi import APIRouter, Depends

from moodflow.models.dashboard import PatientDashboard, PatientDashboardRow
from moodflow.models.user import Viewer
from moodflow.services import dashboard as dashboard_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import require_professional

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/patients", response_model=list[PatientDashboardRow])
async def list_patients(
    current_user: dict = Depends(require_professional),
    db: Database = Depends(get_db),
):
    rows = await dashboard_service.list_patients(db, Viewer.from_user(current_user))
    return [PatientDashboardRow(**row) for row in rows]


@router.get("/patients/{patient_id}", response_model=PatientDashboard)
async def patient_dashboard(
    patient_id: str,
    current_user: dict = Depends(require_professional),
    db: Database = Depends(get_db),
):
    """single patient view; appends view_patient_dashboard to the audit log"""
    data = await dashboard_service.patient_dashboard(db, Viewer.from_user(current_user), patient_id)
    return PatientDashboard(**data)
