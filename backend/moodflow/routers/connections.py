# connections router: professionals connect to patients, patients revoke

import logging

from fastapi import APIRouter, Depends, status

from moodflow.models.connection import ConnectRequest, ConnectionResponse, RevokeResponse
from moodflow.models.user import UserSummary, Viewer
from moodflow.services import connections as connection_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import get_current_user, require_patient, require_professional

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connections", tags=["connections"])


def _doc_to_connection(doc: dict) -> ConnectionResponse:
    counterpart = doc.get("counterpart")
    return ConnectionResponse(
        patientId=doc["patient_id"],
        professionalId=doc["professional_id"],
        specialty=doc["specialty"],
        createdAt=doc.get("created_at", ""),
        counterpart=UserSummary(**counterpart) if counterpart and counterpart.get("role") else None,
    )


@router.post("", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
async def connect_patient(
    body: ConnectRequest,
    current_user: dict = Depends(require_professional),
    db: Database = Depends(get_db),
):
    """connect the calling professional to a patient found by email or id"""
    doc = await connection_service.connect(db, Viewer.from_user(current_user), body.patient)
    return _doc_to_connection(doc)


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """a patient's professionals, or a professional's patients"""
    docs = await connection_service.list_connections(db, Viewer.from_user(current_user))
    return [_doc_to_connection(d) for d in docs]


@router.delete("/{professional_id}", response_model=RevokeResponse)
async def revoke_connection(
    professional_id: str,
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    """revoke a professional's access and strip them from every entry permission"""
    result = await connection_service.revoke(db, Viewer.from_user(current_user), professional_id)
    return RevokeResponse(
        connectionRemoved=result["connection_removed"],
        entriesUpdated=result["entries_updated"],
    )
