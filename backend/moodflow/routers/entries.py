# entries router: patient journal entries and their visibility
# patients read and write their own; connected professionals read what the resolver allows

import logging

from fastapi import APIRouter, Depends, Query, status

from moodflow.models.entry import EntryCreate, EntryUpdate, EntryResponse, EntrySaveResponse, VisibilityPolicy
from moodflow.models.user import Viewer
from moodflow.services import entries as entry_service
from moodflow.services.db import Database, get_db
from moodflow.services.visibility import policy_of, policy_to_doc
from moodflow.dependencies import get_current_user, require_patient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/entries", tags=["entries"])


def _doc_to_entry(doc: dict) -> EntryResponse:
    """convert a mongodb entry document to the response model"""
    return EntryResponse(
        id=doc["entry_id"],
        patientId=doc["patient_id"],
        timestamp=doc.get("timestamp", ""),
        mood=doc.get("mood"),
        moodLabel=doc.get("mood_label"),
        energy=doc.get("energy"),
        text=doc.get("text", ""),
        tags=doc.get("tags", []),
        entryMode=doc.get("entry_mode") or ("diary" if doc.get("mood") is None else "mood"),
        locked=doc.get("locked", False),
        visibleToPsychologist=doc.get("visible_to_psychologist"),
        visibleToPsychiatrist=doc.get("visible_to_psychiatrist"),
        permissions=doc.get("permissions", []),
        visibility=VisibilityPolicy(**policy_to_doc(policy_of(doc))),
    )


@router.get("", response_model=list[EntryResponse])
async def list_entries(
    patient_id: str = Query(None, alias="patientId", description="patient whose entries to list"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """entries the caller may see, newest first. patients default to their own."""
    viewer = Viewer.from_user(current_user)
    target = patient_id or viewer.id
    docs = await entry_service.visible_entries(db, viewer, target)
    return [_doc_to_entry(d) for d in docs]


@router.post("", response_model=EntrySaveResponse, status_code=status.HTTP_201_CREATED)
async def create_entry(
    body: EntryCreate,
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    doc, warnings = await entry_service.create_entry(db, current_user, body)
    return EntrySaveResponse(entry=_doc_to_entry(doc), warnings=warnings)


@router.patch("/{entry_id}", response_model=EntrySaveResponse)
async def update_entry(
    entry_id: str,
    body: EntryUpdate,
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    """change content, lock flag, specialty flags or permissions of an own entry"""
    doc, warnings = await entry_service.update_entry(db, current_user, entry_id, body)
    return EntrySaveResponse(entry=_doc_to_entry(doc), warnings=warnings)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: str,
    current_user: dict = Depends(require_patient),
    db: Database = Depends(get_db),
):
    await entry_service.delete_entry(db, current_user, entry_id)
