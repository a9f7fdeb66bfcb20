# notes router: threaded comments, private observations and read receipts

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from moodflow.models.note import (
    NoteCreate,
    NoteResponse,
    NoteSaveResponse,
    NoteStatusUpdate,
    NotesReadRequest,
    ThreadCreate,
    ThreadResponse,
)
from moodflow.models.user import Specialty, Viewer
from moodflow.services import notes as note_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(tags=["notes"])


def _doc_to_note(doc: dict) -> NoteResponse:
    return NoteResponse(
        id=doc["note_id"],
        patientId=doc["patient_id"],
        professionalId=doc["professional_id"],
        specialty=doc["specialty"],
        threadId=doc.get("thread_id"),
        entryId=doc.get("entry_id"),
        authorId=doc["author_id"],
        authorRole=doc["author_role"],
        authorName=doc.get("author_name", ""),
        text=doc.get("text", ""),
        shared=doc.get("shared", False),
        status=doc.get("status", "active"),
        read=doc.get("read", False),
        createdAt=doc.get("created_at", ""),
    )


def _doc_to_thread(doc: dict) -> ThreadResponse:
    return ThreadResponse(
        id=doc["thread_id"],
        patientId=doc["patient_id"],
        professionalId=doc["professional_id"],
        specialty=doc["specialty"],
        createdAt=doc.get("created_at", ""),
    )


# threads

@router.post("/threads", response_model=ThreadResponse, tags=["threads"])
async def open_thread(
    body: ThreadCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """get or create the thread between the caller and the other party"""
    viewer = Viewer.from_user(current_user)
    doc = await note_service.open_thread(db, viewer, body.patient_id, body.professional_id)
    return _doc_to_thread(doc)


@router.get("/threads", response_model=list[ThreadResponse], tags=["threads"])
async def list_threads(
    patient_id: str = Query(None, alias="patientId"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    viewer = Viewer.from_user(current_user)
    docs = await note_service.list_threads(db, viewer, patient_id or viewer.id)
    return [_doc_to_thread(d) for d in docs]


# notes

@router.post("/notes", response_model=NoteSaveResponse, status_code=status.HTTP_201_CREATED)
async def save_note(
    body: NoteCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """save a note; warnings report notifications that could not be delivered"""
    doc, warnings = await note_service.save_note(db, current_user, body)
    return NoteSaveResponse(note=_doc_to_note(doc), warnings=warnings)


@router.get("/notes", response_model=list[NoteResponse])
async def list_notes(
    patient_id: str = Query(None, alias="patientId"),
    thread_id: Optional[str] = Query(None, alias="threadId"),
    specialty: Optional[Specialty] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """notes on a patient's record the caller may read, oldest first"""
    viewer = Viewer.from_user(current_user)
    docs = await note_service.list_notes(db, viewer, patient_id or viewer.id, thread_id, specialty)
    return [_doc_to_note(d) for d in docs]


@router.patch("/notes/{note_id}/status", response_model=NoteResponse)
async def update_note_status(
    note_id: str,
    body: NoteStatusUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    doc = await note_service.update_note_status(db, Viewer.from_user(current_user), note_id, body.status)
    return _doc_to_note(doc)


@router.post("/notes/read")
async def mark_notes_read(
    body: NotesReadRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """read receipts for every counterpart note on a patient's record"""
    updated = await note_service.mark_notes_read(db, Viewer.from_user(current_user), body.patient_id)
    return {"updated": updated}
