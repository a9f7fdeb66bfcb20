# note/thread manager: threaded clinical comments and private observations
# threads are unique per (patient, professional, specialty); specialty isolation is absolute

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo.errors import DuplicateKeyError

from moodflow.models.note import NoteCreate
from moodflow.models.user import Viewer, SPECIALTIES
from moodflow.services import audit, notifications
from moodflow.services.db import Database
from moodflow.services.entries import require_patient_access
from moodflow.services.errors import (
    AccessDenied,
    Conflict,
    InvalidTransition,
    NotFound,
    RoleMismatch,
    SpecialtyIsolationViolation,
)
from moodflow.services.subscriptions import hub, notes_topic
from moodflow.services.visibility import can_view_note, is_visible, specialty_allowed

logger = logging.getLogger(__name__)

ACTIVE = "active"
RESOLVED = "resolved"
HIDDEN = "hidden"

# no transition leaves hidden
STATUS_TRANSITIONS = {
    ACTIVE: {RESOLVED, HIDDEN},
    RESOLVED: {HIDDEN},
    HIDDEN: set(),
}


async def isolation_violation(
    db: Database, viewer: Viewer, patient_id: str, detail: str, **metadata
) -> SpecialtyIsolationViolation:
    """audit a cross-specialty attempt and build the error to raise"""
    logger.warning(f"Specialty isolation violation by {viewer.id} ({viewer.role}) on patient {patient_id}: {detail}")
    await audit.record(
        db, viewer.id, audit.SPECIALTY_ISOLATION_VIOLATION, patient_id,
        {"viewer_role": viewer.role, "detail": detail, **metadata},
    )
    return SpecialtyIsolationViolation(detail)


# threads

async def get_or_create_thread(db: Database, patient_id: str, professional_id: str, specialty: str) -> dict:
    """idempotent thread lookup for the triple.

    two racing callers both miss the lookup; the unique index lets only one
    insert win and the loser re-reads the winner's thread.
    """
    if specialty not in SPECIALTIES:
        raise RoleMismatch(f"Unknown specialty: {specialty}")

    key = {"patient_id": patient_id, "professional_id": professional_id, "specialty": specialty}
    existing = await db.threads.find_one(key)
    if existing:
        return existing

    doc = {
        "thread_id": uuid.uuid4().hex[:12],
        **key,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await db.threads.insert_one(doc)
    except DuplicateKeyError:
        winner = await db.threads.find_one(key)
        if winner:
            return winner
        raise Conflict("Thread was created concurrently but could not be read back")

    logger.info(f"Thread created: {doc['thread_id']} ({specialty}) patient {patient_id} / {professional_id}")
    return doc


async def open_thread(db: Database, viewer: Viewer, patient_id: str, professional_id: Optional[str] = None) -> dict:
    """get or create the viewer's thread with the other party"""
    await require_patient_access(db, viewer, patient_id)

    if viewer.is_professional:
        if professional_id and professional_id != viewer.id:
            raise AccessDenied("Professionals can only open their own threads")
        return await get_or_create_thread(db, patient_id, viewer.id, viewer.specialty)

    if not professional_id:
        raise NotFound("Choose the professional to message")
    edge = await db.connections.find_one({"patient_id": patient_id, "professional_id": professional_id})
    if not edge:
        raise AccessDenied("You are not connected to this professional")
    return await get_or_create_thread(db, patient_id, professional_id, edge["specialty"])


async def list_threads(db: Database, viewer: Viewer, patient_id: str) -> list[dict]:
    await require_patient_access(db, viewer, patient_id)
    query = {"patient_id": patient_id}
    if viewer.is_professional:
        query.update({"professional_id": viewer.id, "specialty": viewer.specialty})
    cursor = db.threads.find(query).sort("created_at", 1)
    return [doc async for doc in cursor]


async def _load_thread(db: Database, thread_id: str, patient_id: str) -> dict:
    thread = await db.threads.find_one({"thread_id": thread_id})
    if not thread or thread.get("patient_id") != patient_id:
        raise NotFound("Thread not found")
    return thread


async def _check_professional_thread(db: Database, viewer: Viewer, thread: dict) -> None:
    if thread["specialty"] != viewer.specialty:
        raise await isolation_violation(
            db, viewer, thread["patient_id"],
            "Thread belongs to another specialty", thread_id=thread["thread_id"],
        )
    if thread["professional_id"] != viewer.id:
        await audit.record(db, viewer.id, audit.READ_DENIED, thread["patient_id"],
                           {"reason": "foreign_thread", "thread_id": thread["thread_id"]})
        raise AccessDenied("Thread belongs to another professional")


# notes

async def save_note(db: Database, author: dict, body: NoteCreate) -> tuple[dict, list[str]]:
    """persist a note and notify the other party when it is shared.

    returns the note and a list of recoverable warnings; a notification
    failure never rolls the note back.
    """
    viewer = Viewer.from_user(author)
    if not (viewer.is_patient or viewer.is_professional):
        raise RoleMismatch("Only patients and professionals can write notes")

    patient_id = body.patient_id or (viewer.id if viewer.is_patient else None)
    if not patient_id:
        raise NotFound("Patient is required")
    await require_patient_access(db, viewer, patient_id)

    thread = None
    if viewer.is_patient:
        shared = True if body.shared is None else body.shared
        if not shared:
            raise RoleMismatch("Patient messages are always shared with the professional")
        if body.thread_id:
            thread = await _load_thread(db, body.thread_id, patient_id)
        else:
            thread = await open_thread(db, viewer, patient_id, body.professional_id)
        if not await db.connections.find_one(
            {"patient_id": patient_id, "professional_id": thread["professional_id"]}
        ):
            raise AccessDenied("You are no longer connected to this professional")
        professional_id, specialty = thread["professional_id"], thread["specialty"]
    else:
        shared = bool(body.shared)
        if body.thread_id:
            thread = await _load_thread(db, body.thread_id, patient_id)
            await _check_professional_thread(db, viewer, thread)
        elif shared:
            thread = await get_or_create_thread(db, patient_id, viewer.id, viewer.specialty)
        professional_id, specialty = viewer.id, viewer.specialty

    if body.entry_id:
        entry = await db.entries.find_one({"entry_id": body.entry_id, "patient_id": patient_id})
        if not entry or not is_visible(entry, viewer):
            if entry:
                await audit.record(db, viewer.id, audit.READ_DENIED, patient_id,
                                   {"reason": "entry_not_visible", "entry_id": body.entry_id})
            raise NotFound("Journal entry not found")

    now = datetime.now(timezone.utc)
    doc = {
        "note_id": uuid.uuid4().hex[:12],
        "patient_id": patient_id,
        "professional_id": professional_id,
        "specialty": specialty,
        "thread_id": thread["thread_id"] if thread else None,
        "entry_id": body.entry_id,
        "author_id": viewer.id,
        "author_role": "patient" if viewer.is_patient else "professional",
        "author_name": author.get("name", ""),
        "text": body.text,
        "shared": shared,
        "status": ACTIVE,
        "read": False,
        "created_at": now.isoformat(),
    }
    await db.notes.insert_one(doc)
    logger.info(f"Note saved: {doc['note_id']} by {viewer.id} on patient {patient_id} (shared={shared})")

    warnings = []
    if shared:
        recipient_id = professional_id if viewer.is_patient else patient_id
        note_type = notifications.COMMENT_CREATED if body.entry_id else notifications.MESSAGE_CREATED
        sender = author.get("name") or ("Your patient" if viewer.is_patient else "Your professional")
        try:
            await notifications.notify(
                db,
                recipient_id,
                note_type,
                f"New {'comment' if body.entry_id else 'message'} from {sender}",
                body.text[:140],
                {
                    "note_id": doc["note_id"],
                    "thread_id": doc["thread_id"],
                    "entry_id": body.entry_id,
                    "patient_id": patient_id,
                },
            )
        except Exception as e:
            logger.warning(f"Notification for note {doc['note_id']} failed: {e}")
            warnings.append("The note was saved but the recipient could not be notified")

    await hub.publish(notes_topic(patient_id), {"type": "notes", "noteId": doc["note_id"]})
    return doc, warnings


async def list_notes(
    db: Database,
    viewer: Viewer,
    patient_id: str,
    thread_id: Optional[str] = None,
    specialty: Optional[str] = None,
) -> list[dict]:
    """notes on a patient's record that viewer may read, oldest first.

    a request scoped to another specialty raises instead of returning an
    empty list, so audits can tell refusal from absence.
    """
    await require_patient_access(db, viewer, patient_id)

    if not specialty_allowed(viewer, specialty):
        raise await isolation_violation(db, viewer, patient_id, f"Requested {specialty} notes", specialty=specialty)

    query: dict = {"patient_id": patient_id, "status": {"$ne": HIDDEN}}
    if thread_id:
        thread = await _load_thread(db, thread_id, patient_id)
        if viewer.is_professional:
            await _check_professional_thread(db, viewer, thread)
        query["thread_id"] = thread_id
    if specialty:
        query["specialty"] = specialty

    if viewer.is_patient:
        query["shared"] = True
    else:
        query["specialty"] = viewer.specialty
        query["$or"] = [
            {"author_id": viewer.id},
            {"author_role": "patient", "shared": True, "professional_id": viewer.id},
        ]

    cursor = db.notes.find(query).sort("created_at", 1)
    return [note async for note in cursor if can_view_note(note, viewer)]


async def update_note_status(db: Database, viewer: Viewer, note_id: str, status: str) -> dict:
    note = await db.notes.find_one({"note_id": note_id})
    if not note:
        raise NotFound("Note not found")

    if not can_view_note(note, viewer):
        if viewer.is_professional and note.get("specialty") != viewer.specialty:
            raise await isolation_violation(db, viewer, note["patient_id"], "Note belongs to another specialty", note_id=note_id)
        raise NotFound("Note not found")

    current = note.get("status", ACTIVE)
    if status not in STATUS_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move a note from {current} to {status}")

    if status == RESOLVED and not (viewer.is_professional and note.get("professional_id") == viewer.id):
        raise RoleMismatch("Only the treating professional can resolve a note")
    if status == HIDDEN and note.get("author_id") != viewer.id and note.get("professional_id") != viewer.id:
        raise RoleMismatch("Only the author or the treating professional can hide a note")

    now = datetime.now(timezone.utc).isoformat()
    result = await db.notes.update_one(
        {"note_id": note_id, "status": current},
        {"$set": {"status": status, "status_changed_at": now}},
    )
    if result.matched_count == 0:
        # another transition landed between the read and the write
        raise InvalidTransition(f"Note {note_id} changed status concurrently")
    logger.info(f"Note {note_id}: {current} -> {status} by {viewer.id}")
    await hub.publish(notes_topic(note["patient_id"]), {"type": "notes", "noteId": note_id})
    return await db.notes.find_one({"note_id": note_id})


async def mark_notes_read(db: Database, viewer: Viewer, patient_id: str) -> int:
    """mark every counterpart-authored note the viewer can see as read"""
    await require_patient_access(db, viewer, patient_id)
    if viewer.is_patient:
        query = {"patient_id": patient_id, "author_role": "professional", "shared": True, "read": False}
    else:
        query = {
            "patient_id": patient_id,
            "author_role": "patient",
            "professional_id": viewer.id,
            "specialty": viewer.specialty,
            "read": False,
        }
    result = await db.notes.update_many(query, {"$set": {"read": True}})
    return result.modified_count
