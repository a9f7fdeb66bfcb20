# entry service: patient-owned journal entries and their visibility
# writes compute the policy value once; reads always go through the visibility resolver

import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional

from moodflow.models.entry import EntryCreate, EntryUpdate, VisibilityPolicy
from moodflow.models.user import Viewer
from moodflow.services import audit, notifications
from moodflow.services.connections import connected_professional_ids, is_connected
from moodflow.services.db import Database, store_retry
from moodflow.services.errors import AccessDenied, NotFound, RoleMismatch
from moodflow.services.subscriptions import hub, entries_topic
from moodflow.services.visibility import (
    derive_policy,
    is_visible,
    legacy_fields,
    normalize_policy,
    policy_of,
    policy_to_doc,
    EXPLICIT_LIST,
    LOCKED,
    RESTRICTED_TO,
)

logger = logging.getLogger(__name__)

VISIBILITY_FIELDS = {"locked", "visible_to_psychologist", "visible_to_psychiatrist", "permissions", "visibility"}


def _bounded_visibility(fields: dict, policy: Optional[VisibilityPolicy], connected: set[str]) -> dict:
    """legacy fields + policy doc with explicit grants limited to connected professionals.

    fields holds the legacy values; policy, when given, was supplied directly
    by the client and wins over them. an explicit lock wins over both.
    """
    if fields.get("locked") is True:
        policy = VisibilityPolicy(kind=LOCKED)
    if policy is not None:
        policy = normalize_policy(policy)
        if policy.kind in (RESTRICTED_TO, EXPLICIT_LIST):
            policy = VisibilityPolicy(
                kind=policy.kind,
                specialties=policy.specialties,
                professional_ids=[p for p in policy.professional_ids if p in connected],
            )
        legacy = legacy_fields(policy)
    else:
        locked = bool(fields.get("locked"))
        legacy = {
            "locked": locked,
            # a locked entry carries no other grant
            "visible_to_psychologist": None if locked else fields.get("visible_to_psychologist"),
            "visible_to_psychiatrist": None if locked else fields.get("visible_to_psychiatrist"),
            "permissions": [] if locked else [p for p in fields.get("permissions") or [] if p in connected],
        }
        policy = derive_policy(
            legacy["locked"],
            legacy["visible_to_psychologist"],
            legacy["visible_to_psychiatrist"],
            legacy["permissions"],
        )
    return {**legacy, "visibility": policy_to_doc(policy)}


def _kept_explicit_list(stored: VisibilityPolicy, provided: dict) -> Optional[VisibilityPolicy]:
    """an explicit list has no legacy-field form; carry it across legacy-field updates.

    returns None when the update should be derived from the legacy fields:
    the stored policy is not an explicit list, or a specialty flag is turned on.
    """
    if stored.kind != EXPLICIT_LIST:
        return None
    if provided.get("visible_to_psychologist") is True or provided.get("visible_to_psychiatrist") is True:
        return None
    professional_ids = provided["permissions"] if "permissions" in provided else stored.professional_ids
    return VisibilityPolicy(kind=EXPLICIT_LIST, professional_ids=professional_ids or [])


async def _reconcile_permissions(db: Database, patient_id: str, entry_id: str) -> int:
    """pull grants whose connection disappeared while the entry was being written.

    paired with revoke (edge first, then strip) this leaves no entry naming a
    disconnected professional, whichever way the two operations interleave.
    """
    entry = await db.entries.find_one({"entry_id": entry_id})
    if not entry:
        return 0
    granted = set(entry.get("permissions", [])) | set(policy_of(entry).professional_ids)
    if not granted:
        return 0
    connected = await connected_professional_ids(db, patient_id)
    stale = sorted(granted - connected)
    if not stale:
        return 0
    await db.entries.update_one(
        {"entry_id": entry_id},
        {"$pull": {"permissions": {"$in": stale}, "visibility.professional_ids": {"$in": stale}}},
    )
    logger.info(f"Entry {entry_id}: dropped grants for disconnected professionals {stale}")
    return len(stale)


def _granted_ids(doc: dict) -> set[str]:
    return set(doc.get("permissions", [])) | set(doc.get("visibility", {}).get("professional_ids", []))


async def _notify_shared(db: Database, patient: dict, entry: dict, professional_ids: set[str]) -> list[str]:
    warnings = []
    for professional_id in sorted(professional_ids):
        try:
            await notifications.notify(
                db,
                professional_id,
                notifications.ENTRY_SHARED,
                "New entry shared with you",
                f"{patient.get('name') or 'Your patient'} shared a journal entry with you",
                {"entry_id": entry["entry_id"], "patient_id": entry["patient_id"]},
            )
        except Exception as e:
            logger.warning(f"Could not notify {professional_id} about entry {entry['entry_id']}: {e}")
            warnings.append(f"notification to {professional_id} failed")
    return warnings


async def create_entry(db: Database, patient: dict, body: EntryCreate) -> tuple[dict, list[str]]:
    """store a new entry owned by the acting patient"""
    viewer = Viewer.from_user(patient)
    if not viewer.is_patient:
        raise RoleMismatch("Only patients can create journal entries")

    now = datetime.now(timezone.utc)
    timestamp = body.timestamp or now
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    # entry_id as md5 hash of patient_id + content + submission time
    raw = f"{viewer.id}:{body.text}:{now.isoformat()}"
    entry_id = hashlib.md5(raw.encode()).hexdigest()[:12]

    connected = await connected_professional_ids(db, viewer.id)
    visibility = _bounded_visibility(body.model_dump(), body.visibility, connected)

    doc = {
        "entry_id": entry_id,
        "patient_id": viewer.id,
        "timestamp": timestamp.astimezone(timezone.utc).isoformat(),
        "mood": body.mood,
        "mood_label": body.mood_label,
        "energy": body.energy,
        "text": body.text,
        "tags": body.tags,
        "entry_mode": body.entry_mode or ("diary" if body.mood is None else "mood"),
        **visibility,
        "created_at": now.isoformat(),
    }
    await db.entries.insert_one(doc)
    await _reconcile_permissions(db, viewer.id, entry_id)
    logger.info(f"Entry created: {entry_id} by patient {viewer.id} ({visibility['visibility']['kind']})")

    stored = await db.entries.find_one({"entry_id": entry_id})
    warnings = await _notify_shared(db, patient, stored, _granted_ids(stored))
    await hub.publish(entries_topic(viewer.id), {"type": "entries", "entryId": entry_id})
    return stored, warnings


async def _owned_entry(db: Database, viewer: Viewer, entry_id: str) -> dict:
    if not viewer.is_patient:
        raise RoleMismatch("Only the owning patient can change an entry")
    entry = await db.entries.find_one({"entry_id": entry_id, "patient_id": viewer.id})
    if not entry:
        raise NotFound("Journal entry not found")
    return entry


async def update_entry(db: Database, patient: dict, entry_id: str, body: EntryUpdate) -> tuple[dict, list[str]]:
    """apply a partial update; visibility is recomputed if any of its fields changed"""
    viewer = Viewer.from_user(patient)
    entry = await _owned_entry(db, viewer, entry_id)
    provided = body.model_dump(include=body.model_fields_set)

    update_fields = {
        key: provided[key]
        for key in ("text", "mood", "mood_label", "energy", "tags")
        if key in provided
    }
    if VISIBILITY_FIELDS & provided.keys():
        current = {
            "locked": entry.get("locked", False),
            "visible_to_psychologist": entry.get("visible_to_psychologist"),
            "visible_to_psychiatrist": entry.get("visible_to_psychiatrist"),
            "permissions": entry.get("permissions", []),
        }
        current.update({k: v for k, v in provided.items() if k in current})
        connected = await connected_professional_ids(db, viewer.id)
        if body.visibility is not None:
            # only the lock sent alongside a policy can override it, not the stored one
            update_fields.update(_bounded_visibility(provided, body.visibility, connected))
        else:
            kept = _kept_explicit_list(policy_of(entry), provided)
            update_fields.update(_bounded_visibility(current, kept, connected))

    if update_fields:
        update_fields["updated_at"] = datetime.now(timezone.utc).isoformat()
        await db.entries.update_one({"entry_id": entry_id}, {"$set": update_fields})
        await _reconcile_permissions(db, viewer.id, entry_id)

    updated = await db.entries.find_one({"entry_id": entry_id})
    newly_granted = _granted_ids(updated) - _granted_ids(entry)
    warnings = await _notify_shared(db, patient, updated, newly_granted)
    await hub.publish(entries_topic(viewer.id), {"type": "entries", "entryId": entry_id})
    logger.info(f"Entry updated: {entry_id} by patient {viewer.id}")
    return updated, warnings


async def delete_entry(db: Database, patient: dict, entry_id: str) -> None:
    """delete an entry and the threaded comments attached to it"""
    viewer = Viewer.from_user(patient)
    await _owned_entry(db, viewer, entry_id)

    await db.entries.delete_one({"entry_id": entry_id})
    removed = await db.notes.delete_many({"patient_id": viewer.id, "entry_id": entry_id})
    await hub.publish(entries_topic(viewer.id), {"type": "entries", "entryId": entry_id})
    logger.info(f"Entry deleted: {entry_id} by patient {viewer.id} ({removed.deleted_count} notes)")


async def require_patient_access(db: Database, viewer: Viewer, patient_id: str) -> None:
    """gate every read of a patient's record: the patient themself or a connected professional"""
    if viewer.is_patient:
        if viewer.id != patient_id:
            raise AccessDenied("You can only view your own records")
        return
    if not viewer.is_professional:
        raise RoleMismatch("Only patients and professionals can read journal data")
    if not await is_connected(db, patient_id, viewer.id):
        await audit.record(db, viewer.id, audit.READ_DENIED, patient_id, {"reason": "not_connected"})
        raise AccessDenied("You do not have access to this patient")


@store_retry
async def entries_for_patient(db: Database, patient_id: str) -> list[dict]:
    """all entries of a patient, newest first (store order, no filtering)"""
    cursor = db.entries.find({"patient_id": patient_id}).sort("timestamp", -1)
    return [doc async for doc in cursor]


async def visible_entries(db: Database, viewer: Viewer, patient_id: str) -> list[dict]:
    """the patient's entries the viewer may read, newest first"""
    await require_patient_access(db, viewer, patient_id)
    return [e for e in await entries_for_patient(db, patient_id) if is_visible(e, viewer)]
