# connection registry: patient/professional consent edges
# connect looks a patient up by email or id; revoke cascades into entry permissions

import logging
import re
from datetime import datetime, timezone

from pymongo.errors import DuplicateKeyError

from moodflow.models.user import Viewer, PATIENT
from moodflow.services import audit
from moodflow.services.db import Database, store_retry
from moodflow.services.errors import AlreadyConnected, NotFound, RoleMismatch
from moodflow.services.identity import to_object_id
from moodflow.services.subscriptions import hub, entries_topic

logger = logging.getLogger(__name__)


async def _find_target(db: Database, patient_email_or_id: str) -> dict | None:
    value = patient_email_or_id.strip()
    oid = to_object_id(value)
    if oid is not None:
        user = await db.users.find_one({"_id": oid})
        if user:
            return user
    return await db.users.find_one(
        {"email": {"$regex": f"^{re.escape(value)}$", "$options": "i"}}
    )


async def connect(db: Database, professional: Viewer, patient_email_or_id: str) -> dict:
    """create the consent edge professional -> patient"""
    if not professional.is_professional:
        raise RoleMismatch("Only psychologists and psychiatrists can connect to patients")

    target = await _find_target(db, patient_email_or_id)
    if not target:
        raise NotFound("Patient not found")
    if target.get("role") != PATIENT:
        raise RoleMismatch("Target user is not a patient")

    patient_id = str(target["_id"])
    if await is_connected(db, patient_id, professional.id):
        raise AlreadyConnected("Already connected to this patient")

    doc = {
        "patient_id": patient_id,
        "professional_id": professional.id,
        "specialty": professional.specialty,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await db.connections.insert_one(doc)
    except DuplicateKeyError:
        # lost a race with a concurrent connect for the same pair
        raise AlreadyConnected("Already connected to this patient")

    logger.info(f"Connection created: {professional.id} -> patient {patient_id}")
    await audit.record(db, professional.id, audit.CONNECTION_CREATED, patient_id,
                       {"specialty": professional.specialty})
    return doc


async def is_connected(db: Database, patient_id: str, professional_id: str, session=None) -> bool:
    edge = await db.connections.find_one(
        {"patient_id": patient_id, "professional_id": professional_id}, session=session
    )
    return edge is not None


@store_retry
async def connected_professional_ids(db: Database, patient_id: str) -> set[str]:
    cursor = db.connections.find({"patient_id": patient_id})
    return {doc["professional_id"] async for doc in cursor}


async def list_connections(db: Database, viewer: Viewer) -> list[dict]:
    """connections of a patient (their professionals) or a professional (their patients),
    each joined with the counterpart's profile"""
    if viewer.is_patient:
        query, other_key = {"patient_id": viewer.id}, "professional_id"
    elif viewer.is_professional:
        query, other_key = {"professional_id": viewer.id}, "patient_id"
    else:
        raise RoleMismatch("Only patients and professionals have connections")

    edges = [doc async for doc in db.connections.find(query).sort("created_at", 1)]
    oids = [oid for oid in (to_object_id(e[other_key]) for e in edges) if oid is not None]
    profiles = {}
    if oids:
        async for user in db.users.find({"_id": {"$in": oids}}):
            profiles[str(user["_id"])] = user

    results = []
    for edge in edges:
        profile = profiles.get(edge[other_key], {})
        results.append({
            **edge,
            "counterpart": {
                "id": edge[other_key],
                "name": profile.get("name", ""),
                "email": profile.get("email", ""),
                "role": profile.get("role", ""),
            },
        })
    return results


async def strip_permissions(db: Database, patient_id: str, professional_id: str, session=None) -> int:
    """remove professional_id from every explicit grant on the patient's entries"""
    result = await db.entries.update_many(
        {
            "patient_id": patient_id,
            "$or": [
                {"permissions": professional_id},
                {"visibility.professional_ids": professional_id},
            ],
        },
        {"$pull": {"permissions": professional_id, "visibility.professional_ids": professional_id}},
        session=session,
    )
    return result.modified_count


async def revoke(db: Database, patient: Viewer, professional_id: str) -> dict:
    """delete the consent edge and strip the professional from all entry permissions.

    both halves run in one transaction when the store supports it. without
    transactions the edge goes first: every professional read is gated on the
    edge, so a stale grant left by a failed strip confers nothing, and a
    retried revoke finishes the strip.
    """
    if not patient.is_patient:
        raise RoleMismatch("Only the patient can revoke access")

    async with db.transaction() as session:
        deleted = await db.connections.delete_one(
            {"patient_id": patient.id, "professional_id": professional_id}, session=session
        )
        stripped = await strip_permissions(db, patient.id, professional_id, session=session)

    if deleted.deleted_count == 0 and stripped == 0:
        raise NotFound("Connection not found")

    logger.info(
        f"Connection revoked: patient {patient.id} -> {professional_id}, "
        f"{stripped} entries stripped"
    )
    await audit.record(db, patient.id, audit.CONNECTION_REVOKED, patient.id,
                       {"professional_id": professional_id, "entries_updated": stripped})
    await hub.publish(entries_topic(patient.id), {"type": "entries", "reason": "revoked"})
    return {"connection_removed": deleted.deleted_count > 0, "entries_updated": stripped}
