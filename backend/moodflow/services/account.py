# account deletion: cascade a patient's data out of every collection
# audit records are kept; they are only removed by the retention policy

import logging

from moodflow.models.user import Viewer
from moodflow.services import audit
from moodflow.services.db import Database
from moodflow.services.errors import RoleMismatch
from moodflow.services.identity import to_object_id
from moodflow.services.subscriptions import hub, entries_topic, notes_topic

logger = logging.getLogger(__name__)


async def delete_patient_account(db: Database, viewer: Viewer) -> dict:
    """delete a patient and everything they own; returns per-collection counts"""
    if not viewer.is_patient:
        raise RoleMismatch("Only patient accounts can be deleted here")

    patient_id = viewer.id
    counts = {}
    async with db.transaction() as session:
        for name, collection, query in (
            ("notes", db.notes, {"patient_id": patient_id}),
            ("threads", db.threads, {"patient_id": patient_id}),
            ("entries", db.entries, {"patient_id": patient_id}),
            ("connections", db.connections, {"patient_id": patient_id}),
            ("notifications", db.notifications, {"recipient_id": patient_id}),
        ):
            result = await collection.delete_many(query, session=session)
            counts[name] = result.deleted_count
        await db.users.delete_one({"_id": to_object_id(patient_id)}, session=session)

    await audit.record(db, patient_id, audit.ACCOUNT_DELETED, patient_id, counts)
    await hub.publish(entries_topic(patient_id), {"type": "entries", "reason": "account_deleted"})
    await hub.publish(notes_topic(patient_id), {"type": "notes", "reason": "account_deleted"})
    logger.info(f"Account deleted: patient {patient_id} {counts}")
    return counts
