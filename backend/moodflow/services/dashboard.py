# professional dashboard: per-patient mood overview over visible entries only
# every number here goes through the visibility resolver first

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from moodflow.models.user import Viewer
from moodflow.services import audit
from moodflow.services.db import Database
from moodflow.services.entries import entries_for_patient, visible_entries
from moodflow.services.errors import RoleMismatch
from moodflow.services.identity import to_object_id
from moodflow.services.visibility import is_visible

logger = logging.getLogger(__name__)

RISK_MOOD_THRESHOLD = 2.0
INACTIVE_AFTER_DAYS = 7


def _parse_ts(value: str) -> Optional[datetime]:
    try:
        ts = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def summarize(entries: list[dict], now: Optional[datetime] = None) -> dict:
    """dashboard numbers for one patient; entries are newest first.

    Inactive: nothing visible in the last week. Risk: 7-day average mood
    under 2. Normal otherwise.
    """
    now = now or datetime.now(timezone.utc)
    week_ago = now - timedelta(days=INACTIVE_AFTER_DAYS)

    moods = [e for e in entries if e.get("mood") is not None]
    recent = [e for e in entries if (_parse_ts(e.get("timestamp", "")) or week_ago) > week_ago]
    recent_moods = [e["mood"] for e in recent if e.get("mood") is not None]
    avg_7d = round(sum(recent_moods) / len(recent_moods), 2) if recent_moods else None

    if not recent:
        status_alert = "Inactive"
    elif avg_7d is not None and avg_7d < RISK_MOOD_THRESHOLD:
        status_alert = "Risk"
    else:
        status_alert = "Normal"

    return {
        "last_mood": moods[0]["mood"] if moods else None,
        "last_mood_label": moods[0].get("mood_label") if moods else None,
        "last_update": entries[0].get("timestamp") if entries else None,
        "total_entries": len(entries),
        "avg_mood_7d": avg_7d,
        "status_alert": status_alert,
    }


def mood_trend(entries: list[dict]) -> list[dict]:
    """oldest-first mood points"""
    points = [
        {"date": e["timestamp"], "value": float(e["mood"]), "label": e.get("mood_label")}
        for e in entries
        if e.get("mood") is not None
    ]
    return list(reversed(points))


def _profile_fields(user: Optional[dict]) -> dict:
    user = user or {}
    return {"patient_name": user.get("name", ""), "patient_email": user.get("email", "")}


async def list_patients(db: Database, viewer: Viewer) -> list[dict]:
    """one row per connected patient"""
    if not viewer.is_professional:
        raise RoleMismatch("Only professionals have a patient dashboard")

    edges = [doc async for doc in db.connections.find({"professional_id": viewer.id}).sort("created_at", 1)]
    rows = []
    for edge in edges:
        patient_id = edge["patient_id"]
        user = await db.users.find_one({"_id": to_object_id(patient_id)})
        entries = [e for e in await entries_for_patient(db, patient_id) if is_visible(e, viewer)]
        rows.append({"patient_id": patient_id, **_profile_fields(user), **summarize(entries)})
    return rows


async def patient_dashboard(db: Database, viewer: Viewer, patient_id: str) -> dict:
    """dashboard for one patient; the view itself is audited"""
    if not viewer.is_professional:
        raise RoleMismatch("Only professionals have a patient dashboard")

    entries = await visible_entries(db, viewer, patient_id)
    user = await db.users.find_one({"_id": to_object_id(patient_id)})

    await audit.record(db, viewer.id, audit.VIEW_PATIENT_DASHBOARD, patient_id,
                       {"visible_entries": len(entries)})
    logger.info(f"Dashboard viewed: {viewer.id} -> patient {patient_id}")
    return {
        "patient_id": patient_id,
        **_profile_fields(user),
        **summarize(entries),
        "mood_trend": mood_trend(entries),
    }
