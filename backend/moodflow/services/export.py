# export filter: access-controlled, format-independent report dataset
# entries go through the visibility resolver and notes through can_view_note,
# the same predicates the live views use, so a report never shows more than the screen

import csv
import io
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from moodflow.models.export import ExportConfig
from moodflow.models.user import Viewer
from moodflow.services import audit
from moodflow.services.connections import is_connected
from moodflow.services.db import Database
from moodflow.services.entries import entries_for_patient
from moodflow.services.errors import AccessDenied, RoleMismatch, SpecialtyIsolationViolation
from moodflow.services.notes import isolation_violation
from moodflow.services.visibility import can_view_note, is_visible, specialty_allowed

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["type", "date", "mood", "energy", "author", "specialty", "text"]


def _parse_ts(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _date_range(start: Optional[date], end: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    """start of start day, and the first instant after end day"""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end, time.min, tzinfo=timezone.utc) + timedelta(days=1) if end else None
    return lower, upper


def _in_range(value, lower: Optional[datetime], upper: Optional[datetime]) -> bool:
    ts = _parse_ts(value)
    if ts is None:
        return False
    if lower and ts < lower:
        return False
    if upper and ts >= upper:
        return False
    return True


def _entry_row(entry: dict) -> dict:
    return {
        "entryId": entry.get("entry_id"),
        "timestamp": entry.get("timestamp"),
        "mood": entry.get("mood"),
        "moodLabel": entry.get("mood_label"),
        "energy": entry.get("energy"),
        "entryMode": entry.get("entry_mode"),
        "tags": list(entry.get("tags", [])),
        "text": entry.get("text", ""),
    }


def _note_row(note: dict) -> dict:
    return {
        "noteId": note.get("note_id"),
        "createdAt": note.get("created_at"),
        "specialty": note.get("specialty"),
        "authorRole": note.get("author_role"),
        "authorName": note.get("author_name", ""),
        "entryId": note.get("entry_id"),
        "threadId": note.get("thread_id"),
        "shared": note.get("shared", False),
        "status": note.get("status", "active"),
        "text": note.get("text", ""),
    }


def build_report(patient_id: str, entries: list[dict], notes: list[dict], config: ExportConfig) -> dict:
    """filter and order a patient's data for one requester.

    order of filtering: date range, then the visibility resolver for entries
    and note isolation for notes, then the professional filter, which can
    only narrow. raises SpecialtyIsolationViolation if a professional asks
    for the other specialty.
    """
    viewer = Viewer(id=config.requester_id, role=config.requester_role)
    wanted = None if config.professional_filter == "both" else config.professional_filter
    if not specialty_allowed(viewer, wanted):
        raise SpecialtyIsolationViolation(f"A {viewer.role} cannot export {wanted} notes")

    lower, upper = _date_range(config.start_date, config.end_date)

    report_entries = []
    if config.content_filter in ("entries", "both"):
        report_entries = [
            e for e in entries
            if e.get("patient_id") == patient_id
            and _in_range(e.get("timestamp"), lower, upper)
            and is_visible(e, viewer)
        ]
        report_entries.sort(key=lambda e: _parse_ts(e["timestamp"]))

    report_notes = []
    if config.content_filter in ("notes", "both"):
        report_notes = [
            n for n in notes
            if n.get("patient_id") == patient_id
            and _in_range(n.get("created_at"), lower, upper)
            and can_view_note(n, viewer)
            and (wanted is None or n.get("specialty") == wanted)
        ]
        report_notes.sort(key=lambda n: _parse_ts(n["created_at"]))

    return {
        "patient_id": patient_id,
        "requester_role": config.requester_role,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "start_date": config.start_date,
        "end_date": config.end_date,
        "entries": [_entry_row(e) for e in report_entries],
        "notes": [_note_row(n) for n in report_notes],
    }


def empty_report(patient_id: str, config: ExportConfig) -> dict:
    return build_report(patient_id, [], [], config)


async def export_report(db: Database, viewer: Viewer, patient_id: str, config: ExportConfig) -> dict:
    """load, filter and audit a report.

    a professional without a consent edge gets an empty report and an
    export_denied audit record rather than an error.
    """
    if viewer.is_patient:
        if viewer.id != patient_id:
            raise AccessDenied("You can only export your own records")
    elif not viewer.is_professional:
        raise RoleMismatch("Only patients and professionals can export reports")
    elif not await is_connected(db, patient_id, viewer.id):
        logger.warning(f"Export denied: {viewer.id} is not connected to patient {patient_id}")
        await audit.record(db, viewer.id, audit.EXPORT_DENIED, patient_id, {"reason": "not_connected"})
        return empty_report(patient_id, config)

    wanted = None if config.professional_filter == "both" else config.professional_filter
    if not specialty_allowed(viewer, wanted):
        raise await isolation_violation(
            db, viewer, patient_id, f"Requested an export of {wanted} notes", export=True
        )

    entries = await entries_for_patient(db, patient_id)
    notes = [n async for n in db.notes.find({"patient_id": patient_id, "status": {"$ne": "hidden"}})]

    report = build_report(patient_id, entries, notes, config)
    await audit.record(
        db, viewer.id, audit.EXPORT_REPORT, patient_id,
        {
            "entries": len(report["entries"]),
            "notes": len(report["notes"]),
            "content_filter": config.content_filter,
            "professional_filter": config.professional_filter,
        },
    )
    logger.info(
        f"Report exported for patient {patient_id} by {viewer.id}: "
        f"{len(report['entries'])} entries, {len(report['notes'])} notes"
    )
    return report


def render_csv(report: dict) -> str:
    """one delimited table: entries first, then notes"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for e in report["entries"]:
        writer.writerow({
            "type": "entry",
            "date": e["timestamp"],
            "mood": e["mood"] if e["mood"] is not None else "",
            "energy": e["energy"] if e["energy"] is not None else "",
            "author": "patient",
            "specialty": "",
            "text": e["text"],
        })
    for n in report["notes"]:
        writer.writerow({
            "type": "note",
            "date": n["createdAt"],
            "mood": "",
            "energy": "",
            "author": n["authorName"] or n["authorRole"],
            "specialty": n["specialty"],
            "text": n["text"],
        })
    return buffer.getvalue()
