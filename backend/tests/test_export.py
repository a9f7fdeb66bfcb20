# tests for the export filter: report datasets honour the same rules as live views
# covers build_report directly and the /exports router end to end

import csv
import io

import pytest

from moodflow.models.export import ExportConfig
from moodflow.services.errors import SpecialtyIsolationViolation
from moodflow.services.export import build_report, render_csv, CSV_COLUMNS
from tests.conftest import (
    ENTRY_OPEN,
    ENTRY_PSYCHOLOGIST_ONLY,
    ENTRY_LOCKED,
    ENTRY_LEGACY_PSYCHIATRIST,
    PATIENT_ID,
    PATIENT_2_ID,
    PSYCHOLOGIST_ID,
    PSYCHIATRIST_ID,
)

ENTRIES = [ENTRY_OPEN, ENTRY_PSYCHOLOGIST_ONLY, ENTRY_LOCKED, ENTRY_LEGACY_PSYCHIATRIST]


def _note(note_id, author_id, author_role, specialty, professional_id, shared, created_at, status="active"):
    return {
        "note_id": note_id,
        "patient_id": PATIENT_ID,
        "professional_id": professional_id,
        "specialty": specialty,
        "thread_id": f"thread-{specialty}",
        "entry_id": None,
        "author_id": author_id,
        "author_role": author_role,
        "author_name": "",
        "text": f"note {note_id}",
        "shared": shared,
        "status": status,
        "read": False,
        "created_at": created_at,
    }


NOTES = [
    _note("psy-private", PSYCHOLOGIST_ID, "professional", "psychologist", PSYCHOLOGIST_ID, False,
          "2025-06-11T10:00:00+00:00"),
    _note("psy-shared", PSYCHOLOGIST_ID, "professional", "psychologist", PSYCHOLOGIST_ID, True,
          "2025-06-12T10:00:00+00:00"),
    _note("psi-shared", PSYCHIATRIST_ID, "professional", "psychiatrist", PSYCHIATRIST_ID, True,
          "2025-06-09T10:00:00+00:00"),
    _note("patient-to-psi", PATIENT_ID, "patient", "psychiatrist", PSYCHIATRIST_ID, True,
          "2025-06-13T10:00:00+00:00"),
    _note("psy-hidden", PSYCHOLOGIST_ID, "professional", "psychologist", PSYCHOLOGIST_ID, True,
          "2025-06-13T11:00:00+00:00", status="hidden"),
]


def _config(requester_id, role, **kwargs):
    return ExportConfig(requester_id=requester_id, requester_role=role, **kwargs)


def _ids(report):
    return [e["entryId"] for e in report["entries"]], [n["noteId"] for n in report["notes"]]


class TestBuildReport:
    """pure filtering over already-loaded rows"""

    def test_patient_gets_everything_own_except_private_notes(self):
        entries, notes = _ids(build_report(PATIENT_ID, ENTRIES, NOTES, _config(PATIENT_ID, "patient")))
        assert entries == ["entrylegacy1", "entryopen001", "entrypsylog1", "entrylocked1"]
        assert notes == ["psi-shared", "psy-shared", "patient-to-psi"]

    def test_psychologist_sees_resolver_filtered_entries(self):
        entries, notes = _ids(build_report(PATIENT_ID, ENTRIES, NOTES, _config(PSYCHOLOGIST_ID, "psychologist")))
        assert entries == ["entryopen001", "entrypsylog1"]
        assert notes == ["psy-private", "psy-shared"]

    def test_psychiatrist_sees_own_specialty_only(self):
        entries, notes = _ids(build_report(PATIENT_ID, ENTRIES, NOTES, _config(PSYCHIATRIST_ID, "psychiatrist")))
        assert entries == ["entrylegacy1", "entryopen001"]
        assert notes == ["psi-shared", "patient-to-psi"]

    def test_professional_filter_narrows_for_patient(self):
        config = _config(PATIENT_ID, "patient", professional_filter="psychiatrist")
        _, notes = _ids(build_report(PATIENT_ID, ENTRIES, NOTES, config))
        assert notes == ["psi-shared", "patient-to-psi"]

    def test_professional_filter_cannot_widen(self):
        config = _config(PSYCHIATRIST_ID, "psychiatrist", professional_filter="psychologist")
        with pytest.raises(SpecialtyIsolationViolation):
            build_report(PATIENT_ID, ENTRIES, NOTES, config)

    def test_date_range_includes_whole_end_day(self):
        config = _config(PATIENT_ID, "patient", start_date="2025-06-10", end_date="2025-06-12")
        entries, notes = _ids(build_report(PATIENT_ID, ENTRIES, NOTES, config))
        assert entries == ["entryopen001", "entrypsylog1"]
        assert notes == ["psy-shared"]

    def test_content_filter_entries_only(self):
        config = _config(PATIENT_ID, "patient", content_filter="entries")
        report = build_report(PATIENT_ID, ENTRIES, NOTES, config)
        assert report["notes"] == []
        assert len(report["entries"]) == 4

    def test_other_patients_rows_dropped(self):
        other = dict(ENTRY_OPEN, entry_id="x", patient_id=PATIENT_2_ID)
        entries, _ = _ids(build_report(PATIENT_ID, [other], [], _config(PATIENT_ID, "patient")))
        assert entries == []

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError):
            _config(PATIENT_ID, "patient", start_date="2025-06-12", end_date="2025-06-10")


class TestRenderCsv:

    def test_entries_then_notes(self):
        report = build_report(PATIENT_ID, ENTRIES, NOTES, _config(PSYCHOLOGIST_ID, "psychologist"))
        rows = list(csv.DictReader(io.StringIO(render_csv(report))))
        assert [r["type"] for r in rows] == ["entry", "entry", "note", "note"]
        assert rows[0]["mood"] == "2"
        assert rows[2]["specialty"] == "psychologist"

    def test_header_only_for_empty_report(self):
        report = build_report(PATIENT_ID, [], [], _config(PATIENT_ID, "patient"))
        lines = render_csv(report).strip().splitlines()
        assert lines == [",".join(CSV_COLUMNS)]


class TestExportRoutes:
    """POST /exports/{patientId}"""

    async def test_patient_exports_own_report(self, mock_db, patient_client):
        mock_db.notes._data.extend(dict(n) for n in NOTES)
        resp = await patient_client.post(f"/exports/{PATIENT_ID}", json={})
        assert resp.status_code == 200
        data = resp.json()
        assert data["patientId"] == PATIENT_ID
        assert data["requesterRole"] == "patient"
        assert len(data["entries"]) == 4
        assert mock_db.audit_logs._data[-1]["action"] == "export_report"

    async def test_patient_cannot_export_other_patient(self, patient_client):
        resp = await patient_client.post(f"/exports/{PATIENT_2_ID}", json={})
        assert resp.status_code == 403
        assert resp.json()["code"] == "access_denied"

    async def test_psychologist_export_matches_live_view(self, mock_db, psychologist_client):
        mock_db.notes._data.extend(dict(n) for n in NOTES)
        resp = await psychologist_client.post(f"/exports/{PATIENT_ID}", json={})
        data = resp.json()
        assert [e["entryId"] for e in data["entries"]] == ["entryopen001", "entrypsylog1"]
        assert [n["noteId"] for n in data["notes"]] == ["psy-private", "psy-shared"]

    async def test_cross_specialty_filter_is_audited(self, mock_db, psychiatrist_client):
        resp = await psychiatrist_client.post(
            f"/exports/{PATIENT_ID}", json={"professionalFilter": "psychologist"}
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "specialty_isolation_violation"
        record = mock_db.audit_logs._data[-1]
        assert record["action"] == "specialty_isolation_violation"
        assert record["actor_id"] == PSYCHIATRIST_ID

    async def test_revoked_professional_gets_empty_report(self, mock_db, psychologist_client):
        mock_db.connections._data[:] = [
            c for c in mock_db.connections._data if c["professional_id"] != PSYCHOLOGIST_ID
        ]
        resp = await psychologist_client.post(f"/exports/{PATIENT_ID}", json={})
        assert resp.status_code == 200
        assert resp.json()["entries"] == []
        assert resp.json()["notes"] == []
        assert mock_db.audit_logs._data[-1]["action"] == "export_denied"

    async def test_csv_format(self, patient_client):
        resp = await patient_client.post(f"/exports/{PATIENT_ID}?format=csv", json={"contentFilter": "entries"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        rows = list(csv.DictReader(io.StringIO(resp.text)))
        assert len(rows) == 4

    async def test_reversed_range_rejected(self, patient_client):
        resp = await patient_client.post(
            f"/exports/{PATIENT_ID}", json={"startDate": "2025-06-12", "endDate": "2025-06-10"}
        )
        assert resp.status_code == 422
