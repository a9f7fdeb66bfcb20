# visibility resolver: who may read an entry or a note
# pure predicates shared by the live read path, exports, dashboards and ai summaries.
# nothing here touches the store or caches results.

from typing import Optional

from moodflow.models.entry import VisibilityPolicy
from moodflow.models.user import Viewer, PSYCHOLOGIST, PSYCHIATRIST

LOCKED = "locked"
OPEN_TO_ALL = "open_to_all"
RESTRICTED_TO = "restricted_to"
EXPLICIT_LIST = "explicit_list"


def derive_policy(
    locked: bool,
    visible_to_psychologist: Optional[bool],
    visible_to_psychiatrist: Optional[bool],
    permissions: Optional[list[str]] = None,
) -> VisibilityPolicy:
    """compute the policy value from the legacy tri-state fields.

    the fallback applies only when neither specialty flag is true: an
    unlocked entry with nothing marked is open to both specialties, but one
    explicit flag closes the entry to the other specialty.
    """
    if locked:
        return VisibilityPolicy(kind=LOCKED)

    specialties = []
    if visible_to_psychologist is True:
        specialties.append(PSYCHOLOGIST)
    if visible_to_psychiatrist is True:
        specialties.append(PSYCHIATRIST)

    if specialties:
        return VisibilityPolicy(
            kind=RESTRICTED_TO,
            specialties=specialties,
            professional_ids=_unique(permissions or []),
        )
    return VisibilityPolicy(kind=OPEN_TO_ALL)


def legacy_fields(policy: VisibilityPolicy) -> dict:
    """legacy field values equivalent to a policy supplied directly by a client"""
    if policy.kind == LOCKED:
        return {"locked": True, "visible_to_psychologist": None,
                "visible_to_psychiatrist": None, "permissions": []}
    if policy.kind == OPEN_TO_ALL:
        return {"locked": False, "visible_to_psychologist": None,
                "visible_to_psychiatrist": None, "permissions": []}
    return {
        "locked": False,
        "visible_to_psychologist": PSYCHOLOGIST in policy.specialties,
        "visible_to_psychiatrist": PSYCHIATRIST in policy.specialties,
        "permissions": list(policy.professional_ids),
    }


def normalize_policy(policy: VisibilityPolicy) -> VisibilityPolicy:
    """drop grants a policy kind cannot carry"""
    if policy.kind in (LOCKED, OPEN_TO_ALL):
        return VisibilityPolicy(kind=policy.kind)
    if policy.kind == EXPLICIT_LIST:
        return VisibilityPolicy(kind=EXPLICIT_LIST, professional_ids=_unique(policy.professional_ids))
    if not policy.specialties:
        # restricted to nobody by specialty is an explicit list
        return VisibilityPolicy(kind=EXPLICIT_LIST, professional_ids=_unique(policy.professional_ids))
    return VisibilityPolicy(
        kind=RESTRICTED_TO,
        specialties=_unique(policy.specialties),
        professional_ids=_unique(policy.professional_ids),
    )


def policy_to_doc(policy: VisibilityPolicy) -> dict:
    return {
        "kind": policy.kind,
        "specialties": list(policy.specialties),
        "professional_ids": list(policy.professional_ids),
    }


def policy_of(entry: dict) -> VisibilityPolicy:
    """stored policy of an entry, derived from the legacy fields when absent"""
    if entry.get("locked"):
        return VisibilityPolicy(kind=LOCKED)
    stored = entry.get("visibility")
    if stored:
        return VisibilityPolicy(
            kind=stored.get("kind", LOCKED),
            specialties=stored.get("specialties", []),
            professional_ids=stored.get("professional_ids", []),
        )
    return derive_policy(
        False,
        entry.get("visible_to_psychologist"),
        entry.get("visible_to_psychiatrist"),
        entry.get("permissions", []),
    )


def is_visible(entry: dict, viewer: Viewer) -> bool:
    """true if viewer may read the entry"""
    if viewer.is_patient:
        # owner sees everything, other patients nothing
        return entry.get("patient_id") == viewer.id
    if not viewer.is_professional:
        return False

    policy = policy_of(entry)
    if policy.kind == LOCKED:
        return False
    if policy.kind == OPEN_TO_ALL:
        return True
    if policy.kind == RESTRICTED_TO:
        return viewer.specialty in policy.specialties or viewer.id in policy.professional_ids
    if policy.kind == EXPLICIT_LIST:
        return viewer.id in policy.professional_ids
    return False


def specialty_allowed(viewer: Viewer, specialty: Optional[str]) -> bool:
    """whether viewer may ask for data scoped to a specialty"""
    if specialty is None:
        return True
    if viewer.is_patient:
        return True
    return viewer.is_professional and viewer.specialty == specialty


def can_view_note(note: dict, viewer: Viewer) -> bool:
    """single authorization rule for notes: live listing, exports and reports.

    - hidden notes are invisible to everyone
    - the patient sees shared notes on their own record
    - a professional never sees a note of another specialty
    - a professional sees their own notes, and patient-authored shared notes
      in their own thread
    """
    if note.get("status") == "hidden":
        return False

    if viewer.is_patient:
        return note.get("patient_id") == viewer.id and bool(note.get("shared"))

    if not viewer.is_professional:
        return False

    if note.get("specialty") != viewer.specialty:
        return False

    if note.get("author_role") == "professional":
        return note.get("author_id") == viewer.id

    return bool(note.get("shared")) and note.get("professional_id") == viewer.id


def _unique(values) -> list:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen
