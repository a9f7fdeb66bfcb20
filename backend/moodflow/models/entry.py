# journal entry models: creation, partial update and response schemas
# visibility is carried both as the legacy tri-state fields and as one policy value

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator

from moodflow.models.user import Specialty

PolicyKind = Literal["locked", "open_to_all", "restricted_to", "explicit_list"]
EntryMode = Literal["mood", "voice", "diary"]


class VisibilityPolicy(BaseModel):
    """who besides the owner may read an entry.

    locked: owner only
    open_to_all: every connected professional (nothing marked, unlocked)
    restricted_to: professionals of the listed specialties, plus professionalIds
    explicit_list: only the professionals in professionalIds
    """
    kind: PolicyKind
    specialties: list[Specialty] = Field(default_factory=list)
    professional_ids: list[str] = Field(default_factory=list, alias="professionalIds")

    model_config = {"populate_by_name": True, "frozen": True}


class EntryCreate(BaseModel):
    """payload for a patient mood check-in, diary or voice entry"""
    text: str = Field("", max_length=10000, description="free text or voice transcript")
    mood: Optional[int] = Field(None, ge=1, le=5, description="mood score 1-5, absent for diary entries")
    mood_label: Optional[str] = Field(None, alias="moodLabel")
    energy: Optional[int] = Field(None, ge=1, le=10)
    tags: list[str] = Field(default_factory=list)
    entry_mode: Optional[EntryMode] = Field(None, alias="entryMode")
    timestamp: Optional[datetime] = Field(None, description="defaults to submission time")
    locked: bool = False
    visible_to_psychologist: Optional[bool] = Field(None, alias="visibleToPsychologist")
    visible_to_psychiatrist: Optional[bool] = Field(None, alias="visibleToPsychiatrist")
    permissions: list[str] = Field(default_factory=list, description="professional ids granted explicitly")
    visibility: Optional[VisibilityPolicy] = Field(None, description="explicit policy, overrides the legacy fields")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _has_content(self):
        if self.mood is None and not self.text.strip():
            raise ValueError("an entry needs a mood score or some text")
        return self


class EntryUpdate(BaseModel):
    """partial update: only fields present in the payload are applied"""
    text: Optional[str] = Field(None, max_length=10000)
    mood: Optional[int] = Field(None, ge=1, le=5)
    mood_label: Optional[str] = Field(None, alias="moodLabel")
    energy: Optional[int] = Field(None, ge=1, le=10)
    tags: Optional[list[str]] = None
    locked: Optional[bool] = None
    visible_to_psychologist: Optional[bool] = Field(None, alias="visibleToPsychologist")
    visible_to_psychiatrist: Optional[bool] = Field(None, alias="visibleToPsychiatrist")
    permissions: Optional[list[str]] = None
    visibility: Optional[VisibilityPolicy] = None

    model_config = {"populate_by_name": True}


class EntryResponse(BaseModel):
    id: str
    patient_id: str = Field(..., alias="patientId")
    timestamp: str
    mood: Optional[int] = None
    mood_label: Optional[str] = Field(None, alias="moodLabel")
    energy: Optional[int] = None
    text: str = ""
    tags: list[str] = Field(default_factory=list)
    entry_mode: EntryMode = Field("mood", alias="entryMode")
    locked: bool = False
    visible_to_psychologist: Optional[bool] = Field(None, alias="visibleToPsychologist")
    visible_to_psychiatrist: Optional[bool] = Field(None, alias="visibleToPsychiatrist")
    permissions: list[str] = Field(default_factory=list)
    visibility: VisibilityPolicy

    model_config = {"populate_by_name": True}


class EntrySaveResponse(BaseModel):
    """saved entry plus recoverable warnings (e.g. a share notification not delivered)"""
    entry: EntryResponse
    warnings: list[str] = Field(default_factory=list)
