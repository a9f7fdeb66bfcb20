# note models: threaded comments, private observations and threads

from typing import Literal, Optional
from pydantic import BaseModel, Field

from moodflow.models.user import Specialty

NoteStatus = Literal["active", "resolved", "hidden"]
AuthorRole = Literal["patient", "professional"]


class NoteCreate(BaseModel):
    """payload for a professional note or a patient reply.

    professionals name the patient; patients name the professional (or the
    thread) they are writing to.
    """
    text: str = Field(..., min_length=1, max_length=5000)
    patient_id: Optional[str] = Field(None, alias="patientId")
    professional_id: Optional[str] = Field(None, alias="professionalId")
    thread_id: Optional[str] = Field(None, alias="threadId")
    entry_id: Optional[str] = Field(None, alias="entryId", description="entry the comment is attached to")
    shared: Optional[bool] = Field(None, description="defaults to private for professionals, shared for patients")

    model_config = {"populate_by_name": True}


class NoteResponse(BaseModel):
    id: str
    patient_id: str = Field(..., alias="patientId")
    professional_id: str = Field(..., alias="professionalId")
    specialty: Specialty
    thread_id: Optional[str] = Field(None, alias="threadId")
    entry_id: Optional[str] = Field(None, alias="entryId")
    author_id: str = Field(..., alias="authorId")
    author_role: AuthorRole = Field(..., alias="authorRole")
    author_name: str = Field("", alias="authorName")
    text: str
    shared: bool
    status: NoteStatus = "active"
    read: bool = False
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}


class NoteSaveResponse(BaseModel):
    """saved note plus recoverable warnings (e.g. notification not delivered)"""
    note: NoteResponse
    warnings: list[str] = Field(default_factory=list)


class NoteStatusUpdate(BaseModel):
    status: Literal["resolved", "hidden"]


class NotesReadRequest(BaseModel):
    patient_id: str = Field(..., alias="patientId")

    model_config = {"populate_by_name": True}


class ThreadCreate(BaseModel):
    patient_id: str = Field(..., alias="patientId")
    professional_id: Optional[str] = Field(None, alias="professionalId")

    model_config = {"populate_by_name": True}


class ThreadResponse(BaseModel):
    id: str
    patient_id: str = Field(..., alias="patientId")
    professional_id: str = Field(..., alias="professionalId")
    specialty: Specialty
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}
