# connection models: consent edges between patients and professionals

from typing import Optional
from pydantic import BaseModel, Field

from moodflow.models.user import Specialty, UserSummary


class ConnectRequest(BaseModel):
    """professional looks a patient up by email or user id"""
    patient: str = Field(..., min_length=1, description="patient email or id")


class ConnectionResponse(BaseModel):
    patient_id: str = Field(..., alias="patientId")
    professional_id: str = Field(..., alias="professionalId")
    specialty: Specialty
    created_at: str = Field(..., alias="createdAt")
    counterpart: Optional[UserSummary] = None

    model_config = {"populate_by_name": True}


class RevokeResponse(BaseModel):
    connection_removed: bool = Field(..., alias="connectionRemoved")
    entries_updated: int = Field(..., alias="entriesUpdated")

    model_config = {"populate_by_name": True}
