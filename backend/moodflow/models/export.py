# export models: report configuration and the format-independent dataset

from datetime import date
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from moodflow.models.user import Role

ContentFilter = Literal["entries", "notes", "both"]
ProfessionalFilter = Literal["psychologist", "psychiatrist", "both"]


class ExportRequest(BaseModel):
    """what the client asks for; the requester comes from the token"""
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    professional_filter: ProfessionalFilter = Field("both", alias="professionalFilter")
    content_filter: ContentFilter = Field("both", alias="contentFilter")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _ordered_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class ExportConfig(ExportRequest):
    """ExportRequest plus the requester the dataset is filtered for"""
    requester_id: str = Field(..., alias="requesterId")
    requester_role: Role = Field(..., alias="requesterRole")


class ReportDocument(BaseModel):
    patient_id: str = Field(..., alias="patientId")
    requester_role: Role = Field(..., alias="requesterRole")
    generated_at: str = Field(..., alias="generatedAt")
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    entries: list[dict[str, Any]] = Field(default_factory=list)
    notes: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
