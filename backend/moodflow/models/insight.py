# ai summary models

from pydantic import BaseModel, Field


class SummaryResponse(BaseModel):
    patient_id: str = Field(..., alias="patientId")
    summary: str
    entry_count: int = Field(..., alias="entryCount")
    window_days: int = Field(..., alias="windowDays")

    model_config = {"populate_by_name": True}
