# dashboard models: the professional's view of connected patients

from typing import Literal, Optional
from pydantic import BaseModel, Field

StatusAlert = Literal["Normal", "Risk", "Inactive"]


class TrendDataPoint(BaseModel):
    """single mood data point on a patient's timeline"""
    date: str
    value: float
    label: Optional[str] = None


class PatientDashboardRow(BaseModel):
    """one connected patient, computed only from entries the professional may see"""
    patient_id: str = Field(..., alias="patientId")
    patient_name: str = Field("", alias="patientName")
    patient_email: str = Field("", alias="patientEmail")
    last_mood: Optional[int] = Field(None, alias="lastMood")
    last_mood_label: Optional[str] = Field(None, alias="lastMoodLabel")
    last_update: Optional[str] = Field(None, alias="lastUpdate")
    total_entries: int = Field(0, alias="totalEntries")
    avg_mood_7d: Optional[float] = Field(None, alias="avgMood7d")
    status_alert: StatusAlert = Field("Inactive", alias="statusAlert")

    model_config = {"populate_by_name": True}


class PatientDashboard(PatientDashboardRow):
    """single-patient view with the mood timeline"""
    mood_trend: list[TrendDataPoint] = Field(default_factory=list, alias="moodTrend")
