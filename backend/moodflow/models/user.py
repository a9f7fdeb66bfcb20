# user models: roles, specialties and the acting viewer
# a professional's specialty is its role; patients and clinic admins have none

from typing import Literal, Optional
from pydantic import BaseModel, Field

Role = Literal["patient", "psychologist", "psychiatrist", "clinic_admin"]
Specialty = Literal["psychologist", "psychiatrist"]

PATIENT = "patient"
PSYCHOLOGIST = "psychologist"
PSYCHIATRIST = "psychiatrist"
CLINIC_ADMIN = "clinic_admin"

SPECIALTIES: tuple[str, ...] = (PSYCHOLOGIST, PSYCHIATRIST)


class Viewer(BaseModel):
    """the acting user as the engine sees it"""
    id: str
    role: Role

    model_config = {"frozen": True}

    @property
    def is_patient(self) -> bool:
        return self.role == PATIENT

    @property
    def is_professional(self) -> bool:
        return self.role in SPECIALTIES

    @property
    def specialty(self) -> Optional[str]:
        return self.role if self.is_professional else None

    @classmethod
    def from_user(cls, user: dict) -> "Viewer":
        """build a viewer from the dict returned by get_current_user"""
        return cls(id=user["id"], role=user["role"])


class UserSummary(BaseModel):
    """public profile fields shown next to connections"""
    id: str
    name: str = ""
    email: str = ""
    role: Role

    model_config = {"populate_by_name": True}
