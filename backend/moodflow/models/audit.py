# audit models

from typing import Any, Optional
from pydantic import BaseModel, Field


class AuditRecordResponse(BaseModel):
    actor_id: str = Field(..., alias="actorId")
    action: str
    target_id: Optional[str] = Field(None, alias="targetId")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: str

    model_config = {"populate_by_name": True}
