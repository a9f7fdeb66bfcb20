# notification models

from typing import Any, Literal, Optional
from pydantic import BaseModel, Field

NotificationType = Literal["comment_created", "message_created", "entry_shared"]


class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(..., alias="createdAt")
    read_at: Optional[str] = Field(None, alias="readAt")

    model_config = {"populate_by_name": True}


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int
