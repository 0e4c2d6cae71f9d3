"""
Notification schemas.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

NotificationType = Literal["info", "success", "warning", "error"]
NotificationPriority = Literal["low", "normal", "high", "urgent"]
NotificationCategory = Literal["general", "proposal", "grievance", "registration", "course", "grant", "system"]


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str
    title: str
    body: str
    link: Optional[str] = None
    read: bool
    type: str
    priority: str
    category: str
    # ORM attribute is `extra`; the column and the wire field are `metadata`
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="extra")
    created_at: datetime

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or {}


class NotificationListResponse(BaseModel):
    unread_count: int
    notifications: List[NotificationOut]


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: int
    unread_count: int


class SendNotificationRequest(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    type: NotificationType = "info"
    priority: NotificationPriority = "normal"
    category: NotificationCategory = "general"
    link: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
