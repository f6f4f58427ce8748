from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class MessageResponse(BaseModel):
    id: UUID
    sender: str = Field(alias="from")
    recipient: str = Field(alias="to")
    body: str = Field(alias="message")
    is_read: bool = Field(alias="isRead")
    created_at: datetime = Field(alias="timestamp")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @field_serializer("created_at")
    def _iso_timestamp(self, value: datetime) -> str:
        return value.isoformat()


class MessageHistoryResponse(BaseModel):
    messages: list[MessageResponse]
    receiver: str
    unread_by_counterpart: dict[str, int] = Field(default_factory=dict, alias="unreadByCounterpart")

    model_config = ConfigDict(populate_by_name=True)


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(alias="unreadCount")

    model_config = ConfigDict(populate_by_name=True)


class MarkReadRequest(BaseModel):
    sender: str = Field(min_length=1)
    receiver: str = Field(min_length=1)


class MarkReadResponse(BaseModel):
    message: str = "Messages marked as read"
    modified_count: int = Field(alias="modifiedCount")

    model_config = ConfigDict(populate_by_name=True)
