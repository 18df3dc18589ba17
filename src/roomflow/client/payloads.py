"""
Wire payloads exchanged with the room server.

Using Pydantic for runtime validation of server responses.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from roomflow.core.types import Activity, Identity, Message, TurnResult


class MessagePayload(BaseModel):
    """A message as served by GET /messages and the message stream event."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    sender: str
    sender_type: Literal["human", "agent"] = Field(alias="senderType")
    content: str
    mentions: list[str] = Field(default_factory=list)
    reply_to: Optional[str] = Field(default=None, alias="replyTo")
    timestamp: int
    deleted: bool = False

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            sender=self.sender,
            sender_kind=self.sender_type,
            content=self.content,
            timestamp=self.timestamp,
            mentions=frozenset(self.mentions),
            reply_to=self.reply_to,
            deleted=self.deleted,
        )


class MemberPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    type: Literal["human", "agent"]
    joined_at: int = Field(alias="joinedAt")
    last_active_at: int = Field(alias="lastActiveAt")
    muted: bool = False
    muted_until: Optional[int] = Field(default=None, alias="mutedUntil")
    message_count: int = Field(default=0, alias="messageCount")

    def to_identity(self) -> Identity:
        return Identity(
            name=self.name,
            kind=self.type,
            joined_at=self.joined_at,
            last_active_at=self.last_active_at,
            muted=self.muted,
            muted_until=self.muted_until,
            message_count=self.message_count,
        )


class ActivityPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    is_idle: bool = Field(alias="isIdle")
    last_message_time: int = Field(default=0, alias="lastMessageTime")

    def to_activity(self) -> Activity:
        return Activity(is_idle=self.is_idle, last_message_time=self.last_message_time)


class TurnPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    granted: bool
    lock_until: Optional[int] = Field(default=None, alias="lockUntil")

    def to_turn(self) -> TurnResult:
        return TurnResult(granted=self.granted, lock_until=self.lock_until)


class ErrorPayload(BaseModel):
    """Body of a rejected request (400/403/404/429)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool = False
    error: str = ""
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")


class NamePayload(BaseModel):
    """Payload of join/leave/mute/kick stream events."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: Optional[str] = None
