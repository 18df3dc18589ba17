"""HTTP/SSE client for the room server."""

from .chat_client import ChatClient
from .events import JoinEvent, LeaveEvent, MessageEvent, NoticeEvent, RoomStreamEvent
from .payloads import (
    ActivityPayload,
    ErrorPayload,
    MemberPayload,
    MessagePayload,
    TurnPayload,
)

__all__ = [
    "ActivityPayload",
    "ChatClient",
    "ErrorPayload",
    "JoinEvent",
    "LeaveEvent",
    "MemberPayload",
    "MessageEvent",
    "MessagePayload",
    "NoticeEvent",
    "RoomStreamEvent",
    "TurnPayload",
]
