"""
Room stream events using the tagged union pattern.

Events are dataclasses discriminated by their ``type`` literal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from roomflow.core.types import Message


@dataclass
class MessageEvent:
    type: Literal["message"] = "message"
    message: Message | None = None


@dataclass
class JoinEvent:
    type: Literal["join"] = "join"
    name: str = ""
    kind: str | None = None


@dataclass
class LeaveEvent:
    type: Literal["leave"] = "leave"
    name: str = ""


@dataclass
class NoticeEvent:
    """Moderation notices: mute, unmute, kick."""

    type: Literal["mute", "unmute", "kick"] = "mute"
    name: str = ""
    raw: dict[str, Any] | None = None


RoomStreamEvent = MessageEvent | JoinEvent | LeaveEvent | NoticeEvent
