"""
Data model shared by the flow-control and context-selection layers.

All timestamps are integer epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SenderKind = Literal["human", "agent"]

HUMAN: SenderKind = "human"
AGENT: SenderKind = "agent"

# Reply text meaning "nothing to say"
SKIP_MARKER = "[SKIP]"


@dataclass
class Message:
    """
    A chat message.

    Immutable once created except for the soft-delete flag, which is set
    through mark_deleted().
    """

    id: str
    sender: str
    sender_kind: SenderKind
    content: str
    timestamp: int
    mentions: frozenset[str] = field(default_factory=frozenset)
    reply_to: str | None = None
    deleted: bool = False

    @property
    def is_agent(self) -> bool:
        return self.sender_kind == AGENT

    def mentions_name(self, name: str) -> bool:
        """Check whether this message @mentions name (case-insensitive)."""
        lowered = name.lower()
        return any(m.lower() == lowered for m in self.mentions)

    def mark_deleted(self) -> None:
        self.deleted = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape used by the room server."""
        return {
            "id": self.id,
            "sender": self.sender,
            "senderType": self.sender_kind,
            "content": self.content,
            "mentions": sorted(self.mentions),
            "replyTo": self.reply_to,
            "timestamp": self.timestamp,
            "deleted": self.deleted,
        }


@dataclass
class Identity:
    """A room member, keyed by name."""

    name: str
    kind: SenderKind
    joined_at: int
    last_active_at: int
    muted: bool = False
    muted_until: int | None = None
    message_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind,
            "joinedAt": self.joined_at,
            "lastActiveAt": self.last_active_at,
            "muted": self.muted,
            "mutedUntil": self.muted_until,
            "messageCount": self.message_count,
        }


@dataclass
class AdmissionResult:
    """Outcome of an admission check. Rejections are values, never raised."""

    allowed: bool
    reason: str | None = None
    retry_after_ms: int | None = None


@dataclass
class RespondDecision:
    """Outcome of the reply decision engine."""

    respond: bool
    reason: str
    mention_target: str | None = None


@dataclass
class Activity:
    """Room idle status reported by the turn service."""

    is_idle: bool
    last_message_time: int = 0


@dataclass
class TurnResult:
    """Answer to a proactive speaking-turn request."""

    granted: bool
    lock_until: int | None = None


@dataclass
class SendResult:
    """Result of sending a message through the transport."""

    success: bool
    message: Message | None = None
    error: str | None = None
    status_code: int | None = None
    retry_after_ms: int | None = None

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429
