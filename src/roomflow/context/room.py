"""
Room context building.

Turns the member list, recent messages and room events into the explicit
RoomContext consumed by the reply decision engine and the prompt builder.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Literal

from roomflow.core.clock import MINUTE_MS, Clock, now_ms
from roomflow.core.types import Identity, Message, SenderKind

NEW_MEMBER_WINDOW_MS = 5 * MINUTE_MS
ACTIVE_WINDOW_MS = 5 * MINUTE_MS
THREAD_LOOKBACK = 3
TOPIC_LOOKBACK = 10
MAX_TOPICS = 5

STOPWORDS = frozenset(
    {
        "the", "and", "that", "this", "with", "from", "have", "they",
        "what", "when", "where", "about", "will", "would", "could", "should",
    }
)

RoomEventType = Literal["join", "leave", "mute", "unmute", "kick"]


@dataclass
class RoomEvent:
    type: RoomEventType
    name: str
    timestamp: int
    details: str | None = None


@dataclass
class MemberInfo:
    name: str
    kind: SenderKind
    joined_at: int
    is_new: bool
    message_count: int


@dataclass
class OngoingThread:
    """A small recent exchange between two or three participants."""

    participants: list[str]
    topic: str


@dataclass
class ConversationDynamics:
    active_speakers: list[str] = field(default_factory=list)
    dominant_speaker: str | None = None
    ongoing_thread: OngoingThread | None = None
    recent_topics: list[str] = field(default_factory=list)


@dataclass
class RoomContext:
    """Everything an agent needs to know about the room to decide."""

    my_name: str
    is_new_member: bool = False
    member_list: list[MemberInfo] = field(default_factory=list)
    recent_events: list[RoomEvent] = field(default_factory=list)
    conversation_dynamics: ConversationDynamics = field(
        default_factory=ConversationDynamics
    )

    def member(self, name: str) -> MemberInfo | None:
        return next((m for m in self.member_list if m.name == name), None)


def build_room_context(
    agent_name: str,
    members: Iterable[Identity],
    messages: list[Message],
    events: list[RoomEvent] | None = None,
    new_member_window_ms: int = NEW_MEMBER_WINDOW_MS,
    clock: Clock = now_ms,
) -> RoomContext:
    """
    Build the room context for agent_name.

    Args:
        agent_name: The agent's own name
        members: Current room members
        messages: Recent messages, oldest first
        events: Recent join/leave/mute events
        new_member_window_ms: How long a member counts as new
        clock: Millisecond clock

    Returns:
        RoomContext with member info and conversation dynamics
    """
    now = clock()
    members = list(members)
    sender_counts = Counter(m.sender for m in messages)

    member_list = [
        MemberInfo(
            name=member.name,
            kind=member.kind,
            joined_at=member.joined_at,
            is_new=now - member.joined_at < new_member_window_ms,
            message_count=sender_counts.get(member.name, 0),
        )
        for member in members
    ]
    me = next((m for m in member_list if m.name == agent_name), None)

    return RoomContext(
        my_name=agent_name,
        is_new_member=me.is_new if me else False,
        member_list=member_list,
        recent_events=list(events or []),
        conversation_dynamics=_build_dynamics(messages, now),
    )


def _build_dynamics(messages: list[Message], now: float) -> ConversationDynamics:
    recent = [m for m in messages if m.timestamp >= now - ACTIVE_WINDOW_MS]
    active_speakers = list(dict.fromkeys(m.sender for m in recent))

    # Counter.most_common keeps first-inserted order among equal counts
    counts = Counter(m.sender for m in recent)
    dominant = counts.most_common(1)[0][0] if counts else None

    thread = None
    if len(messages) >= THREAD_LOOKBACK:
        tail = messages[-THREAD_LOOKBACK:]
        participants = list(dict.fromkeys(m.sender for m in tail))
        if 2 <= len(participants) <= 3:
            thread = OngoingThread(
                participants=participants,
                topic=extract_simple_topic(tail[-1].content),
            )

    return ConversationDynamics(
        active_speakers=active_speakers,
        dominant_speaker=dominant,
        ongoing_thread=thread,
        recent_topics=extract_topics(messages[-TOPIC_LOOKBACK:]),
    )


def extract_simple_topic(content: str) -> str:
    """First three words longer than four characters."""
    words = [w for w in content.split() if len(w) > 4]
    return " ".join(words[:3]) or "conversation"


def extract_topics(messages: Iterable[Message], limit: int = MAX_TOPICS) -> list[str]:
    """Simple keyword extraction over recent messages."""
    topics: list[str] = []
    for msg in messages:
        for word in msg.content.lower().split():
            cleaned = re.sub(r"[^a-z0-9]", "", word)
            if len(cleaned) > 4 and cleaned not in STOPWORDS and cleaned not in topics:
                topics.append(cleaned)
                if len(topics) >= limit:
                    return topics
    return topics
