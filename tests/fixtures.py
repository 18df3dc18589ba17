"""Data factories and a controllable clock for unit tests."""

from __future__ import annotations

import itertools

from roomflow.core.types import Identity, Message, SenderKind

_ids = itertools.count()


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_message(
    content: str = "hello",
    sender: str = "alice",
    kind: SenderKind = "human",
    timestamp: int = 0,
    id: str | None = None,
    mentions: set[str] | None = None,
    reply_to: str | None = None,
) -> Message:
    return Message(
        id=id or f"m{next(_ids)}",
        sender=sender,
        sender_kind=kind,
        content=content,
        timestamp=timestamp,
        mentions=frozenset(mentions or ()),
        reply_to=reply_to,
    )


def make_identity(name: str, kind: SenderKind = "human", joined_at: int = 0) -> Identity:
    return Identity(name=name, kind=kind, joined_at=joined_at, last_active_at=joined_at)
