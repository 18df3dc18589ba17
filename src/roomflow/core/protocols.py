"""Collaborator contracts consumed by the flow-control core."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .types import Activity, Identity, Message, SendResult, TurnResult


@runtime_checkable
class RoomTransport(Protocol):
    """
    Request/response access to the room.

    Implementations: ChatClient (HTTP), FakeRoom (testing)
    """

    async def get_recent_messages(self, limit: int = 20) -> list[Message]:
        """Most recent messages, oldest first."""
        ...

    async def get_members(self) -> list[Identity]:
        """Current room members."""
        ...

    async def send_message(
        self,
        content: str,
        reply_to: str | None = None,
        is_mention_reply: bool = False,
    ) -> SendResult:
        """Send a message as the connected identity."""
        ...


@runtime_checkable
class TurnService(Protocol):
    """Room idle status and the exclusive proactive speaking turn."""

    async def get_activity(self) -> Activity:
        ...

    async def request_turn(self, name: str) -> TurnResult:
        ...


@runtime_checkable
class Reasoner(Protocol):
    """
    Reasoning call.

    Returns the generated text, or "[SKIP]" when the model declines or the
    call fails.
    """

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        ...
