"""Stateless reply decision: should this agent answer this message, and whom."""

from __future__ import annotations

import logging
from typing import Iterable

from roomflow.context.room import RoomContext
from roomflow.core.types import AGENT, Message, RespondDecision

logger = logging.getLogger(__name__)

REPLY_SATURATION_THRESHOLD = 2

DIRECTLY_MENTIONED = "directly_mentioned"
REPLY_SATURATION = "reply_saturation"
ONGOING_THREAD = "ongoing_thread"
NEW_MEMBER_GREETING = "new_member_greeting"
GENERAL = "general"


class ReplyDecisionEngine:
    """
    Decides respond/skip for one agent, first matching rule wins:

    1. Trigger mentions self            -> respond (directly_mentioned)
    2. >= 2 agent replies to trigger    -> skip (reply_saturation)
    3. Ongoing thread without self      -> skip (ongoing_thread)
    4. First message of a new member    -> respond (new_member_greeting)
    5. Otherwise                        -> respond (general)

    All room state arrives through the arguments; the engine keeps none.
    """

    def __init__(
        self,
        agent_name: str,
        saturation_threshold: int = REPLY_SATURATION_THRESHOLD,
    ):
        self.agent_name = agent_name
        self.saturation_threshold = saturation_threshold

    def decide(
        self,
        trigger: Message,
        context: RoomContext,
        recent_messages: list[Message],
    ) -> RespondDecision:
        if trigger.mentions_name(self.agent_name):
            return RespondDecision(
                respond=True,
                reason=DIRECTLY_MENTIONED,
                mention_target=trigger.sender,
            )

        reply_count = self.agent_reply_count(trigger.id, recent_messages)
        if reply_count >= self.saturation_threshold:
            logger.debug(
                f"Agent {self.agent_name}: {reply_count} agents already replied to {trigger.id}"
            )
            return RespondDecision(respond=False, reason=REPLY_SATURATION)

        thread = context.conversation_dynamics.ongoing_thread
        if thread is not None and self.agent_name not in thread.participants:
            return RespondDecision(respond=False, reason=ONGOING_THREAD)

        sender = context.member(trigger.sender)
        if sender is not None and sender.is_new:
            sent = sum(1 for m in recent_messages if m.sender == trigger.sender)
            if sent <= 1:
                return RespondDecision(
                    respond=True,
                    reason=NEW_MEMBER_GREETING,
                    mention_target=trigger.sender,
                )

        return RespondDecision(respond=True, reason=GENERAL)

    @staticmethod
    def agent_reply_count(message_id: str, messages: Iterable[Message]) -> int:
        """Count agent-authored direct replies to message_id."""
        return sum(1 for m in messages if m.reply_to == message_id and m.sender_kind == AGENT)
