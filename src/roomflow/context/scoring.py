"""Heuristic message importance. Pure functions, no I/O."""

from __future__ import annotations

from roomflow.core.types import Message

BASE_SCORE = 0.3
MENTION_BONUS = 0.3
QUESTION_BONUS = 0.2
REPLY_BONUS = 0.1

QUESTION_MARKS = ("?", "？")


def calculate_importance(msg: Message, agent_name: str) -> float:
    """
    Score how relevant msg is to agent_name, in [0, 1].

    Mentions of the agent, questions and replies raise the base score.
    """
    score = BASE_SCORE

    if agent_name and msg.mentions_name(agent_name):
        score += MENTION_BONUS

    if any(mark in msg.content for mark in QUESTION_MARKS):
        score += QUESTION_BONUS

    if msg.reply_to:
        score += REPLY_BONUS

    # TODO: boost messages from members who joined in the last few minutes
    # once member join times are passed to the scorer.
    return max(0.0, min(1.0, score))
