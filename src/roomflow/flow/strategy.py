"""Per-agent reply gate: cooldown, random throttling and rejection backoff."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from roomflow.core.clock import Clock, now_ms
from roomflow.core.types import Message

logger = logging.getLogger(__name__)

DEFAULT_MAX_BACKOFF_MULTIPLIER = 8.0


@dataclass
class StrategyConfig:
    """Reply gate settings. Durations are milliseconds."""

    agent_name: str
    reply_probability: float = 0.9
    mention_always_reply: bool = True
    cooldown_min_ms: float = 5000
    cooldown_max_ms: float = 15000
    max_backoff_multiplier: float = DEFAULT_MAX_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        if not 0 <= self.reply_probability <= 1:
            raise ValueError("reply_probability must be between 0 and 1")
        if self.cooldown_min_ms > self.cooldown_max_ms:
            raise ValueError("cooldown_min_ms must not exceed cooldown_max_ms")
        if self.max_backoff_multiplier < 1:
            raise ValueError("max_backoff_multiplier must be at least 1")


class ReplyStrategy:
    """
    Decides whether an agent replies to a message, before any room analysis.

    Owned by one agent's runtime; not shared across agents.
    """

    def __init__(
        self,
        config: StrategyConfig,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ):
        self.config = config
        self._rng = rng or random.Random()
        self._clock = clock

        self.last_reply_time: float = 0
        self.current_cooldown: float = 0
        self.backoff_multiplier: float = 1.0

    def is_mentioned(self, msg: Message) -> bool:
        return msg.mentions_name(self.config.agent_name)

    def is_in_cooldown(self) -> bool:
        return self._clock() - self.last_reply_time < self.current_cooldown

    def should_reply(self, msg: Message) -> bool:
        if msg.sender == self.config.agent_name:
            return False

        if self.config.mention_always_reply and self.is_mentioned(msg):
            return True

        if self.is_in_cooldown():
            return False

        return self._rng.random() < self.config.reply_probability

    def start_cooldown(self) -> None:
        """Start a cooldown drawn from [min, max] scaled by the backoff multiplier."""
        self.last_reply_time = self._clock()
        base = self._rng.uniform(self.config.cooldown_min_ms, self.config.cooldown_max_ms)
        self.current_cooldown = base * self.backoff_multiplier
        logger.debug(
            f"Agent {self.config.agent_name}: cooldown {self.current_cooldown / 1000:.1f}s "
            f"(backoff x{self.backoff_multiplier:g})"
        )

    def record_rejection(self) -> None:
        """Double the backoff multiplier after the room rejected a send."""
        self.backoff_multiplier = min(
            self.backoff_multiplier * 2, self.config.max_backoff_multiplier
        )
        logger.info(
            f"Agent {self.config.agent_name}: rejected, backoff x{self.backoff_multiplier:g}"
        )

    def reset_backoff(self) -> None:
        """Called after a confirmed successful send."""
        self.backoff_multiplier = 1.0

    def remaining_cooldown_ms(self) -> float:
        remaining = self.current_cooldown - (self._clock() - self.last_reply_time)
        return max(0.0, remaining)
