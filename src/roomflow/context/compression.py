"""
Token-budgeted context selection.

Picks a bounded, chronologically ordered subset of the visible history to
hand to a reasoning call. Three interchangeable strategies:

    recent     newest messages first, stop at the first that does not fit
    important  greedy by importance score
    hybrid     reply chain, then recent mentions of self, then importance

Example:
    compressor = ContextCompressor()
    context = compressor.compress(history, trigger, max_tokens=1500,
                                  strategy="hybrid", self_name="Bot")
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from roomflow.core.clock import MINUTE_MS, Clock, now_ms
from roomflow.core.types import Message

from .reply_chain import MAX_CHAIN_DEPTH, trace_reply_chain
from .scoring import calculate_importance
from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

CompressionStrategy = Literal["recent", "important", "hybrid"]

STRATEGIES: tuple[CompressionStrategy, ...] = ("recent", "important", "hybrid")
DEFAULT_MAX_TOKENS = 2000
DEFAULT_STRATEGY: CompressionStrategy = "hybrid"
MENTION_WINDOW_MS = 5 * MINUTE_MS


class _Selection:
    """Accepted messages plus the token budget they consume."""

    def __init__(self, max_tokens: int):
        self.max_tokens = max_tokens
        self.used = 0
        self._selected: dict[str, Message] = {}

    def __contains__(self, msg_id: str) -> bool:
        return msg_id in self._selected

    def add(self, msg: Message) -> bool:
        """Accept msg if it fits. Already-accepted messages count as accepted."""
        if msg.id in self._selected:
            return True
        cost = estimate_tokens(msg.content)
        if self.used + cost > self.max_tokens:
            return False
        self._selected[msg.id] = msg
        self.used += cost
        return True

    def ordered(self) -> list[Message]:
        result = sorted(self._selected.values(), key=lambda m: m.timestamp)
        if __debug__:
            assert self.used <= self.max_tokens or not result
        return result


class ContextCompressor:
    """
    Selects history for a reasoning call under a token budget.

    The result is always chronologically ordered, always a subset of
    history plus the trigger, and includes the trigger whenever it fits.
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        strategy: CompressionStrategy = DEFAULT_STRATEGY,
        max_chain_depth: int = MAX_CHAIN_DEPTH,
        mention_window_ms: int = MENTION_WINDOW_MS,
        clock: Clock = now_ms,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown compression strategy: {strategy}")
        self.max_tokens = max_tokens
        self.strategy = strategy
        self.max_chain_depth = max_chain_depth
        self.mention_window_ms = mention_window_ms
        self._clock = clock

    def compress(
        self,
        history: Iterable[Message],
        trigger: Message,
        max_tokens: int | None = None,
        strategy: CompressionStrategy | None = None,
        self_name: str = "",
    ) -> list[Message]:
        """
        Compress history around trigger.

        Args:
            history: Visible messages (soft-deleted ones are ignored)
            trigger: The message being replied to
            max_tokens: Budget override
            strategy: Strategy override
            self_name: The agent's own name, used for mention priority

        Returns:
            Selected messages sorted by timestamp
        """
        budget = self.max_tokens if max_tokens is None else max_tokens
        chosen = strategy or self.strategy
        candidates = [m for m in history if not m.deleted]

        if chosen == "recent":
            result = self._compress_recent(candidates, trigger, budget)
        elif chosen == "important":
            result = self._compress_important(candidates, trigger, budget, self_name)
        elif chosen == "hybrid":
            result = self._compress_hybrid(candidates, trigger, budget, self_name)
        else:
            raise ValueError(f"Unknown compression strategy: {chosen}")

        logger.debug(
            f"Compressed {len(candidates)} messages to {len(result)} "
            f"(strategy={chosen}, budget={budget})"
        )
        return result

    def _compress_recent(
        self, candidates: list[Message], trigger: Message, budget: int
    ) -> list[Message]:
        selection = _Selection(budget)
        selection.add(trigger)

        for msg in reversed(candidates):
            if msg.id == trigger.id:
                continue
            if not selection.add(msg):
                break

        return selection.ordered()

    def _compress_important(
        self,
        candidates: list[Message],
        trigger: Message,
        budget: int,
        self_name: str,
    ) -> list[Message]:
        selection = _Selection(budget)

        # sorted() is stable, so equal scores keep encounter order
        ranked = sorted(
            (m for m in candidates if m.id != trigger.id),
            key=lambda m: calculate_importance(m, self_name),
            reverse=True,
        )
        for msg in ranked:
            selection.add(msg)

        selection.add(trigger)
        return selection.ordered()

    def _compress_hybrid(
        self,
        candidates: list[Message],
        trigger: Message,
        budget: int,
        self_name: str,
    ) -> list[Message]:
        selection = _Selection(budget)

        # P1: the trigger and its ancestors, nearest first
        pool = candidates
        if all(m.id != trigger.id for m in candidates):
            pool = [*candidates, trigger]
        chain = trace_reply_chain(trigger.id, pool, max_depth=self.max_chain_depth)
        for msg in reversed(chain):
            selection.add(msg)

        # P2: recent mentions of self
        if self_name:
            cutoff = self._clock() - self.mention_window_ms
            for msg in candidates:
                if msg.id in selection:
                    continue
                if msg.timestamp >= cutoff and msg.mentions_name(self_name):
                    selection.add(msg)

        # P3: everything else by importance
        ranked = sorted(
            (m for m in candidates if m.id not in selection),
            key=lambda m: calculate_importance(m, self_name),
            reverse=True,
        )
        for msg in ranked:
            selection.add(msg)

        return selection.ordered()


def compress_context(
    messages: Iterable[Message],
    trigger: Message,
    strategy: CompressionStrategy = DEFAULT_STRATEGY,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    agent_name: str = "",
    clock: Clock = now_ms,
) -> list[Message]:
    """Functional wrapper around ContextCompressor.compress()."""
    compressor = ContextCompressor(max_tokens=max_tokens, strategy=strategy, clock=clock)
    return compressor.compress(messages, trigger, self_name=agent_name)
