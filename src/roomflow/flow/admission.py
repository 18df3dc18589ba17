"""
Room-wide admission control for automated messages.

One AdmissionController is constructed by the room service and shared by
every inbound request. All counters are mutated under a single lock so
concurrent check-then-record sequences cannot over-admit.

Checks, first failure wins:
    1. Humans always pass
    2. Global sliding window: at most 15 agent messages per 60 s
    3. Per-identity token bucket: capacity 5, refill 1 token/s
    4. Agent ratio: at most 70% agent messages in the trailing 60 s
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterable

from roomflow.core.clock import Clock, now_ms
from roomflow.core.types import AGENT, HUMAN, AdmissionResult, Message, SenderKind

logger = logging.getLogger(__name__)

WINDOW_MS = 60_000
MAX_AGENT_MESSAGES_PER_WINDOW = 15
BUCKET_CAPACITY = 5.0
REFILL_RATE_PER_SECOND = 1.0
MAX_AGENT_RATIO = 0.7
RATIO_RETRY_AFTER_MS = 5000


@dataclass
class TokenBucket:
    """Per-identity token bucket. Token count stays within [0, capacity]."""

    capacity: float
    tokens: float
    last_refill: float

    def refill(self, now: float, rate_per_second: float) -> None:
        elapsed_seconds = max(0.0, (now - self.last_refill) / 1000)
        self.tokens = min(self.capacity, self.tokens + elapsed_seconds * rate_per_second)
        self.last_refill = now

    def is_full_at(self, now: float, rate_per_second: float) -> bool:
        elapsed_seconds = max(0.0, (now - self.last_refill) / 1000)
        return self.tokens + elapsed_seconds * rate_per_second >= self.capacity

    def consume(self) -> None:
        if self.tokens >= 1:
            self.tokens -= 1
        if __debug__:
            assert 0 <= self.tokens <= self.capacity, f"Bucket out of range: {self.tokens}"


class AdmissionController:
    """
    Multi-tier gate deciding whether the room accepts a message.

    Example:
        admission = AdmissionController()
        result = admission.admit("Bot", "agent", store.get_all_messages())
        if not result.allowed:
            return 429, result.retry_after_ms
    """

    def __init__(
        self,
        max_agent_messages: int = MAX_AGENT_MESSAGES_PER_WINDOW,
        window_ms: int = WINDOW_MS,
        bucket_capacity: float = BUCKET_CAPACITY,
        refill_rate: float = REFILL_RATE_PER_SECOND,
        max_agent_ratio: float = MAX_AGENT_RATIO,
        ratio_retry_after_ms: int = RATIO_RETRY_AFTER_MS,
        clock: Clock = now_ms,
    ):
        self.max_agent_messages = max_agent_messages
        self.window_ms = window_ms
        self.bucket_capacity = bucket_capacity
        self.refill_rate = refill_rate
        self.max_agent_ratio = max_agent_ratio
        self.ratio_retry_after_ms = ratio_retry_after_ms
        self._clock = clock

        self._lock = threading.Lock()
        self._window: deque[float] = deque()
        self._buckets: dict[str, TokenBucket] = {}

    def admit(
        self,
        identity: str,
        kind: SenderKind,
        recent_messages: Iterable[Message] = (),
    ) -> AdmissionResult:
        """
        Check and, on success, record one message from identity.

        Args:
            identity: Sender name
            kind: "human" or "agent"
            recent_messages: Messages used for the agent-ratio check

        Returns:
            AdmissionResult; rejections carry reason and retry_after_ms
        """
        if kind == HUMAN:
            return AdmissionResult(allowed=True)

        with self._lock:
            now = self._clock()

            self._prune(now)
            if len(self._window) >= self.max_agent_messages:
                retry_after = int(self.window_ms - (now - self._window[0]))
                logger.warning(
                    f"Admission: {identity} rejected, global window full "
                    f"({len(self._window)}/{self.max_agent_messages})"
                )
                return AdmissionResult(
                    allowed=False,
                    reason=f"Global agent rate limit exceeded ({self.max_agent_messages}/min)",
                    retry_after_ms=max(1, retry_after),
                )

            bucket = self._bucket_for(identity, now)
            if bucket.tokens < 1:
                retry_after = math.ceil((1 - bucket.tokens) / self.refill_rate * 1000)
                logger.warning(f"Admission: {identity} rejected, token bucket empty")
                return AdmissionResult(
                    allowed=False,
                    reason="Per-agent rate limit exceeded",
                    retry_after_ms=max(1, retry_after),
                )

            cutoff = now - self.window_ms
            recent = [m for m in recent_messages if m.timestamp > cutoff]
            if recent:
                agent_count = sum(1 for m in recent if m.sender_kind == AGENT)
                if agent_count / len(recent) > self.max_agent_ratio:
                    logger.warning(
                        f"Admission: {identity} rejected, agent ratio "
                        f"{agent_count}/{len(recent)} above {self.max_agent_ratio:.0%}"
                    )
                    return AdmissionResult(
                        allowed=False,
                        reason=f"Agent message ratio too high (max {self.max_agent_ratio:.0%})",
                        retry_after_ms=self.ratio_retry_after_ms,
                    )

            self._window.append(now)
            bucket.consume()
            logger.debug(
                f"Admission: {identity} admitted "
                f"({len(self._window)}/{self.max_agent_messages} in window, "
                f"{bucket.tokens:.2f} tokens left)"
            )
            return AdmissionResult(allowed=True)

    def window_count(self) -> int:
        """Agent messages currently inside the sliding window."""
        with self._lock:
            self._prune(self._clock())
            return len(self._window)

    def tokens_for(self, identity: str) -> float:
        """Refilled token count for identity (full capacity if unseen)."""
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                return self.bucket_capacity
            bucket.refill(self._clock(), self.refill_rate)
            return bucket.tokens

    def tracked_identities(self) -> list[str]:
        """Identities holding a bucket that has not refilled to capacity."""
        with self._lock:
            self._prune(self._clock())
            return list(self._buckets)

    def forget(self, identity: str) -> None:
        """Drop the bucket of an identity that left the room."""
        with self._lock:
            self._buckets.pop(identity, None)

    def reset(self) -> None:
        """Drop all rate state."""
        with self._lock:
            self._window.clear()
            self._buckets.clear()

    def _prune(self, now: float) -> None:
        while self._window and now - self._window[0] >= self.window_ms:
            self._window.popleft()
        # A full bucket is indistinguishable from a fresh one
        full = [
            name
            for name, bucket in self._buckets.items()
            if bucket.is_full_at(now, self.refill_rate)
        ]
        for name in full:
            del self._buckets[name]

    def _bucket_for(self, identity: str, now: float) -> TokenBucket:
        bucket = self._buckets.get(identity)
        if bucket is None:
            bucket = TokenBucket(
                capacity=self.bucket_capacity,
                tokens=self.bucket_capacity,
                last_refill=now,
            )
            self._buckets[identity] = bucket
        else:
            bucket.refill(now, self.refill_rate)
        return bucket
