"""
Idle-triggered proactive speaking with engagement backoff.

Each agent owns one ProactiveScheduler. Every tick it walks:

    daily limit -> cooldown -> room idle? -> speaking turn? -> topic -> speak

and skips at the first failed gate. When a proactive message gets no
engagement the cooldown doubles (capped at 30 minutes), so an idle room is
not spammed by one agent. Any engagement resets the backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Literal

from roomflow.core.clock import MINUTE_MS, Clock, local_date, now_ms
from roomflow.core.protocols import TurnService
from roomflow.core.types import SKIP_MARKER, Message

logger = logging.getLogger(__name__)

MAX_PROACTIVE_COOLDOWN_MS = 30 * MINUTE_MS

TickOutcome = Literal[
    "spoke",
    "daily_limit",
    "cooldown",
    "not_idle",
    "turn_denied",
    "no_topic",
    "error",
]

TopicGenerator = Callable[[], Awaitable[str]]
Speaker = Callable[[str], Awaitable[bool]]
RecentMessagesFetcher = Callable[[], Awaitable[list[Message]]]


@dataclass
class ProactiveConfig:
    """Proactive speaking settings. Durations are milliseconds unless noted."""

    agent_name: str
    enabled: bool = False
    check_interval_s: float = 30.0
    cooldown_ms: float = 5 * MINUTE_MS
    max_cooldown_ms: float = MAX_PROACTIVE_COOLDOWN_MS
    max_daily_per_agent: int = 20
    request_timeout_s: float = 5.0
    reasoning_timeout_s: float = 60.0


@dataclass
class ProactiveState:
    last_proactive_time: float = 0
    consecutive_no_engagement: int = 0
    daily_count: int = 0
    last_daily_reset: date | None = None
    awaiting_engagement: bool = False


class ProactiveScheduler:
    """
    Periodic proactive speaking for one agent.

    Example:
        scheduler = ProactiveScheduler(
            config=ProactiveConfig(agent_name="Bot", enabled=True),
            turn_service=client,
            generate_topic=my_topic_fn,
            speak=my_speak_fn,
        )
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        config: ProactiveConfig,
        turn_service: TurnService,
        generate_topic: TopicGenerator,
        speak: Speaker,
        fetch_recent: RecentMessagesFetcher | None = None,
        lock: asyncio.Lock | None = None,
        clock: Clock = now_ms,
    ):
        """
        Args:
            config: Proactive settings
            turn_service: Room idle status and speaking-turn lock
            generate_topic: Reasoning call producing a topic or "[SKIP]"
            speak: Sends the topic; returns True when the room accepted it
            fetch_recent: Recent messages for the engagement check
            lock: Per-agent lock shared with the reply path
            clock: Millisecond clock
        """
        self.config = config
        self.state = ProactiveState()
        self._turn_service = turn_service
        self._generate_topic = generate_topic
        self._speak = speak
        self._fetch_recent = fetch_recent
        self._lock = lock or asyncio.Lock()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_cooldown_ms(self) -> float:
        """base x 2^no_engagement, capped."""
        multiplier = 2 ** self.state.consecutive_no_engagement
        return min(self.config.cooldown_ms * multiplier, self.config.max_cooldown_ms)

    def start(self) -> None:
        if not self.config.enabled:
            logger.info(f"Proactive {self.config.agent_name}: not enabled, skipping start")
            return
        if self.is_running:
            logger.warning(f"Proactive {self.config.agent_name}: already started")
            return

        logger.info(f"Proactive {self.config.agent_name}: starting")
        self._task = asyncio.create_task(
            self._run_loop(), name=f"proactive-{self.config.agent_name}"
        )

    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to exit. Idempotent."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Proactive {self.config.agent_name}: stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.check_interval_s)
            try:
                await self.tick()
            except Exception as e:
                logger.error(
                    f"Proactive {self.config.agent_name}: tick failed: {e}", exc_info=True
                )

    async def tick(self) -> TickOutcome:
        """Run one evaluation cycle under the per-agent lock."""
        async with self._lock:
            return await self._evaluate()

    async def _evaluate(self) -> TickOutcome:
        name = self.config.agent_name
        self._reset_daily_if_needed()

        if self.state.daily_count >= self.config.max_daily_per_agent:
            logger.debug(f"Proactive {name}: daily limit reached")
            return "daily_limit"

        if self._in_cooldown():
            return "cooldown"

        if self.state.awaiting_engagement and self._fetch_recent is not None:
            await self._evaluate_engagement()
            if self._in_cooldown():
                return "cooldown"

        try:
            activity = await asyncio.wait_for(
                self._turn_service.get_activity(), self.config.request_timeout_s
            )
        except Exception as e:
            logger.warning(f"Proactive {name}: failed to fetch activity: {e}")
            return "error"
        if not activity.is_idle:
            logger.debug(f"Proactive {name}: room is not idle")
            return "not_idle"

        try:
            turn = await asyncio.wait_for(
                self._turn_service.request_turn(name), self.config.request_timeout_s
            )
        except Exception as e:
            logger.warning(f"Proactive {name}: failed to request turn: {e}")
            return "error"
        if not turn.granted:
            logger.debug(f"Proactive {name}: turn not granted")
            return "turn_denied"

        try:
            topic = await asyncio.wait_for(
                self._generate_topic(), self.config.reasoning_timeout_s
            )
        except Exception as e:
            logger.warning(f"Proactive {name}: topic generation failed: {e}")
            return "error"
        topic = (topic or "").strip()
        if not topic or SKIP_MARKER in topic:
            logger.info(f"Proactive {name}: no topic generated")
            return "no_topic"

        try:
            sent = await asyncio.wait_for(self._speak(topic), self.config.request_timeout_s)
        except Exception as e:
            logger.warning(f"Proactive {name}: failed to speak: {e}")
            return "error"
        if not sent:
            return "error"

        self.state.daily_count += 1
        self.state.last_proactive_time = self._clock()
        self.state.awaiting_engagement = True
        logger.info(f"Proactive {name}: spoke proactively: {topic[:50]}")
        return "spoke"

    def check_engagement(self, recent_messages: list[Message]) -> None:
        """Reset or grow the no-engagement streak from messages after the last speak."""
        if self.state.last_proactive_time == 0:
            return

        engaged = any(
            m.timestamp > self.state.last_proactive_time
            and m.sender != self.config.agent_name
            for m in recent_messages
        )
        if engaged:
            self.state.consecutive_no_engagement = 0
            logger.info(f"Proactive {self.config.agent_name}: engagement detected, backoff reset")
        else:
            self.state.consecutive_no_engagement += 1
            logger.info(
                f"Proactive {self.config.agent_name}: no engagement, "
                f"consecutive: {self.state.consecutive_no_engagement}"
            )

    async def _evaluate_engagement(self) -> None:
        try:
            recent = await asyncio.wait_for(
                self._fetch_recent(), self.config.request_timeout_s
            )
        except Exception as e:
            logger.warning(f"Proactive {self.config.agent_name}: engagement check failed: {e}")
            return
        self.check_engagement(recent)
        self.state.awaiting_engagement = False

    def _in_cooldown(self) -> bool:
        if self.state.last_proactive_time == 0:
            return False
        elapsed = self._clock() - self.state.last_proactive_time
        remaining = self.current_cooldown_ms() - elapsed
        if remaining > 0:
            logger.debug(
                f"Proactive {self.config.agent_name}: in cooldown, "
                f"{round(remaining / 1000)}s remaining"
            )
            return True
        return False

    def _reset_daily_if_needed(self) -> None:
        today = local_date(self._clock())
        if self.state.last_daily_reset != today:
            self.state.daily_count = 0
            self.state.last_daily_reset = today
            logger.info(f"Proactive {self.config.agent_name}: daily count reset")
