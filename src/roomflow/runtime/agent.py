"""
Per-agent runtime.

Connects one agent to a room and serializes everything that agent decides:
incoming messages are queued and handled one at a time, and the proactive
tick shares the same lock, so the reply path and proactive speaking never
interleave for one agent.

Reply pipeline:
    ReplyStrategy -> room context -> ReplyDecisionEngine -> ContextCompressor
    -> InputSanitizer -> reasoning call -> OutputFilter -> send
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import replace
from typing import Any, AsyncIterator, Protocol

from roomflow.client.events import (
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    NoticeEvent,
    RoomStreamEvent,
)
from roomflow.config.settings import AgentSettings
from roomflow.context.compression import ContextCompressor
from roomflow.context.room import RoomEvent, build_room_context
from roomflow.core.clock import Clock, now_ms
from roomflow.core.errors import RoomNotJoinedError
from roomflow.core.protocols import Reasoner, RoomTransport, TurnService
from roomflow.core.types import SKIP_MARKER, Identity, Message
from roomflow.flow.decision import DIRECTLY_MENTIONED, ReplyDecisionEngine
from roomflow.flow.proactive import ProactiveScheduler
from roomflow.flow.strategy import ReplyStrategy
from roomflow.security.filters import ChainProtector, InputSanitizer, OutputFilter

from .formatters import format_chat_history, format_recent_for_topic
from .prompts import build_system_prompt, build_topic_prompt

logger = logging.getLogger(__name__)

MAX_TRACKED_EVENTS = 50
AGENT_LOOP = "agent_loop"


class RoomConnection(RoomTransport, TurnService, Protocol):
    """Transport and turn service plus the join, push stream and shutdown calls."""

    async def join(self) -> Identity | None: ...

    def stream(self) -> AsyncIterator[RoomStreamEvent]: ...

    async def close(self) -> None: ...


class AgentRuntime:
    """
    Runs one agent in one room.

    Example:
        settings = load_agent_config("my_agent")
        runtime = AgentRuntime.from_settings(settings)
        await runtime.start()
        ...
        await runtime.stop()
    """

    def __init__(
        self,
        settings: AgentSettings,
        connection: RoomConnection,
        reasoner: Reasoner,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ):
        self.settings = settings
        self.name = settings.agent_name
        self._connection = connection
        self._reasoner = reasoner
        self._clock = clock

        self.strategy = ReplyStrategy(settings.strategy_config(), rng=rng, clock=clock)
        self.decision_engine = ReplyDecisionEngine(self.name)
        self.compressor = ContextCompressor(
            max_tokens=settings.max_context_tokens,
            strategy=settings.compression_strategy,
            clock=clock,
        )
        self.sanitizer = InputSanitizer()
        self.output_filter = OutputFilter()
        self.chain_protector = ChainProtector()

        self._lock = asyncio.Lock()
        self.queue: asyncio.Queue[Message] = asyncio.Queue()
        self.events: deque[RoomEvent] = deque(maxlen=MAX_TRACKED_EVENTS)

        self.proactive = ProactiveScheduler(
            config=settings.proactive_config(),
            turn_service=connection,
            generate_topic=self._generate_topic,
            speak=self._speak_proactively,
            fetch_recent=self._fetch_recent,
            lock=self._lock,
            clock=clock,
        )

        self._worker_task: asyncio.Task[None] | None = None
        self._stream_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: AgentSettings, **kwargs: Any) -> "AgentRuntime":
        """Build a runtime talking HTTP to the room and the model endpoint."""
        from roomflow.client.chat_client import ChatClient
        from roomflow.runtime.reasoning import ChatCompletionsReasoner

        connection = ChatClient(
            settings.server_url,
            settings.agent_name,
            timeout=settings.request_timeout_s,
        )
        reasoner = ChatCompletionsReasoner(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout=settings.reasoning_timeout_s,
        )
        return cls(settings, connection, reasoner, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def start(self) -> None:
        """
        Join the room and start the worker, stream and proactive tasks.

        Raises:
            RoomNotJoinedError: If the room refused the join
        """
        if self.is_running:
            logger.warning(f"Agent {self.name}: already running")
            return

        member = await self._connection.join()
        if member is None:
            raise RoomNotJoinedError(f"Agent {self.name} could not join the room")

        logger.info(f"Agent {self.name}: starting")
        self._worker_task = asyncio.create_task(self._worker_loop(), name=f"agent-{self.name}")
        self._stream_task = asyncio.create_task(self._stream_loop(), name=f"stream-{self.name}")
        self.proactive.start()

    async def stop(self) -> None:
        """Stop all tasks and close the connection. Idempotent."""
        if self._worker_task is None and self._stream_task is None:
            return

        logger.info(f"Agent {self.name}: stopping")
        await self.proactive.stop()
        for task in (self._stream_task, self._worker_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._stream_task = None
        self._worker_task = None
        await self._connection.close()
        close_reasoner = getattr(self._reasoner, "close", None)
        if close_reasoner is not None:
            await close_reasoner()

    def enqueue_message(self, msg: Message) -> None:
        self.queue.put_nowait(msg)
        logger.debug(f"Agent {self.name}: message {msg.id} enqueued")

    async def _stream_loop(self) -> None:
        try:
            async for event in self._connection.stream():
                self.dispatch_event(event)
        except asyncio.CancelledError:
            logger.debug(f"Agent {self.name}: stream cancelled")
        except Exception as e:
            logger.error(f"Agent {self.name}: stream error: {e}", exc_info=True)

    def dispatch_event(self, event: RoomStreamEvent) -> None:
        if isinstance(event, MessageEvent) and event.message is not None:
            self.enqueue_message(event.message)
        elif isinstance(event, JoinEvent):
            logger.info(f"Agent {self.name}: {event.name} joined")
            self.events.append(RoomEvent("join", event.name, int(self._clock())))
        elif isinstance(event, LeaveEvent):
            logger.info(f"Agent {self.name}: {event.name} left")
            self.events.append(RoomEvent("leave", event.name, int(self._clock())))
        elif isinstance(event, NoticeEvent):
            self.events.append(RoomEvent(event.type, event.name, int(self._clock())))

    async def _worker_loop(self) -> None:
        try:
            while True:
                msg = await self.queue.get()
                try:
                    await self.handle_message(msg)
                except Exception as e:
                    logger.error(
                        f"Agent {self.name}: error handling {msg.id}: {e}", exc_info=True
                    )
        except asyncio.CancelledError:
            logger.debug(f"Agent {self.name}: worker cancelled")

    async def handle_message(self, msg: Message) -> str:
        """Run the reply pipeline for one message under the agent lock."""
        async with self._lock:
            return await self._reply(msg)

    async def _reply(self, msg: Message) -> str:
        if not self.strategy.should_reply(msg):
            if msg.sender != self.name:
                remaining = self.strategy.remaining_cooldown_ms()
                if remaining > 0:
                    logger.info(f"Agent {self.name}: in cooldown, {round(remaining / 1000)}s remaining")
                else:
                    logger.info(f"Agent {self.name}: skipped reply (probability)")
            return "strategy_skip"

        timeout = self.settings.request_timeout_s
        try:
            history, members = await asyncio.gather(
                asyncio.wait_for(
                    self._connection.get_recent_messages(self.settings.max_context_messages),
                    timeout,
                ),
                asyncio.wait_for(self._connection.get_members(), timeout),
            )
        except Exception as e:
            logger.warning(f"Agent {self.name}: failed to load room state: {e}")
            return "error"

        if msg.is_agent:
            if msg.sender in self.chain_protector.looping_senders(history):
                logger.warning(f"Agent {self.name}: {msg.sender} is repeating itself, not replying")
                return AGENT_LOOP

        context = build_room_context(
            self.name, members, history, list(self.events), clock=self._clock
        )
        decision = self.decision_engine.decide(msg, context, history)
        if not decision.respond:
            logger.info(f"Agent {self.name}: not responding ({decision.reason})")
            return decision.reason

        selected = self.compressor.compress(history, msg, self_name=self.name)
        system_prompt = build_system_prompt(self.name, self.settings.system_prompt, context)
        user_prompt = format_chat_history(
            [self._sanitized(m) for m in selected], self._sanitized(msg), context
        )

        try:
            reply = await asyncio.wait_for(
                self._reasoner.generate(system_prompt, user_prompt),
                self.settings.reasoning_timeout_s,
            )
        except Exception as e:
            logger.warning(f"Agent {self.name}: reasoning call failed: {e}")
            return "error"

        if not reply or SKIP_MARKER in reply:
            logger.info(f"Agent {self.name}: decided to skip reply")
            return "model_skip"

        result = self.output_filter.filter(reply)
        if not result.safe:
            return "filtered"

        content = result.filtered
        target = decision.mention_target
        if target and f"@{target}".lower() not in content.lower():
            content = f"@{target} {content}"

        try:
            sent = await asyncio.wait_for(
                self._connection.send_message(
                    content,
                    reply_to=msg.id,
                    is_mention_reply=decision.reason == DIRECTLY_MENTIONED,
                ),
                timeout,
            )
        except Exception as e:
            logger.warning(f"Agent {self.name}: failed to send reply: {e}")
            return "error"

        if sent.success:
            logger.info(f"Agent {self.name}: reply sent ({decision.reason})")
            self.strategy.start_cooldown()
            self.strategy.reset_backoff()
            return "sent"

        if sent.rate_limited:
            self.strategy.record_rejection()
            self.strategy.start_cooldown()
            return "rejected"

        logger.warning(f"Agent {self.name}: failed to send reply: {sent.error}")
        return "error"

    def _sanitized(self, msg: Message) -> Message:
        if msg.sender == self.name:
            return msg
        result = self.sanitizer.sanitize(msg.content)
        if not result.safe:
            logger.warning(
                f"Agent {self.name}: suspicious content from {msg.sender}: {result.threats}"
            )
        content = result.sanitized
        if msg.is_agent:
            if self.chain_protector.is_injection_from_agent(msg.content):
                logger.warning(f"Agent {self.name}: {msg.sender} sent instruction-like content")
            content = self.chain_protector.mark_agent_content(content, msg.sender_kind)
        return replace(msg, content=content)

    async def _fetch_recent(self) -> list[Message]:
        return await self._connection.get_recent_messages(self.settings.max_context_messages)

    async def _generate_topic(self) -> str:
        recent = await self._fetch_recent()
        system_prompt = build_topic_prompt(self.name, self.settings.system_prompt)
        user_prompt = format_recent_for_topic([self._sanitized(m) for m in recent])
        return await self._reasoner.generate(system_prompt, user_prompt)

    async def _speak_proactively(self, topic: str) -> bool:
        result = self.output_filter.filter(topic)
        if not result.safe:
            return False

        sent = await self._connection.send_message(result.filtered)
        if sent.rate_limited:
            self.strategy.record_rejection()
        return sent.success
