"""
In-memory room state: members, messages, moderation, idle status and the
proactive speaking-turn lock.

Nothing here survives a restart.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from datetime import date

from roomflow.core.clock import MINUTE_MS, Clock, local_date, now_ms
from roomflow.core.types import AGENT, Activity, Identity, Message, SenderKind, TurnResult

logger = logging.getLogger(__name__)

_MENTION = re.compile(r"@(\w+)")

MIN_SEND_INTERVAL_MS = 5000
MIN_IDLE_TIME_MS = 60_000
PROACTIVE_LOCK_MS = 30_000
MAX_DAILY_PROACTIVE_GLOBAL = 50
INACTIVE_MEMBER_MS = 30 * MINUTE_MS


def extract_mentions(content: str) -> frozenset[str]:
    return frozenset(_MENTION.findall(content))


class RoomStore:
    """
    Room state owned by the room server.

    Example:
        store = RoomStore()
        member, is_new = store.add_member("Alice", "human")
        msg = store.add_message("Alice", "human", "hi @Bot")
    """

    def __init__(
        self,
        min_idle_time_ms: int = MIN_IDLE_TIME_MS,
        proactive_lock_ms: int = PROACTIVE_LOCK_MS,
        max_daily_proactive: int = MAX_DAILY_PROACTIVE_GLOBAL,
        clock: Clock = now_ms,
    ):
        self.min_idle_time_ms = min_idle_time_ms
        self.proactive_lock_ms = proactive_lock_ms
        self.max_daily_proactive = max_daily_proactive
        self._clock = clock

        self._lock = threading.RLock()
        self._members: dict[str, Identity] = {}
        self._messages: list[Message] = []
        self._last_message_time: dict[str, int] = {}

        self._turn_holder: str | None = None
        self._turn_lock_until = 0
        self._proactive_count = 0
        self._proactive_day: date | None = None

    def _now(self) -> int:
        return int(self._clock())

    # Members

    def add_member(self, name: str, kind: SenderKind) -> tuple[Identity, bool]:
        """Join name, or refresh its activity if already present."""
        now = self._now()
        with self._lock:
            existing = self._members.get(name)
            if existing is not None:
                existing.last_active_at = now
                return existing, False

            member = Identity(name=name, kind=kind, joined_at=now, last_active_at=now)
            self._members[name] = member
            logger.info(f"Member joined: {name} ({kind})")
            return member, True

    def get_member(self, name: str) -> Identity | None:
        with self._lock:
            return self._members.get(name)

    def get_members(self) -> list[Identity]:
        with self._lock:
            return list(self._members.values())

    def remove_member(self, name: str) -> bool:
        with self._lock:
            removed = self._members.pop(name, None) is not None
        if removed:
            logger.info(f"Member removed: {name}")
        return removed

    def cleanup_inactive_members(self, max_idle_ms: int = INACTIVE_MEMBER_MS) -> list[str]:
        """Remove members inactive for longer than max_idle_ms."""
        now = self._now()
        with self._lock:
            stale = [
                name
                for name, member in self._members.items()
                if now - member.last_active_at > max_idle_ms
            ]
            for name in stale:
                del self._members[name]
        return stale

    def mute(self, name: str, duration_ms: int) -> Identity | None:
        with self._lock:
            member = self._members.get(name)
            if member is None:
                return None
            member.muted = True
            member.muted_until = self._now() + duration_ms
            return member

    def unmute(self, name: str) -> Identity | None:
        with self._lock:
            member = self._members.get(name)
            if member is None:
                return None
            member.muted = False
            member.muted_until = None
            return member

    def is_muted(self, name: str) -> bool:
        """Check mute state, lifting expired mutes."""
        with self._lock:
            member = self._members.get(name)
            if member is None or not member.muted:
                return False
            if member.muted_until is not None and self._now() >= member.muted_until:
                member.muted = False
                member.muted_until = None
                return False
            return True

    # Messages

    def add_message(
        self,
        sender: str,
        kind: SenderKind,
        content: str,
        reply_to: str | None = None,
    ) -> Message:
        with self._lock:
            now = self._now()
            if self._messages:
                now = max(now, self._messages[-1].timestamp)

            message = Message(
                id=f"msg_{uuid.uuid4().hex[:10]}",
                sender=sender,
                sender_kind=kind,
                content=content,
                timestamp=now,
                mentions=extract_mentions(content),
                reply_to=reply_to,
            )
            self._messages.append(message)
            self._last_message_time[sender] = now

            member = self._members.get(sender)
            if member is not None:
                member.last_active_at = now
                member.message_count += 1
            return message

    def get_messages(self, since: int = 0, limit: int = 50) -> list[Message]:
        """Visible messages newer than since, oldest first, at most limit."""
        with self._lock:
            visible = [m for m in self._messages if m.timestamp > since and not m.deleted]
        return visible[-limit:] if limit > 0 else []

    def get_all_messages(self) -> list[Message]:
        with self._lock:
            return list(self._messages)

    def delete_message(self, message_id: str) -> bool:
        with self._lock:
            for message in self._messages:
                if message.id == message_id:
                    message.mark_deleted()
                    return True
        return False

    def check_min_interval(
        self, sender: str, min_interval_ms: int = MIN_SEND_INTERVAL_MS
    ) -> tuple[bool, int]:
        """Legacy per-sender gap. Returns (allowed, retry_after_ms)."""
        with self._lock:
            last = self._last_message_time.get(sender)
        if last is None:
            return True, 0
        elapsed = self._now() - last
        if elapsed >= min_interval_ms:
            return True, 0
        return False, min_interval_ms - elapsed

    def consecutive_agent_count(self) -> int:
        """Agent messages at the end of the log since the last human message."""
        count = 0
        with self._lock:
            for message in reversed(self._messages):
                if message.sender_kind != AGENT:
                    break
                count += 1
        return count

    # Proactive speaking

    def get_activity_status(self) -> Activity:
        with self._lock:
            last = self._messages[-1].timestamp if self._messages else 0
        return Activity(
            is_idle=self._now() - last >= self.min_idle_time_ms,
            last_message_time=last,
        )

    def request_proactive_turn(self, name: str) -> TurnResult:
        """
        First-come-first-served speaking turn.

        One holder at a time; the lock expires after proactive_lock_ms. Turns
        are capped room-wide per local calendar day.
        """
        now = self._now()
        with self._lock:
            today = local_date(now)
            if self._proactive_day != today:
                self._proactive_day = today
                self._proactive_count = 0

            if self._turn_holder is not None and now < self._turn_lock_until:
                logger.debug(f"Turn denied to {name}: held by {self._turn_holder}")
                return TurnResult(granted=False, lock_until=self._turn_lock_until)

            if self._proactive_count >= self.max_daily_proactive:
                logger.debug(f"Turn denied to {name}: daily room limit reached")
                return TurnResult(granted=False)

            self._turn_holder = name
            self._turn_lock_until = now + self.proactive_lock_ms
            self._proactive_count += 1
            logger.info(f"Proactive turn granted to {name}")
            return TurnResult(granted=True, lock_until=self._turn_lock_until)
