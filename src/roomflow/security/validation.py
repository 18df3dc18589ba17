"""Server-side message validation and security event tracking."""

from __future__ import annotations

import re
import threading
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Literal

from roomflow.core.clock import Clock, now_ms

MAX_SENDER_LENGTH = 50
MAX_CONTENT_LENGTH = 2000
MAX_MENTIONS = 5
MAX_URLS = 3

_HTML_TAG = re.compile(r"<[^>]*>")
_MENTION = re.compile(r"@[^\s@]+")
_REPEATED_CHAR = re.compile(r"(.)\1{9,}")
_URL = re.compile(r"https?://")

SecurityEventType = Literal[
    "input_violation", "output_violation", "spam", "rate_limit", "injection_attempt"
]
Severity = Literal["low", "medium", "high"]


@dataclass
class ValidationResult:
    valid: bool
    reason: str | None = None
    sanitized_content: str | None = None


def validate_message(sender: str, content: str, kind: str) -> ValidationResult:
    """
    Validate an inbound message before admission.

    Returns:
        ValidationResult with HTML stripped from sanitized_content when valid
    """
    if len(sender) > MAX_SENDER_LENGTH:
        return ValidationResult(False, f"Sender name too long (max {MAX_SENDER_LENGTH} characters)")

    if len(content) > MAX_CONTENT_LENGTH:
        return ValidationResult(False, f"Content too long (max {MAX_CONTENT_LENGTH} characters)")

    if kind not in ("human", "agent"):
        return ValidationResult(False, "Invalid sender type, must be human or agent")

    if len(_MENTION.findall(content)) > MAX_MENTIONS:
        return ValidationResult(False, f"Too many mentions (max {MAX_MENTIONS})")

    if _REPEATED_CHAR.search(content):
        return ValidationResult(False, "Spam detected: excessive repeated characters")

    if len(content) > 20:
        letters = sum(1 for c in content if c.isascii() and c.isalpha())
        uppercase = sum(1 for c in content if c.isascii() and c.isupper())
        if letters >= 5 and uppercase / letters > 0.8:
            return ValidationResult(False, "Spam detected: excessive uppercase")

    if len(_URL.findall(content)) > MAX_URLS:
        return ValidationResult(False, "Spam detected: too many URLs")

    return ValidationResult(True, sanitized_content=_HTML_TAG.sub("", content))


@dataclass
class SecurityEvent:
    type: SecurityEventType
    severity: Severity
    sender: str
    message: str
    timestamp: int


class SecurityMonitor:
    """Bounded in-memory log of security events. Thread-safe."""

    def __init__(self, max_events: int = 1000, clock: Clock = now_ms):
        self._events: deque[SecurityEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._clock = clock

    def record(
        self, type: SecurityEventType, severity: Severity, sender: str, message: str
    ) -> None:
        with self._lock:
            self._events.append(
                SecurityEvent(type, severity, sender, message, int(self._clock()))
            )

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            events = list(self._events)

        offenders = Counter(e.sender for e in events).most_common(10)
        return {
            "total": len(events),
            "byType": dict(Counter(e.type for e in events)),
            "bySeverity": dict(Counter(e.severity for e in events)),
            "topOffenders": [{"sender": s, "count": c} for s, c in offenders],
        }

    def get_recent_events(self, limit: int = 100) -> list[SecurityEvent]:
        with self._lock:
            return list(self._events)[-limit:]
