"""
Prompt-injection mitigation and output filtering for agent runtimes.

InputSanitizer runs over history before it reaches the reasoning call,
OutputFilter over the generated reply before it is sent.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Literal

from roomflow.core.types import HUMAN, SKIP_MARKER, Message, SenderKind

logger = logging.getLogger(__name__)

USER_OPEN = "[USER_MESSAGE]"
USER_CLOSE = "[/USER_MESSAGE]"

_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_BLOCK = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_IPV4 = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"ignore\s+(all|previous|above)(\s+previous|\s+the)?\s+(instructions?|rules?)",
        r"system\s*prompt",
        r"DAN\s*mode",
        r"you\s+are\s+now",
        r"pretend\s+(you|to\s+be)",
        r"reveal\s+your",
        r"jailbreak",
        r"ignore\s+everything",
        r"new\s+instructions",
        r"override\s+(instructions|rules)",
    )
)

DANGEROUS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(p, re.IGNORECASE), name)
    for p, name in (
        (
            r"\b(rm\s+-rf|sudo|chmod|chown|curl\s+.*\|\s*sh|wget\s+.*\|\s*sh|eval\s*\()",
            "shell_command",
        ),
        (r"(password|api_key|secret|token|bearer)\s*[=:]\s*\S+", "credential"),
        (r"\[(SYSTEM|ADMIN)\]", "system_marker"),
        (r"(/etc/|/root/|C:\\Windows\\|\.env\b)", "system_path"),
    )
)

AGENT_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"ignore\s+(previous|all|above)\s+instructions",
        r"you\s+must",
        r"system\s*:",
        r"new\s+instructions",
        r"override",
    )
)


@dataclass
class SanitizeResult:
    safe: bool
    sanitized: str
    threats: list[str] = field(default_factory=list)


@dataclass
class FilterResult:
    safe: bool
    filtered: str
    violations: list[str] = field(default_factory=list)


class InputSanitizer:
    """Flags injection attempts and wraps content in boundary markers."""

    def __init__(self, max_length: int = 2000):
        self.max_length = max_length

    def sanitize(self, content: str) -> SanitizeResult:
        threats = [
            f"Detected injection pattern: {pattern.pattern}"
            for pattern in INJECTION_PATTERNS
            if pattern.search(content)
        ]

        sanitized = _SCRIPT_BLOCK.sub("", content)
        sanitized = _HTML_TAG.sub("", sanitized)

        if len(sanitized) > self.max_length:
            sanitized = sanitized[: self.max_length]
            threats.append(f"Content truncated to {self.max_length} characters")

        return SanitizeResult(
            safe=not threats,
            sanitized=f"{USER_OPEN}{sanitized}{USER_CLOSE}",
            threats=threats,
        )


class OutputFilter:
    """Blocks replies that leak commands, credentials, paths or internal IPs."""

    def __init__(self, max_length: int = 500):
        self.max_length = max_length

    def filter(self, output: str) -> FilterResult:
        violations = [
            f"Detected dangerous pattern: {name}"
            for pattern, name in DANGEROUS_PATTERNS
            if pattern.search(output)
        ]
        violations.extend(
            f"Detected internal IP address: {ip}"
            for ip in _IPV4.findall(output)
            if is_internal_ip(ip)
        )

        if violations:
            logger.warning(f"Output blocked: {', '.join(violations)}")
            return FilterResult(safe=False, filtered=SKIP_MARKER, violations=violations)

        filtered = output.replace(USER_OPEN, "").replace(USER_CLOSE, "")
        return FilterResult(safe=True, filtered=filtered[: self.max_length])


def is_internal_ip(ip: str) -> bool:
    """10/8, 172.16/12 and 192.168/16."""
    try:
        address = ipaddress.IPv4Address(ip)
    except ValueError:
        return False
    return any(
        address in ipaddress.IPv4Network(net)
        for net in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16")
    )


class ChainProtector:
    """Guards against agents looping on, or instructing, each other."""

    def __init__(self, similarity_threshold: float = 0.8, loop_length: int = 3):
        self.similarity_threshold = similarity_threshold
        self.loop_length = loop_length

    def trust_level(self, kind: SenderKind) -> Literal["trusted", "medium"]:
        return "trusted" if kind == HUMAN else "medium"

    @staticmethod
    def jaccard_similarity(first: str, second: str) -> float:
        words1 = set(first.lower().split())
        words2 = set(second.lower().split())
        union = words1 | words2
        if not union:
            return 0.0
        return len(words1 & words2) / len(union)

    def detect_loop(self, messages: Iterable[Message]) -> str | None:
        """
        Find a sender repeating near-identical messages.

        Returns:
            The first looping sender's name, or None
        """
        return next(iter(self.looping_senders(messages)), None)

    def looping_senders(self, messages: Iterable[Message]) -> list[str]:
        """Every sender repeating near-identical messages, in first-seen order."""
        by_sender: dict[str, list[str]] = {}
        for msg in messages:
            by_sender.setdefault(msg.sender, []).append(msg.content)

        return [
            sender
            for sender, contents in by_sender.items()
            if len(contents) >= self.loop_length and self._is_repeating(contents[-10:])
        ]

    def _is_repeating(self, recent: list[str]) -> bool:
        similar = 1
        for i in range(len(recent) - 1, 0, -1):
            if self.jaccard_similarity(recent[i], recent[i - 1]) > self.similarity_threshold:
                similar += 1
                if similar >= self.loop_length:
                    return True
            else:
                similar = 1
        return False

    @staticmethod
    def mark_agent_content(content: str, kind: SenderKind) -> str:
        if kind == HUMAN:
            return content
        return f"[AGENT_OUTPUT]{content}[/AGENT_OUTPUT]"

    @staticmethod
    def is_injection_from_agent(content: str) -> bool:
        return any(p.search(content) for p in AGENT_INJECTION_PATTERNS)
