"""Pure functions for chat history formatting. No I/O, fully unit-testable."""

from __future__ import annotations

from roomflow.context.room import RoomContext
from roomflow.core.clock import MINUTE_MS
from roomflow.core.types import Message

SILENCE_GAP_MS = 5 * MINUTE_MS
MAX_LINE_CONTENT = 300


def sender_prefix(msg: Message) -> str:
    return "[Agent]" if msg.is_agent else "[Human]"


def format_chat_history(
    history: list[Message],
    trigger: Message,
    context: RoomContext | None = None,
) -> str:
    """
    Render history as the user prompt of a reasoning call.

    Args:
        history: Selected messages (any order)
        trigger: The message being answered, appended if missing
        context: Room context for event lines and mention highlighting

    Returns:
        One line per message, oldest first
    """
    ordered = sorted(history, key=lambda m: m.timestamp)
    if all(m.id != trigger.id for m in ordered):
        ordered.append(trigger)
    by_id = {m.id: m for m in ordered}

    lines: list[str] = []
    last_timestamp = 0

    for msg in ordered:
        if last_timestamp and msg.timestamp - last_timestamp > SILENCE_GAP_MS:
            lines.append("[5+ minutes of silence]")

        if context is not None:
            for event in context.recent_events:
                if last_timestamp < event.timestamp <= msg.timestamp:
                    lines.append(f"[SYSTEM] {event.name} {event.type} the room")

        content = msg.content
        if len(content) > MAX_LINE_CONTENT:
            content = content[:MAX_LINE_CONTENT] + "..."

        reply_note = ""
        parent = by_id.get(msg.reply_to) if msg.reply_to else None
        if parent is not None:
            reply_note = f" (replying to {parent.sender})"

        if context is not None and msg.mentions_name(context.my_name):
            content = f">>> {content} <<<"

        lines.append(f"{sender_prefix(msg)} {msg.sender}{reply_note}: {content}")
        last_timestamp = msg.timestamp

    return "\n".join(lines)


def format_recent_for_topic(messages: list[Message], limit: int = 10) -> str:
    """Compact transcript of the last few messages for topic generation."""
    if not messages:
        return "(the room has been quiet)"
    tail = sorted(messages, key=lambda m: m.timestamp)[-limit:]
    return "\n".join(f"{sender_prefix(m)} {m.sender}: {m.content}" for m in tail)
