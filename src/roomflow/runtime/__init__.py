"""Agent runtime: prompts, history formatting, reasoning calls and the agent loop."""

from .agent import AgentRuntime, RoomConnection
from .formatters import format_chat_history, format_recent_for_topic
from .prompts import build_system_prompt, build_topic_prompt
from .reasoning import ChatCompletionsReasoner

__all__ = [
    "AgentRuntime",
    "ChatCompletionsReasoner",
    "RoomConnection",
    "build_system_prompt",
    "build_topic_prompt",
    "format_chat_history",
    "format_recent_for_topic",
]
