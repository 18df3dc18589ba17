"""
Roomflow - flow control and context selection for multi-agent chat rooms.

Flow Layer:
    AdmissionController: Room-wide agent rate limiting (window, bucket, ratio)
    ReplyStrategy: Per-agent cooldown, probability and backoff gate
    ReplyDecisionEngine: Social rules for whether to answer a message
    ProactiveScheduler: Idle-triggered speaking with engagement backoff

Context Layer:
    ContextCompressor: Token-budgeted history selection
    build_room_context: Members, events and conversation dynamics

Runtime Layer:
    AgentRuntime: One agent in one room
    ChatClient: HTTP + SSE room client
    RoomServer: Starlette room server

Example:
    from roomflow import AgentRuntime, load_agent_config

    settings = load_agent_config("helper")
    runtime = AgentRuntime.from_settings(settings)
    await runtime.start()
"""

# Core
from .core import (
    Activity,
    AdmissionResult,
    ConfigurationError,
    Identity,
    Message,
    RespondDecision,
    RoomflowError,
    RoomNotJoinedError,
    SendResult,
    TurnResult,
)

# Context layer
from .context import (
    ContextCompressor,
    RoomContext,
    build_room_context,
    calculate_importance,
    compress_context,
    estimate_tokens,
    trace_reply_chain,
)

# Flow layer
from .flow import (
    AdmissionController,
    ProactiveConfig,
    ProactiveScheduler,
    ReplyDecisionEngine,
    ReplyStrategy,
    StrategyConfig,
)

# Runtime layer
from .client import ChatClient
from .config import AgentSettings, load_agent_config
from .runtime import AgentRuntime, ChatCompletionsReasoner
from .server import RoomServer, RoomStore

__all__ = [
    # Core
    "Activity",
    "AdmissionResult",
    "ConfigurationError",
    "Identity",
    "Message",
    "RespondDecision",
    "RoomflowError",
    "RoomNotJoinedError",
    "SendResult",
    "TurnResult",
    # Context
    "ContextCompressor",
    "RoomContext",
    "build_room_context",
    "calculate_importance",
    "compress_context",
    "estimate_tokens",
    "trace_reply_chain",
    # Flow
    "AdmissionController",
    "ProactiveConfig",
    "ProactiveScheduler",
    "ReplyDecisionEngine",
    "ReplyStrategy",
    "StrategyConfig",
    # Runtime
    "AgentRuntime",
    "AgentSettings",
    "ChatClient",
    "ChatCompletionsReasoner",
    "RoomServer",
    "RoomStore",
    "load_agent_config",
]

__version__ = "0.1.0"
