"""
Context selection: token estimation, importance scoring, reply chains,
budgeted compression and room context.
"""

from .compression import (
    CompressionStrategy,
    ContextCompressor,
    compress_context,
)
from .reply_chain import trace_reply_chain
from .room import (
    ConversationDynamics,
    MemberInfo,
    OngoingThread,
    RoomContext,
    RoomEvent,
    build_room_context,
)
from .scoring import calculate_importance
from .tokens import estimate_tokens

__all__ = [
    "CompressionStrategy",
    "ContextCompressor",
    "ConversationDynamics",
    "MemberInfo",
    "OngoingThread",
    "RoomContext",
    "RoomEvent",
    "build_room_context",
    "calculate_importance",
    "compress_context",
    "estimate_tokens",
    "trace_reply_chain",
]
