"""Core data model and collaborator contracts."""

from .clock import Clock, now_ms
from .errors import ConfigurationError, RoomflowError, RoomNotJoinedError
from .protocols import Reasoner, RoomTransport, TurnService
from .types import (
    AGENT,
    HUMAN,
    SKIP_MARKER,
    Activity,
    AdmissionResult,
    Identity,
    Message,
    RespondDecision,
    SendResult,
    SenderKind,
    TurnResult,
)

__all__ = [
    "AGENT",
    "HUMAN",
    "SKIP_MARKER",
    "Activity",
    "AdmissionResult",
    "Clock",
    "ConfigurationError",
    "Identity",
    "Message",
    "Reasoner",
    "RespondDecision",
    "RoomNotJoinedError",
    "RoomTransport",
    "RoomflowError",
    "SendResult",
    "SenderKind",
    "TurnResult",
    "TurnService",
    "now_ms",
]
