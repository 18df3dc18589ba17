"""Flow control: room admission, reply gating, reply decisions, proactive speaking."""

from .admission import AdmissionController, TokenBucket
from .decision import ReplyDecisionEngine
from .proactive import ProactiveConfig, ProactiveScheduler, ProactiveState
from .strategy import ReplyStrategy, StrategyConfig

__all__ = [
    "AdmissionController",
    "ProactiveConfig",
    "ProactiveScheduler",
    "ProactiveState",
    "ReplyDecisionEngine",
    "ReplyStrategy",
    "StrategyConfig",
    "TokenBucket",
]
