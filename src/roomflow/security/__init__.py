"""Text filters and server-side validation."""

from .filters import (
    ChainProtector,
    FilterResult,
    InputSanitizer,
    OutputFilter,
    SanitizeResult,
)
from .validation import SecurityMonitor, ValidationResult, validate_message

__all__ = [
    "ChainProtector",
    "FilterResult",
    "InputSanitizer",
    "OutputFilter",
    "SanitizeResult",
    "SecurityMonitor",
    "ValidationResult",
    "validate_message",
]
