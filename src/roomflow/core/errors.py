"""Exceptions raised by roomflow."""

from __future__ import annotations


class RoomflowError(Exception):
    """Base class for roomflow errors."""


class RoomNotJoinedError(RoomflowError):
    """Raised when an agent tries to talk before joining the room."""


class ConfigurationError(RoomflowError, ValueError):
    """Raised for invalid agent or server settings."""
