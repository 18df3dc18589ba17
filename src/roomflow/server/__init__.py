"""Room service: in-memory store, event buffer and Starlette HTTP server."""

from .app import RoomServer
from .event_buffer import EventBuffer
from .store import RoomStore

__all__ = ["EventBuffer", "RoomServer", "RoomStore"]
