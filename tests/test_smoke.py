"""
Smoke tests - verify basic imports and setup work.
"""

from roomflow import AdmissionController, AgentRuntime, ContextCompressor, RoomServer


def test_can_import_package():
    """Verify the top-level exports resolve."""
    assert AdmissionController is not None
    assert AgentRuntime is not None
    assert ContextCompressor is not None
    assert RoomServer is not None


def test_runtime_checkable_protocols():
    """The in-memory room satisfies the transport and turn contracts."""
    from roomflow.core.protocols import RoomTransport, TurnService
    from roomflow.testing import FakeRoom

    room = FakeRoom()
    assert isinstance(room, RoomTransport)
    assert isinstance(room, TurnService)


def test_room_connection_extends_collaborator_contracts():
    """The runtime's connection is the transport plus the turn service."""
    from roomflow.core.protocols import RoomTransport, TurnService
    from roomflow.runtime.agent import RoomConnection

    assert issubclass(RoomConnection, RoomTransport)
    assert issubclass(RoomConnection, TurnService)
    assert "send_message" not in RoomConnection.__dict__


def test_skip_marker_is_shared():
    """Filters, scheduler and reasoning call agree on one skip marker."""
    from roomflow.core import SKIP_MARKER
    from roomflow.flow import proactive
    from roomflow.runtime import reasoning
    from roomflow.security import filters

    assert SKIP_MARKER == "[SKIP]"
    assert proactive.SKIP_MARKER is SKIP_MARKER
    assert reasoning.SKIP_MARKER is SKIP_MARKER
    assert filters.OutputFilter().filter("sudo rm -rf /").filtered is SKIP_MARKER


def test_fixtures_work(clock, rng):
    """Verify our test fixtures are properly configured."""
    start = clock()
    clock.advance(10)
    assert clock() == start + 10
    assert 0 <= rng.random() < 1
