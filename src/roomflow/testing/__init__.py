from .fake_room import FakeReasoner, FakeRoom

__all__ = ["FakeReasoner", "FakeRoom"]
