"""
Pytest fixtures for roomflow tests.

Every time-based component takes an injected clock; tests freeze time with
FakeClock and drive it forward explicitly.
"""

import random

import pytest

from tests.fixtures import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)
