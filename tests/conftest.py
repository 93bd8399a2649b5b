"""
dposgov/tests/conftest.py

Shared fixtures for governance tests.
"""

import pytest

from dposgov.config import GovernanceConfig
from dposgov.protocol.producers import Producer
from dposgov.protocol.state import ChainState


PRODUCER_NAMES = [f"prod{i:02d}" for i in range(10)]


@pytest.fixture
def config():
    """Default engine configuration."""
    return GovernanceConfig()


@pytest.fixture
def state():
    """Empty chain state."""
    return ChainState()


@pytest.fixture
def seeded_state():
    """Chain state with ten active producers and no votes."""
    state = ChainState()
    for name in PRODUCER_NAMES:
        state.producers.emplace(Producer(owner=name, producer_key=f"key-{name}"))
    return state

