"""Shared fixtures for the chain_reaction tests."""
import pytest

from chain_reaction.config import GameConfig
from chain_reaction.crypto import new_player_key, address_from_public_key
from chain_reaction.game import ChainReaction

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def new_address() -> bytes:
    return address_from_public_key(new_player_key().public_key())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def players():
    """Ten distinct player addresses."""
    return [new_address() for _ in range(10)]


@pytest.fixture
def game(clock):
    """In-memory game with a 500ms decay and 500ms floor."""
    return ChainReaction(GameConfig(duration_decrease_ms=500, min_duration_ms=500), clock=clock)
