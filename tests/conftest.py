"""
Pytest configuration and shared fixtures.

- Engine tests drive a GameMaster with a seeded RNG, a fixed clock and a
  two-group word library, so every round is reproducible.
- Async tests run in pytest-asyncio auto mode (see pyproject.toml).
- WebSocket tests (test_ws_router.py) use FastAPI's TestClient with a fresh
  in-memory store and a unique room id per test.
"""
import random
import uuid

import pytest

from agents.game_master import GameMaster
from agents.role_dealer import RoleDealer
from services.word_source import WordSource
from tests.helpers import FIXED_NOW, WORD_GROUPS


@pytest.fixture
def word_source() -> WordSource:
    return WordSource(groups=[g.model_copy(deep=True) for g in WORD_GROUPS])


@pytest.fixture
def engine(word_source) -> GameMaster:
    return GameMaster(
        rng=random.Random(1234),
        clock=lambda: FIXED_NOW,
        dealer=RoleDealer(word_source=word_source),
    )


@pytest.fixture
def room_id() -> str:
    return "room-" + uuid.uuid4().hex[:8]
