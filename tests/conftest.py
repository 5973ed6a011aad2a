import numpy as np
import pytest

from memorabilia.domain.game_rules import DeckGenerator
from tests.fakes import FakeClock, FakeWallet


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def deck_generator() -> DeckGenerator:
    return DeckGenerator(np.random.default_rng(1234))


@pytest.fixture()
def wallet() -> FakeWallet:
    return FakeWallet()
