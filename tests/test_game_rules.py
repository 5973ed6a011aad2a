"""
Unit tests for the tier table and the DeckGenerator.
"""

from collections import Counter

import numpy as np
import pytest

from memorabilia.domain.game_rules import (
    SYMBOL_ALPHABET_SIZE,
    DeckGenerator,
    pair_count,
    resolve_tier,
    tier_config,
)
from memorabilia.exceptions import InvalidTier
from memorabilia.models.dc_models import Difficulty


class TestTierTable:
    def test_pair_counts(self):
        """Tiers hold 4, 8 and 12 pairs."""
        assert pair_count(Difficulty.EASY) == 4
        assert pair_count(Difficulty.MEDIUM) == 8
        assert pair_count(Difficulty.HARD) == 12

    def test_plain_ints_are_accepted(self):
        """An int tier resolves to the matching Difficulty."""
        assert resolve_tier(2) is Difficulty.MEDIUM
        assert tier_config(3).multiplier == 20

    @pytest.mark.parametrize("value", [0, 4, -1, "easy", None, True, 1.5])
    def test_unsupported_tier_raises(self, value):
        """Anything outside the tier table is InvalidTier."""
        with pytest.raises(InvalidTier):
            resolve_tier(value)


class TestDeckGenerator:
    def setup_method(self):
        self.generator = DeckGenerator(np.random.default_rng(7))

    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_every_value_appears_exactly_twice(self, difficulty):
        """A board holds 2 * pair_count tiles and each symbol twice."""
        tiles = self.generator.generate(difficulty)

        assert len(tiles) == 2 * pair_count(difficulty)
        counts = Counter(tile.value for tile in tiles)
        assert set(counts.values()) == {2}
        assert len(counts) == pair_count(difficulty)

    def test_tiles_are_indexed_by_position(self):
        """Tile.index mirrors the position on the board and nothing starts matched."""
        tiles = self.generator.generate(Difficulty.HARD)

        assert [tile.index for tile in tiles] == list(range(len(tiles)))
        assert not any(tile.matched for tile in tiles)

    def test_symbols_come_from_the_alphabet(self):
        """Values are drawn from the fixed symbol alphabet."""
        for _ in range(20):
            tiles = self.generator.generate(Difficulty.HARD)
            assert all(0 <= tile.value < SYMBOL_ALPHABET_SIZE for tile in tiles)

    def test_same_seed_gives_same_board(self):
        """The board is a pure function of the generator state."""
        first = DeckGenerator(np.random.default_rng(99)).generate(Difficulty.MEDIUM)
        second = DeckGenerator(np.random.default_rng(99)).generate(Difficulty.MEDIUM)
        assert [t.value for t in first] == [t.value for t in second]

    def test_invalid_tier_raises(self):
        with pytest.raises(InvalidTier):
            self.generator.generate(5)
