"""Tier table and deck generation.

Rule of thumb (same as the rest of the domain package):
- OK: lookup tables, validation, pure transformations, seeded randomness.
- Not OK: touching the persistence store, the ledger, datetime.now(), etc.
"""

from dataclasses import dataclass
from typing import List

import numpy as np

from memorabilia.exceptions import InvalidTier
from memorabilia.models.dc_models import Difficulty, Tile

SYMBOL_ALPHABET_SIZE = 24


@dataclass(frozen=True)
class TierConfig:
    pair_count: int
    multiplier: int
    label: str

    @property
    def tile_count(self) -> int:
        return self.pair_count * 2


TIER_TABLE = {
    Difficulty.EASY: TierConfig(pair_count=4, multiplier=10, label="Ancient Era"),
    Difficulty.MEDIUM: TierConfig(pair_count=8, multiplier=15, label="Medieval Times"),
    Difficulty.HARD: TierConfig(pair_count=12, multiplier=20, label="Modern Era"),
}


def resolve_tier(difficulty) -> Difficulty:
    """Normalize an int or Difficulty into a supported Difficulty.

    Raises:
        InvalidTier: The value is not a supported tier.
    """
    if isinstance(difficulty, bool):
        raise InvalidTier(f"Unsupported difficulty tier: {difficulty!r}")
    try:
        tier = Difficulty(difficulty)
    except (ValueError, TypeError) as e:
        raise InvalidTier(f"Unsupported difficulty tier: {difficulty!r}") from e
    if tier not in TIER_TABLE:
        raise InvalidTier(f"Unsupported difficulty tier: {difficulty!r}")
    return tier


def tier_config(difficulty) -> TierConfig:
    return TIER_TABLE[resolve_tier(difficulty)]


def pair_count(difficulty) -> int:
    """Return the number of pairs on the board for the given tier."""
    return tier_config(difficulty).pair_count


class DeckGenerator:
    def __init__(self, rng: np.random.Generator | None = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def generate(self, difficulty) -> List[Tile]:
        """Build a shuffled board for the tier.

        Symbols are drawn without replacement from the alphabet, each one is
        duplicated once and the full multiset is uniformly permuted.

        Args:
            difficulty (Difficulty | int): Difficulty tier

        Returns:
            List[Tile]: Tiles indexed by board position
        """
        pairs = pair_count(difficulty)
        symbols = self.rng.choice(SYMBOL_ALPHABET_SIZE, size=pairs, replace=False)
        values = self.rng.permutation(np.repeat(symbols, 2))
        return [Tile(index=i, value=int(v)) for i, v in enumerate(values)]

    def session_ref(self) -> int:
        """Draw an identifier for a locally simulated session."""
        return int(self.rng.integers(1, 1_000_000))
