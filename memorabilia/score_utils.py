import math

from memorabilia.domain.game_rules import tier_config
from memorabilia.exceptions import InvalidInput

BASE_SCORE = 1000
TIME_BONUS_CAP = 500
TIME_DECAY_RATE = 2  # points per second
PENALTY_PER_EXTRA_MOVE = 50

# (minimum score, grade), checked top-down
GRADE_BANDS = [
    (12000, "S"),
    (11000, "A"),
    (10000, "B"),
    (9000, "C"),
    (8000, "D"),
]


def _check_non_negative(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidInput(f"{name} must be finite and >= 0, got {value!r}")


class ScoreUtils:
    def score(self, difficulty, move_count: int, elapsed_seconds: float) -> int:
        """Calculate the score of a session

        Args:
            difficulty (Difficulty | int): Difficulty tier, fixes the multiplier and optimal moves
            move_count (int): Number of evaluated pairs so far
            elapsed_seconds (float): Seconds since the session started

        Returns:
            int: Score, never negative
        """
        config = tier_config(difficulty)
        _check_non_negative("move_count", move_count)
        _check_non_negative("elapsed_seconds", elapsed_seconds)

        time_bonus = max(0, TIME_BONUS_CAP - elapsed_seconds * TIME_DECAY_RATE)
        extra_moves = max(0, move_count - config.pair_count)
        move_penalty = extra_moves * PENALTY_PER_EXTRA_MOVE
        return max(0, math.floor((BASE_SCORE + time_bonus - move_penalty) * config.multiplier))

    def stars(self, move_count: int, optimal_moves: int) -> int:
        """Star rating from the ratio of moves to the optimal move count

        Args:
            move_count (int): Moves used
            optimal_moves (int): Optimal moves for the tier (pair count)

        Returns:
            int: 3 up to 110% of optimal, 2 up to 150%, otherwise 1
        """
        _check_non_negative("move_count", move_count)
        _check_non_negative("optimal_moves", optimal_moves)
        if optimal_moves == 0:
            raise InvalidInput("optimal_moves must be > 0")

        move_ratio = move_count * 100 / optimal_moves
        if move_ratio <= 110:
            return 3
        if move_ratio <= 150:
            return 2
        return 1

    def grade(self, score: int) -> str:
        """Letter grade for a score"""
        _check_non_negative("score", score)
        for threshold, letter in GRADE_BANDS:
            if score >= threshold:
                return letter
        return "F"
