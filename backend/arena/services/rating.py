from __future__ import annotations
import math
from dataclasses import dataclass, asdict

from arena.errors import InvalidInput

# Scoring v1. Base rating per tier, monotonically increasing with difficulty.
DIFFICULTY_BASE_POINTS: dict[str, int] = {
    "easy": 10,
    "medium": 25,
    "hard": 50,
}

TIME_BONUS_MIN = 0.5
TIME_BONUS_MAX = 2.0
HINT_PENALTY = 0.8
ATTEMPT_PENALTY_RATE = 0.1
ATTEMPT_PENALTY_FLOOR = 0.5

WRONG_ATTEMPT_DEDUCTION = 2
MAX_WRONG_ATTEMPT_DEDUCTION = 10


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass(frozen=True)
class RatingBreakdown:
    base: int
    time_bonus: float
    hint_penalty: float
    attempt_penalty: float
    final_gain: int

    def as_dict(self) -> dict:
        return asdict(self)


def _positive(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or value <= 0:
        raise InvalidInput(f"{name} must be a positive number.")
    return float(value)


def rating_gain(difficulty: str, expected_time_sec: float, actual_time_sec: float,
                hint_used: bool, wrong_attempts: int) -> RatingBreakdown:
    """Rating gained by a first correct solve."""
    if difficulty not in DIFFICULTY_BASE_POINTS:
        raise InvalidInput(f'Invalid difficulty: "{difficulty}". Must be easy, medium, or hard.')
    expected = _positive("expected_time_sec", expected_time_sec)
    actual = _positive("actual_time_sec", actual_time_sec)
    if isinstance(wrong_attempts, bool) or not isinstance(wrong_attempts, int) or wrong_attempts < 0:
        raise InvalidInput("wrong_attempts must be a non-negative integer.")

    base = DIFFICULTY_BASE_POINTS[difficulty]
    time_bonus = clamp(expected / actual, TIME_BONUS_MIN, TIME_BONUS_MAX)
    hint_penalty = HINT_PENALTY if hint_used else 1.0
    attempt_penalty = clamp(1 - wrong_attempts * ATTEMPT_PENALTY_RATE, ATTEMPT_PENALTY_FLOOR, 1.0)

    unhinted = round_half_up(base * time_bonus * attempt_penalty)
    gain = round_half_up(base * time_bonus * hint_penalty * attempt_penalty)
    if hint_used and unhinted > 0:
        # rounding must not erase the hint penalty on small gains
        gain = min(gain, unhinted - 1)

    return RatingBreakdown(
        base=base,
        time_bonus=round(time_bonus, 4),
        hint_penalty=hint_penalty,
        attempt_penalty=round(attempt_penalty, 4),
        final_gain=gain,
    )


def wrong_attempt_deduction(wrong_attempts_so_far: int) -> int:
    """
    Negative rating change for one more wrong attempt in the same challenge session,
    or 0 once MAX_WRONG_ATTEMPT_DEDUCTION has been taken.
    """
    if wrong_attempts_so_far < 0:
        raise InvalidInput("wrong_attempts_so_far must be non-negative.")
    if wrong_attempts_so_far * WRONG_ATTEMPT_DEDUCTION >= MAX_WRONG_ATTEMPT_DEDUCTION:
        return 0
    return -WRONG_ATTEMPT_DEDUCTION
