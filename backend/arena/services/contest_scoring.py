from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import datetime

from arena.config import settings
from arena.services.rating import round_half_up, clamp

TIME_FACTOR_FLOOR = 0.5
# Heavier than practice mode (0.8): contests are competitive
CONTEST_HINT_MULTIPLIER = 0.6


def time_factor(starts_at: datetime, ends_at: datetime, solved_at: datetime) -> float:
    """1.0 at contest start, decaying linearly to the floor at contest end."""
    duration = (ends_at - starts_at).total_seconds()
    if duration <= 0:
        return TIME_FACTOR_FLOOR
    progress = clamp((solved_at - starts_at).total_seconds() / duration, 0.0, 1.0)
    return clamp(1.0 - (1.0 - TIME_FACTOR_FLOOR) * progress, TIME_FACTOR_FLOOR, 1.0)


def contest_points(base_points: int, starts_at: datetime, ends_at: datetime,
                   solved_at: datetime, hint_used: bool) -> int:
    hint_mult = CONTEST_HINT_MULTIPLIER if hint_used else 1.0
    return round_half_up(base_points * time_factor(starts_at, ends_at, solved_at) * hint_mult)


@dataclass(frozen=True)
class CooldownPolicy:
    """Fixed wait after any wrong contest answer. Distinct from the practice sliding window."""
    seconds: int
    penalty_seconds: int

    @classmethod
    def from_settings(cls) -> "CooldownPolicy":
        return cls(settings.contest_cooldown_seconds, settings.contest_penalty_seconds)

    def retry_after(self, last_wrong_at: datetime | None, now: datetime) -> int:
        """Seconds still to wait, 0 when a new attempt is allowed."""
        if last_wrong_at is None:
            return 0
        remaining = self.seconds - (now - last_wrong_at).total_seconds()
        return max(0, math.ceil(remaining))
