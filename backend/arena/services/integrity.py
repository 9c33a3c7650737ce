from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from arena.config import settings

# Correct solves faster than this get a moderator flag (evidence, not proof)
SPEED_THRESHOLDS: dict[str, int] = {
    "easy": 5,
    "medium": 10,
    "hard": 15,
}


@dataclass(frozen=True)
class RateLimitPolicy:
    max_attempts: int
    window_seconds: int

    def __post_init__(self):
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    @classmethod
    def from_settings(cls) -> "RateLimitPolicy":
        return cls(settings.rate_limit_max_attempts, settings.rate_limit_window_seconds)


@dataclass(frozen=True)
class RateLimitResult:
    limited: bool
    attempts_in_window: int
    retry_after_seconds: int = 0


@dataclass(frozen=True)
class IntegrityVerdict:
    block: bool
    flag: bool
    block_reason: str | None = None
    flag_reason: str | None = None
    attempts_in_window: int = 0
    retry_after_seconds: int = 0
    # True when the block came from clock tampering rather than the rate limiter
    implausible: bool = False


def validate_elapsed(time_taken_sec, max_session_seconds: int | None = None) -> str | None:
    """Returns a reason when the elapsed time is implausible, else None."""
    ceiling = settings.max_session_seconds if max_session_seconds is None else max_session_seconds
    if isinstance(time_taken_sec, bool) or not isinstance(time_taken_sec, (int, float)) or math.isnan(time_taken_sec):
        return "time_taken is not a number."
    if time_taken_sec < 0:
        return "Negative time_taken; clock manipulation suspected."
    if time_taken_sec > ceiling:
        return f"time_taken exceeds the {ceiling}s session ceiling."
    return None


def check_rate_limit(recent_attempt_timestamps: Iterable[datetime], now: datetime,
                     policy: RateLimitPolicy | None = None) -> RateLimitResult:
    policy = policy or RateLimitPolicy.from_settings()
    window = timedelta(seconds=policy.window_seconds)
    window_start = now - window
    in_window = [ts for ts in recent_attempt_timestamps if window_start <= ts <= now]

    if len(in_window) < policy.max_attempts:
        return RateLimitResult(False, len(in_window))

    # the slot frees up when the oldest attempt still counted leaves the window
    oldest = min(in_window)
    retry_after = math.ceil((oldest + window - now).total_seconds())
    return RateLimitResult(True, len(in_window), max(1, retry_after))


def check_speed_anomaly(time_taken_sec: float, difficulty: str) -> str | None:
    threshold = SPEED_THRESHOLDS.get(difficulty)
    if threshold is None or time_taken_sec >= threshold:
        return None
    return f"Solved {difficulty} challenge in {time_taken_sec}s (threshold: {threshold}s)"


def check(time_taken_sec, difficulty: str, recent_attempt_timestamps: Iterable[datetime], now: datetime,
          policy: RateLimitPolicy | None = None, max_session_seconds: int | None = None) -> IntegrityVerdict:
    """
    Plausibility first (hard block + flag), then the sliding window (block only),
    then the speed anomaly (flag only, never blocks).
    """
    reason = validate_elapsed(time_taken_sec, max_session_seconds)
    if reason:
        return IntegrityVerdict(block=True, flag=True, block_reason=reason, flag_reason=reason, implausible=True)

    rl = check_rate_limit(recent_attempt_timestamps, now, policy)
    if rl.limited:
        return IntegrityVerdict(
            block=True,
            flag=False,
            block_reason=f"Rate limit exceeded. Retry after {rl.retry_after_seconds}s.",
            attempts_in_window=rl.attempts_in_window,
            retry_after_seconds=rl.retry_after_seconds,
        )

    speed = check_speed_anomaly(time_taken_sec, difficulty)
    return IntegrityVerdict(
        block=False,
        flag=speed is not None,
        flag_reason=speed,
        attempts_in_window=rl.attempts_in_window,
    )
