from __future__ import annotations
from datetime import datetime, timedelta, timezone
import pytest
from arena.services.integrity import RateLimitPolicy, check, check_rate_limit, check_speed_anomaly, validate_elapsed

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
POLICY = RateLimitPolicy(max_attempts=5, window_seconds=1800)


@pytest.mark.parametrize("elapsed", [-1, 86401, float("nan"), "12", True, None])
def test_implausible_elapsed_blocks_and_flags(elapsed):
    v = check(elapsed, "easy", [], NOW, POLICY, max_session_seconds=86400)
    assert v.block and v.flag and v.implausible
    assert v.block_reason == v.flag_reason


def test_session_ceiling_is_inclusive():
    assert validate_elapsed(86400, 86400) is None
    assert validate_elapsed(0, 86400) is None


def test_fifth_attempt_allowed_sixth_blocked():
    four = [NOW - timedelta(minutes=m) for m in (1, 2, 3, 4)]
    assert not check_rate_limit(four, NOW, POLICY).limited
    five = four + [NOW - timedelta(minutes=10)]
    r = check_rate_limit(five, NOW, POLICY)
    assert r.limited and r.attempts_in_window == 5


def test_retry_after_counts_from_oldest_attempt_in_window():
    ts = [NOW - timedelta(minutes=m) for m in (1, 2, 3, 4, 20)]
    r = check_rate_limit(ts, NOW, POLICY)
    # oldest leaves the window 10 minutes from now
    assert r.retry_after_seconds == 600


def test_attempts_outside_window_ignored():
    ts = [NOW - timedelta(minutes=m) for m in (1, 2, 31, 40, 50, 60)]
    assert check_rate_limit(ts, NOW, POLICY).attempts_in_window == 2


def test_rate_limit_blocks_without_flag():
    ts = [NOW - timedelta(seconds=s) for s in range(5)]
    v = check(120, "easy", ts, NOW, POLICY)
    assert v.block and not v.flag and not v.implausible
    assert v.retry_after_seconds >= 1


@pytest.mark.parametrize("difficulty,elapsed,flagged", [
    ("easy", 4, True), ("easy", 5, False),
    ("medium", 9, True), ("medium", 10, False),
    ("hard", 14, True), ("hard", 15, False),
    ("hard", 0, True),
])
def test_speed_anomaly_flags_never_blocks(difficulty, elapsed, flagged):
    v = check(elapsed, difficulty, [], NOW, POLICY)
    assert not v.block
    assert v.flag is flagged
    assert (check_speed_anomaly(elapsed, difficulty) is not None) is flagged


def test_policy_rejects_non_positive_values():
    with pytest.raises(ValueError):
        RateLimitPolicy(0, 60)
    with pytest.raises(ValueError):
        RateLimitPolicy(5, 0)
