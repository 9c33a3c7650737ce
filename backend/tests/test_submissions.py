from __future__ import annotations
from datetime import timedelta
import pytest
from sqlalchemy import select, func

from arena.errors import IntegrityViolation, RateLimited, InvalidInput, NotFound
from arena.models.user import User, DailyActivity
from arena.models.challenge import Challenge, ChallengeSession
from arena.models.submission import Submission, ChallengeSolve, Flag
from arena.services.integrity import RateLimitPolicy
from arena.services.submissions import open_challenge, elapsed_from_session, submit_answer
from arena.services.utc_days import utc_day


async def _reload(session_factory, model, id_):
    async with session_factory() as s:
        return await s.get(model, id_)


@pytest.mark.asyncio
async def test_first_correct_solve_awards_rating_and_streak(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge(difficulty="medium", expected_time_sec=300)

    out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer=" FLAG{hello} ",
                              hint_used=False, elapsed_sec=150, now=now)
    assert out.correct and not out.already_solved
    assert out.rating_delta == 50  # 25 * 2.0
    assert out.streak.current_streak == 1 and out.streak.action == "reset"

    u = await _reload(session_factory, User, user.id)
    assert (u.rating, u.weekly_rating, u.monthly_rating) == (50, 50, 50)
    assert (u.solved_medium, u.total_solved, u.correct_submissions) == (1, 1, 1)
    assert u.last_active_day == utc_day(now)

    c = await _reload(session_factory, Challenge, ch.id)
    assert (c.solve_count, c.attempt_count, c.avg_solve_time) == (1, 1, 150)


@pytest.mark.asyncio
async def test_resolve_gives_nothing(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge()
    first = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                                hint_used=False, elapsed_sec=300, now=now)
    again = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                                hint_used=False, elapsed_sec=20, now=now + timedelta(days=1))
    assert again.correct and again.already_solved
    assert again.rating_delta == 0 and again.streak is None

    u = await _reload(session_factory, User, user.id)
    assert u.rating == first.rating_delta
    assert u.total_solved == 1 and u.current_streak == 1
    async with session_factory() as s:
        solves = await s.scalar(select(func.count()).select_from(ChallengeSolve))
        resolves = await s.scalar(select(func.count()).select_from(Submission).where(Submission.is_practice_resolve.is_(True)))
    assert (solves, resolves) == (1, 1)


@pytest.mark.asyncio
async def test_wrong_answers_deduct_with_cap_and_floor(session, session_factory, make_user, make_challenge, now):
    user = await make_user(rating=7)
    ch = await make_challenge()
    policy = RateLimitPolicy(max_attempts=50, window_seconds=1800)
    deltas = []
    for i in range(7):
        out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="nope",
                                  hint_used=False, elapsed_sec=60 + i, now=now + timedelta(seconds=i), policy=policy)
        assert not out.correct
        deltas.append(out.rating_delta)
    # 7 -> 5 -> 3 -> 1 -> 0 (floored), then the cap stops deductions
    assert deltas == [-2, -2, -2, -1, 0, 0, 0]
    u = await _reload(session_factory, User, user.id)
    assert u.rating == 0 and u.wrong_submissions == 7


@pytest.mark.asyncio
async def test_wrong_attempts_reduce_gain(session, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge(difficulty="hard", expected_time_sec=600)
    for i in range(2):
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="nope",
                            hint_used=False, elapsed_sec=100 + i, now=now + timedelta(seconds=i))
    out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                              hint_used=True, elapsed_sec=600, now=now + timedelta(seconds=500))
    # 50 * 1.0 * 0.8 (hint) * 0.8 (two wrong)
    assert out.rating_delta == 32
    assert out.breakdown.attempt_penalty == 0.8


@pytest.mark.asyncio
async def test_sixth_attempt_in_window_is_rate_limited(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge()
    for i in range(5):
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="nope",
                            hint_used=False, elapsed_sec=60, now=now + timedelta(minutes=i))
    with pytest.raises(RateLimited) as exc:
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                            hint_used=False, elapsed_sec=60, now=now + timedelta(minutes=5))
    assert exc.value.retry_after_seconds == 25 * 60

    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(Submission)) == 5
    # the window slides
    out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                              hint_used=False, elapsed_sec=60, now=now + timedelta(minutes=31))
    assert out.correct


@pytest.mark.asyncio
@pytest.mark.parametrize("elapsed", [-5, float("nan"), float("inf"), float("-inf"), "90"])
async def test_implausible_time_is_flagged_and_rejected(session, session_factory, make_user, make_challenge, now, elapsed):
    user = await make_user()
    ch = await make_challenge()
    with pytest.raises(IntegrityViolation):
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                            hint_used=False, elapsed_sec=elapsed, now=now)
    u = await _reload(session_factory, User, user.id)
    assert u.is_flagged and u.rating == 0
    async with session_factory() as s:
        flag = await s.scalar(select(Flag))
        assert flag.kind == "implausible_time"
        assert await s.scalar(select(func.count()).select_from(Submission)) == 0


@pytest.mark.asyncio
async def test_speed_anomaly_flags_but_still_scores(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge(difficulty="easy", expected_time_sec=60)
    out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                              hint_used=False, elapsed_sec=0, now=now)
    assert out.correct and out.flagged
    assert out.rating_delta == 20  # time bonus capped at 2.0
    async with session_factory() as s:
        flag = await s.scalar(select(Flag))
        assert flag.kind == "speed_anomaly" and flag.submission_id == out.submission_id
        sub = await s.get(Submission, out.submission_id)
        assert sub.is_suspicious


@pytest.mark.asyncio
async def test_invalid_answer_rejected_before_any_write(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge()
    with pytest.raises(InvalidInput):
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="   ",
                            hint_used=False, elapsed_sec=60, now=now)
    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(Submission)) == 0


@pytest.mark.asyncio
async def test_streak_continues_across_days(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    chs = [await make_challenge() for _ in range(3)]
    for day, ch in enumerate(chs):
        out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                                  hint_used=False, elapsed_sec=300, now=now + timedelta(days=day))
    assert out.streak.current_streak == 3
    u = await _reload(session_factory, User, user.id)
    assert (u.current_streak, u.max_streak) == (3, 3)


@pytest.mark.asyncio
async def test_daily_activity_counts_submissions_and_solves(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge()
    await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="nope",
                        hint_used=False, elapsed_sec=60, now=now)
    await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                        hint_used=False, elapsed_sec=90, now=now + timedelta(seconds=30))
    async with session_factory() as s:
        row = await s.scalar(select(DailyActivity).where(DailyActivity.user_id == user.id))
    assert (row.day, row.submissions, row.solves) == (utc_day(now), 2, 1)


@pytest.mark.asyncio
async def test_session_measures_elapsed_time(session, session_factory, make_user, make_challenge, now):
    user = await make_user()
    ch = await make_challenge()
    cs, _, already = await open_challenge(session, user.id, ch.id, now=now)
    assert not already
    assert cs.expires_at == now + timedelta(hours=24)
    assert await elapsed_from_session(session, user.id, ch.id, now + timedelta(seconds=95)) == 95

    with pytest.raises(NotFound):
        await elapsed_from_session(session, user.id, ch.id, now + timedelta(hours=25))

    await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                        hint_used=False, elapsed_sec=95, now=now + timedelta(seconds=95))
    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(ChallengeSession)) == 0
    _, _, already = await open_challenge(session, user.id, ch.id, now=now + timedelta(hours=1))
    assert already


@pytest.mark.asyncio
async def test_session_wrong_attempts_outlive_the_rate_window(session, make_user, make_challenge, now):
    user = await make_user(rating=50)
    ch = await make_challenge(difficulty="hard", expected_time_sec=2400)
    policy = RateLimitPolicy(max_attempts=5, window_seconds=60)
    for i in range(3):
        await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="nope",
                            hint_used=False, elapsed_sec=60 * i, now=now + timedelta(minutes=i), policy=policy)
    out = await submit_answer(session, user_id=user.id, challenge_id=ch.id, raw_answer="flag{hello}",
                              hint_used=False, elapsed_sec=2400, now=now + timedelta(minutes=40), policy=policy)
    # all three misses belong to the session opened at `now`, long before the 60s window
    assert out.breakdown.attempt_penalty == 0.7
    assert out.rating_delta == 35
