from __future__ import annotations
from datetime import timedelta
import pytest
from sqlalchemy import select, func

from arena.errors import (
    NotEligible, NotRegistered, AlreadyRegistered, AlreadySolved, ContestNotLive,
    ContestNotActive, RegistrationClosed, ContestFull, RateLimited, NotFound,
)
from arena.models.contest import Contest, ContestParticipant, ContestAttempt
from arena.models.submission import Submission
from arena.services.contest_scoring import CooldownPolicy
from arena.services.contests import register_for_contest, submit_contest_answer, contest_scoreboard

COOLDOWN = CooldownPolicy(seconds=30, penalty_seconds=300)


async def _participant(session_factory, contest_id, user_id) -> ContestParticipant:
    async with session_factory() as s:
        return await s.scalar(select(ContestParticipant).where(
            ContestParticipant.contest_id == contest_id, ContestParticipant.user_id == user_id))


@pytest.mark.asyncio
async def test_register_creates_participant_and_attempts(session, session_factory, make_user, make_challenge, make_contest, now):
    user = await make_user(plan="pro")
    chs = [await make_challenge(), await make_challenge(difficulty="hard")]
    contest = await make_contest(chs)

    reg = await register_for_contest(session, user_id=user.id, contest_id=contest.id, now=now)
    assert reg.registered and reg.starts_at == contest.starts_at

    async with session_factory() as s:
        c = await s.get(Contest, contest.id)
        attempts = (await s.execute(select(ContestAttempt).where(ContestAttempt.participant_id == reg.participant_id))).scalars().all()
    assert c.participant_count == 1
    assert {a.challenge_id for a in attempts} == {ch.id for ch in chs}
    assert all(not a.solved and a.wrong_attempts == 0 for a in attempts)


@pytest.mark.asyncio
async def test_register_twice_rejected(session, make_user, make_challenge, make_contest, now):
    user = await make_user(plan="pro")
    contest = await make_contest([await make_challenge()])
    await register_for_contest(session, user_id=user.id, contest_id=contest.id, now=now)
    with pytest.raises(AlreadyRegistered):
        await register_for_contest(session, user_id=user.id, contest_id=contest.id, now=now)


@pytest.mark.asyncio
@pytest.mark.parametrize("user_kw", [{"plan": "free"}, {"plan": "pro", "is_banned": True}])
async def test_register_requires_eligible_user(session, make_user, make_challenge, make_contest, now, user_kw):
    user = await make_user(**user_kw)
    contest = await make_contest([await make_challenge()])
    with pytest.raises(NotEligible):
        await register_for_contest(session, user_id=user.id, contest_id=contest.id, now=now)


@pytest.mark.asyncio
async def test_admin_counts_as_pro(session, make_user, make_challenge, make_contest, now):
    admin = await make_user(plan="free", role="admin")
    contest = await make_contest([await make_challenge()])
    assert (await register_for_contest(session, user_id=admin.id, contest_id=contest.id, now=now)).registered


@pytest.mark.asyncio
async def test_register_closed_after_deadline_or_start(session, make_user, make_challenge, make_contest, now):
    user = await make_user(plan="pro")
    ch = await make_challenge()
    with_deadline = await make_contest([ch], registration_deadline=now - timedelta(minutes=1))
    started = await make_contest([ch], starts_at=now - timedelta(minutes=5))
    inactive = await make_contest([ch], is_active=False)
    with pytest.raises(RegistrationClosed):
        await register_for_contest(session, user_id=user.id, contest_id=with_deadline.id, now=now)
    with pytest.raises(RegistrationClosed):
        await register_for_contest(session, user_id=user.id, contest_id=started.id, now=now)
    with pytest.raises(ContestNotActive):
        await register_for_contest(session, user_id=user.id, contest_id=inactive.id, now=now)


@pytest.mark.asyncio
async def test_capacity_is_never_exceeded(session, session_factory, make_user, make_challenge, make_contest, now):
    contest = await make_contest([await make_challenge()], max_participants=2)
    users = [await make_user(plan="pro") for _ in range(3)]
    await register_for_contest(session, user_id=users[0].id, contest_id=contest.id, now=now)
    await register_for_contest(session, user_id=users[1].id, contest_id=contest.id, now=now)
    with pytest.raises(ContestFull):
        await register_for_contest(session, user_id=users[2].id, contest_id=contest.id, now=now)
    async with session_factory() as s:
        assert (await s.get(Contest, contest.id)).participant_count == 2
        assert await s.scalar(select(func.count()).select_from(ContestParticipant)) == 2


async def _live_contest(session, make_user, make_challenge, make_contest, now, n_challenges=2, **kw):
    user = await make_user(plan="pro")
    chs = [await make_challenge(answer=f"flag{{{i}}}", base_points=100) for i in range(n_challenges)]
    contest = await make_contest(chs, starts_at=now + timedelta(minutes=10), duration=timedelta(hours=2), **kw)
    await register_for_contest(session, user_id=user.id, contest_id=contest.id, now=now)
    return user, chs, contest


@pytest.mark.asyncio
async def test_contest_submit_only_while_live(session, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    with pytest.raises(ContestNotLive):
        await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                    raw_answer="flag{0}", now=now)
    with pytest.raises(ContestNotLive):
        await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                    raw_answer="flag{0}", now=contest.ends_at)


@pytest.mark.asyncio
async def test_contest_submit_requires_registration_and_membership(session, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    stranger = await make_user(plan="pro")
    other = await make_challenge()
    live = contest.starts_at + timedelta(minutes=1)
    with pytest.raises(NotRegistered):
        await submit_contest_answer(session, user_id=stranger.id, contest_id=contest.id, challenge_id=chs[0].id,
                                    raw_answer="flag{0}", now=live)
    with pytest.raises(NotFound):
        await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=other.id,
                                    raw_answer="flag{hello}", now=live)


@pytest.mark.asyncio
async def test_correct_answer_scores_with_time_decay(session, session_factory, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    out = await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                      raw_answer="FLAG{0}", now=contest.starts_at + timedelta(hours=1))
    assert out.correct and out.points_earned == 75
    assert out.solve_count == 1 and not out.finished

    with pytest.raises(AlreadySolved):
        await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                    raw_answer="flag{0}", now=contest.starts_at + timedelta(hours=1, minutes=1))

    p = await _participant(session_factory, contest.id, user.id)
    assert (p.score, p.solve_count, p.finish_time) == (75, 1, None)


@pytest.mark.asyncio
async def test_finish_time_set_once_when_all_solved(session, session_factory, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    t1 = contest.starts_at + timedelta(minutes=10)
    t2 = contest.starts_at + timedelta(minutes=20)
    await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                raw_answer="flag{0}", now=t1)
    out = await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[1].id,
                                      raw_answer="flag{1}", hint_used=True, now=t2)
    assert out.finished and out.solve_count == 2
    p = await _participant(session_factory, contest.id, user.id)
    assert p.finish_time == t2


@pytest.mark.asyncio
async def test_wrong_answer_penalty_and_cooldown(session, session_factory, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    t = contest.starts_at + timedelta(minutes=5)
    kw = dict(user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id, cooldown=COOLDOWN)

    out = await submit_contest_answer(session, raw_answer="wrong", now=t, **kw)
    assert not out.correct and out.penalty_added == 300 and out.retry_after_seconds == 30

    with pytest.raises(RateLimited) as exc:
        await submit_contest_answer(session, raw_answer="flag{0}", now=t + timedelta(seconds=10), **kw)
    assert exc.value.retry_after_seconds == 20

    await submit_contest_answer(session, raw_answer="still wrong", now=t + timedelta(seconds=30), **kw)
    ok = await submit_contest_answer(session, raw_answer="flag{0}", now=t + timedelta(seconds=61), **kw)
    assert ok.correct

    p = await _participant(session_factory, contest.id, user.id)
    assert p.penalty_seconds == 600
    async with session_factory() as s:
        attempt = await s.scalar(select(ContestAttempt).where(ContestAttempt.participant_id == p.id,
                                                              ContestAttempt.challenge_id == chs[0].id))
        logged = await s.scalar(select(func.count()).select_from(Submission).where(Submission.contest_id == contest.id))
    assert attempt.wrong_attempts == 2 and attempt.solved
    assert logged == 3


@pytest.mark.asyncio
async def test_live_scoreboard_orders_by_score_then_finish(session, make_user, make_challenge, make_contest, now):
    user, chs, contest = await _live_contest(session, make_user, make_challenge, make_contest, now)
    rival = await make_user(plan="pro", username="rival")
    idle = await make_user(plan="pro", username="idle")
    await register_for_contest(session, user_id=rival.id, contest_id=contest.id, now=now)
    await register_for_contest(session, user_id=idle.id, contest_id=contest.id, now=now)

    early = contest.starts_at + timedelta(minutes=1)
    await submit_contest_answer(session, user_id=user.id, contest_id=contest.id, challenge_id=chs[0].id,
                                raw_answer="flag{0}", now=early)
    await submit_contest_answer(session, user_id=rival.id, contest_id=contest.id, challenge_id=chs[0].id,
                                raw_answer="flag{0}", now=early)
    await submit_contest_answer(session, user_id=rival.id, contest_id=contest.id, challenge_id=chs[1].id,
                                raw_answer="flag{1}", now=early + timedelta(minutes=1))

    rows = await contest_scoreboard(session, contest.id)
    assert [r["user_id"] for r in rows] == [rival.id, user.id, idle.id]
    assert [r["rank"] for r in rows] == [1, 2, 3]
    assert rows[2]["solve_count"] == 0
