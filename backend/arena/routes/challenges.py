from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from arena.db import get_session
from arena.auth_deps import get_current_user
from arena.errors import NotFound
from arena.models.challenge import Challenge
from arena.models.user import User
from arena.schemas.challenge import ChallengePublic, ChallengeHint, OpenChallengeOut, SubmitAnswerIn
from arena.schemas.submission import SubmitAnswerOut, RatingBreakdownOut, StreakOut
from arena.services import submissions
from arena.services.access import check_challenge_access, check_daily_quota
from arena.services.utc_days import utc_now

router = APIRouter(prefix="/challenges", tags=["challenges"])


def to_public(ch: Challenge) -> ChallengePublic:
    return ChallengePublic(
        id=ch.id, title=ch.title, difficulty=ch.difficulty, expected_time_sec=ch.expected_time_sec,
        base_points=ch.base_points, has_hint=bool(ch.hint), solve_count=ch.solve_count,
        attempt_count=ch.attempt_count, avg_solve_time=ch.avg_solve_time,
    )


async def _visible_challenge(session: AsyncSession, challenge_id: uuid.UUID, user: User) -> Challenge:
    ch = await session.get(Challenge, challenge_id)
    if not ch or not ch.is_active:
        raise NotFound("Challenge not found.")
    check_challenge_access(user, ch)
    return ch


@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(
    challenge_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return to_public(await _visible_challenge(session, challenge_id, user))


@router.get("/{challenge_id}/hint", response_model=ChallengeHint)
async def get_hint(
    challenge_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    # reading the hint is free; the penalty applies when the answer is submitted with hint_used
    ch = await _visible_challenge(session, challenge_id, user)
    return ChallengeHint(challenge_id=ch.id, hint=ch.hint)


@router.post("/{challenge_id}/open", response_model=OpenChallengeOut)
async def open_challenge(
    challenge_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    await _visible_challenge(session, challenge_id, user)
    cs, ch, already_solved = await submissions.open_challenge(session, user.id, challenge_id)
    return OpenChallengeOut(
        session_id=str(cs.id), challenge_id=ch.id, opened_at=cs.opened_at, expires_at=cs.expires_at,
        already_solved=already_solved, challenge=to_public(ch),
    )


@router.post("/{challenge_id}/submit", response_model=SubmitAnswerOut)
async def submit(
    challenge_id: uuid.UUID,
    payload: SubmitAnswerIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    now = utc_now()
    await _visible_challenge(session, challenge_id, user)
    await check_daily_quota(session, user, now)
    # elapsed time is measured server side; clients never send it
    elapsed = await submissions.elapsed_from_session(session, user.id, challenge_id, now)
    out = await submissions.submit_answer(
        session, user_id=user.id, challenge_id=challenge_id, raw_answer=payload.answer,
        hint_used=payload.hint_used, elapsed_sec=elapsed, now=now,
    )
    return SubmitAnswerOut(
        correct=out.correct,
        already_solved=out.already_solved,
        rating_delta=out.rating_delta,
        new_rating=out.new_rating,
        breakdown=RatingBreakdownOut(**out.breakdown.as_dict()) if out.breakdown else None,
        streak=StreakOut(
            current_streak=out.streak.current_streak, max_streak=out.streak.max_streak,
            last_active_day=out.streak.last_active_day, action=out.streak.action,
        ) if out.streak else None,
        attempts_remaining=out.attempts_remaining,
        elapsed_sec=out.elapsed_sec,
        submission_id=out.submission_id,
    )
