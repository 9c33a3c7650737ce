from __future__ import annotations
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.errors import NotFound, RateLimited, IntegrityViolation
from arena.models.user import User, DailyActivity
from arena.models.challenge import Challenge, ChallengeSession
from arena.models.submission import Submission, ChallengeSolve, Flag
from arena.services import answer_codec, integrity
from arena.services.integrity import RateLimitPolicy
from arena.services.rating import RatingBreakdown, rating_gain, wrong_attempt_deduction
from arena.services.streaks import StreakUpdate, advance_streak
from arena.services.utc_days import utc_now, utc_day

log = structlog.get_logger()

_SOLVED_COLUMN = {"easy": "solved_easy", "medium": "solved_medium", "hard": "solved_hard"}


@dataclass
class SubmissionOutcome:
    correct: bool
    already_solved: bool = False
    rating_delta: int = 0
    new_rating: int | None = None
    breakdown: RatingBreakdown | None = None
    streak: StreakUpdate | None = None
    attempts_remaining: int | None = None
    flagged: bool = False
    elapsed_sec: int = 0
    submission_id: UUID | None = None


# ---------- sessions (server-side elapsed time) ----------

async def open_challenge(session: AsyncSession, user_id: UUID, challenge_id: UUID,
                         now: datetime | None = None) -> tuple[ChallengeSession, Challenge, bool]:
    """Record (or restart) the server-side session for a challenge. Returns (session, challenge, already_solved)."""
    now = now or utc_now()
    ch = await session.get(Challenge, challenge_id)
    if not ch or not ch.is_active:
        raise NotFound("Challenge not found.")

    expires = now + timedelta(seconds=settings.max_session_seconds)
    cs = await session.scalar(
        select(ChallengeSession).where(ChallengeSession.user_id == user_id, ChallengeSession.challenge_id == challenge_id)
    )
    if cs:
        cs.opened_at, cs.expires_at = now, expires
    else:
        cs = ChallengeSession(user_id=user_id, challenge_id=challenge_id, opened_at=now, expires_at=expires)
        session.add(cs)

    already_solved = await _has_solved(session, user_id, challenge_id)
    try:
        await session.commit()
    except IntegrityError:
        # concurrent open of the same challenge; the other request's session wins
        await session.rollback()
        cs = await session.scalar(
            select(ChallengeSession).where(ChallengeSession.user_id == user_id, ChallengeSession.challenge_id == challenge_id)
        )
    log.info("challenge_opened", user_id=str(user_id), challenge_id=str(challenge_id), already_solved=already_solved)
    return cs, ch, already_solved


async def elapsed_from_session(session: AsyncSession, user_id: UUID, challenge_id: UUID,
                               now: datetime | None = None) -> int:
    """Seconds since the challenge was opened. Missing or expired sessions cannot submit."""
    now = now or utc_now()
    cs = await session.scalar(
        select(ChallengeSession).where(ChallengeSession.user_id == user_id, ChallengeSession.challenge_id == challenge_id)
    )
    if not cs or cs.expires_at <= now:
        raise NotFound("No active session found. Please open the challenge first.")
    return int((now - cs.opened_at).total_seconds())


# ---------- helpers ----------

async def _has_solved(session: AsyncSession, user_id: UUID, challenge_id: UUID) -> bool:
    found = await session.scalar(
        select(ChallengeSolve.id).where(ChallengeSolve.user_id == user_id, ChallengeSolve.challenge_id == challenge_id)
    )
    return found is not None


async def _lock_user(session: AsyncSession, user_id: UUID) -> User:
    """Row lock on the user aggregate; serializes writers of the same user only."""
    user = await session.scalar(
        select(User).where(User.id == user_id).with_for_update().execution_options(populate_existing=True)
    )
    if not user:
        raise NotFound("User profile not found.")
    return user


async def _bump_daily(session: AsyncSession, user_id: UUID, now: datetime, solves: int = 0) -> None:
    """Caller holds the user lock."""
    day = utc_day(now)
    row_id = await session.scalar(
        select(DailyActivity.id).where(DailyActivity.user_id == user_id, DailyActivity.day == day)
    )
    if row_id is None:
        session.add(DailyActivity(user_id=user_id, day=day, submissions=1, solves=solves))
        return
    await session.execute(
        update(DailyActivity)
        .where(DailyActivity.id == row_id)
        .values(submissions=DailyActivity.submissions + 1, solves=DailyActivity.solves + solves)
        .execution_options(synchronize_session=False)
    )


async def _recent_attempts(session: AsyncSession, user_id: UUID, challenge_id: UUID, since: datetime) -> list[tuple[datetime, bool]]:
    rows = await session.execute(
        select(Submission.created_at, Submission.is_correct)
        .where(
            Submission.user_id == user_id,
            Submission.challenge_id == challenge_id,
            Submission.contest_id.is_(None),
            Submission.created_at >= since,
        )
        .order_by(Submission.created_at.desc())
    )
    return [(ts, ok) for ts, ok in rows.all()]


async def _wrong_in_session(session: AsyncSession, user_id: UUID, challenge_id: UUID, since: datetime) -> int:
    """Wrong practice attempts in the challenge session opened at `since`."""
    n = await session.scalar(
        select(func.count()).select_from(Submission).where(
            Submission.user_id == user_id,
            Submission.challenge_id == challenge_id,
            Submission.contest_id.is_(None),
            Submission.is_correct.is_(False),
            Submission.created_at >= since,
        )
    )
    return int(n or 0)


def _finite(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


async def _flag(session: AsyncSession, *, user_id: UUID, challenge_id: UUID, kind: str, reason: str,
                elapsed, now: datetime, submission_id: UUID | None = None) -> None:
    session.add(Flag(
        user_id=user_id,
        challenge_id=challenge_id,
        submission_id=submission_id,
        kind=kind,
        reason=reason[:255],
        elapsed_sec=int(elapsed) if _finite(elapsed) else None,
        created_at=now,
    ))
    await session.execute(
        update(User).where(User.id == user_id).values(is_flagged=True, flag_reason=reason[:255])
        .execution_options(synchronize_session=False)
    )


# ---------- gateway ----------

async def submit_answer(
    session: AsyncSession,
    *,
    user_id: UUID,
    challenge_id: UUID,
    raw_answer: str,
    hint_used: bool,
    elapsed_sec,
    now: datetime | None = None,
    policy: RateLimitPolicy | None = None,
) -> SubmissionOutcome:
    """
    Practice submission pipeline:
      integrity guard -> answer verification -> wrong/correct/re-solve branch.
    Every branch writes in one transaction keyed by the user row.
    """
    now = now or utc_now()
    policy = policy or RateLimitPolicy.from_settings()

    ch = await session.get(Challenge, challenge_id)
    if not ch or not ch.is_active:
        raise NotFound("Challenge not found.")
    rules = ch.normalization_rules or {}
    normalized = answer_codec.validate_answer_input(raw_answer, rules)
    if not await session.get(User, user_id):
        raise NotFound("User profile not found.")

    window_start = now - timedelta(seconds=policy.window_seconds)
    recent = await _recent_attempts(session, user_id, challenge_id, window_start)
    verdict = integrity.check(elapsed_sec, ch.difficulty, [ts for ts, _ in recent], now, policy)

    if verdict.implausible:
        await _lock_user(session, user_id)
        await _flag(session, user_id=user_id, challenge_id=challenge_id, kind="implausible_time",
                    reason=verdict.block_reason, elapsed=elapsed_sec, now=now)
        await session.commit()
        log.warning("integrity_blocked", user_id=str(user_id), challenge_id=str(challenge_id), reason=verdict.block_reason)
        raise IntegrityViolation(verdict.block_reason)
    if verdict.block:
        log.info("rate_limited", user_id=str(user_id), challenge_id=str(challenge_id),
                 retry_after_seconds=verdict.retry_after_seconds)
        raise RateLimited(verdict.block_reason, verdict.retry_after_seconds)

    elapsed = int(elapsed_sec)
    digest = answer_codec.hash_answer(normalized)
    correct = answer_codec.verify(raw_answer, ch.answer_hash, rules)

    # counted under the user lock so concurrent wrong answers see each other
    await _lock_user(session, user_id)
    wrong_before = await _wrong_in_session(session, user_id, challenge_id, now - timedelta(seconds=elapsed))

    if not correct:
        return await _apply_wrong(session, ch, user_id, digest, hint_used, elapsed, wrong_before, verdict, policy, now)

    if await _has_solved(session, user_id, challenge_id):
        return await _apply_resolve(session, ch, user_id, digest, hint_used, elapsed, wrong_before, now)

    try:
        return await _apply_first_solve(session, ch, user_id, digest, hint_used, elapsed, wrong_before, verdict, now)
    except IntegrityError:
        # lost the race against a concurrent correct submission: rewards were applied once, by the winner
        await session.rollback()
        log.info("duplicate_solve_race", user_id=str(user_id), challenge_id=str(challenge_id))
        return await _apply_resolve(session, ch, user_id, digest, hint_used, elapsed, wrong_before, now)


async def _apply_wrong(session, ch: Challenge, user_id, digest, hint_used, elapsed, wrong_before, verdict,
                       policy: RateLimitPolicy, now) -> SubmissionOutcome:
    deduction = wrong_attempt_deduction(wrong_before)
    user = await _lock_user(session, user_id)
    applied = max(deduction, -user.rating)  # rating floor at 0

    sub = Submission(
        id=uuid.uuid4(), user_id=user_id, challenge_id=ch.id, answer_digest=digest, is_correct=False,
        rating_delta=applied, elapsed_sec=elapsed, hint_used=bool(hint_used),
        wrong_attempts_before=wrong_before, created_at=now,
    )
    session.add(sub)
    new_rating = User.rating + deduction
    await session.execute(
        update(User).where(User.id == user_id).values(
            rating=case((new_rating < 0, 0), else_=new_rating),
            wrong_submissions=User.wrong_submissions + 1,
        ).execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Challenge).where(Challenge.id == ch.id).values(attempt_count=Challenge.attempt_count + 1)
        .execution_options(synchronize_session=False)
    )
    await _bump_daily(session, user_id, now)
    await session.commit()

    remaining = max(0, policy.max_attempts - (verdict.attempts_in_window + 1))
    log.info("submission_wrong", user_id=str(user_id), challenge_id=str(ch.id), rating_delta=applied,
             wrong_attempts_before=wrong_before, attempts_remaining=remaining)
    return SubmissionOutcome(
        correct=False, rating_delta=applied, new_rating=user.rating + applied,
        attempts_remaining=remaining, elapsed_sec=elapsed, submission_id=sub.id,
    )


async def _apply_resolve(session, ch: Challenge, user_id, digest, hint_used, elapsed, wrong_before, now) -> SubmissionOutcome:
    """Already solved: log a practice attempt, no rating and no streak change."""
    user = await _lock_user(session, user_id)
    sub = Submission(
        id=uuid.uuid4(), user_id=user_id, challenge_id=ch.id, answer_digest=digest, is_correct=True,
        rating_delta=0, elapsed_sec=elapsed, hint_used=bool(hint_used), wrong_attempts_before=wrong_before,
        is_practice_resolve=True, created_at=now,
    )
    session.add(sub)
    await _bump_daily(session, user_id, now)
    await session.commit()
    log.info("submission_practice_resolve", user_id=str(user_id), challenge_id=str(ch.id))
    return SubmissionOutcome(
        correct=True, already_solved=True, rating_delta=0, new_rating=user.rating,
        elapsed_sec=elapsed, submission_id=sub.id,
    )


async def _apply_first_solve(session, ch: Challenge, user_id, digest, hint_used, elapsed, wrong_before, verdict,
                             now) -> SubmissionOutcome:
    user = await _lock_user(session, user_id)
    # zero-second solves are plausible (flagged as anomalies) but the ratio needs a positive divisor
    breakdown = rating_gain(ch.difficulty, ch.expected_time_sec, max(elapsed, 1), bool(hint_used), wrong_before)
    gain = breakdown.final_gain
    streak = advance_streak(user.last_active_day, user.current_streak, user.max_streak, utc_day(now))

    sub = Submission(
        id=uuid.uuid4(), user_id=user_id, challenge_id=ch.id, answer_digest=digest, is_correct=True,
        rating_delta=gain, elapsed_sec=elapsed, hint_used=bool(hint_used), wrong_attempts_before=wrong_before,
        is_suspicious=verdict.flag, created_at=now,
    )
    session.add(sub)
    session.add(ChallengeSolve(user_id=user_id, challenge_id=ch.id, submission_id=sub.id, rating_delta=gain, solved_at=now))
    # unique (user, challenge) is enforced here, before any counter moves
    await session.flush()

    solved_col = getattr(User, _SOLVED_COLUMN[ch.difficulty])
    await session.execute(
        update(User).where(User.id == user_id).values({
            User.rating: User.rating + gain,
            User.weekly_rating: User.weekly_rating + gain,
            User.monthly_rating: User.monthly_rating + gain,
            User.correct_submissions: User.correct_submissions + 1,
            User.total_solved: User.total_solved + 1,
            solved_col: solved_col + 1,
            User.current_streak: streak.current_streak,
            User.max_streak: streak.max_streak,
            User.last_active_day: streak.last_active_day,
        }).execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Challenge).where(Challenge.id == ch.id).values(
            avg_solve_time=(Challenge.avg_solve_time * Challenge.solve_count + elapsed) // (Challenge.solve_count + 1),
            solve_count=Challenge.solve_count + 1,
            attempt_count=Challenge.attempt_count + 1,
        ).execution_options(synchronize_session=False)
    )
    await _bump_daily(session, user_id, now, solves=1)
    await session.execute(
        delete(ChallengeSession).where(ChallengeSession.user_id == user_id, ChallengeSession.challenge_id == ch.id)
        .execution_options(synchronize_session=False)
    )
    if verdict.flag:
        await _flag(session, user_id=user_id, challenge_id=ch.id, kind="speed_anomaly", reason=verdict.flag_reason,
                    elapsed=elapsed, now=now, submission_id=sub.id)
    await session.commit()

    log.info("submission_correct", user_id=str(user_id), challenge_id=str(ch.id), rating_delta=gain,
             streak=streak.current_streak, streak_action=streak.action, flagged=verdict.flag)
    return SubmissionOutcome(
        correct=True, rating_delta=gain, new_rating=user.rating + gain, breakdown=breakdown, streak=streak,
        flagged=verdict.flag, elapsed_sec=elapsed, submission_id=sub.id,
    )
