from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update, or_, and_, case, literal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.db import UTCDateTime
from arena.errors import (
    NotFound, NotEligible, NotRegistered, AlreadyRegistered, AlreadySolved,
    ContestNotActive, ContestNotLive, RegistrationClosed, ContestFull, RateLimited,
)
from arena.models.user import User
from arena.models.challenge import Challenge
from arena.models.contest import Contest, ContestParticipant, ContestAttempt
from arena.models.submission import Submission
from arena.services import answer_codec
from arena.services.contest_scoring import CooldownPolicy, contest_points
from arena.services.ranking import Standing, rank_standings
from arena.services.utc_days import utc_now

log = structlog.get_logger()


@dataclass
class Registration:
    registered: bool
    contest_id: UUID
    participant_id: UUID
    starts_at: datetime


@dataclass
class ContestSubmissionOutcome:
    correct: bool
    points_earned: int = 0
    penalty_added: int = 0
    retry_after_seconds: int = 0
    solve_count: int | None = None
    finished: bool = False


def _contest_challenge_ids(contest: Contest) -> list[UUID]:
    return [UUID(str(c)) for c in (contest.challenge_ids or [])]


def is_live(contest: Contest, now: datetime) -> bool:
    return bool(contest.is_active) and not contest.finalized and contest.starts_at <= now < contest.ends_at


# ---------- registration ----------

async def register_for_contest(session: AsyncSession, *, user_id: UUID, contest_id: UUID,
                               now: datetime | None = None) -> Registration:
    """
    Admission control. The capacity check-and-increment is one conditional UPDATE;
    participant + attempt rows are created in the same transaction.
    """
    now = now or utc_now()
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User profile not found.")
    if user.is_banned:
        raise NotEligible("Account is banned.")
    if not user.is_pro:
        raise NotEligible("Pro plan required to join contests.")

    contest = await session.get(Contest, contest_id)
    if not contest:
        raise NotFound("Contest not found.")
    if not contest.is_active or contest.finalized:
        raise ContestNotActive("Contest is not active.")
    if now >= contest.starts_at:
        raise RegistrationClosed("Contest has already started.")
    if now > (contest.registration_deadline or contest.starts_at):
        raise RegistrationClosed("Registration deadline has passed.")

    existing = await session.scalar(
        select(ContestParticipant.id).where(ContestParticipant.contest_id == contest_id, ContestParticipant.user_id == user_id)
    )
    if existing:
        raise AlreadyRegistered("Already registered for this contest.")

    res = await session.execute(
        update(Contest)
        .where(
            Contest.id == contest_id,
            or_(Contest.max_participants.is_(None), Contest.participant_count < Contest.max_participants),
        )
        .values(participant_count=Contest.participant_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.rollback()
        raise ContestFull("Contest is full.")

    participant = ContestParticipant(
        id=uuid.uuid4(), contest_id=contest_id, user_id=user_id, username=user.username, registered_at=now,
    )
    session.add(participant)
    for cid in _contest_challenge_ids(contest):
        session.add(ContestAttempt(participant_id=participant.id, contest_id=contest_id, challenge_id=cid))
    try:
        await session.commit()
    except IntegrityError:
        # concurrent duplicate registration; rollback also undoes the count increment
        await session.rollback()
        raise AlreadyRegistered("Already registered for this contest.")

    log.info("contest_registered", contest_id=str(contest_id), user_id=str(user_id))
    return Registration(True, contest_id, participant.id, contest.starts_at)


# ---------- live submissions ----------

async def _get_attempt(session: AsyncSession, participant: ContestParticipant, challenge_id: UUID) -> ContestAttempt:
    q = select(ContestAttempt).where(
        ContestAttempt.participant_id == participant.id, ContestAttempt.challenge_id == challenge_id,
    ).execution_options(populate_existing=True)
    attempt = await session.scalar(q)
    if attempt:
        return attempt
    # registered before the challenge list was extended
    attempt = ContestAttempt(participant_id=participant.id, contest_id=participant.contest_id, challenge_id=challenge_id)
    session.add(attempt)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        attempt = await session.scalar(q)
    return attempt


async def submit_contest_answer(
    session: AsyncSession,
    *,
    user_id: UUID,
    contest_id: UUID,
    challenge_id: UUID,
    raw_answer: str,
    hint_used: bool = False,
    now: datetime | None = None,
    cooldown: CooldownPolicy | None = None,
) -> ContestSubmissionOutcome:
    now = now or utc_now()
    cooldown = cooldown or CooldownPolicy.from_settings()

    contest = await session.get(Contest, contest_id)
    if not contest:
        raise NotFound("Contest not found.")
    participant = await session.scalar(
        select(ContestParticipant).where(ContestParticipant.contest_id == contest_id, ContestParticipant.user_id == user_id)
    )
    if not participant:
        raise NotRegistered("You are not registered for this contest.")
    if not is_live(contest, now):
        raise ContestNotLive("Contest is not live.")
    challenge_ids = _contest_challenge_ids(contest)
    if challenge_id not in challenge_ids:
        raise NotFound("Challenge is not part of this contest.")
    ch = await session.get(Challenge, challenge_id)
    if not ch:
        raise NotFound("Challenge not found.")

    rules = ch.normalization_rules or {}
    normalized = answer_codec.validate_answer_input(raw_answer, rules)

    attempt = await _get_attempt(session, participant, challenge_id)
    if attempt.solved:
        raise AlreadySolved("Challenge already solved.")
    wait = cooldown.retry_after(attempt.last_wrong_at, now)
    if wait > 0:
        raise RateLimited(f"Wait {wait}s before trying again.", wait)

    digest = answer_codec.hash_answer(normalized)
    correct = answer_codec.verify(raw_answer, ch.answer_hash, rules)

    if not correct:
        return await _apply_wrong(session, contest, participant, attempt, digest, hint_used, cooldown, now)
    return await _apply_correct(session, contest, participant, attempt, ch, digest, hint_used, len(challenge_ids), now)


async def _apply_wrong(session, contest: Contest, participant: ContestParticipant, attempt: ContestAttempt,
                       digest: str, hint_used: bool, cooldown: CooldownPolicy, now: datetime) -> ContestSubmissionOutcome:
    cutoff = now - timedelta(seconds=cooldown.seconds)
    values = {"wrong_attempts": ContestAttempt.wrong_attempts + 1, "last_wrong_at": now}
    if hint_used:
        values["hint_used"] = True
    # the cooldown is re-checked inside the write so concurrent wrong answers accrue one penalty
    res = await session.execute(
        update(ContestAttempt)
        .where(
            ContestAttempt.id == attempt.id,
            ContestAttempt.solved.is_(False),
            or_(ContestAttempt.last_wrong_at.is_(None), ContestAttempt.last_wrong_at <= cutoff),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.rollback()
        fresh = await session.get(ContestAttempt, attempt.id, populate_existing=True)
        if fresh.solved:
            raise AlreadySolved("Challenge already solved.")
        wait = max(1, cooldown.retry_after(fresh.last_wrong_at, now))
        raise RateLimited(f"Wait {wait}s before trying again.", wait)

    await session.execute(
        update(ContestParticipant)
        .where(ContestParticipant.id == participant.id)
        .values(penalty_seconds=ContestParticipant.penalty_seconds + cooldown.penalty_seconds)
        .execution_options(synchronize_session=False)
    )
    session.add(Submission(
        user_id=participant.user_id, challenge_id=attempt.challenge_id, contest_id=contest.id,
        answer_digest=digest, is_correct=False, hint_used=bool(hint_used),
        wrong_attempts_before=attempt.wrong_attempts, created_at=now,
    ))
    await session.commit()
    log.info("contest_answer_wrong", contest_id=str(contest.id), user_id=str(participant.user_id),
             challenge_id=str(attempt.challenge_id), penalty_added=cooldown.penalty_seconds)
    return ContestSubmissionOutcome(
        correct=False, penalty_added=cooldown.penalty_seconds, retry_after_seconds=cooldown.seconds,
    )


async def _apply_correct(session, contest: Contest, participant: ContestParticipant, attempt: ContestAttempt,
                         ch: Challenge, digest: str, hint_used: bool, total: int, now: datetime) -> ContestSubmissionOutcome:
    points = contest_points(ch.base_points, contest.starts_at, contest.ends_at, now, bool(hint_used))
    values = {"solved": True, "solved_at": now, "points_earned": points}
    if hint_used:
        values["hint_used"] = True
    res = await session.execute(
        update(ContestAttempt)
        .where(ContestAttempt.id == attempt.id, ContestAttempt.solved.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.rollback()
        raise AlreadySolved("Challenge already solved.")

    # one statement: score, count and (exactly once) the finish time
    await session.execute(
        update(ContestParticipant)
        .where(ContestParticipant.id == participant.id)
        .values(
            score=ContestParticipant.score + points,
            solve_count=ContestParticipant.solve_count + 1,
            finish_time=case(
                (and_(ContestParticipant.solve_count + 1 >= total, ContestParticipant.finish_time.is_(None)), literal(now, UTCDateTime)),
                else_=ContestParticipant.finish_time,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    session.add(Submission(
        user_id=participant.user_id, challenge_id=ch.id, contest_id=contest.id, answer_digest=digest,
        is_correct=True, points=points, hint_used=bool(hint_used),
        wrong_attempts_before=attempt.wrong_attempts, created_at=now,
    ))
    await session.commit()

    fresh = await session.get(ContestParticipant, participant.id, populate_existing=True)
    log.info("contest_answer_correct", contest_id=str(contest.id), user_id=str(participant.user_id),
             challenge_id=str(ch.id), points=points, solve_count=fresh.solve_count)
    return ContestSubmissionOutcome(
        correct=True, points_earned=points, solve_count=fresh.solve_count, finished=fresh.finish_time is not None,
    )


# ---------- scoreboard ----------

async def contest_scoreboard(session: AsyncSession, contest_id: UUID) -> list[dict]:
    """Live order while running; sealed ranks once finalized."""
    contest = await session.get(Contest, contest_id)
    if not contest:
        raise NotFound("Contest not found.")
    parts = (await session.execute(
        select(ContestParticipant).where(ContestParticipant.contest_id == contest_id)
    )).scalars().all()
    by_id = {p.id: p for p in parts}

    if contest.finalized:
        ordered = sorted(parts, key=lambda p: (p.rank is None, p.rank or 0))
        ranks = {p.id: p.rank for p in ordered}
    else:
        ranked = rank_standings([
            Standing(p.id, p.user_id, p.score, p.solve_count, p.penalty_seconds, p.finish_time, p.registered_at)
            for p in parts
        ], contest.ends_at)
        ordered = [by_id[r.standing.participant_id] for r in ranked]
        ranks = {r.standing.participant_id: r.rank for r in ranked}

    return [
        {
            "rank": ranks.get(p.id),
            "user_id": p.user_id,
            "username": p.username,
            "score": p.score,
            "solve_count": p.solve_count,
            "penalty_seconds": p.penalty_seconds,
            "finish_time": p.finish_time,
            "rating_delta": p.rating_delta,
        }
        for p in ordered
    ]
