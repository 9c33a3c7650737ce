from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.db import SessionLocal
from arena.models.contest import Contest, ContestParticipant
from arena.models.user import User
from arena.services.ranking import Standing, rank_standings, rating_award, difficulty_multiplier
from arena.services.utc_days import utc_now

log = structlog.get_logger()

FinalizeStatus = Literal["finalized", "skipped", "failed"]


@dataclass
class FinalizeOutcome:
    contest_id: UUID
    status: FinalizeStatus
    participants: int = 0
    awarded: int = 0
    error: str | None = None


async def finalize_contest(session: AsyncSession, contest_id: UUID, now: datetime | None = None) -> FinalizeOutcome:
    """
    Rank participants and award ratings exactly once.

    The gate is the conditional flip of `finalized` in the same transaction as
    every rating increment: a concurrent or repeated run updates zero rows and
    applies nothing.
    """
    now = now or utc_now()
    res = await session.execute(
        update(Contest)
        .where(Contest.id == contest_id, Contest.finalized.is_(False))
        .values(finalized=True, is_active=False, finalized_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.rollback()
        log.info("contest_finalize_skipped", contest_id=str(contest_id), reason="already_finalized")
        return FinalizeOutcome(contest_id, "skipped")

    contest = await session.get(Contest, contest_id, populate_existing=True)
    parts = (await session.execute(
        select(ContestParticipant).where(ContestParticipant.contest_id == contest_id)
    )).scalars().all()
    by_id = {p.id: p for p in parts}

    ranked = rank_standings([
        Standing(p.id, p.user_id, p.score, p.solve_count, p.penalty_seconds, p.finish_time, p.registered_at)
        for p in parts
    ], contest.ends_at)
    multiplier = difficulty_multiplier(contest.difficulty)
    total = len(ranked)

    awarded = 0
    rankings = []
    for r in ranked:
        s = r.standing
        award = rating_award(r.rank, total, multiplier, s.solve_count)
        await session.execute(
            update(ContestParticipant)
            .where(ContestParticipant.id == s.participant_id)
            .values(rank=r.rank, rating_delta=award, final_score=s.score)
            .execution_options(synchronize_session=False)
        )
        if award > 0:
            await session.execute(
                update(User).where(User.id == s.user_id).values(
                    rating=User.rating + award,
                    weekly_rating=User.weekly_rating + award,
                    monthly_rating=User.monthly_rating + award,
                ).execution_options(synchronize_session=False)
            )
            awarded += 1
        if r.rank <= settings.final_rankings_size:
            rankings.append({
                "rank": r.rank,
                "user_id": str(s.user_id),
                "username": by_id[s.participant_id].username,
                "score": s.score,
                "solve_count": s.solve_count,
                "rating_delta": award,
            })

    await session.execute(
        update(Contest).where(Contest.id == contest_id).values(final_rankings=rankings)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    log.info("contest_finalized", contest_id=str(contest_id), participants=total, awarded=awarded,
             multiplier=multiplier)
    return FinalizeOutcome(contest_id, "finalized", participants=total, awarded=awarded)


async def due_contest_ids(session: AsyncSession, now: datetime, limit: int) -> list[UUID]:
    rows = await session.execute(
        select(Contest.id)
        .where(Contest.is_active.is_(True), Contest.finalized.is_(False), Contest.ends_at <= now)
        .order_by(Contest.ends_at)
        .limit(limit)
    )
    return list(rows.scalars().all())


async def finalize_due_contests(
    now: datetime | None = None,
    limit: int | None = None,
    session_factory: Callable[[], AsyncSession] = SessionLocal,
) -> list[FinalizeOutcome]:
    """Scheduled batch. One session and transaction per contest; a failure is logged and skipped."""
    now = now or utc_now()
    limit = settings.finalizer_batch_size if limit is None else limit

    async with session_factory() as session:
        ids = await due_contest_ids(session, now, limit)

    outcomes: list[FinalizeOutcome] = []
    for cid in ids:
        async with session_factory() as session:
            try:
                outcomes.append(await finalize_contest(session, cid, now))
            except Exception as e:
                await session.rollback()
                log.exception("contest_finalize_failed", contest_id=str(cid))
                outcomes.append(FinalizeOutcome(cid, "failed", error=str(e)))

    log.info("finalizer_batch_done", due=len(ids),
             finalized=sum(1 for o in outcomes if o.status == "finalized"),
             failed=sum(1 for o in outcomes if o.status == "failed"))
    return outcomes
