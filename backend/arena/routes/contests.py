from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends
from redis import Redis
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.db import get_session
from arena.auth_deps import get_current_user, require_admin
from arena.models.user import User
from arena.schemas.contest import (
    RegistrationOut, ContestSubmitIn, ContestSubmitOut, ScoreboardRow, FinalizeEnqueuedOut,
)
from arena.services import contests
from arena.jobs.scheduled import finalize_contests_job

router = APIRouter(prefix="/contests", tags=["contests"])

_queue: Queue | None = None


def get_queue() -> Queue:
    # lazy single instance
    global _queue
    if _queue is None:
        _queue = Queue(settings.job_queue, connection=Redis.from_url(settings.redis_url))
    return _queue


@router.post("/finalize", response_model=FinalizeEnqueuedOut, status_code=202)
async def enqueue_finalizer(
    admin: User = Depends(require_admin),
    queue: Queue = Depends(get_queue),
):
    job = queue.enqueue(finalize_contests_job)
    return FinalizeEnqueuedOut(job_id=job.id, queue=queue.name)


@router.post("/{contest_id}/register", response_model=RegistrationOut, status_code=201)
async def register(
    contest_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    reg = await contests.register_for_contest(session, user_id=user.id, contest_id=contest_id)
    return RegistrationOut(
        registered=reg.registered, contest_id=reg.contest_id, participant_id=reg.participant_id, starts_at=reg.starts_at,
    )


@router.post("/{contest_id}/submit", response_model=ContestSubmitOut)
async def submit(
    contest_id: uuid.UUID,
    payload: ContestSubmitIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    out = await contests.submit_contest_answer(
        session, user_id=user.id, contest_id=contest_id, challenge_id=payload.challenge_id,
        raw_answer=payload.answer, hint_used=payload.hint_used,
    )
    return ContestSubmitOut(
        correct=out.correct, points_earned=out.points_earned, penalty_added=out.penalty_added,
        retry_after_seconds=out.retry_after_seconds, solve_count=out.solve_count, finished=out.finished,
    )


@router.get("/{contest_id}/scoreboard", response_model=list[ScoreboardRow])
async def scoreboard(
    contest_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return [ScoreboardRow(**row) for row in await contests.contest_scoreboard(session, contest_id)]
