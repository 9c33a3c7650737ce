from __future__ import annotations
import asyncio
from dataclasses import asdict

from arena.db import SessionLocal
from arena.services.finalizer import finalize_due_contests
from arena.services.maintenance import (
    apply_streak_freezes, reset_weekly_ratings, reset_monthly_ratings, rotate_weekly_free_challenge,
)

# RQ entry points (sync); each runs its coroutine on a fresh session.


def finalize_contests_job(limit: int | None = None) -> list[dict]:
    outcomes = asyncio.run(finalize_due_contests(limit=limit))
    return [{**asdict(o), "contest_id": str(o.contest_id)} for o in outcomes]


async def _with_session(fn):
    async with SessionLocal() as session:
        return await fn(session)


def streak_freezes_job() -> dict:
    return asyncio.run(_with_session(apply_streak_freezes))


def weekly_reset_job() -> dict:
    return asyncio.run(_with_session(reset_weekly_ratings))


def monthly_reset_job() -> dict:
    return asyncio.run(_with_session(reset_monthly_ratings))


def weekly_free_rotation_job() -> dict:
    return asyncio.run(_with_session(rotate_weekly_free_challenge))
