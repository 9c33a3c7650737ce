from __future__ import annotations
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.models.leaderboard import LeaderboardSnapshot
from arena.models.challenge import Challenge, WeeklyFreePick
from arena.models.user import User
from arena.services.streaks import MONTHLY_FREEZE_ALLOCATION, apply_freeze
from arena.services.utc_days import (
    utc_now, utc_day, yesterday_of, day_start_utc, next_monday, iso_week_label,
    previous_week_label, previous_month_label,
)

log = structlog.get_logger()

SNAPSHOT_SIZE = 100
FREE_PICK_HISTORY = 4


async def apply_streak_freezes(session: AsyncSession, now: datetime | None = None) -> dict:
    """
    Daily. Spends one freeze credit for every user who missed exactly yesterday.
    Each write re-checks the day it was computed from, so re-runs are no-ops.
    """
    now = now or utc_now()
    today = utc_day(now)
    missed_from = yesterday_of(yesterday_of(today))

    rows = (await session.execute(
        select(User.id, User.last_active_day, User.current_streak, User.streak_freezes).where(
            User.current_streak > 0,
            User.last_active_day == missed_from,
            User.streak_freezes > 0,
        )
    )).all()

    applied = 0
    for user_id, last_day, streak, freezes in rows:
        res = apply_freeze(last_day, streak, freezes, today)
        if not res.applied:
            continue
        upd = await session.execute(
            update(User)
            .where(User.id == user_id, User.last_active_day == missed_from, User.streak_freezes > 0)
            .values(last_active_day=res.last_active_day, streak_freezes=User.streak_freezes - 1)
            .execution_options(synchronize_session=False)
        )
        applied += upd.rowcount
    await session.commit()

    log.info("streak_freezes_applied", day=today.isoformat(), candidates=len(rows), applied=applied)
    return {"day": today.isoformat(), "candidates": len(rows), "applied": applied}


async def _snapshot(session: AsyncSession, kind: str, label: str, column, now: datetime) -> bool:
    """Store the frozen top N. False when this period was already snapshotted."""
    if await session.scalar(select(LeaderboardSnapshot.id).where(LeaderboardSnapshot.label == label)):
        return False
    top = (await session.execute(
        select(User.id, User.username, column, User.rating)
        .where(User.is_banned.is_(False))
        .order_by(column.desc(), User.username)
        .limit(SNAPSHOT_SIZE)
    )).all()
    session.add(LeaderboardSnapshot(
        kind=kind,
        label=label,
        rows=[
            {"rank": i + 1, "user_id": str(uid), "username": name, "period_rating": period, "rating": total}
            for i, (uid, name, period, total) in enumerate(top)
        ],
        generated_at=now,
    ))
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        return False
    return True


async def reset_weekly_ratings(session: AsyncSession, now: datetime | None = None) -> dict:
    """Mondays: snapshot last week's top 100, then zero every weekly rating. Skipped when already done."""
    now = now or utc_now()
    label = f"weekly_{previous_week_label(now)}"
    if not await _snapshot(session, "weekly", label, User.weekly_rating, now):
        log.info("weekly_reset_skipped", label=label)
        return {"label": label, "reset": False, "users": 0}

    res = await session.execute(
        update(User).where(User.weekly_rating != 0).values(weekly_rating=0)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    log.info("weekly_reset_done", label=label, users=res.rowcount)
    return {"label": label, "reset": True, "users": res.rowcount}


async def reset_monthly_ratings(session: AsyncSession, now: datetime | None = None) -> dict:
    """1st of the month: snapshot, zero monthly ratings, refill pro freeze credits (set, not added)."""
    now = now or utc_now()
    label = f"monthly_{previous_month_label(now)}"
    if not await _snapshot(session, "monthly", label, User.monthly_rating, now):
        log.info("monthly_reset_skipped", label=label)
        return {"label": label, "reset": False, "users": 0, "freezes_allocated": 0}

    res = await session.execute(
        update(User).where(User.monthly_rating != 0).values(monthly_rating=0)
        .execution_options(synchronize_session=False)
    )
    granted = await session.execute(
        update(User).where(User.plan == "pro").values(streak_freezes=MONTHLY_FREEZE_ALLOCATION)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    log.info("monthly_reset_done", label=label, users=res.rowcount, freezes_allocated=granted.rowcount)
    return {"label": label, "reset": True, "users": res.rowcount, "freezes_allocated": granted.rowcount}


async def rotate_weekly_free_challenge(session: AsyncSession, now: datetime | None = None) -> dict:
    """
    Mondays: open one active hard challenge to the free tier until next Monday.
    Least-solved first, skipping the last FREE_PICK_HISTORY picks unless nothing else is left.
    One pick per ISO week; a second run for the same week changes nothing.
    """
    now = now or utc_now()
    today = utc_day(now)
    week = iso_week_label(today)
    if await session.scalar(select(WeeklyFreePick.id).where(WeeklyFreePick.week_label == week)):
        log.info("weekly_free_rotation_skipped", week=week, reason="already_picked")
        return {"week": week, "rotated": False, "challenge_id": None}

    hard = (await session.execute(
        select(Challenge.id, Challenge.solve_count)
        .where(Challenge.difficulty == "hard", Challenge.is_active.is_(True))
        .order_by(Challenge.solve_count, Challenge.created_at, Challenge.id)
    )).all()
    if not hard:
        log.warning("weekly_free_rotation_skipped", week=week, reason="no_active_hard_challenges")
        return {"week": week, "rotated": False, "challenge_id": None}

    recent = set((await session.execute(
        select(WeeklyFreePick.challenge_id).order_by(WeeklyFreePick.picked_at.desc()).limit(FREE_PICK_HISTORY)
    )).scalars().all())
    fresh = [cid for cid, _ in hard if cid not in recent]
    picked = fresh[0] if fresh else hard[0][0]

    session.add(WeeklyFreePick(
        week_label=week,
        challenge_id=picked,
        picked_at=now,
        expires_at=day_start_utc(next_monday(today)),
    ))
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        log.info("weekly_free_rotation_skipped", week=week, reason="already_picked")
        return {"week": week, "rotated": False, "challenge_id": None}

    await session.execute(
        update(Challenge)
        .where(Challenge.is_free_this_week.is_(True), Challenge.id != picked)
        .values(is_free_this_week=False)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Challenge).where(Challenge.id == picked).values(is_free_this_week=True)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    log.info("weekly_free_rotated", week=week, challenge_id=str(picked),
             candidates=len(fresh), history_exhausted=not fresh)
    return {"week": week, "rotated": True, "challenge_id": str(picked)}
