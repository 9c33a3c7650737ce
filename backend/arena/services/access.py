from __future__ import annotations
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.errors import NotEligible, DailyLimitReached
from arena.models.user import User, DailyActivity
from arena.models.challenge import Challenge
from arena.services.utc_days import utc_day


def check_challenge_access(user: User, ch: Challenge) -> None:
    """
    Tier gate for practice challenges.
    Easy is always free, medium only when marked free_for_all, hard only as the weekly free pick.
    """
    if user.is_banned:
        raise NotEligible("Account is banned.")
    if user.is_pro:
        return
    if ch.difficulty == "medium" and not ch.free_for_all:
        raise NotEligible("This challenge requires a Pro subscription.")
    if ch.difficulty == "hard" and not ch.is_free_this_week:
        raise NotEligible("Hard challenges require a Pro subscription. One hard challenge is free each week.")


async def submissions_today(session: AsyncSession, user_id, now: datetime) -> int:
    n = await session.scalar(
        select(DailyActivity.submissions).where(DailyActivity.user_id == user_id, DailyActivity.day == utc_day(now))
    )
    return int(n or 0)


async def check_daily_quota(session: AsyncSession, user: User, now: datetime, cap: int | None = None) -> None:
    """Free tier daily cap, consulted before every practice submission."""
    if user.is_pro:
        return
    cap = settings.free_daily_submissions if cap is None else cap
    used = await submissions_today(session, user.id, now)
    if used >= cap:
        raise DailyLimitReached(f"Daily limit of {cap} submissions reached. Upgrade to Pro or come back tomorrow.")
