from __future__ import annotations
from dataclasses import dataclass
from datetime import date

from arena.services.utc_days import yesterday_of
from typing import Literal

StreakAction = Literal["no_change", "incremented", "reset"]

# Granted to pro users on the 1st of every month; unused credits do not stack.
MONTHLY_FREEZE_ALLOCATION = 2
MAX_FREEZES = 2


@dataclass(frozen=True)
class StreakUpdate:
    current_streak: int
    max_streak: int
    last_active_day: date
    changed: bool
    action: StreakAction


@dataclass(frozen=True)
class FreezeResult:
    applied: bool
    last_active_day: date | None
    current_streak: int
    freezes: int
    reason: str


def advance_streak(last_active_day: date | None, current_streak: int, max_streak: int, today: date) -> StreakUpdate:
    """
    Transition for one correct solve on UTC day `today`.
    Never call it for wrong submissions.
    """
    current_streak = max(0, current_streak or 0)
    max_streak = max(current_streak, max_streak or 0)

    if last_active_day == today:
        return StreakUpdate(current_streak, max_streak, today, False, "no_change")

    if last_active_day is not None and last_active_day == yesterday_of(today):
        new_streak = current_streak + 1
        action: StreakAction = "incremented"
    else:
        new_streak = 1
        action = "reset"

    return StreakUpdate(new_streak, max(max_streak, new_streak), today, True, action)


def apply_freeze(last_active_day: date | None, current_streak: int, freezes: int, today: date) -> FreezeResult:
    """
    Daily freeze check. Covers exactly one missed day: a user last active
    the day before yesterday spends one credit and is treated as active yesterday,
    so their next solve today continues the streak.
    """
    freezes = max(0, freezes or 0)

    def unchanged(reason: str) -> FreezeResult:
        return FreezeResult(False, last_active_day, current_streak, freezes, reason)

    if last_active_day is None or (current_streak or 0) <= 0:
        return unchanged("no_streak")
    gap = (today - last_active_day).days
    if gap <= 1:
        return unchanged("no_missed_day")
    if gap > 2:
        return unchanged("gap_too_long")
    if freezes <= 0:
        return unchanged("no_freezes_available")

    return FreezeResult(True, yesterday_of(today), current_streak, freezes - 1, "freeze_applied")
