from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable
from uuid import UUID

from arena.services.rating import round_half_up

# Multiplier applied to every award of a contest, by contest difficulty label
DIFFICULTY_MULTIPLIERS: dict[str, float] = {
    "easy": 1.0,
    "medium": 1.5,
    "hard": 2.0,
    "mixed": 1.25,
}

PODIUM_AWARDS = {1: 150, 2: 100, 3: 75}
# (upper percentile bound, base award); anything past 50% with a solve gets the last tier
PERCENTILE_AWARDS = ((0.10, 50), (0.25, 30), (0.50, 15))
PARTICIPATION_AWARD = 5


@dataclass(frozen=True)
class Standing:
    participant_id: UUID
    user_id: UUID
    score: int
    solve_count: int
    penalty_seconds: int
    finish_time: datetime | None
    registered_at: datetime | None = None


@dataclass(frozen=True)
class RankedStanding:
    rank: int
    standing: Standing
    adjusted_finish: datetime | None


def difficulty_multiplier(label: str | None) -> float:
    return DIFFICULTY_MULTIPLIERS.get(label or "mixed", DIFFICULTY_MULTIPLIERS["mixed"])


def adjusted_finish(s: Standing, contest_end: datetime) -> datetime:
    """Finish (or contest end if never finished) plus accrued penalty."""
    return (s.finish_time or contest_end) + timedelta(seconds=int(s.penalty_seconds or 0))


def rank_standings(standings: Iterable[Standing], contest_end: datetime) -> list[RankedStanding]:
    """
    CTF ranking: solvers by score desc, then adjusted finish asc.
    Zero-solvers always rank after every solver.
    """
    floor = datetime.min.replace(tzinfo=contest_end.tzinfo)

    def key(s: Standing):
        tail = (s.registered_at or floor, str(s.user_id))
        if (s.solve_count or 0) <= 0:
            return (1, 0, floor) + tail
        return (0, -int(s.score or 0), adjusted_finish(s, contest_end)) + tail

    ordered = sorted(standings, key=key)
    return [
        RankedStanding(
            rank=i + 1,
            standing=s,
            adjusted_finish=adjusted_finish(s, contest_end) if (s.solve_count or 0) > 0 else None,
        )
        for i, s in enumerate(ordered)
    ]


def rating_award(rank: int, total: int, multiplier: float, solve_count: int) -> int:
    """Final contest award. Zero-solvers receive nothing."""
    if solve_count <= 0 or total <= 0:
        return 0
    if rank in PODIUM_AWARDS:
        base = PODIUM_AWARDS[rank]
    else:
        pct = rank / total
        base = PARTICIPATION_AWARD
        for bound, award in PERCENTILE_AWARDS:
            if pct <= bound:
                base = award
                break
    return round_half_up(base * multiplier)
