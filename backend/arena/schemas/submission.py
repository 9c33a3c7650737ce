from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import date


class RatingBreakdownOut(BaseModel):
    base: int
    time_bonus: float
    hint_penalty: float
    attempt_penalty: float
    final_gain: int


class StreakOut(BaseModel):
    current_streak: int
    max_streak: int
    last_active_day: date
    action: str


class SubmitAnswerOut(BaseModel):
    correct: bool
    already_solved: bool = False
    rating_delta: int = 0
    new_rating: int | None = None
    breakdown: RatingBreakdownOut | None = None
    streak: StreakOut | None = None
    # only on wrong answers: attempts left in the current rate window
    attempts_remaining: int | None = None
    elapsed_sec: int
    submission_id: UUID | None = None
