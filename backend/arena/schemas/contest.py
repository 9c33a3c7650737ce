from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class RegistrationOut(BaseModel):
    registered: bool
    contest_id: UUID
    participant_id: UUID
    starts_at: datetime


class ContestSubmitIn(BaseModel):
    challenge_id: UUID
    answer: str = Field(min_length=1, max_length=500)
    hint_used: bool = False


class ContestSubmitOut(BaseModel):
    correct: bool
    points_earned: int = 0
    penalty_added: int = 0
    retry_after_seconds: int = 0
    solve_count: int | None = None
    finished: bool = False


class ScoreboardRow(BaseModel):
    rank: int | None = None
    user_id: UUID
    username: str
    score: int
    solve_count: int
    penalty_seconds: int
    finish_time: datetime | None = None
    rating_delta: int | None = None


class FinalizeEnqueuedOut(BaseModel):
    job_id: str
    queue: str
