from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Literal
from uuid import UUID
from datetime import datetime

Difficulty = Literal["easy", "medium", "hard"]

class NormalizationRules(BaseModel):
    """
    Per-challenge answer normalization. Applied in field order.
    remove_special_chars keeps [a-z0-9.-] (domains, IPs).
    """
    model_config = ConfigDict(extra="forbid")

    trim: bool = True
    lowercase: bool = True
    remove_spaces: bool = False
    remove_dots: bool = False
    remove_hyphens: bool = False
    remove_special_chars: bool = False

class ChallengePublic(BaseModel):
    # never expose answer_hash
    id: UUID
    title: str
    difficulty: Difficulty
    expected_time_sec: int
    base_points: int
    has_hint: bool
    solve_count: int
    attempt_count: int
    avg_solve_time: int

class ChallengeHint(BaseModel):
    challenge_id: UUID
    hint: str | None = None

class OpenChallengeOut(BaseModel):
    session_id: str
    challenge_id: UUID
    opened_at: datetime
    expires_at: datetime
    already_solved: bool
    challenge: ChallengePublic

class SubmitAnswerIn(BaseModel):
    answer: str = Field(min_length=1, max_length=500)
    hint_used: bool = False
