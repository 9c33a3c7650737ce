from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, Text, JSON, Uuid, ForeignKey, UniqueConstraint, CheckConstraint, func
from arena.db import Base, UTCDateTime

class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(160), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(8), nullable=False)  # easy|medium|hard
    expected_time_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    base_points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)  # contest scoring
    # sha256 of the normalized answer; immutable once published
    answer_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    normalization_rules: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    hint: Mapped[str | None] = mapped_column(Text(), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    free_for_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_free_this_week: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    solve_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_solve_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("difficulty IN ('easy','medium','hard')", name="ck_challenges_difficulty"),
        CheckConstraint("expected_time_sec > 0", name="ck_challenges_expected_time_pos"),
    )


class ChallengeSession(Base):
    """Server-side open timestamp; the only source of elapsed solve time."""
    __tablename__ = "challenge_sessions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    opened_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_session_user_challenge"),
    )


class WeeklyFreePick(Base):
    """Hard challenge opened to the free tier for one ISO week. One row per week."""
    __tablename__ = "weekly_free_picks"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    week_label: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)  # 2026-W42
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    picked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
