from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, JSON, Uuid, ForeignKey, UniqueConstraint, Index, CheckConstraint, func
from arena.db import Base, UTCDateTime

class Contest(Base):
    __tablename__ = "contests"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(160), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(8), nullable=False, default="mixed")  # easy|medium|hard|mixed
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    registration_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)  # defaults to starts_at
    challenge_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # ordered, str uuids
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # flips false -> true exactly once, by the finalizer
    finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finalized_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    final_rankings: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_contests_due", "is_active", "finalized", "ends_at"),
        CheckConstraint("ends_at > starts_at", name="ck_contests_window"),
        CheckConstraint("max_participants IS NULL OR participant_count <= max_participants", name="ck_contests_capacity"),
    )


class ContestParticipant(Base):
    __tablename__ = "contest_participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    solve_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penalty_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    finish_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)  # set once, when all solved

    # sealed by the finalizer
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_delta: Mapped[int | None] = mapped_column(Integer, nullable=True)
    final_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("contest_id", "user_id", name="uq_contest_participant_once"),
    )


class ContestAttempt(Base):
    __tablename__ = "contest_attempts"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest_participants.id", ondelete="CASCADE"), nullable=False)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contests.id", ondelete="CASCADE"), index=True, nullable=False)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)

    solved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    solved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    wrong_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_wrong_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hint_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("participant_id", "challenge_id", name="uq_contest_attempt_once"),
    )
