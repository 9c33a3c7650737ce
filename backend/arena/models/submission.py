from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, Uuid, ForeignKey, UniqueConstraint, Index
from arena.db import Base, UTCDateTime


class Submission(Base):
    """
    Append-only attempt log, practice and contest alike.
    Never updated after insert; used for audit, rate limiting and recomputation.
    """
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    contest_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("contests.id", ondelete="SET NULL"), index=True, nullable=True)

    answer_digest: Mapped[str] = mapped_column(String(64), nullable=False)  # hash of the normalized submission
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rating_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # contest points
    elapsed_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hint_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    wrong_attempts_before: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_practice_resolve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_submissions_user_challenge_created", "user_id", "challenge_id", "created_at"),
    )


class ChallengeSolve(Base):
    """First correct practice solve per (user, challenge). Unique: rewards apply once."""
    __tablename__ = "challenge_solves"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False)
    rating_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    solved_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_solve_once"),
    )


class Flag(Base):
    """Moderator review queue. Evidence only; nothing is decided automatically."""
    __tablename__ = "flags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    challenge_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="SET NULL"), nullable=True)
    submission_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True)
    kind: Mapped[str] = mapped_column(String(24), nullable=False)  # implausible_time | speed_anomaly
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    elapsed_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
