from __future__ import annotations
import uuid
from datetime import date, datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, Date, Uuid, ForeignKey, UniqueConstraint, CheckConstraint, func
from arena.db import Base, UTCDateTime

class User(Base):
    """
    Rating state per user. Written only by the submission gateway, the contest
    finalizer and the scheduled maintenance jobs; counters move by SQL increments.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(40), unique=True, index=True, nullable=False)
    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="free")  # free|pro
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")  # user|admin
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekly_rating: Mapped[int] = mapped_column(Integer, index=True, nullable=False, default=0)
    monthly_rating: Mapped[int] = mapped_column(Integer, index=True, nullable=False, default=0)

    solved_easy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    solved_medium: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    solved_hard: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_solved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wrong_submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_active_day: Mapped[date | None] = mapped_column(Date, nullable=True)  # UTC calendar day
    streak_freezes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    flag_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("current_streak <= max_streak", name="ck_users_streak_le_max"),
        CheckConstraint("streak_freezes >= 0 AND streak_freezes <= 2", name="ck_users_freezes_range"),
    )

    @property
    def is_pro(self) -> bool:
        return self.plan == "pro" or self.role == "admin"


class DailyActivity(Base):
    """Per-user UTC day counters: free tier daily cap and the activity heatmap."""
    __tablename__ = "daily_activity"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    submissions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    solves: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_daily_activity_user_day"),
    )
