from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON, Uuid
from arena.db import Base, UTCDateTime

class LeaderboardSnapshot(Base):
    """Frozen top-N of a finished week or month. One row per label."""
    __tablename__ = "leaderboard_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)  # weekly | monthly
    label: Mapped[str] = mapped_column(String(24), unique=True, nullable=False)  # weekly_2026-W41, monthly_2026-09
    rows: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    generated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
