from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261012_0001"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
TS = sa.TIMESTAMP(timezone=True)

def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=40), nullable=False),
        sa.Column("plan", sa.String(length=16), nullable=False, server_default="free"),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("weekly_rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_rating", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solved_easy", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solved_medium", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solved_hard", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_solved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("correct_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wrong_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_day", sa.Date(), nullable=True),
        sa.Column("streak_freezes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("flag_reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", TS, server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("current_streak <= max_streak", name="ck_users_streak_le_max"),
        sa.CheckConstraint("streak_freezes >= 0 AND streak_freezes <= 2", name="ck_users_freezes_range"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    # leaderboard reads
    op.create_index("ix_users_weekly_rating", "users", ["weekly_rating"])
    op.create_index("ix_users_monthly_rating", "users", ["monthly_rating"])

    op.create_table(
        "daily_activity",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solves", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "day", name="uq_daily_activity_user_day"),
    )
    op.create_index("ix_daily_activity_user_id", "daily_activity", ["user_id"])

    op.create_table(
        "challenges",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("difficulty", sa.String(length=8), nullable=False),
        sa.Column("expected_time_sec", sa.Integer(), nullable=False),
        sa.Column("base_points", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("answer_hash", sa.String(length=64), nullable=False),
        sa.Column("normalization_rules", sa.JSON(), nullable=False),
        sa.Column("hint", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("free_for_all", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_free_this_week", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("solve_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_solve_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", TS, server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("difficulty IN ('easy','medium','hard')", name="ck_challenges_difficulty"),
        sa.CheckConstraint("expected_time_sec > 0", name="ck_challenges_expected_time_pos"),
    )

    op.create_table(
        "challenge_sessions",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("opened_at", TS, nullable=False),
        sa.Column("expires_at", TS, nullable=False),
        sa.UniqueConstraint("user_id", "challenge_id", name="uq_challenge_session_user_challenge"),
    )
    op.create_index("ix_challenge_sessions_user_id", "challenge_sessions", ["user_id"])

    op.create_table(
        "contests",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("difficulty", sa.String(length=8), nullable=False, server_default="mixed"),
        sa.Column("starts_at", TS, nullable=False),
        sa.Column("ends_at", TS, nullable=False),
        sa.Column("registration_deadline", TS, nullable=True),
        sa.Column("challenge_ids", sa.JSON(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("participant_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("finalized", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("finalized_at", TS, nullable=True),
        sa.Column("final_rankings", sa.JSON(), nullable=True),
        sa.Column("created_at", TS, server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("ends_at > starts_at", name="ck_contests_window"),
        sa.CheckConstraint(
            "max_participants IS NULL OR participant_count <= max_participants",
            name="ck_contests_capacity",
        ),
    )
    op.create_index("ix_contests_due", "contests", ["is_active", "finalized", "ends_at"])

    op.create_table(
        "submissions",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="SET NULL"), nullable=True),
        sa.Column("answer_digest", sa.String(length=64), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("rating_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("elapsed_sec", sa.Integer(), nullable=True),
        sa.Column("hint_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("wrong_attempts_before", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_practice_resolve", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_suspicious", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_submissions_contest_id", "submissions", ["contest_id"])
    op.create_index("ix_submissions_user_challenge_created", "submissions", ["user_id", "challenge_id", "created_at"])

    op.create_table(
        "challenge_solves",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("submission_id", UUID, sa.ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solved_at", TS, nullable=False),
        sa.UniqueConstraint("user_id", "challenge_id", name="uq_challenge_solve_once"),
    )
    op.create_index("ix_challenge_solves_challenge_id", "challenge_solves", ["challenge_id"])

    op.create_table(
        "flags",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="SET NULL"), nullable=True),
        sa.Column("submission_id", UUID, sa.ForeignKey("submissions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("kind", sa.String(length=24), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("elapsed_sec", sa.Integer(), nullable=True),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("resolved_at", TS, nullable=True),
    )
    op.create_index("ix_flags_user_id", "flags", ["user_id"])

    op.create_table(
        "contest_participants",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("username", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("registered_at", TS, nullable=False),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("solve_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("penalty_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("finish_time", TS, nullable=True),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("rating_delta", sa.Integer(), nullable=True),
        sa.Column("final_score", sa.Integer(), nullable=True),
        sa.UniqueConstraint("contest_id", "user_id", name="uq_contest_participant_once"),
    )
    op.create_index("ix_contest_participants_contest_id", "contest_participants", ["contest_id"])
    op.create_index("ix_contest_participants_user_id", "contest_participants", ["user_id"])

    op.create_table(
        "contest_attempts",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("participant_id", UUID, sa.ForeignKey("contest_participants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("solved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("solved_at", TS, nullable=True),
        sa.Column("wrong_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_wrong_at", TS, nullable=True),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hint_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("participant_id", "challenge_id", name="uq_contest_attempt_once"),
    )
    op.create_index("ix_contest_attempts_contest_id", "contest_attempts", ["contest_id"])

    op.create_table(
        "leaderboard_snapshots",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("kind", sa.String(length=8), nullable=False),
        sa.Column("label", sa.String(length=24), nullable=False),
        sa.Column("rows", sa.JSON(), nullable=False),
        sa.Column("generated_at", TS, nullable=False),
        sa.UniqueConstraint("label", name="uq_leaderboard_snapshots_label"),
    )

    op.create_table(
        "weekly_free_picks",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        sa.Column("week_label", sa.String(length=10), nullable=False),
        sa.Column("challenge_id", UUID, sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("picked_at", TS, nullable=False),
        sa.Column("expires_at", TS, nullable=False),
        sa.UniqueConstraint("week_label", name="uq_weekly_free_picks_week_label"),
    )

def downgrade() -> None:
    op.drop_table("weekly_free_picks")
    op.drop_table("leaderboard_snapshots")
    op.drop_index("ix_contest_attempts_contest_id", table_name="contest_attempts")
    op.drop_table("contest_attempts")
    op.drop_index("ix_contest_participants_user_id", table_name="contest_participants")
    op.drop_index("ix_contest_participants_contest_id", table_name="contest_participants")
    op.drop_table("contest_participants")
    op.drop_index("ix_flags_user_id", table_name="flags")
    op.drop_table("flags")
    op.drop_index("ix_challenge_solves_challenge_id", table_name="challenge_solves")
    op.drop_table("challenge_solves")
    op.drop_index("ix_submissions_user_challenge_created", table_name="submissions")
    op.drop_index("ix_submissions_contest_id", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_contests_due", table_name="contests")
    op.drop_table("contests")
    op.drop_index("ix_challenge_sessions_user_id", table_name="challenge_sessions")
    op.drop_table("challenge_sessions")
    op.drop_table("challenges")
    op.drop_index("ix_daily_activity_user_id", table_name="daily_activity")
    op.drop_table("daily_activity")
    op.drop_index("ix_users_monthly_rating", table_name="users")
    op.drop_index("ix_users_weekly_rating", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
