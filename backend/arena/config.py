from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "arena-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Arena")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/arena_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Auth tokens are issued elsewhere; we only verify them
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))

    # Practice submissions: sliding window per (user, challenge)
    rate_limit_max_attempts: int = int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "5"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "1800"))
    # Matches the challenge session TTL
    max_session_seconds: int = int(os.getenv("MAX_SESSION_SECONDS", "86400"))
    free_daily_submissions: int = int(os.getenv("FREE_DAILY_SUBMISSIONS", "20"))

    # Contests
    contest_cooldown_seconds: int = int(os.getenv("CONTEST_COOLDOWN_SECONDS", "30"))
    contest_penalty_seconds: int = int(os.getenv("CONTEST_PENALTY_SECONDS", "300"))
    finalizer_batch_size: int = int(os.getenv("FINALIZER_BATCH_SIZE", "5"))
    final_rankings_size: int = int(os.getenv("FINAL_RANKINGS_SIZE", "10"))

    # Scheduler cadence
    finalizer_interval_seconds: int = int(os.getenv("FINALIZER_INTERVAL_SECONDS", "300"))
    scheduler_tick_seconds: int = int(os.getenv("SCHEDULER_TICK_SECONDS", "30"))
    job_queue: str = os.getenv("JOB_QUEUE", "default")

settings = Settings()
