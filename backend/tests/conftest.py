from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import arena.models  # registers every table
from arena.db import Base
from arena.models.user import User
from arena.models.challenge import Challenge
from arena.models.contest import Contest
from arena.services.answer_codec import hash_raw_answer

NOW = datetime(2026, 10, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest_asyncio.fixture
async def engine():
    # fresh in-memory database per test; StaticPool keeps the single connection alive
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def make_user(session_factory):
    async def _make(**kw) -> User:
        kw.setdefault("username", f"user_{uuid.uuid4().hex[:8]}")
        async with session_factory() as s:
            u = User(**kw)
            s.add(u)
            await s.commit()
            return u
    return _make


@pytest.fixture
def make_challenge(session_factory):
    async def _make(answer: str = "flag{hello}", rules: dict | None = None, **kw) -> Challenge:
        kw.setdefault("title", "Find the flag")
        kw.setdefault("difficulty", "easy")
        kw.setdefault("expected_time_sec", 300)
        kw.setdefault("base_points", 100)
        async with session_factory() as s:
            ch = Challenge(answer_hash=hash_raw_answer(answer, rules), normalization_rules=rules or {}, **kw)
            s.add(ch)
            await s.commit()
            return ch
    return _make


@pytest.fixture
def make_contest(session_factory):
    async def _make(challenges: list[Challenge], starts_at: datetime | None = None,
                    duration: timedelta = timedelta(hours=2), **kw) -> Contest:
        starts_at = starts_at or NOW + timedelta(hours=1)
        kw.setdefault("title", "Weekly contest")
        kw.setdefault("difficulty", "mixed")
        async with session_factory() as s:
            c = Contest(
                starts_at=starts_at,
                ends_at=starts_at + duration,
                challenge_ids=[str(ch.id) for ch in challenges],
                **kw,
            )
            s.add(c)
            await s.commit()
            return c
    return _make
