"""
tests/conftest.py — Fixtures & Factories
=========================================

Every test that touches the database gets a fresh SQLite engine (in-memory
by default, on disk where two sessions need separate connections).
Helpers that tests import directly (``run_async``, ``make_user``,
``make_badge``) live here too.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from steward.database.models import Badge, Base, User


# ---------------------------------------------------------------------------
# SQLite type shims
# ---------------------------------------------------------------------------
# Production runs on PostgreSQL.  On SQLite, JSONB columns are stored as
# TEXT (the JSON bind/result processing still applies) and BIGINT primary
# keys must be INTEGER to get rowid autoincrement.
@compiles(JSONB, "sqlite")
def _jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def run_async(coro):
    """Drive *coro* to completion on a throwaway event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine():
    """Empty schema, no seeded badges.

    StaticPool keeps one connection, so worker threads started by
    ``run_db`` see the same in-memory database as the test body.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """On-disk database with a real connection per session.

    For tests where two sessions must not share one connection.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'steward.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def make_user(engine: Engine, username: str = "alice", **kwargs) -> int:
    """Insert a user and return its id."""
    with Session(engine) as session:
        user = User(username=username, **kwargs)
        session.add(user)
        session.commit()
        return user.id


def make_badge(
    engine: Engine,
    name: str,
    criteria_type: str,
    value: float,
    *,
    operator: str = ">=",
    timeframe: str = "all-time",
    reward_points: int = 0,
    **kwargs,
) -> int:
    """Insert a badge and return its id."""
    with Session(engine) as session:
        badge = Badge(
            name=name,
            criteria_type=criteria_type,
            criteria_value=value,
            criteria_operator=operator,
            criteria_timeframe=timeframe,
            reward_points=reward_points,
            **kwargs,
        )
        session.add(badge)
        session.commit()
        return badge.id
