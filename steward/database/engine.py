"""
steward.database.engine — Database Connection & Async Helper
=============================================================

**Why this file exists:**
Submission handling is ``async`` (the image classifier and webhooks are
network calls), while SQLAlchemy + psycopg2 is **synchronous**.  Calling the
DB directly from a coroutine would stall the event loop for every request.

The bridge:

    1. The pipeline coroutine calls ``await run_db(some_function, engine, ...)``.
    2. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()``.
    3. The unit of work runs in its own session on that thread.
    4. The result is awaited back in the coroutine.

Usage::

    from steward.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()   # DATABASE_URL from the environment
    init_db(engine)               # tables + default badges

    result = await run_db(check_eligibility, engine, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from steward.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    The pool keeps five connections open, allows ten more under load,
    gives up after ten seconds waiting for one and recycles connections
    hourly; ``pool_pre_ping`` drops connections the server has closed.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; add it to .env (see .env.example)."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info(
        "Database engine ready (%s on %s)", engine.url.get_backend_name(), engine.url.host,
    )
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, *, seed: bool = True) -> None:
    """Create all tables defined in :mod:`steward.database.models`.

    Safe to call on every startup (``CREATE TABLE IF NOT EXISTS`` under the
    hood).  With *seed* the default badge catalogue is inserted; seeding is
    idempotent and never overwrites admin edits.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema checked (%d tables)", len(Base.metadata.tables))

    if seed:
        from steward.database.seed import seed_default_badges

        seed_default_badges(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            add_points(session, user_id, 5, "Created post")
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await the synchronous unit of work *func* on the default executor.

    ::

        standing = await run_db(get_standing, engine, user_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
