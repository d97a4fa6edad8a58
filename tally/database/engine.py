"""
tally.database.engine — Database Connection & Async Helper
===========================================================

Discord bots run on an ``asyncio`` event loop while SQLAlchemy + psycopg2
is synchronous.  Every query Tally issues is therefore a plain sync
function that gets shipped to a worker thread with :func:`run_db`:

    1. A listener, command, or scheduled job fires (async world).
    2. It calls ``await run_db(some_function, arg1, arg2)``.
    3. ``run_db`` runs the function via ``asyncio.to_thread()``.
    4. The result is awaited back on the loop.

Usage::

    from tally.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    ledger = ActivityLedger(engine)
    await run_db(ledger.touch, member.id, member.display_name)
    leavers = [r for r in await run_db(ledger.find_all) if r.member_id not in roster]
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session

from tally.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
# Connection pool for a single bot process talking to PostgreSQL.  SQLite
# (tests, local runs) keeps SQLAlchemy's default pool.
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


def database_url(fallback: str | None = None) -> str:
    """The ``DATABASE_URL`` env var, else *fallback*.

    Shared by the bot and ``alembic/env.py`` so both always target the same
    database.

    Raises
    ------
    RuntimeError
        If neither is set.
    """
    url = os.getenv("DATABASE_URL") or fallback
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )
    return url


def create_db_engine(url: str | None = None, **overrides) -> Engine:
    """Build the :class:`Engine` every ledger and job shares.

    *url* defaults to :func:`database_url`.  Non-SQLite backends get
    :data:`POOL_OPTIONS`; *overrides* win over both.
    """
    url = url or database_url()
    options: dict = {"echo": False, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(POOL_OPTIONS)
    options.update(overrides)

    engine = create_engine(url, **options)
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`tally.database.models`.

    Safe to call on every startup.  Production schemas are managed by
    Alembic (``alembic upgrade head``); ``create_all`` covers dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Usage::

        with get_session(engine) as session:
            session.add(ActivityRecord(member_id=123, display_name="drew"))
    """
    session = Session(engine)
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
    """Run a **synchronous** database function on a background thread.

    Every DB call made from a cog, command, or job goes through here::

        result = await run_db(ledger.find_by_member_id, member_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
