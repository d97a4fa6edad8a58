"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from tally.database.models import Base

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Tally table.

    StaticPool keeps one shared connection so ``run_db`` worker threads see
    the same database as the test body.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Discord doubles
# ---------------------------------------------------------------------------
def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.get_event_loop_policy().new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_channel(channel_id: int = 555):
    """A text channel whose ``send`` returns editable/deletable messages.

    Every returned message is kept on ``channel.messages`` in send order.
    """
    channel = MagicMock()
    channel.id = channel_id
    channel.messages = []

    async def _send(content):
        message = MagicMock()
        message.content = content
        message.edit = AsyncMock()
        message.delete = AsyncMock()
        channel.messages.append(message)
        return message

    channel.send = AsyncMock(side_effect=_send)
    return channel


def sent_texts(channel) -> list[str]:
    """Every message body posted to a :func:`make_channel` double, in order."""
    return [c.args[0] for c in channel.send.call_args_list]


def make_role(role_id: int, name: str):
    return SimpleNamespace(id=role_id, name=name)


def make_member(member_id: int, *role_ids: int, name: str | None = None, bot: bool = False):
    return SimpleNamespace(
        id=member_id,
        display_name=name or f"User{member_id}",
        bot=bot,
        roles=[SimpleNamespace(id=r) for r in role_ids],
    )


class FakeOracle:
    """In-memory :class:`MembershipOracle` over a fixed roster."""

    def __init__(self, members=(), roles=(), guild=True, errors=None):
        self.members = {m.id: m for m in members}
        self.roles = list(roles)
        self.guild = SimpleNamespace(id=1) if guild else None
        self.errors = dict(errors or {})
        self.lookups: list[int] = []

    def get_guild(self, guild_id):
        return self.guild

    async def get_member(self, guild_id, member_id):
        self.lookups.append(member_id)
        if member_id in self.errors:
            raise self.errors[member_id]
        return self.members.get(member_id)

    async def get_all_roles(self, guild):
        return list(self.roles)

    async def fetch_all_members(self, guild):
        return list(self.members.values())
