"""
tally.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- activity        — One row per member: last observed activity timestamp
- join_leave      — Join / leave / rejoin bookkeeping per member
- activity_stats  — One row per stats run: windowed active counts (JSON)
- role_metrics    — One row per day: active holders per tracked role (JSON)
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Tally ORM models."""


# ---------------------------------------------------------------------------
# ActivityRecord: one row per Discord member with observed activity
# ---------------------------------------------------------------------------
class ActivityRecord(Base):
    """Last time a member was seen doing something in the guild.

    Created on first observed activity, refreshed on every subsequent one,
    and deleted once the member is confirmed absent from the roster.
    """
    __tablename__ = "activity"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, unique=True, index=True,
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityRecord member={self.member_id} name={self.display_name!r} "
            f"last={self.last_activity_at}>"
        )


# ---------------------------------------------------------------------------
# JoinLeaveRecord: join / leave history, never deleted
# ---------------------------------------------------------------------------
class JoinLeaveRecord(Base):
    __tablename__ = "join_leave"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, unique=True, index=True,
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )
    rejoined: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rejoin_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<JoinLeaveRecord member={self.member_id} rejoins={self.rejoin_count} "
            f"left={self.left_at}>"
        )


# ---------------------------------------------------------------------------
# ActivityStatsSnapshot: immutable, one per generation run
# ---------------------------------------------------------------------------
class ActivityStatsSnapshot(Base):
    """Windowed active-member counts captured by one stats run.

    ``windows`` maps a window label to its bucket::

        {"7d": {"total": 42, "roles": {"onboarded": 40, "ps2_verified": 12,
                                        "albion_registered": 9}}}
    """
    __tablename__ = "activity_stats"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    windows: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ActivityStatsSnapshot id={self.id} windows={sorted(self.windows or {})}>"


# ---------------------------------------------------------------------------
# RoleMetricsSnapshot: exactly one per calendar day
# ---------------------------------------------------------------------------
class RoleMetricsSnapshot(Base):
    """Active holders of the onboarded, community game, and rec game roles.

    ``day_key`` is unique; a rerun on the same day replaces the row.
    """
    __tablename__ = "role_metrics"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    day_key: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    onboarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    community_games: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    rec_games: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RoleMetricsSnapshot day={self.day_key} onboarded={self.onboarded}>"
