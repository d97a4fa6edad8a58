"""
tally.services.activity_stats_service — Windowed Activity Snapshots
====================================================================

Counts how many current guild members were active within each lookback
window (1, 2, 7, 14, 30, 60, 90 days by default) and how many of those
hold each tracked role.  Every run writes one new ``activity_stats`` row;
rows are never updated or deduplicated, so the table is a time series.

Windows are cumulative: a member active yesterday is counted in every
window from ``1d`` upward.  A live member with no activity record is
excluded and logged, as upstream bookkeeping should never allow it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from discord.abc import Messageable
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from tally.config import TrackedRoles
from tally.constants import DEFAULT_ACTIVITY_WINDOWS
from tally.database.engine import get_session, run_db
from tally.database.models import ActivityRecord, ActivityStatsSnapshot
from tally.engine.overlap import NestedLoopOverlap, OverlapStrategy
from tally.engine.windows import (
    cutoff_for,
    friendly_date,
    is_active_since,
    utcnow,
    window_label,
)
from tally.errors import ConfigurationError, MembershipLookupError, PersistenceError
from tally.services.activity_ledger import ActivityLedger
from tally.services.membership import MembershipOracle
from tally.services.reporter import BatchReporter

logger = logging.getLogger(__name__)

ROLE_LABELS: dict[str, str] = {
    "onboarded": "Onboarded",
    "ps2_verified": "PS2 Verified",
    "albion_registered": "Albion Registered",
}


# ---------------------------------------------------------------------------
# Persistence (sync, call via run_db)
# ---------------------------------------------------------------------------
def persist_activity_stats(engine: Engine, windows: dict[str, dict]) -> ActivityStatsSnapshot:
    """Insert one snapshot holding every window bucket."""
    logger.info("Persisting activity stats...")
    try:
        with get_session(engine) as session:
            snapshot = ActivityStatsSnapshot(windows=windows)
            session.add(snapshot)
            session.flush()
            session.refresh(snapshot)
            session.expunge(snapshot)
    except SQLAlchemyError as exc:
        error = f"Error persisting activity stats! Error: {exc}"
        logger.error(error)
        raise PersistenceError(error) from exc

    logger.info("Activity stats persisted successfully (id=%s)", snapshot.id)
    return snapshot


def get_latest_activity_stats(engine: Engine) -> ActivityStatsSnapshot | None:
    with get_session(engine) as session:
        snapshot = session.scalar(
            select(ActivityStatsSnapshot).order_by(ActivityStatsSnapshot.id.desc()).limit(1)
        )
        session.expunge_all()
    return snapshot


# ---------------------------------------------------------------------------
# Pure calculation
# ---------------------------------------------------------------------------
def calculate_window(
    members: Sequence[Any],
    records: dict[int, ActivityRecord],
    days: int,
    tracked_roles: dict[str, int],
    overlap: OverlapStrategy,
    now: datetime,
) -> dict[str, Any]:
    """Bucket for one window: ``{"total": n, "roles": {key: n}}``."""
    cutoff = cutoff_for(days, now)
    actives = [
        member for member in members
        if member.id in records
        and is_active_since(records[member.id].last_activity_at, cutoff)
    ]
    counts = overlap.count_by_role(actives, tracked_roles.values())
    bucket = {
        "total": len(actives),
        "roles": {key: counts[role_id] for key, role_id in tracked_roles.items()},
    }
    logger.info("Activity stats for %d days: %s", days, bucket)
    return bucket


def format_activity_stats(windows: dict[str, dict], as_of: datetime) -> str:
    lines = [
        "## Activity Report:",
        f"Stats as of {friendly_date(as_of)}. Active members per lookback window.",
    ]
    for label, bucket in windows.items():
        roles = ", ".join(
            f"{ROLE_LABELS.get(key, key)}: {count}"
            for key, count in bucket["roles"].items()
        )
        lines.append(f"- Active <{label}: **{bucket['total']}** ({roles})")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------
class ActivityStatsCalculator:
    """Builds and persists one :class:`ActivityStatsSnapshot` per run."""

    def __init__(
        self,
        engine: Engine,
        ledger: ActivityLedger,
        oracle: MembershipOracle,
        reporter: BatchReporter,
        guild_id: int,
        roles: TrackedRoles,
        windows: Iterable[int] = DEFAULT_ACTIVITY_WINDOWS,
        overlap: OverlapStrategy | None = None,
    ) -> None:
        self.engine = engine
        self.ledger = ledger
        self.oracle = oracle
        self.reporter = reporter
        self.guild_id = guild_id
        self.roles = roles
        self.windows = tuple(windows)
        self.overlap = overlap or NestedLoopOverlap()

    def tracked_role_ids(self) -> dict[str, int]:
        role_ids = self.roles.as_dict()
        missing = [key for key, role_id in role_ids.items() if not role_id]
        if missing:
            raise ConfigurationError(
                "One or more role IDs are missing from the configuration: "
                + ", ".join(missing)
            )
        return role_ids  # type: ignore[return-value]

    async def generate(self, now: datetime | None = None) -> ActivityStatsSnapshot:
        """Compute every window and persist them in a single write."""
        now = now or utcnow()
        tracked_roles = self.tracked_role_ids()

        guild = self.oracle.get_guild(self.guild_id)
        if guild is None:
            raise MembershipLookupError(f"Could not find guild with ID {self.guild_id}")

        members = [
            m for m in await self.oracle.fetch_all_members(guild)
            if not getattr(m, "bot", False)
        ]
        records = {r.member_id: r for r in await run_db(self.ledger.find_all)}

        for member in members:
            if member.id not in records:
                logger.error(
                    "No activity record found for member %s (%s)! This should not occur!",
                    getattr(member, "display_name", member.id), member.id,
                )

        windows = {
            window_label(days): calculate_window(
                members, records, days, tracked_roles, self.overlap, now,
            )
            for days in self.windows
        }
        return await run_db(persist_activity_stats, self.engine, windows)

    async def run(
        self, channel: Messageable, now: datetime | None = None,
    ) -> ActivityStatsSnapshot | None:
        """Generate, then post exactly one message: the report or the error."""
        now = now or utcnow()
        try:
            snapshot = await self.generate(now)
        except Exception as exc:
            error = f"Error generating activity stats. Error: {exc}"
            logger.exception(error)
            await self.reporter.post(error, channel)
            return None

        await self.reporter.post(format_activity_stats(snapshot.windows, now), channel)
        return snapshot
