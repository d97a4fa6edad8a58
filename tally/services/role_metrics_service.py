"""
tally.services.role_metrics_service — Daily Role Participation Report
======================================================================

Counts, for the onboarded role and every community/rec game role, how many
members both hold the role and were active within ``active_day_threshold``
days, stores the result as the day's ``role_metrics`` row, and posts a
percentage-annotated report.

Steps:
    1. Resolve the guild (report "Guild not found!" and stop if missing).
    2. Classify the guild's roles by name (:mod:`tally.engine.roles`).
    3. Load activity records inside the threshold.
    4. Fetch every member, keep the active ones, count role holders, and
       replace the day's snapshot in one transaction.
    5. Re-read the snapshot, sort each section by count, and post it.

Any exception in steps 1–5 is reported as a single
``Error enumerating role metrics. Error: …`` message.  The delete+insert
is the last write of a run, so a failure earlier leaves yesterday's and
today's rows untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from discord.abc import Messageable
from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from tally.constants import (
    DEFAULT_ACTIVE_DAY_THRESHOLD,
    DEFAULT_COMMUNITY_GAMES,
    ONBOARDED_ROLE_NAME,
    REC_ROLE_PREFIX,
)
from tally.database.engine import get_session, run_db
from tally.database.models import ActivityRecord, RoleMetricsSnapshot
from tally.engine.overlap import NestedLoopOverlap, OverlapStrategy
from tally.engine.roles import RoleClassification, classify_roles
from tally.engine.windows import cutoff_for, day_key, friendly_date, utcnow
from tally.errors import PersistenceError
from tally.services.activity_ledger import ActivityLedger
from tally.services.membership import MembershipOracle
from tally.services.reporter import BatchReporter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Persistence (sync, call via run_db)
# ---------------------------------------------------------------------------
def replace_role_metrics_snapshot(
    engine: Engine,
    day: date,
    onboarded: int,
    community_games: dict[str, int],
    rec_games: dict[str, int],
) -> RoleMetricsSnapshot:
    """Delete any snapshot for *day* and insert the new one atomically."""
    try:
        with get_session(engine) as session:
            deleted = session.execute(
                delete(RoleMetricsSnapshot).where(RoleMetricsSnapshot.day_key == day)
            ).rowcount  # type: ignore[attr-defined]
            if deleted:
                logger.info("Replacing %d existing role metrics snapshot(s) for %s", deleted, day)

            snapshot = RoleMetricsSnapshot(
                day_key=day,
                onboarded=onboarded,
                community_games=community_games,
                rec_games=rec_games,
            )
            session.add(snapshot)
            session.flush()
            session.refresh(snapshot)
            session.expunge(snapshot)
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Error persisting role metrics! Error: {exc}") from exc
    return snapshot


def get_role_metrics_snapshot(engine: Engine, day: date) -> RoleMetricsSnapshot | None:
    with get_session(engine) as session:
        snapshot = session.scalar(
            select(RoleMetricsSnapshot).where(RoleMetricsSnapshot.day_key == day)
        )
        session.expunge_all()
    return snapshot


# ---------------------------------------------------------------------------
# Report formatting
# ---------------------------------------------------------------------------
def sort_by_count(counts: dict[str, int]) -> dict[str, int]:
    """Highest count first; ties keep their original order."""
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))


def percentage(count: int, onboarded: int) -> str:
    """``count / onboarded`` as a one-decimal percentage string, halves rounded up."""
    if onboarded <= 0:
        return "0.0"
    value = Decimal(count * 100) / Decimal(onboarded)
    return str(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_role_metrics_report(
    snapshot: RoleMetricsSnapshot,
    active_day_threshold: int = DEFAULT_ACTIVE_DAY_THRESHOLD,
) -> str:
    onboarded = snapshot.onboarded

    def section(counts: dict[str, int]) -> list[str]:
        return [
            f"  - {name}: **{count}** ({percentage(count, onboarded)}%)"
            for name, count in sort_by_count(counts or {}).items()
        ]

    lines = [
        "## Role Metrics Report:",
        f"Stats as of {friendly_date(snapshot.day_key)}. All statistics state members "
        f"who have the role AND are active <{active_day_threshold}d.",
        f"- Onboarded: **{onboarded}**",
        "- Community Games",
        *section(snapshot.community_games),
        "- Rec Games",
        *section(snapshot.rec_games),
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Enumerator
# ---------------------------------------------------------------------------
class RoleMetricsEnumerator:
    """Produces the day's :class:`RoleMetricsSnapshot` and its report."""

    def __init__(
        self,
        engine: Engine,
        ledger: ActivityLedger,
        oracle: MembershipOracle,
        reporter: BatchReporter,
        guild_id: int,
        onboarded_role_name: str = ONBOARDED_ROLE_NAME,
        community_games: Iterable[str] = DEFAULT_COMMUNITY_GAMES,
        rec_role_prefix: str = REC_ROLE_PREFIX,
        active_day_threshold: int = DEFAULT_ACTIVE_DAY_THRESHOLD,
        overlap: OverlapStrategy | None = None,
    ) -> None:
        self.engine = engine
        self.ledger = ledger
        self.oracle = oracle
        self.reporter = reporter
        self.guild_id = guild_id
        self.onboarded_role_name = onboarded_role_name
        self.community_games = tuple(community_games)
        self.rec_role_prefix = rec_role_prefix
        self.active_day_threshold = active_day_threshold
        self.overlap = overlap or NestedLoopOverlap()

    async def start_enumeration(
        self, channel: Messageable, now: datetime | None = None,
    ) -> None:
        """Run the whole job, posting the report or one error to *channel*."""
        logger.info("Starting role metrics enumeration")
        now = now or utcnow()

        try:
            guild = self.oracle.get_guild(self.guild_id)
            if guild is None:
                error = "Guild not found!"
                logger.error(error)
                await self.reporter.post(error, channel)
                return

            classification = await self.enumerate_role_ids(guild)
            await self.enumerate_role_metrics(classification, guild, now)
            snapshot = await run_db(get_role_metrics_snapshot, self.engine, day_key(now))
        except Exception as exc:
            error = f"Error enumerating role metrics. Error: {exc}"
            logger.exception(error)
            await self.reporter.post(error, channel)
            return

        if snapshot is None:
            error = "No role metrics found!"
            logger.error(error)
            await self.reporter.post(error, channel)
            return

        report = format_role_metrics_report(snapshot, self.active_day_threshold)
        await self.reporter.post(report, channel)
        logger.info(report)
        logger.info("Role metrics enumeration completed.")

    async def enumerate_role_ids(self, guild) -> RoleClassification:
        logger.info("Starting role ID enumeration")
        roles = await self.oracle.get_all_roles(guild)
        return classify_roles(
            roles,
            onboarded_name=self.onboarded_role_name,
            community_games=self.community_games,
            rec_prefix=self.rec_role_prefix,
        )

    async def get_active_members(self, now: datetime | None = None) -> list[ActivityRecord]:
        """Activity records inside the threshold."""
        logger.info("Getting active members")
        cutoff = cutoff_for(self.active_day_threshold, now)
        return await run_db(self.ledger.find_active, cutoff)

    async def enumerate_role_metrics(
        self,
        classification: RoleClassification,
        guild,
        now: datetime | None = None,
    ) -> RoleMetricsSnapshot:
        logger.info("Starting role metrics enumeration...")
        now = now or utcnow()

        members = await self.oracle.fetch_all_members(guild)
        if members is None:
            raise RuntimeError("Discord Guild Members not found!")

        active_ids = {record.member_id for record in await self.get_active_members(now)}
        actives = [member for member in members if member.id in active_ids]

        counts = self.overlap.count_by_role(actives, classification.tracked_role_ids())
        community_games = {
            role.name: counts[role_id]
            for role_id, role in classification.community_game_roles.items()
        }
        rec_games = {
            role.name: counts[role_id]
            for role_id, role in classification.rec_game_roles.items()
        }

        snapshot = await run_db(
            replace_role_metrics_snapshot,
            self.engine,
            day_key(now),
            counts[classification.onboarded_role.id],
            community_games,
            rec_games,
        )
        logger.info("Role metrics enumeration completed.")
        return snapshot
