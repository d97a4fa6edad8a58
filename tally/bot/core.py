"""
tally.bot.core — Bot Instance & Cog Loader
===========================================

Defines :class:`TallyBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``).
2. Builds the services every cog uses: the activity ledger, the Discord
   membership oracle, the batch reporter, the leaver scanner, and the two
   report jobs.
3. Loads every cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped when
   ``DEV_GUILD_ID`` is set, global otherwise).
"""

from __future__ import annotations

import logging
import os

import discord
from discord.abc import Messageable
from discord.ext import commands
from sqlalchemy import Engine

from tally.config import TallyConfig
from tally.services.activity_ledger import ActivityLedger
from tally.services.activity_stats_service import ActivityStatsCalculator
from tally.services.leaver_scanner import LeaverScanner
from tally.services.membership import DiscordMembershipOracle
from tally.services.reporter import BatchReporter
from tally.services.role_metrics_service import RoleMetricsEnumerator

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "tally.bot.cogs.activity",
    "tally.bot.cogs.membership",
    "tally.bot.cogs.reports",
    "tally.bot.cogs.tasks",
]

REPORT_STARTED = "Starting daily activity enumeration..."


class TallyBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`TallyConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: TallyConfig, engine: Engine) -> None:
        # GUILD_MEMBERS is privileged (enable it in the Developer Portal):
        # join/leave events and full member fetches depend on it.
        intents = discord.Intents.default()
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} activity tracker",
        )

        self.cfg = cfg
        self.engine = engine

        self.ledger = ActivityLedger(engine)
        self.oracle = DiscordMembershipOracle(self)
        self.reporter = BatchReporter()

        self.scanner = LeaverScanner(
            self.ledger,
            self.oracle,
            self.reporter,
            guild_id=cfg.guild_id,
            progress_interval=cfg.scan_progress_interval,
        )
        self.activity_stats = ActivityStatsCalculator(
            engine,
            self.ledger,
            self.oracle,
            self.reporter,
            guild_id=cfg.guild_id,
            roles=cfg.roles,
            windows=cfg.activity_windows,
        )
        self.role_metrics = RoleMetricsEnumerator(
            engine,
            self.ledger,
            self.oracle,
            self.reporter,
            guild_id=cfg.guild_id,
            onboarded_role_name=cfg.onboarded_role_name,
            community_games=cfg.community_games,
            rec_role_prefix=cfg.rec_role_prefix,
            active_day_threshold=cfg.active_day_threshold,
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions; one broken cog doesn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        if self.get_guild(self.cfg.guild_id) is None:
            logger.warning(
                "Primary guild %d not found — scans and reports will fail",
                self.cfg.guild_id,
            )

    # -----------------------------------------------------------------------
    # Helpers shared by cogs
    # -----------------------------------------------------------------------
    async def resolve_channel(self, channel_id: int | None) -> Messageable | None:
        """Return a text channel by ID, fetching it if it isn't cached."""
        if not channel_id:
            return None
        channel = self.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.fetch_channel(channel_id)
            except discord.HTTPException:
                logger.exception("Failed to fetch channel with ID %s", channel_id)
                return None
        if not isinstance(channel, Messageable):
            logger.error("Channel with ID %s is not a text channel", channel_id)
            return None
        return channel

    async def run_activity_report(self, channel: Messageable) -> None:
        """Activity stats followed by role metrics, under one status line."""
        status = await self.reporter.open_status(channel, REPORT_STARTED)
        try:
            await self.activity_stats.run(channel)
            await self.role_metrics.start_enumeration(channel)
        finally:
            await self.reporter.delete_status(status)
