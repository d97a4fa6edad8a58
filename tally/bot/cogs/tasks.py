"""
tally.bot.cogs.tasks — Scheduled Jobs
======================================

Jobs that run on ``discord.ext.tasks`` loops, all in UTC:

- **Leaver scan** — daily at 00:00, live (not dry run), reporting into the
  bot jobs channel.
- **Activity report** — daily at 00:01, activity stats then role metrics,
  reporting into the activity reports channel.
- **Healthcheck** — every minute, production only.

A failing run is logged and the loop carries on with its next iteration.
"""

from __future__ import annotations

import logging
from datetime import UTC, time
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from tally.services.healthcheck_service import ping_healthcheck
from tally.services.leaver_scanner import summarize

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)

SCAN_TIME = time(hour=0, minute=0, tzinfo=UTC)
REPORT_TIME = time(hour=0, minute=1, tzinfo=UTC)


class ScheduledJobs(commands.Cog):
    """Cog for the nightly scan/report and the uptime heartbeat."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.leaver_scan_loop.start()
        self.activity_report_loop.start()
        self.healthcheck_loop.start()

    async def cog_unload(self) -> None:
        self.leaver_scan_loop.cancel()
        self.activity_report_loop.cancel()
        self.healthcheck_loop.cancel()

    # -------------------------------------------------------------------
    # Leaver scan: 00:00 UTC
    # -------------------------------------------------------------------
    @tasks.loop(time=SCAN_TIME)
    async def leaver_scan_loop(self):
        """Remove activity records of members who left while we weren't looking."""
        channel = await self.bot.resolve_channel(self.bot.cfg.bot_jobs_channel_id)
        if channel is None:
            logger.error("Bot jobs channel unavailable, skipping leaver scan")
            return

        try:
            await self.bot.reporter.post("Starting activity scan cron", channel)
            report = await self.bot.scanner.scan(channel, dry_run=False)
            logger.info("Leaver scan task complete: %s", summarize(report))
        except Exception:
            logger.exception("Leaver scan task failed", extra={"task": "leaver_scan"})

    @leaver_scan_loop.before_loop
    async def _wait_leaver_scan(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Activity report: 00:01 UTC
    # -------------------------------------------------------------------
    @tasks.loop(time=REPORT_TIME)
    async def activity_report_loop(self):
        """Post the day's activity stats and role metrics."""
        channel = await self.bot.resolve_channel(self.bot.cfg.activity_reports_channel_id)
        if channel is None:
            logger.error("Activity reports channel unavailable, skipping report")
            return

        try:
            await self.bot.run_activity_report(channel)
        except Exception:
            logger.exception("Activity report task failed", extra={"task": "activity_report"})

    @activity_report_loop.before_loop
    async def _wait_activity_report(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Healthcheck: every minute
    # -------------------------------------------------------------------
    @tasks.loop(minutes=1)
    async def healthcheck_loop(self):
        try:
            await ping_healthcheck(self.bot.cfg)
        except Exception:
            logger.exception("Healthcheck ping failed", extra={"task": "healthcheck"})

    @healthcheck_loop.before_loop
    async def _wait_healthcheck(self):
        await self.bot.wait_until_ready()


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(ScheduledJobs(bot))
