"""
tally.bot.cogs.reports — On-Demand Scan & Report Commands
==========================================================

Slash commands that run the nightly jobs by hand:

- ``/activity-scan [dry-run]`` — reconcile the activity ledger against the
  guild roster in the invoking channel.  Dry run is the default.
- ``/activity-report`` — activity stats plus role metrics, posted to the
  activity reports channel.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from tally.constants import SCAN_DRY_RUN_BANNER

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)


class Reports(commands.Cog, name="Reports"):
    """Manual triggers for the leaver scan and the activity report."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /activity-scan
    # -------------------------------------------------------------------
    @app_commands.command(
        name="activity-scan",
        description="Scans activity data and removes leavers",
    )
    @app_commands.describe(dry_run="Report leavers without removing their records")
    @app_commands.rename(dry_run="dry-run")
    @app_commands.guild_only()
    async def activity_scan(
        self,
        interaction: discord.Interaction,
        dry_run: bool = True,
    ) -> None:
        await interaction.response.send_message("Initiated activity scan.")

        channel = interaction.channel
        if channel is None:
            logger.error("Activity scan invoked without a channel")
            return

        if dry_run:
            await self.bot.reporter.post(SCAN_DRY_RUN_BANNER, channel)

        try:
            await self.bot.scanner.scan(channel, dry_run=dry_run)
        except Exception:
            logger.exception("Activity scan command failed", extra={"command": "activity-scan"})

        logger.info("Activity scan command executed by %s", interaction.user.id)

    # -------------------------------------------------------------------
    # /activity-report
    # -------------------------------------------------------------------
    @app_commands.command(
        name="activity-report",
        description="Run the Activity Report.",
    )
    @app_commands.guild_only()
    async def activity_report(self, interaction: discord.Interaction) -> None:
        logger.info("Executing activity report via command")
        await interaction.response.send_message("Starting Activity Report via command...")

        channel = await self.bot.resolve_channel(self.bot.cfg.activity_reports_channel_id)
        if channel is None:
            channel = interaction.channel
        if channel is None:
            logger.error("No channel available for the activity report")
            return

        try:
            await self.bot.run_activity_report(channel)
        except Exception:
            logger.exception("Activity report command failed", extra={"command": "activity-report"})


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Reports(bot))
