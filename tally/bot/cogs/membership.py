"""
tally.bot.cogs.membership — Member Join/Leave Bookkeeping
==========================================================

Handles GUILD_MEMBER_ADD and GUILD_MEMBER_REMOVE gateway events.  Requires
the GUILD_MEMBERS privileged intent.

- Join: upsert the member's ``join_leave`` row (rejoins are counted).
- Leave: stamp ``left_at`` and drop the member's ``activity`` row right
  away, so the nightly leaver scan only has to catch events the bot missed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from tally.database.engine import run_db
from tally.services.join_leave_service import record_join, record_leave

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Records joins and leaves for the primary guild."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        try:
            if member.bot or member.guild.id != self.bot.cfg.guild_id:
                return

            await run_db(record_join, self.bot.engine, member.id, member.display_name)

        except Exception:
            logger.exception(
                "Error processing member_join for %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        try:
            if member.bot or member.guild.id != self.bot.cfg.guild_id:
                return

            await run_db(record_leave, self.bot.engine, member.id)

            removed = await run_db(self.bot.ledger.remove_by_member_id, member.id)
            if removed is None:
                logger.warning(
                    "No activity record was found for leaver %s (%s), "
                    "likely left immediately after joining.",
                    member.display_name, member.id,
                )
            else:
                logger.info(
                    "Removed activity record for leaver %s (%s)",
                    removed.display_name, removed.member_id,
                )

        except Exception:
            logger.exception(
                "Error processing member_leave for %s", member.id,
                extra={"event_type": "member_leave", "user_id": member.id},
            )


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Membership(bot))
