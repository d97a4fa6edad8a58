"""
tally.bot.cogs.activity — Activity Ledger Capture
==================================================

Refreshes a member's ``activity`` row whenever they do something visible in
the primary guild:

- send, edit or delete a message;
- add or remove a reaction (raw events, so old messages count too);
- join, leave or move between voice channels.

Bots, DMs and other guilds are ignored.  Mute/deafen toggles are not
activity: only a change of voice channel is.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from tally.database.engine import run_db
from tally.services.activity_ledger import resolve_display_name

if TYPE_CHECKING:
    from tally.bot.core import TallyBot

logger = logging.getLogger(__name__)


class Activity(commands.Cog, name="Activity"):
    """Keeps ``last_activity_at`` current for every active member."""

    def __init__(self, bot: TallyBot) -> None:
        self.bot = bot

    def _tracked(self, guild: discord.Guild | None) -> bool:
        return guild is not None and guild.id == self.bot.cfg.guild_id

    async def _touch(self, member: discord.abc.User | None, source: str) -> None:
        if member is None or member.bot:
            return

        display_name = resolve_display_name(member)
        if not display_name:
            logger.warning("No display name for member %s, skipping %s", member.id, source)
            return

        try:
            await run_db(self.bot.ledger.touch, member.id, display_name)
        except Exception:
            logger.exception(
                "Error recording activity for %s", member.id,
                extra={"event_type": source, "user_id": member.id},
            )

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if not self._tracked(message.guild):
            return
        await self._touch(message.author, "message_create")

    @commands.Cog.listener()
    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        if not self._tracked(after.guild):
            return
        await self._touch(after.author, "message_update")

    @commands.Cog.listener()
    async def on_message_delete(self, message: discord.Message) -> None:
        if not self._tracked(message.guild):
            return
        await self._touch(message.author, "message_delete")

    # -------------------------------------------------------------------
    # Reactions
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id != self.bot.cfg.guild_id:
            return
        await self._touch(payload.member, "reaction_add")

    @commands.Cog.listener()
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        # Remove payloads carry no member object.
        if payload.guild_id != self.bot.cfg.guild_id:
            return
        guild = self.bot.get_guild(payload.guild_id)
        member = guild.get_member(payload.user_id) if guild else None
        if member is None:
            logger.debug("Reaction remover %s not cached, skipping", payload.user_id)
            return
        await self._touch(member, "reaction_remove")

    # -------------------------------------------------------------------
    # Voice
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if not self._tracked(member.guild):
            return
        before_id = before.channel.id if before.channel else None
        after_id = after.channel.id if after.channel else None
        if before_id == after_id:
            return
        await self._touch(member, "voice_state_update")


async def setup(bot: TallyBot) -> None:
    await bot.add_cog(Activity(bot))
