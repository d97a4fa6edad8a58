"""
tally.services.membership — Live Roster Lookups
================================================

:class:`MembershipOracle` is the read-only view of the live guild the scan
and report jobs depend on.  :class:`DiscordMembershipOracle` implements it
on top of a connected ``discord.Client``; tests substitute a fake.

"Not found" and "the API failed" are kept apart: :meth:`get_member`
returns ``None`` for a member who has left, and raises
:class:`~tally.errors.MembershipLookupError` for anything transient.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import discord

from tally.errors import MembershipLookupError

logger = logging.getLogger(__name__)


class MembershipOracle(Protocol):
    def get_guild(self, guild_id: int) -> Any | None: ...

    async def get_member(self, guild_id: int, member_id: int) -> Any | None: ...

    async def get_all_roles(self, guild: Any) -> list[Any]: ...

    async def fetch_all_members(self, guild: Any) -> list[Any]: ...


class DiscordMembershipOracle:
    """MembershipOracle backed by the Discord REST API."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    def get_guild(self, guild_id: int) -> discord.Guild | None:
        return self.client.get_guild(guild_id)

    async def get_member(self, guild_id: int, member_id: int) -> discord.Member | None:
        """Fetch the member uncached so departures are seen immediately."""
        guild = self.get_guild(guild_id)
        if guild is None:
            raise MembershipLookupError(f"Could not find guild with ID {guild_id}")

        try:
            return await guild.fetch_member(member_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            error = f"Failed to fetch member with ID {member_id}. Err: {exc}"
            logger.error(error)
            raise MembershipLookupError(error) from exc

    async def get_all_roles(self, guild: discord.Guild) -> list[discord.Role]:
        """Re-fetch every role so renamed or new roles are picked up."""
        try:
            return list(await guild.fetch_roles())
        except discord.HTTPException as exc:
            error = f"Failed to fetch roles from guild {guild.id}. Error: {exc}"
            logger.error(error)
            raise MembershipLookupError(error) from exc

    async def fetch_all_members(self, guild: discord.Guild) -> list[discord.Member]:
        """Page through the whole member list (requires the members intent)."""
        try:
            return [member async for member in guild.fetch_members(limit=None)]
        except discord.HTTPException as exc:
            error = f"Failed to fetch members from guild {guild.id}. Error: {exc}"
            logger.error(error)
            raise MembershipLookupError(error) from exc
