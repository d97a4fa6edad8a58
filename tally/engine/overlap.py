"""
tally.engine.overlap — Active Role-Holder Counting
===================================================

Both report jobs ask the same question: *of these active members, how
many hold role X?*  The answer is hidden behind :class:`OverlapStrategy`
so the straightforward O(members × roles) scan can be swapped for the
single-pass index once the roster grows.

Members are anything exposing ``.roles`` as an iterable of objects with
an ``.id`` (``discord.Member`` in production, ``SimpleNamespace`` in
tests).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any, Protocol


def has_role(member: Any, role_id: int) -> bool:
    """Membership test against the member's cached role list."""
    return any(role.id == role_id for role in member.roles)


class OverlapStrategy(Protocol):
    def count_by_role(
        self, members: Sequence[Any], role_ids: Iterable[int],
    ) -> dict[int, int]:
        """Return ``{role_id: number of members holding it}``."""
        ...


class NestedLoopOverlap:
    """Test every member against every role.  Fine at community scale."""

    def count_by_role(
        self, members: Sequence[Any], role_ids: Iterable[int],
    ) -> dict[int, int]:
        return {
            role_id: sum(1 for member in members if has_role(member, role_id))
            for role_id in role_ids
        }


class IndexedOverlap:
    """One pass over the members building a role → holder count index."""

    def count_by_role(
        self, members: Sequence[Any], role_ids: Iterable[int],
    ) -> dict[int, int]:
        index: Counter[int] = Counter()
        for member in members:
            # A member can't hold the same role twice; dedupe anyway.
            index.update({role.id for role in member.roles})
        return {role_id: index.get(role_id, 0) for role_id in role_ids}
