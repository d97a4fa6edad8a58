"""
tally.engine.roles — Role Classification by Naming Convention
==============================================================

The role-metrics report tracks three kinds of roles, all identified by
name rather than ID so staff can create new game roles without touching
configuration:

* **Onboarded** — exactly one role with the configured name.
* **Community games** — roles whose name is on the configured allow-list.
* **Rec games** — roles named ``Rec/<Game>``.  A second separator marks a
  sub-group role (``Rec/PS2/Leader``) which is not a game and is skipped.

The predicates take plain strings so they can be tested without any
Discord objects; :func:`classify_roles` applies them to anything with
``.id`` and ``.name``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from tally.constants import (
    DEFAULT_COMMUNITY_GAMES,
    ONBOARDED_ROLE_NAME,
    REC_ROLE_PREFIX,
    ROLE_SEPARATOR,
)
from tally.errors import ConfigurationError


class NamedRole(Protocol):
    id: int
    name: str


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------
def is_community_game_role(name: str, community_games: Iterable[str]) -> bool:
    """Exact, case-sensitive match against the allow-list."""
    return name in set(community_games)


def is_rec_game_role(
    name: str,
    prefix: str = REC_ROLE_PREFIX,
    separator: str = ROLE_SEPARATOR,
) -> bool:
    """``Rec/BestGameEver`` → True; ``Rec/PS2/Leader`` and ``Rec`` → False."""
    return name.startswith(prefix) and name.count(separator) == 1


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class RoleClassification:
    """Roles the role-metrics job counts, keyed by role ID."""

    onboarded_role: NamedRole
    community_game_roles: dict[int, NamedRole] = field(default_factory=dict)
    rec_game_roles: dict[int, NamedRole] = field(default_factory=dict)

    def tracked_role_ids(self) -> list[int]:
        return [
            self.onboarded_role.id,
            *self.community_game_roles,
            *self.rec_game_roles,
        ]


def classify_roles(
    roles: Sequence[NamedRole],
    *,
    onboarded_name: str = ONBOARDED_ROLE_NAME,
    community_games: Iterable[str] = DEFAULT_COMMUNITY_GAMES,
    rec_prefix: str = REC_ROLE_PREFIX,
) -> RoleClassification:
    """Split a guild's roles into the three tracked groups.

    Raises
    ------
    ConfigurationError
        If there are no roles, the onboarded role is missing or ambiguous,
        no community game role exists, or no role carries the rec prefix.
    """
    if not roles:
        raise ConfigurationError("Roles not found!")

    onboarded = [role for role in roles if role.name == onboarded_name]
    if not onboarded:
        raise ConfigurationError(f"{onboarded_name} role not found!")
    if len(onboarded) > 1:
        raise ConfigurationError(f"Multiple {onboarded_name} roles found!")

    allow_list = set(community_games)
    community = {
        role.id: role for role in roles
        if is_community_game_role(role.name, allow_list)
    }
    if not community:
        raise ConfigurationError("Community game roles not found!")

    # Prefix match first so a guild with only sub-group roles still counts
    # as "has rec roles" and reports an empty section.
    prefixed = [role for role in roles if role.name.startswith(rec_prefix)]
    if not prefixed:
        raise ConfigurationError("Rec game roles not found!")
    rec = {
        role.id: role for role in prefixed
        if is_rec_game_role(role.name, rec_prefix)
    }

    return RoleClassification(
        onboarded_role=onboarded[0],
        community_game_roles=community,
        rec_game_roles=rec,
    )
