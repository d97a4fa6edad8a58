"""
tally.errors — Failure Taxonomy
================================

A member missing from the roster is *not* an error: lookups return
``None`` for it.  Everything else that can go wrong in a scan or report
run is one of the classes below.
"""

from __future__ import annotations


class TallyError(Exception):
    """Base class for all Tally failures."""


class MembershipLookupError(TallyError):
    """The Discord API failed while resolving a member, guild, or role list.

    Transient: the scanner isolates it to the affected record.
    """


class PersistenceError(TallyError):
    """A ledger or snapshot write failed."""


class ConfigurationError(TallyError):
    """A required role or configuration value is missing or ambiguous."""
