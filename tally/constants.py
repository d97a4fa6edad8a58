"""
tally.constants — Shared Constants
===================================

Single source of truth for job defaults and the user-facing message
templates shared by services, cogs, and tests.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Activity windows & thresholds
# ---------------------------------------------------------------------------
DEFAULT_ACTIVITY_WINDOWS: tuple[int, ...] = (1, 2, 7, 14, 30, 60, 90)
DEFAULT_ACTIVE_DAY_THRESHOLD = 90
DEFAULT_SCAN_PROGRESS_INTERVAL = 10

# ---------------------------------------------------------------------------
# Role naming conventions
# ---------------------------------------------------------------------------
ONBOARDED_ROLE_NAME = "Onboarded"
DEFAULT_COMMUNITY_GAMES: tuple[str, ...] = ("Albion Online", "Foxhole")
REC_ROLE_PREFIX = "Rec/"
ROLE_SEPARATOR = "/"

# ---------------------------------------------------------------------------
# Discord output limits
# ---------------------------------------------------------------------------
DISCORD_MESSAGE_LIMIT = 2000
LINES_PER_MESSAGE = 10

# ---------------------------------------------------------------------------
# Leaver scan messages
# ---------------------------------------------------------------------------
SCAN_FETCHING = "Fetching activity records..."
SCAN_PROGRESS = "Scanning activity records... {done} of {total}"
SCAN_REMOVED_LINE = "- Removed {name} ({member_id})"
SCAN_SUMMARY = (
    "Activity scan complete. Removed **{removed}** leavers out of activity "
    "records. **{remaining}** records remaining."
)
SCAN_DRY_RUN_BANNER = "## This is a dry run! No records will be removed!"
SCAN_LOOKUP_ERROR = "Error looking up member {name} ({member_id}). Error: {reason}"
SCAN_REMOVE_ERROR = "Error removing activity record for {name} ({member_id}). Error: {reason}"
