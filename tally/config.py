"""
tally.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for guild identity, channel routing, tracked roles
and the tuning knobs of the scan/report jobs.  Secrets (bot token,
database URL) stay in ``.env`` and are read by the bootstrap code.

Usage::

    from tally.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.guild_id)          # 1468816181854081229
    print(cfg.activity_windows)  # (1, 2, 7, 14, 30, 60, 90)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from tally.constants import (
    DEFAULT_ACTIVE_DAY_THRESHOLD,
    DEFAULT_ACTIVITY_WINDOWS,
    DEFAULT_COMMUNITY_GAMES,
    DEFAULT_SCAN_PROGRESS_INTERVAL,
    ONBOARDED_ROLE_NAME,
    REC_ROLE_PREFIX,
)


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TrackedRoles:
    """Role IDs whose overlap with active members is counted per window.

    Any of them may be ``None`` in the YAML; the stats job refuses to run
    until all three are set.
    """

    onboarded: int | None = None
    ps2_verified: int | None = None
    albion_registered: int | None = None

    def as_dict(self) -> dict[str, int | None]:
        return {
            "onboarded": self.onboarded,
            "ps2_verified": self.ps2_verified,
            "albion_registered": self.albion_registered,
        }


@dataclass(frozen=True, slots=True)
class TallyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int  # Primary guild snowflake

    # Channels the scheduled jobs report into
    bot_jobs_channel_id: int | None = None
    activity_reports_channel_id: int | None = None

    # Tracked roles for the windowed activity stats
    roles: TrackedRoles = field(default_factory=TrackedRoles)

    # Role metrics classification
    onboarded_role_name: str = ONBOARDED_ROLE_NAME
    community_games: tuple[str, ...] = DEFAULT_COMMUNITY_GAMES
    rec_role_prefix: str = REC_ROLE_PREFIX
    active_day_threshold: int = DEFAULT_ACTIVE_DAY_THRESHOLD

    # Activity stats windows (days) and scan progress cadence
    activity_windows: tuple[int, ...] = DEFAULT_ACTIVITY_WINDOWS
    scan_progress_interval: int = DEFAULT_SCAN_PROGRESS_INTERVAL

    # Healthcheck
    environment: str = "development"
    healthcheck_uuid: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _optional_int(value) -> int | None:
    return int(value) if value else None


def load_config(path: str | Path = "config.yaml") -> TallyConfig:
    """Read *path* and return a :class:`TallyConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If an activity window or the progress interval is not positive.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    roles_raw: dict = raw.get("roles") or {}
    roles = TrackedRoles(
        onboarded=_optional_int(roles_raw.get("onboarded")),
        ps2_verified=_optional_int(roles_raw.get("ps2_verified")),
        albion_registered=_optional_int(roles_raw.get("albion_registered")),
    )

    windows = tuple(
        int(w) for w in raw.get("activity_windows") or DEFAULT_ACTIVITY_WINDOWS
    )
    if any(w <= 0 for w in windows):
        raise ValueError(f"activity_windows must be positive day counts, got {windows}")

    progress_interval = int(
        raw.get("scan_progress_interval", DEFAULT_SCAN_PROGRESS_INTERVAL)
    )
    if progress_interval <= 0:
        raise ValueError("scan_progress_interval must be positive")

    return TallyConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        guild_id=int(raw["guild_id"]),
        bot_jobs_channel_id=_optional_int(raw.get("bot_jobs_channel_id")),
        activity_reports_channel_id=_optional_int(raw.get("activity_reports_channel_id")),
        roles=roles,
        onboarded_role_name=raw.get("onboarded_role_name", ONBOARDED_ROLE_NAME),
        community_games=tuple(raw.get("community_games") or DEFAULT_COMMUNITY_GAMES),
        rec_role_prefix=raw.get("rec_role_prefix", REC_ROLE_PREFIX),
        active_day_threshold=int(
            raw.get("active_day_threshold", DEFAULT_ACTIVE_DAY_THRESHOLD)
        ),
        activity_windows=windows,
        scan_progress_interval=progress_interval,
        environment=raw.get("environment", "development"),
        healthcheck_uuid=raw.get("healthcheck_uuid") or None,
    )
