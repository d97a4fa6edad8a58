"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import textwrap

import pytest

from tally.config import TrackedRoles, load_config
from tally.constants import DEFAULT_ACTIVITY_WINDOWS, DEFAULT_COMMUNITY_GAMES

MINIMAL = """
community_name: "Test Community"
bot_prefix: "!"
guild_id: 42
"""


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))

        assert cfg.guild_id == 42
        assert cfg.activity_windows == DEFAULT_ACTIVITY_WINDOWS
        assert cfg.community_games == DEFAULT_COMMUNITY_GAMES
        assert cfg.active_day_threshold == 90
        assert cfg.scan_progress_interval == 10
        assert cfg.roles == TrackedRoles()
        assert cfg.bot_jobs_channel_id is None
        assert not cfg.is_production

    def test_full(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL + """
bot_jobs_channel_id: 100
activity_reports_channel_id: "200"
roles:
  onboarded: 1
  ps2_verified: 2
  albion_registered:
community_games: ["Foxhole"]
rec_role_prefix: "Casual/"
active_day_threshold: 30
activity_windows: [7, 30]
scan_progress_interval: 25
environment: production
healthcheck_uuid: "abc-123"
"""))

        assert cfg.bot_jobs_channel_id == 100
        assert cfg.activity_reports_channel_id == 200
        assert cfg.roles == TrackedRoles(onboarded=1, ps2_verified=2)
        assert cfg.community_games == ("Foxhole",)
        assert cfg.rec_role_prefix == "Casual/"
        assert cfg.activity_windows == (7, 30)
        assert cfg.scan_progress_interval == 25
        assert cfg.is_production
        assert cfg.healthcheck_uuid == "abc-123"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, 'community_name: "x"\nbot_prefix: "!"\n'))

    def test_rejects_non_positive_window(self, tmp_path):
        with pytest.raises(ValueError, match="activity_windows"):
            load_config(_write(tmp_path, MINIMAL + "activity_windows: [7, 0]\n"))

    def test_rejects_non_positive_progress_interval(self, tmp_path):
        with pytest.raises(ValueError, match="scan_progress_interval"):
            load_config(_write(tmp_path, MINIMAL + "scan_progress_interval: 0\n"))

    def test_config_is_frozen(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))
        with pytest.raises(AttributeError):
            cfg.guild_id = 1
