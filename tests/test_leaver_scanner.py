"""
tests/test_leaver_scanner.py — Activity Ledger ↔ Roster Reconciliation
=======================================================================

Drives :class:`LeaverScanner` end to end against SQLite and a fake
membership oracle, checking both the ledger contents and the exact
messages posted to the channel.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from conftest import FakeOracle, make_channel, make_member, run_async, sent_texts
from tally.constants import SCAN_FETCHING
from tally.errors import MembershipLookupError, PersistenceError
from tally.services.activity_ledger import ActivityLedger
from tally.services.leaver_scanner import LeaverScanner, ScanCursor, ScanReport, summarize
from tally.services.reporter import BatchReporter, ChannelThrottle, StatusMessage

NOW = datetime(2025, 4, 5, 12, 0, tzinfo=UTC)


def _seed(ledger: ActivityLedger, *member_ids: int) -> None:
    for member_id in member_ids:
        ledger.touch(member_id, f"User{member_id}", at=NOW)


def _scanner(ledger, oracle, interval: int = 10) -> LeaverScanner:
    reporter = BatchReporter(throttle=ChannelThrottle(max_per_window=10_000, window=1.0))
    return LeaverScanner(ledger, oracle, reporter, guild_id=1, progress_interval=interval)


def _status_edits(channel) -> list[str]:
    status = channel.messages[0]
    return [c.kwargs["content"] for c in status.edit.await_args_list]


class TestScan:
    def test_removes_leaver_and_keeps_member(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle(members=[make_member(1)])
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel))

        assert report.removed == [(2, "User2")]
        assert report.confirmed == 1
        assert [r.member_id for r in ledger.find_all()] == [1]
        assert sent_texts(channel) == [
            SCAN_FETCHING,
            "- Removed User2 (2)",
            "Activity scan complete. Removed **1** leavers out of activity records. "
            "**1** records remaining.",
        ]
        channel.messages[0].delete.assert_awaited_once()

    def test_nobody_left(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle(members=[make_member(1), make_member(2)])
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel))

        assert report.removed_count == 0
        assert len(ledger.find_all()) == 2
        assert sent_texts(channel)[-1].startswith("Activity scan complete. Removed **0** leavers")

    def test_empty_ledger(self, db_engine):
        channel = make_channel()

        report = run_async(_scanner(ActivityLedger(db_engine), FakeOracle()).scan(channel))

        assert report.total == 0
        assert sent_texts(channel)[-1] == (
            "Activity scan complete. Removed **0** leavers out of activity records. "
            "**0** records remaining."
        )

    def test_counts_always_add_up(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, *range(1, 8))
        oracle = FakeOracle(
            members=[make_member(1), make_member(4), make_member(6)],
            errors={5: MembershipLookupError("rate limited")},
        )

        report = run_async(_scanner(ledger, oracle).scan(make_channel()))

        assert report.removed_count + report.remaining_count == report.total == 7
        assert report.removed_count == 3  # 2, 3, 7
        assert len(ledger.find_all()) == report.remaining_count
        assert summarize(report) == {
            "total": 7, "removed": 3, "remaining": 4, "failed": 1, "dry_run": False,
        }

    def test_every_record_looked_up_once_in_order(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 3, 1, 2)
        oracle = FakeOracle()

        run_async(_scanner(ledger, oracle).scan(make_channel()))

        assert oracle.lookups == [3, 1, 2]


class TestScanFailures:
    def test_lookup_error_keeps_record_and_reports_it(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle(
            members=[make_member(1)],
            errors={2: MembershipLookupError("Discord is down")},
        )
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel))

        assert report.removed_count == 0
        assert report.failures[0].member_id == 2
        assert report.failures[0].stage == "lookup"
        assert len(ledger.find_all()) == 2
        texts = sent_texts(channel)
        assert "Error looking up member User2 (2). Error: Discord is down" in texts
        assert texts[-1].endswith("**2** records remaining.")

    def test_every_lookup_failing_still_completes(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2, 3)
        oracle = FakeOracle(errors={i: RuntimeError("boom") for i in (1, 2, 3)})
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel))

        assert report.failed_count == 3
        assert report.removed_count == 0
        assert sent_texts(channel)[-1].startswith("Activity scan complete. Removed **0**")

    def test_remove_error_is_reported_and_scan_continues(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle()
        channel = make_channel()
        real_remove = ledger.remove

        def _remove(record):
            if record.member_id == 1:
                raise PersistenceError("disk full")
            return real_remove(record)

        with patch.object(ledger, "remove", side_effect=_remove):
            report = run_async(_scanner(ledger, oracle).scan(channel))

        assert report.removed == [(2, "User2")]
        assert report.failures[0].stage == "remove"
        assert "Error removing activity record for User1 (1). Error: disk full" in sent_texts(channel)
        assert [r.member_id for r in ledger.find_all()] == [1]

    def test_fetch_failure_posts_error_and_raises(self, db_engine):
        ledger = ActivityLedger(db_engine)
        channel = make_channel()

        with patch.object(ledger, "find_all", side_effect=RuntimeError("connection refused")):
            with pytest.raises(PersistenceError):
                run_async(_scanner(ledger, FakeOracle()).scan(channel))

        assert sent_texts(channel) == [
            SCAN_FETCHING,
            "Error fetching activity records. Error: connection refused",
        ]
        channel.messages[0].delete.assert_awaited_once()


class TestDryRun:
    def test_dry_run_reports_without_deleting(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle(members=[make_member(1)])
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel, dry_run=True))

        assert report.dry_run is True
        assert report.removed == [(2, "User2")]
        assert len(ledger.find_all()) == 2
        assert "- Removed User2 (2)" in sent_texts(channel)

    def test_dry_run_is_repeatable(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2, 3)
        oracle = FakeOracle(members=[make_member(2)])
        scanner = _scanner(ledger, oracle)

        first = run_async(scanner.scan(make_channel(), dry_run=True))
        second = run_async(scanner.scan(make_channel(), dry_run=True))

        assert first.removed == second.removed == [(1, "User1"), (3, "User3")]
        assert len(ledger.find_all()) == 3


class TestProgress:
    def test_status_edited_every_interval_and_on_last(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, *range(1, 26))
        oracle = FakeOracle(members=[make_member(i) for i in range(1, 26)])
        channel = make_channel()

        run_async(_scanner(ledger, oracle, interval=10).scan(channel))

        assert _status_edits(channel) == [
            "Scanning activity records... 0 of 25",
            "Scanning activity records... 10 of 25",
            "Scanning activity records... 20 of 25",
            "Scanning activity records... 25 of 25",
        ]

    def test_cursor_advance(self):
        cursor = ScanCursor(status=StatusMessage(None, 0, ""), total=3, interval=2)
        assert [cursor.advance() for _ in range(3)] == [False, True, True]
        assert cursor.progress_text() == "Scanning activity records... 3 of 3"


class TestScanReport:
    def test_lines_and_summary(self):
        report = ScanReport(total=5, removed=[(2, "User2"), (4, "User4")])

        assert report.removed_lines() == ["- Removed User2 (2)", "- Removed User4 (4)"]
        assert report.remaining_count == 3
        assert report.summary() == (
            "Activity scan complete. Removed **2** leavers out of activity records. "
            "**3** records remaining."
        )


class TestScenarios:
    def test_first_member_gone_second_present(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        channel = make_channel()

        report = run_async(_scanner(ledger, FakeOracle(members=[make_member(2)])).scan(channel))

        assert (report.removed_count, report.remaining_count) == (1, 1)
        assert "- Removed User1 (1)" in sent_texts(channel)
        assert [r.member_id for r in ledger.find_all()] == [2]

    def test_first_member_gone_second_lookup_fails(self, db_engine):
        ledger = ActivityLedger(db_engine)
        _seed(ledger, 1, 2)
        oracle = FakeOracle(errors={2: MembershipLookupError("timeout")})
        channel = make_channel()

        report = run_async(_scanner(ledger, oracle).scan(channel))

        assert (report.removed_count, report.remaining_count) == (1, 1)
        errors = [t for t in sent_texts(channel) if t.startswith("Error")]
        assert errors == ["Error looking up member User2 (2). Error: timeout"]
