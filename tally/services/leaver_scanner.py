"""
tally.services.leaver_scanner — Activity Ledger ↔ Roster Reconciliation
========================================================================

Walks every ``activity`` row and asks Discord whether the member is still
in the guild.  Members who are gone ("leavers") have their record removed;
everyone else is left alone.

How it works:
    1. Post a status line and fetch every record (full table scan).
    2. For each record, in insertion order, look the member up:
       * lookup raised   → failure, reported for that record only;
       * not found       → leaver, record deleted (unless ``dry_run``);
       * member returned → still here, nothing to do.
    3. Edit the status line every ``progress_interval`` records and on the
       last one.
    4. Delete the status line, flush the ``- Removed …`` lines in batches,
       and finish with the summary, which is always the last message.

Per-record failures never abort the pass: a scan where every lookup fails
still completes and reports ``removed=0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from discord.abc import Messageable

from tally.constants import (
    DEFAULT_SCAN_PROGRESS_INTERVAL,
    SCAN_FETCHING,
    SCAN_LOOKUP_ERROR,
    SCAN_PROGRESS,
    SCAN_REMOVE_ERROR,
    SCAN_REMOVED_LINE,
    SCAN_SUMMARY,
)
from tally.database.engine import run_db
from tally.database.models import ActivityRecord
from tally.errors import PersistenceError
from tally.services.activity_ledger import ActivityLedger
from tally.services.membership import MembershipOracle
from tally.services.reporter import BatchReporter, StatusMessage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScanFailure:
    member_id: int
    display_name: str
    stage: str  # "lookup" or "remove"
    reason: str


@dataclass(slots=True)
class ScanReport:
    """Outcome of one scan.  Failed records count as remaining."""

    total: int
    dry_run: bool = False
    removed: list[tuple[int, str]] = field(default_factory=list)
    failures: list[ScanFailure] = field(default_factory=list)
    confirmed: int = 0

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def remaining_count(self) -> int:
        return self.total - self.removed_count

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def removed_lines(self) -> list[str]:
        return [
            SCAN_REMOVED_LINE.format(name=name, member_id=member_id)
            for member_id, name in self.removed
        ]

    def summary(self) -> str:
        return SCAN_SUMMARY.format(
            removed=self.removed_count, remaining=self.remaining_count,
        )


@dataclass(slots=True)
class ScanCursor:
    """Per-run progress state threaded through the scan loop."""

    status: StatusMessage
    total: int
    interval: int = DEFAULT_SCAN_PROGRESS_INTERVAL
    done: int = 0

    def advance(self) -> bool:
        """Count one record; True when progress should be shown."""
        self.done += 1
        return self.done % self.interval == 0 or self.done == self.total

    def progress_text(self) -> str:
        return SCAN_PROGRESS.format(done=self.done, total=self.total)


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------
class LeaverScanner:
    """Removes activity records of members no longer in the guild."""

    def __init__(
        self,
        ledger: ActivityLedger,
        oracle: MembershipOracle,
        reporter: BatchReporter,
        guild_id: int,
        progress_interval: int = DEFAULT_SCAN_PROGRESS_INTERVAL,
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.reporter = reporter
        self.guild_id = guild_id
        self.progress_interval = progress_interval

    async def scan(self, channel: Messageable, dry_run: bool = False) -> ScanReport:
        """Run one reconciliation pass, reporting into *channel*.

        Raises
        ------
        PersistenceError
            If the ledger can't be read at all.  An error message is posted
            to *channel* first.
        """
        logger.info("Starting activity leaver scan (dry_run=%s)", dry_run)
        status = await self.reporter.open_status(channel, SCAN_FETCHING)

        try:
            records = await run_db(self.ledger.find_all)
        except Exception as exc:
            error = f"Error fetching activity records. Error: {exc}"
            logger.exception(error)
            await self.reporter.delete_status(status)
            await self.reporter.post(error, channel)
            raise PersistenceError(error) from exc

        report = ScanReport(total=len(records), dry_run=dry_run)
        cursor = ScanCursor(status=status, total=len(records), interval=self.progress_interval)
        await self.reporter.edit_status(status, cursor.progress_text())

        for record in records:
            await self._scan_record(record, report, channel)
            if cursor.advance():
                await self.reporter.edit_status(status, cursor.progress_text())

        await self.reporter.delete_status(status)
        await self.reporter.send(report.removed_lines(), channel)
        await self.reporter.post(report.summary(), channel)

        logger.info(
            "Activity scan complete: total=%d removed=%d confirmed=%d failed=%d dry_run=%s",
            report.total, report.removed_count, report.confirmed,
            report.failed_count, dry_run,
        )
        return report

    async def _scan_record(
        self,
        record: ActivityRecord,
        report: ScanReport,
        channel: Messageable,
    ) -> None:
        """Classify one record; every failure stays inside this record."""
        try:
            member = await self.oracle.get_member(self.guild_id, record.member_id)
        except Exception as exc:
            await self._record_failure(report, record, "lookup", exc, channel)
            return

        if member is not None:
            report.confirmed += 1
            logger.debug(
                "Scanned activity record for %s (%s): still a member",
                record.display_name, record.member_id,
            )
            return

        if not report.dry_run:
            try:
                await run_db(self.ledger.remove, record)
            except Exception as exc:
                await self._record_failure(report, record, "remove", exc, channel)
                return

        report.removed.append((record.member_id, record.display_name))
        logger.info(
            "Leaver detected: %s (%s)%s",
            record.display_name, record.member_id,
            " [dry run]" if report.dry_run else "",
        )

    async def _record_failure(
        self,
        report: ScanReport,
        record: ActivityRecord,
        stage: str,
        exc: Exception,
        channel: Messageable,
    ) -> None:
        template = SCAN_LOOKUP_ERROR if stage == "lookup" else SCAN_REMOVE_ERROR
        message = template.format(
            name=record.display_name, member_id=record.member_id, reason=exc,
        )
        logger.error(message, extra={"member_id": record.member_id, "stage": stage})
        report.failures.append(ScanFailure(
            member_id=record.member_id,
            display_name=record.display_name,
            stage=stage,
            reason=str(exc),
        ))
        try:
            await self.reporter.post(message, channel)
        except Exception:
            logger.exception("Failed to report scan error for %s", record.member_id)


def summarize(report: ScanReport) -> dict[str, Any]:
    """Plain-dict view of a scan for logs and task results."""
    return {
        "total": report.total,
        "removed": report.removed_count,
        "remaining": report.remaining_count,
        "failed": report.failed_count,
        "dry_run": report.dry_run,
    }
