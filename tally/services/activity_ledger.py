"""
tally.services.activity_ledger — Activity Record Data Access
=============================================================

The ledger is the only write path for the ``activity`` table.  All methods
are synchronous and meant to be called through
``await run_db(ledger.method, ...)``.

Records returned from reads are detached from their session with every
column loaded, so callers can keep using them after the session closes
and hand them back to :meth:`ActivityLedger.remove`.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tally.database.engine import get_session
from tally.database.models import ActivityRecord
from tally.engine.windows import is_active_since, utcnow
from tally.errors import PersistenceError

logger = logging.getLogger(__name__)


def resolve_display_name(member) -> str | None:
    """Best available name for a guild member: display name, nick, username."""
    return (
        getattr(member, "display_name", None)
        or getattr(member, "nick", None)
        or getattr(member, "name", None)
        or None
    )


class ActivityLedger:
    """Sync data access over ``activity`` rows."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def find_all(self) -> list[ActivityRecord]:
        """Every record, in insertion order."""
        with get_session(self.engine) as session:
            records = list(
                session.scalars(select(ActivityRecord).order_by(ActivityRecord.id))
            )
            session.expunge_all()
        return records

    def find_by_member_id(self, member_id: int) -> ActivityRecord | None:
        with get_session(self.engine) as session:
            record = session.scalar(
                select(ActivityRecord).where(ActivityRecord.member_id == member_id)
            )
            session.expunge_all()
        return record

    def find_active(self, cutoff: datetime) -> list[ActivityRecord]:
        """Records whose last activity is strictly after *cutoff*.

        Filtered in Python so naive SQLite timestamps compare correctly.
        """
        return [
            record for record in self.find_all()
            if is_active_since(record.last_activity_at, cutoff)
        ]

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def touch(
        self,
        member_id: int,
        display_name: str,
        at: datetime | None = None,
    ) -> ActivityRecord:
        """Create the member's record or refresh its name and timestamp.

        A concurrent first event for the same member can win the insert; the
        resulting unique-key conflict is retried once as an update.
        """
        at = at or utcnow()
        try:
            try:
                record = self._upsert(member_id, display_name, at)
            except IntegrityError:
                logger.debug("Activity record for %s created concurrently, retrying", member_id)
                record = self._upsert(member_id, display_name, at)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Error updating activity for {member_id}: {exc}"
            ) from exc

        logger.debug("Updated activity for %s", member_id)
        return record

    def _upsert(self, member_id: int, display_name: str, at: datetime) -> ActivityRecord:
        with get_session(self.engine) as session:
            record = session.scalar(
                select(ActivityRecord).where(ActivityRecord.member_id == member_id)
            )
            if record is None:
                record = ActivityRecord(member_id=member_id, display_name=display_name)
                session.add(record)

            record.display_name = display_name
            record.last_activity_at = at
            session.flush()
            session.expunge(record)
        return record

    def remove(self, record: ActivityRecord) -> bool:
        """Delete *record*; returns False if it was already gone.

        Raises
        ------
        PersistenceError
            If the delete fails.
        """
        try:
            with get_session(self.engine) as session:
                result = session.execute(
                    delete(ActivityRecord).where(
                        ActivityRecord.member_id == record.member_id
                    )
                )
                deleted = result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

        if deleted:
            logger.info(
                "Removed activity record for %s (%s)",
                record.display_name, record.member_id,
            )
        return bool(deleted)

    def remove_by_member_id(self, member_id: int) -> ActivityRecord | None:
        """Delete the member's record if there is one and return it."""
        record = self.find_by_member_id(member_id)
        if record is None:
            return None
        self.remove(record)
        return record
