"""
tally.services.join_leave_service — Join / Leave Bookkeeping
=============================================================

Keeps one ``join_leave`` row per member for the lifetime of the guild:

* first join   → row created, ``rejoin_count=0``;
* repeat join  → ``rejoined=True``, ``rejoin_count += 1``, ``left_at`` cleared,
                 ``joined_at`` refreshed;
* leave        → ``left_at`` stamped.

Rows are never deleted.  Call through ``run_db()``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select

from tally.database.engine import get_session
from tally.database.models import JoinLeaveRecord
from tally.engine.windows import utcnow

logger = logging.getLogger(__name__)


def record_join(
    engine: Engine,
    member_id: int,
    display_name: str,
    now: datetime | None = None,
) -> JoinLeaveRecord:
    """Record a join, marking the member as a rejoiner if seen before."""
    now = now or utcnow()

    with get_session(engine) as session:
        record = session.scalar(
            select(JoinLeaveRecord).where(JoinLeaveRecord.member_id == member_id)
        )
        if record is None:
            record = JoinLeaveRecord(
                member_id=member_id,
                display_name=display_name,
                left_at=None,
                rejoined=False,
                rejoin_count=0,
            )
            session.add(record)
        else:
            logger.info(
                "Member %s (%s) already recorded, marking as rejoiner",
                display_name, member_id,
            )
            record.rejoined = True
            record.rejoin_count += 1
            record.left_at = None
            record.display_name = display_name

        record.joined_at = now
        session.flush()
        session.expunge(record)

    logger.info("Recorded joiner %s (%s)", display_name, member_id)
    return record


def record_leave(
    engine: Engine,
    member_id: int,
    now: datetime | None = None,
) -> bool:
    """Stamp ``left_at``.  Returns False when the member was never recorded."""
    with get_session(engine) as session:
        record = session.scalar(
            select(JoinLeaveRecord).where(JoinLeaveRecord.member_id == member_id)
        )
        if record is None:
            logger.error(
                "Attempted to record leaver %s but they were not found in the database",
                member_id,
            )
            return False

        record.left_at = now or utcnow()
        name = record.display_name

    logger.info("Recorded leaver %s (%s)", name, member_id)
    return True
