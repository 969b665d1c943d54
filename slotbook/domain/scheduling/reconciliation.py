"""
Reconciliation-needed events

Remote calendar state that the booking flow could not keep in step with local
state is logged on the ``slotbook.reconciliation`` logger and stored as a
ReconciliationTask so it can be found and cleaned up later.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...database import UnitOfWorkResult, run_unit_of_work
from .repository import ReconciliationRepository

logger = logging.getLogger(__name__)
reconciliation_logger = logging.getLogger("slotbook.reconciliation")

ORPHANED_REMOTE_EVENT = "orphaned_remote_event"
REMOTE_DELETE_FAILED = "remote_delete_failed"
REMOTE_CREATE_INTERRUPTED = "remote_create_interrupted"
REMOTE_CREATE_UNCONFIRMED = "remote_create_unconfirmed"


def _emit(kind: str, **fields) -> None:
    details = ", ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    reconciliation_logger.warning(f"⚠️ Reconciliation needed [{kind}]: {details}", extra={"reconciliation": kind, **fields})


def record_reconciliation(
    db: Session,
    kind: str,
    *,
    user_id: Optional[int] = None,
    meeting_id: Optional[int] = None,
    app_type: Optional[str] = None,
    calendar_event_id: Optional[str] = None,
    detail: Optional[str] = None,
) -> None:
    """
    Emit a reconciliation event and store it.

    Stored in its own unit of work. Storage failures are logged; the log line
    is already out either way.
    """
    _emit(
        kind,
        user_id=user_id,
        meeting_id=meeting_id,
        app_type=app_type,
        calendar_event_id=calendar_event_id,
        detail=detail,
    )

    def work(session: Session) -> UnitOfWorkResult[None]:
        ReconciliationRepository.add_task(
            session,
            kind,
            user_id=user_id,
            meeting_id=meeting_id,
            app_type=app_type,
            calendar_event_id=calendar_event_id,
            detail=detail,
        )
        return UnitOfWorkResult.success()

    result = run_unit_of_work(db, work)
    if not result.ok:
        logger.error(f"❌ Failed to store reconciliation task ({kind}): {getattr(result.error, 'log_message', '') or result.error}")
