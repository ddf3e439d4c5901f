"""
Dedup ledger over automation_email_log.

The unique constraint on (period_id, event_type, window_key, target) is the source of truth:
a claim is an INSERT, and a uniqueness violation means another run (or an earlier tick in the
same window) already owns that reminder. Any other write failure is an error: the caller must
not send, since it cannot record that it did.

Each write commits on its own so a tick cut short by a timeout leaves every processed tuple
behind; the next tick resumes from the ledger.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import LedgerWriteError, PersistenceReadError, is_unique_violation
from app.models.reminder_event import ReminderEvent

logger = logging.getLogger(__name__)

STATUS_CLAIMED = "claimed"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    ERROR = "error"


@dataclass
class Claim:
    result: ClaimResult
    event_id: int | None = None
    error: str | None = None


def _kind(kind: Any) -> str:
    return getattr(kind, "value", kind)


class DedupLedger:
    def __init__(self, db: Session):
        self.db = db

    def already_sent(self, period_id: int, kind: Any, window_key: str, target: str) -> bool:
        """True if any row (claimed, sent or failed) exists for the tuple."""
        try:
            row = (
                self.db.query(ReminderEvent.id)
                .filter(
                    ReminderEvent.period_id == period_id,
                    ReminderEvent.event_type == _kind(kind),
                    ReminderEvent.window_key == window_key,
                    ReminderEvent.target == target,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceReadError(f"Ledger read failed: {e}") from e
        return row is not None

    def _insert(
        self,
        period_id: int,
        kind: Any,
        window_key: str,
        target: str,
        status: str,
        meta: dict[str, Any] | None,
    ) -> Claim:
        row = ReminderEvent(
            period_id=period_id,
            event_type=_kind(kind),
            window_key=window_key,
            target=target,
            status=status,
            meta=meta or {},
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if is_unique_violation(e):
                return Claim(result=ClaimResult.ALREADY_CLAIMED)
            logger.error("Ledger insert failed for %s/%s/%s: %s", _kind(kind), window_key, target, e)
            return Claim(result=ClaimResult.ERROR, error=str(e.orig or e))
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Ledger insert failed for %s/%s/%s: %s", _kind(kind), window_key, target, e)
            return Claim(result=ClaimResult.ERROR, error=str(e))
        return Claim(result=ClaimResult.CLAIMED, event_id=row.id)

    def claim(
        self,
        period_id: int,
        kind: Any,
        window_key: str,
        target: str,
        meta: dict[str, Any] | None = None,
    ) -> Claim:
        """Reserve the tuple before sending. CLAIMED = caller owns it; ALREADY_CLAIMED = skip; ERROR = do not send."""
        return self._insert(period_id, kind, window_key, target, STATUS_CLAIMED, meta)

    def record_sent(
        self,
        period_id: int,
        kind: Any,
        window_key: str,
        target: str,
        meta: dict[str, Any] | None = None,
    ) -> Claim:
        """Record a delivery in one step. A second call with the same tuple returns ALREADY_CLAIMED."""
        return self._insert(period_id, kind, window_key, target, STATUS_SENT, meta)

    def mark_outcome(self, event_id: int, status: str, meta: dict[str, Any] | None = None) -> None:
        """Finalize a claim as sent or failed. Raises LedgerWriteError; the claim row stays in place."""
        try:
            row = self.db.get(ReminderEvent, event_id)
            if row is None:
                raise LedgerWriteError(f"Ledger row {event_id} vanished")
            row.status = status
            if meta:
                row.meta = {**(row.meta or {}), **meta}
            row.updated_at = datetime.now(timezone.utc)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerWriteError(f"Could not finalize ledger row {event_id}: {e}") from e

    def release(self, event_id: int) -> None:
        """Drop a claim so a later tick in the same window may try again (used after throttling only)."""
        try:
            self.db.query(ReminderEvent).filter(
                ReminderEvent.id == event_id, ReminderEvent.status == STATUS_CLAIMED
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerWriteError(f"Could not release ledger row {event_id}: {e}") from e
