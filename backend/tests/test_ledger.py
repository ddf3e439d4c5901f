import pytest

from app.core.errors import LedgerWriteError, PersistenceReadError
from app.models.reminder_event import ReminderEvent
from app.services.reminders.due import ReminderKind
from app.services.reminders.ledger import (
    STATUS_CLAIMED,
    STATUS_FAILED,
    STATUS_SENT,
    ClaimResult,
    DedupLedger,
)

KEY = "2025-09-16T00:00:00+00:00:48h"


def test_record_sent_twice_is_a_duplicate(db):
    ledger = DedupLedger(db)
    first = ledger.record_sent(1, ReminderKind.DEADLINE_48, KEY, "a@hospital.test", {"user_id": "a"})
    second = ledger.record_sent(1, ReminderKind.DEADLINE_48, KEY, "a@hospital.test")
    assert first.result == ClaimResult.CLAIMED
    assert second.result == ClaimResult.ALREADY_CLAIMED
    assert db.query(ReminderEvent).count() == 1
    assert ledger.already_sent(1, ReminderKind.DEADLINE_48, KEY, "a@hospital.test")


def test_tuple_members_all_count(db):
    ledger = DedupLedger(db)
    ledger.record_sent(1, ReminderKind.DEADLINE_48, KEY, "a@hospital.test")
    assert ledger.claim(2, ReminderKind.DEADLINE_48, KEY, "a@hospital.test").result == ClaimResult.CLAIMED
    assert ledger.claim(1, ReminderKind.DEADLINE_24, KEY, "a@hospital.test").result == ClaimResult.CLAIMED
    assert ledger.claim(1, ReminderKind.DEADLINE_48, "other", "a@hospital.test").result == ClaimResult.CLAIMED
    assert ledger.claim(1, ReminderKind.DEADLINE_48, KEY, "b@hospital.test").result == ClaimResult.CLAIMED
    assert not ledger.already_sent(1, ReminderKind.WEEKLY, KEY, "a@hospital.test")


def test_claim_then_outcome(db):
    ledger = DedupLedger(db)
    claim = ledger.claim(1, "weekly", "2025-W38", "a@hospital.test")
    row = db.get(ReminderEvent, claim.event_id)
    assert row.status == STATUS_CLAIMED
    ledger.mark_outcome(claim.event_id, STATUS_SENT, {"attempts": 1})
    db.refresh(row)
    assert row.status == STATUS_SENT
    assert row.meta == {"attempts": 1}
    assert row.updated_at is not None


def test_release_only_drops_claimed_rows(db):
    ledger = DedupLedger(db)
    pending = ledger.claim(1, "weekly", "2025-W38", "a@hospital.test")
    done = ledger.claim(1, "weekly", "2025-W38", "b@hospital.test")
    ledger.mark_outcome(done.event_id, STATUS_FAILED)
    ledger.release(pending.event_id)
    ledger.release(done.event_id)
    assert [r.target for r in db.query(ReminderEvent).all()] == ["b@hospital.test"]
    # a released tuple can be claimed again
    assert ledger.claim(1, "weekly", "2025-W38", "a@hospital.test").result == ClaimResult.CLAIMED


def test_unreachable_ledger_is_an_error_not_a_duplicate(db, engine):
    ReminderEvent.__table__.drop(engine)
    ledger = DedupLedger(db)
    claim = ledger.claim(1, "weekly", "2025-W38", "a@hospital.test")
    assert claim.result == ClaimResult.ERROR
    assert claim.error
    with pytest.raises(PersistenceReadError):
        ledger.already_sent(1, "weekly", "2025-W38", "a@hospital.test")
    ReminderEvent.__table__.create(engine)


def test_mark_outcome_on_missing_row(db):
    with pytest.raises(LedgerWriteError):
        DedupLedger(db).mark_outcome(12345, STATUS_SENT)
