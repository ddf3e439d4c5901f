from datetime import date

from app.services.calendar import ensure_period_slots
from app.services.month_status_service import (
    get_month_status,
    months_for_period,
    needs_reminding,
    set_month_status,
)


def _period_with_slots(db, make_period):
    period = make_period()
    ensure_period_slots(db, period, date(2025, 10, 1), date(2025, 12, 31))
    return period


def test_months_come_from_slots(db, make_period):
    period = _period_with_slots(db, make_period)
    assert months_for_period(db, period.id) == ["2025-10", "2025-11", "2025-12"]


def test_missing_rows_count_as_not_validated(db, make_period):
    period = _period_with_slots(db, make_period)
    assert needs_reminding(db, "doc", period.id) is True
    set_month_status(db, "doc", period.id, "2025-10", validated=True)
    set_month_status(db, "doc", period.id, "2025-11", validated=True)
    assert needs_reminding(db, "doc", period.id) is True
    set_month_status(db, "doc", period.id, "2025-12", locked=True)
    assert needs_reminding(db, "doc", period.id) is False


def test_opt_out_and_unvalidate(db, make_period):
    period = _period_with_slots(db, make_period)
    for month in ("2025-10", "2025-11", "2025-12"):
        set_month_status(db, "doc", period.id, month, opted_out=True)
    assert needs_reminding(db, "doc", period.id) is False
    row = set_month_status(db, "doc", period.id, "2025-11", opted_out=False)
    assert row.validated_at is None
    assert needs_reminding(db, "doc", period.id) is True
    set_month_status(db, "doc", period.id, "2025-11", validated=True)
    assert needs_reminding(db, "doc", period.id) is False
    set_month_status(db, "doc", period.id, "2025-11", validated=False)
    assert get_month_status(db, "doc", period.id, "2025-11").validated_at is None
