from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import PeriodNotFound
from app.services.automation_settings import (
    coerce_offset,
    coerce_reminder_hours,
    get_automation_settings,
    resolve_instants,
    update_period_open_at,
    upsert_automation_settings,
)

OPEN_AT = datetime(2025, 10, 1, tzinfo=timezone.utc)


def test_resolve_instants_subtracts_whole_days():
    r = resolve_instants(OPEN_AT, 45, 15, 21)
    assert r.avail_open_at == OPEN_AT - timedelta(days=45)
    assert r.avail_deadline == datetime(2025, 9, 16, tzinfo=timezone.utc)
    assert r.generate_at == datetime(2025, 9, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw,expected",
    [(10, 10), ("12", 12), (" 7 ", 7), (-3, 0), ("abc", 45), (None, 45), ("", 45), (True, 45), (2.5, 45)],
)
def test_coerce_offset(raw, expected):
    assert coerce_offset(raw, 45) == expected


def test_coerce_reminder_hours():
    assert coerce_reminder_hours([1, "24", 48, 24, -5, "x"]) == [48, 24, 1]
    assert coerce_reminder_hours("48,24") == [48, 24, 1]
    assert coerce_reminder_hours([]) == []


def test_upsert_derives_instants_and_syncs_period(db, make_period):
    period = make_period()
    row = upsert_automation_settings(
        db,
        period.id,
        {"slots_generate_before_days": 30, "avail_deadline_before_days": 15, "planning_generate_before_days": 21},
    )
    db.refresh(period)
    assert row.avail_open_at == OPEN_AT - timedelta(days=30)
    assert row.avail_deadline == OPEN_AT - timedelta(days=15)
    assert period.generate_at == OPEN_AT - timedelta(days=21)
    assert row.weekly_reminder is True
    assert row.extra_reminder_hours == [48, 24, 1]


def test_changing_an_offset_recomputes_exactly(db, make_period):
    period = make_period()
    upsert_automation_settings(db, period.id, {"avail_deadline_before_days": 15})
    row = upsert_automation_settings(db, period.id, {"avail_deadline_before_days": 10})
    assert row.avail_deadline == OPEN_AT - timedelta(days=10)
    again = upsert_automation_settings(db, period.id, {"avail_deadline_before_days": 10})
    assert again.avail_deadline == row.avail_deadline


def test_invalid_offsets_fall_back_to_defaults(db, make_period):
    period = make_period()
    row = upsert_automation_settings(
        db,
        period.id,
        {"slots_generate_before_days": "soon", "avail_deadline_before_days": None, "weekly_reminder": False},
    )
    assert row.slots_generate_before_days == 45
    assert row.avail_deadline_before_days == 15
    assert row.weekly_reminder is False


def test_moving_open_at_rederives(db, make_period):
    period = make_period()
    upsert_automation_settings(db, period.id, {})
    new_open = OPEN_AT + timedelta(days=7)
    update_period_open_at(db, period.id, new_open)
    settings = get_automation_settings(db, period.id)
    assert settings["avail_deadline"] == (new_open - timedelta(days=15)).isoformat()
    db.refresh(period)
    assert period.generate_at == new_open - timedelta(days=21)


def test_unknown_period(db):
    with pytest.raises(PeriodNotFound):
        upsert_automation_settings(db, 999, {})


def test_defaults_when_no_settings_saved(db, make_period):
    period = make_period()
    settings = get_automation_settings(db, period.id)
    assert settings["avail_deadline_before_days"] == 15
    assert settings["avail_deadline"] is None
