from collections import Counter
from datetime import date, datetime, timedelta, timezone

import pytest

from app.models.slot import Slot
from app.services.calendar import (
    SlotKind,
    each_day,
    ensure_period_slots,
    fixed_holidays,
    generate_slots,
)


def _expected_count(start: date, end: date) -> int:
    total = 0
    for d in each_day(start, end):
        total += {5: 2, 6: 3}.get(d.weekday(), 1)
    return total


@pytest.mark.parametrize(
    "start,end",
    [
        (date(2025, 10, 1), date(2025, 12, 31)),
        (date(2026, 1, 1), date(2026, 3, 31)),
        (date(2025, 9, 13), date(2025, 9, 14)),  # a single weekend
        (date(2025, 9, 15), date(2025, 9, 15)),  # a single Monday
    ],
)
def test_slot_count_follows_weekday_pattern(start, end):
    slots = generate_slots(start, end, "Europe/Paris")
    assert len(slots) == _expected_count(start, end)
    keys = [(s.date, s.kind) for s in slots]
    assert len(keys) == len(set(keys))


def test_blocks_per_day_kind():
    slots = generate_slots(date(2025, 9, 13), date(2025, 9, 15), "UTC")  # Sat, Sun, Mon
    by_day = {}
    for s in slots:
        by_day.setdefault(s.date, []).append(s.kind)
    assert by_day[date(2025, 9, 13)] == [SlotKind.SAT_12_18, SlotKind.SAT_18_00]
    assert by_day[date(2025, 9, 14)] == [SlotKind.SUN_08_14, SlotKind.SUN_14_20, SlotKind.SUN_20_24]
    assert by_day[date(2025, 9, 15)] == [SlotKind.WEEKDAY_20_00]


def test_midnight_end_rolls_to_next_day_in_utc():
    (monday,) = generate_slots(date(2025, 10, 6), date(2025, 10, 6), "Europe/Paris")
    # Paris is UTC+2 in early October
    assert monday.start_ts == datetime(2025, 10, 6, 18, 0, tzinfo=timezone.utc)
    assert monday.end_ts == datetime(2025, 10, 6, 22, 0, tzinfo=timezone.utc)
    assert monday.end_ts - monday.start_ts == timedelta(hours=4)


def test_blocks_never_overlap_and_chain_on_sunday():
    sunday = generate_slots(date(2025, 9, 14), date(2025, 9, 14), "UTC")
    assert [s.start_ts.hour for s in sunday] == [8, 14, 20]
    for a, b in zip(sunday, sunday[1:]):
        assert a.end_ts == b.start_ts
    assert sunday[-1].end_ts == datetime(2025, 9, 15, 0, 0, tzinfo=timezone.utc)


def test_holidays_use_sunday_pattern():
    start, end = date(2025, 11, 1), date(2025, 11, 30)
    holidays = fixed_holidays(start, end)
    assert holidays == {date(2025, 11, 1), date(2025, 11, 11)}
    with_holidays = generate_slots(start, end, "Europe/Paris", holidays)
    kinds_on_11th = [s.kind for s in with_holidays if s.date == date(2025, 11, 11)]
    assert kinds_on_11th == [SlotKind.SUN_08_14, SlotKind.SUN_14_20, SlotKind.SUN_20_24]
    # 11/11 is a Tuesday (+2 blocks); 11/01 is a Saturday (+1 block)
    assert len(with_holidays) == _expected_count(start, end) + 3


def test_inverted_range_is_rejected():
    with pytest.raises(ValueError):
        generate_slots(date(2025, 10, 2), date(2025, 10, 1))


def test_ensure_period_slots_is_guarded(db, make_period):
    period = make_period()
    start, end = date(2025, 10, 1), date(2025, 12, 31)
    inserted = ensure_period_slots(db, period, start, end)
    assert inserted == _expected_count(start, end)
    assert ensure_period_slots(db, period, start, end) == 0
    assert db.query(Slot).filter(Slot.period_id == period.id).count() == inserted
    kinds = Counter(s.kind for s in db.query(Slot).all())
    assert set(kinds) == {k.value for k in SlotKind}
