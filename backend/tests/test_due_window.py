from datetime import datetime, timedelta, timezone

from app.services.reminders.due import (
    DuePolicy,
    ReminderKind,
    deadline_window_key,
    due_kinds,
    iso_week_key,
    opening_window_key,
    period_window_key,
    slot_window_key,
)

PARIS = "Europe/Paris"
HOURS = [48, 24, 1]
# 2025-09-14 is a Sunday
NOW = datetime(2025, 9, 14, 0, 0, tzinfo=timezone.utc)


def test_deadline_48_exactly():
    assert due_kinds(NOW, NOW + timedelta(hours=48), True, HOURS, PARIS) == [ReminderKind.DEADLINE_48]


def test_tolerance_edges():
    deadline = NOW + timedelta(hours=24)
    inside = NOW + timedelta(minutes=15)
    outside = NOW + timedelta(minutes=16)
    assert due_kinds(inside, deadline, False, HOURS, PARIS) == [ReminderKind.DEADLINE_24]
    assert due_kinds(outside, deadline, False, HOURS, PARIS) == []
    assert due_kinds(NOW - timedelta(minutes=15), deadline, False, HOURS, PARIS) == [ReminderKind.DEADLINE_24]


def test_nothing_after_deadline():
    deadline = NOW - timedelta(minutes=10)
    assert due_kinds(NOW, deadline, True, HOURS, PARIS) == []
    assert due_kinds(NOW, NOW, True, HOURS, PARIS) == []


def test_nothing_without_deadline():
    assert due_kinds(NOW, None, True, HOURS, PARIS) == []


def test_weekly_monday_morning_local_time():
    # Monday 2025-09-15 09:30 in Paris (UTC+2)
    now = datetime(2025, 9, 15, 7, 30, tzinfo=timezone.utc)
    deadline = datetime(2025, 10, 1, tzinfo=timezone.utc)
    assert due_kinds(now, deadline, True, HOURS, PARIS) == [ReminderKind.WEEKLY]
    assert due_kinds(now, deadline, False, HOURS, PARIS) == []
    # 09:30 UTC is 11:30 in Paris: outside the hour
    assert due_kinds(now + timedelta(hours=2), deadline, True, HOURS, PARIS) == []


def test_weekly_combined_with_tier_keeps_order():
    now = datetime(2025, 9, 15, 7, 30, tzinfo=timezone.utc)
    deadline = now + timedelta(hours=48, minutes=5)
    assert due_kinds(now, deadline, True, HOURS, PARIS) == [ReminderKind.WEEKLY, ReminderKind.DEADLINE_48]


def test_unknown_hour_offsets_are_ignored():
    assert due_kinds(NOW, NOW + timedelta(hours=72), False, [72], PARIS) == []


def test_opening_window():
    open_at = NOW - timedelta(minutes=30)
    deadline = NOW + timedelta(days=20)
    assert due_kinds(NOW, deadline, False, HOURS, PARIS, avail_open_at=open_at) == [ReminderKind.OPENING]
    later = NOW + timedelta(minutes=31)
    assert due_kinds(later, deadline, False, HOURS, PARIS, avail_open_at=open_at) == []


def test_policy_is_configurable():
    policy = DuePolicy(tolerance=timedelta(minutes=30))
    deadline = NOW + timedelta(hours=1, minutes=25)
    assert due_kinds(NOW, deadline, False, HOURS, PARIS, policy=policy) == [ReminderKind.DEADLINE_1]
    assert due_kinds(NOW, deadline, False, HOURS, PARIS) == []


def test_window_keys():
    deadline = datetime(2025, 9, 16, tzinfo=timezone.utc)
    assert deadline_window_key(deadline, 48) == "2025-09-16T00:00:00+00:00:48h"
    assert iso_week_key(datetime(2025, 9, 15, 7, 30, tzinfo=timezone.utc), PARIS) == "2025-W38"
    assert opening_window_key(datetime(2025, 8, 17, 0, 20, tzinfo=timezone.utc)) == "2025-08-17T00"
    assert slot_window_key(42) == "slot:42"
    assert period_window_key(ReminderKind.DEADLINE_24, NOW, PARIS, deadline=deadline) == "2025-09-16T00:00:00+00:00:24h"


def test_week_key_uses_local_calendar():
    # Sunday 23:30 UTC is already Monday in Paris
    late_sunday = datetime(2025, 9, 14, 23, 30, tzinfo=timezone.utc)
    assert iso_week_key(late_sunday, PARIS) == "2025-W38"
    assert iso_week_key(late_sunday, "UTC") == "2025-W37"


def test_weekly_fires_regardless_of_deadline_state():
    # Monday 2025-09-15 09:30 in Paris
    monday = datetime(2025, 9, 15, 7, 30, tzinfo=timezone.utc)
    assert due_kinds(monday, monday - timedelta(days=2), True, HOURS, PARIS) == [ReminderKind.WEEKLY]
    assert due_kinds(monday, None, True, HOURS, PARIS) == [ReminderKind.WEEKLY]
    assert due_kinds(monday, None, False, HOURS, PARIS) == []
