"""
Due-window evaluator: which reminder kinds are due at a given instant.

Pure (no DB, no ledger): the same inputs always give the same answer, so tests inject `now`.
The ledger decides whether a due kind was already delivered; this module only answers "is it time".

Rules (policy values come from automation_config):
- no deadline, or now >= deadline: nothing is due
- deadline tier h (48/24/1): |deadline - now| within +/- tolerance of h hours
- weekly: now, in the period timezone, is on the weekly weekday during the weekly hour
- opening: now in [avail_open_at, avail_open_at + firing window)
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable
from zoneinfo import ZoneInfo

from app.core.automation_config import (
    DUE_TOLERANCE_MINUTES,
    FIRING_WINDOW_MINUTES,
    WEEKLY_REMINDER_HOUR,
    WEEKLY_REMINDER_WEEKDAY,
    AutomationConfig,
)


class ReminderKind(str, Enum):
    WEEKLY = "weekly"
    DEADLINE_48 = "deadline_48"
    DEADLINE_24 = "deadline_24"
    DEADLINE_1 = "deadline_1"
    OPENING = "opening"
    ASSIGNMENT_J1 = "assignment_j1"
    ASSIGNMENT_J7 = "assignment_j7"


# Evaluation and dispatch order within one tick (keeps logs predictable)
KIND_ORDER = tuple(ReminderKind)

DEADLINE_TIER_KINDS = {
    48: ReminderKind.DEADLINE_48,
    24: ReminderKind.DEADLINE_24,
    1: ReminderKind.DEADLINE_1,
}
DEADLINE_TIER_HOURS = {kind: h for h, kind in DEADLINE_TIER_KINDS.items()}

ASSIGNMENT_KINDS = {
    1: ReminderKind.ASSIGNMENT_J1,
    7: ReminderKind.ASSIGNMENT_J7,
}

PERIOD_KINDS = frozenset(
    {ReminderKind.WEEKLY, ReminderKind.OPENING, *DEADLINE_TIER_KINDS.values()}
)


@dataclass(frozen=True)
class DuePolicy:
    tolerance: timedelta = timedelta(minutes=DUE_TOLERANCE_MINUTES)
    firing_window: timedelta = timedelta(minutes=FIRING_WINDOW_MINUTES)
    weekly_weekday: int = WEEKLY_REMINDER_WEEKDAY
    weekly_hour: int = WEEKLY_REMINDER_HOUR

    @classmethod
    def from_config(cls, cfg: AutomationConfig) -> "DuePolicy":
        return cls(
            tolerance=timedelta(minutes=cfg.due_tolerance_minutes),
            firing_window=timedelta(minutes=cfg.firing_window_minutes),
            weekly_weekday=cfg.weekly_weekday,
            weekly_hour=cfg.weekly_hour,
        )


DEFAULT_POLICY = DuePolicy()


def is_weekly_window(now: datetime, tz_name: str, policy: DuePolicy = DEFAULT_POLICY) -> bool:
    local = now.astimezone(ZoneInfo(tz_name))
    return local.weekday() == policy.weekly_weekday and local.hour == policy.weekly_hour


def due_kinds(
    now: datetime,
    deadline: datetime | None,
    weekly_enabled: bool,
    extra_hours: Iterable[int],
    tz_name: str,
    avail_open_at: datetime | None = None,
    policy: DuePolicy = DEFAULT_POLICY,
) -> list[ReminderKind]:
    """
    Reminder kinds due at `now` for one period, in KIND_ORDER.
    Weekly only depends on the local clock; deadline tiers and opening stop once the deadline has passed.
    """
    due = set()
    if weekly_enabled and is_weekly_window(now, tz_name, policy):
        due.add(ReminderKind.WEEKLY)
    if deadline is None or now >= deadline:
        return [k for k in KIND_ORDER if k in due]
    left = deadline - now
    for h in extra_hours:
        kind = DEADLINE_TIER_KINDS.get(h)
        if kind is not None and abs(left - timedelta(hours=h)) <= policy.tolerance:
            due.add(kind)
    if avail_open_at is not None and avail_open_at <= now < avail_open_at + policy.firing_window:
        due.add(ReminderKind.OPENING)
    return [k for k in KIND_ORDER if k in due]


# ---------------------------------------------------------------------------
# Window keys: one string per logical occurrence, part of the ledger's unique tuple
# ---------------------------------------------------------------------------


def iso_week_key(now: datetime, tz_name: str) -> str:
    """ISO week of now in the period timezone, e.g. 2025-W38."""
    year, week, _ = now.astimezone(ZoneInfo(tz_name)).isocalendar()
    return f"{year}-W{week:02d}"


def deadline_window_key(deadline: datetime, hours: int) -> str:
    return f"{deadline.astimezone(timezone.utc).isoformat(timespec='seconds')}:{hours}h"


def opening_window_key(avail_open_at: datetime) -> str:
    return avail_open_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H")


def slot_window_key(slot_id: int) -> str:
    return f"slot:{slot_id}"


def period_window_key(
    kind: ReminderKind,
    now: datetime,
    tz_name: str,
    deadline: datetime | None = None,
    avail_open_at: datetime | None = None,
) -> str:
    """Window key for a period-level kind (weekly, deadline tiers, opening)."""
    if kind == ReminderKind.WEEKLY:
        return iso_week_key(now, tz_name)
    if kind in DEADLINE_TIER_HOURS:
        if deadline is None:
            raise ValueError(f"{kind.value} needs a deadline")
        return deadline_window_key(deadline, DEADLINE_TIER_HOURS[kind])
    if kind == ReminderKind.OPENING:
        if avail_open_at is None:
            raise ValueError("opening needs avail_open_at")
        return opening_window_key(avail_open_at)
    raise ValueError(f"{kind.value} is not a period-level kind")
