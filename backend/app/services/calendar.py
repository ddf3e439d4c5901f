"""
Calendar generator: expand a date range into on-call slots.

Fixed pattern, wall-clock in the period timezone, stored as UTC:
- Monday-Friday: 20:00-00:00
- Saturday: 12:00-18:00, 18:00-00:00
- Sunday (and holidays): 08:00-14:00, 14:00-20:00, 20:00-00:00

A block ending at 00:00 ends on the next calendar date. generate_slots is pure and does not
dedupe; ensure_period_slots is the guarded write path (no-op when the period already has slots).
"""
import logging
from collections import namedtuple
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Iterator
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.models.period import Period
from app.models.slot import Slot

logger = logging.getLogger(__name__)


class SlotKind(str, Enum):
    WEEKDAY_20_00 = "WEEKDAY_20_00"
    SAT_12_18 = "SAT_12_18"
    SAT_18_00 = "SAT_18_00"
    SUN_08_14 = "SUN_08_14"
    SUN_14_20 = "SUN_14_20"
    SUN_20_24 = "SUN_20_24"


# end == 00:00 means midnight of the following day
BlockSpec = namedtuple("BlockSpec", ["kind", "start", "end"])

MIDNIGHT = time(0, 0)

WEEKDAY_BLOCKS = (BlockSpec(SlotKind.WEEKDAY_20_00, time(20, 0), MIDNIGHT),)
SATURDAY_BLOCKS = (
    BlockSpec(SlotKind.SAT_12_18, time(12, 0), time(18, 0)),
    BlockSpec(SlotKind.SAT_18_00, time(18, 0), MIDNIGHT),
)
SUNDAY_BLOCKS = (
    BlockSpec(SlotKind.SUN_08_14, time(8, 0), time(14, 0)),
    BlockSpec(SlotKind.SUN_14_20, time(14, 0), time(20, 0)),
    BlockSpec(SlotKind.SUN_20_24, time(20, 0), MIDNIGHT),
)

# Fixed-date French public holidays (no Easter-based ones)
FIXED_HOLIDAYS = ((1, 1), (5, 1), (5, 8), (7, 14), (8, 15), (11, 1), (11, 11), (12, 25))


@dataclass(frozen=True)
class SlotSpec:
    date: date
    start_ts: datetime
    end_ts: datetime
    kind: SlotKind

    def to_row(self, period_id: int) -> dict[str, Any]:
        return {
            "period_id": period_id,
            "date": self.date,
            "start_ts": self.start_ts,
            "end_ts": self.end_ts,
            "kind": self.kind.value,
        }


def each_day(start: date, end: date) -> Iterator[date]:
    """Every calendar day in [start, end], inclusive."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def fixed_holidays(start: date, end: date) -> set[date]:
    """Fixed public holidays falling inside [start, end]."""
    out = set()
    for year in range(start.year, end.year + 1):
        for month, day in FIXED_HOLIDAYS:
            d = date(year, month, day)
            if start <= d <= end:
                out.add(d)
    return out


def blocks_for_day(day: date, holidays: Iterable[date] = ()) -> tuple[BlockSpec, ...]:
    if day in holidays or day.weekday() == 6:
        return SUNDAY_BLOCKS
    if day.weekday() == 5:
        return SATURDAY_BLOCKS
    return WEEKDAY_BLOCKS


def _to_utc(day: date, t: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, t, tzinfo=tz).astimezone(timezone.utc)


def generate_slots(
    start: date,
    end: date,
    tz_name: str = "UTC",
    holidays: Iterable[date] | None = None,
) -> list[SlotSpec]:
    """
    Expand [start, end] (inclusive) into slot specs, ordered by date then block start.
    Without holidays the count is weekdays + 2 * saturdays + 3 * sundays.
    """
    if end < start:
        raise ValueError(f"end {end} is before start {start}")
    tz = ZoneInfo(tz_name)
    holiday_set = frozenset(holidays or ())
    out: list[SlotSpec] = []
    for day in each_day(start, end):
        for block in blocks_for_day(day, holiday_set):
            end_day = day + timedelta(days=1) if block.end == MIDNIGHT else day
            out.append(
                SlotSpec(
                    date=day,
                    start_ts=_to_utc(day, block.start, tz),
                    end_ts=_to_utc(end_day, block.end, tz),
                    kind=block.kind,
                )
            )
    return out


def period_has_slots(db: Session, period_id: int) -> bool:
    return db.query(Slot.id).filter(Slot.period_id == period_id).first() is not None


def ensure_period_slots(
    db: Session,
    period: Period,
    start: date,
    end: date,
    holidays: Iterable[date] | None = None,
    commit: bool = True,
) -> int:
    """
    Generate and insert slots for a period unless it already has some.
    Returns number of rows inserted (0 when the period was already populated).
    Commits unless commit=False, which leaves the rows in the caller's transaction.
    """
    if period_has_slots(db, period.id):
        logger.info("Period %s (%s) already has slots; skipping generation", period.id, period.label)
        return 0
    specs = generate_slots(start, end, period.timezone or "UTC", holidays)
    db.add_all([Slot(**s.to_row(period.id)) for s in specs])
    if commit:
        db.commit()
    logger.info("Generated %s slots for period %s (%s) %s..%s", len(specs), period.id, period.label, start, end)
    return len(specs)
