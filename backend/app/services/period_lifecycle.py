"""
Period lifecycle trigger: create the next quarter's period ahead of time.

Looks at the current quarter and the next three. A candidate is due when
now is in [quarter_start - open_lead_days, quarter_start) and no period with its label exists.
At most one period is created per run, so a trigger that was down for a while does not
create a burst of periods in one go.
"""
import logging
from collections import namedtuple
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.automation_config import DEFAULT_TIMEZONE, OPEN_LEAD_DAYS, PLANNING_LEAD_DAYS
from app.core.constants import GLOBAL_SETTINGS_KEY, LIFECYCLE_CANDIDATE_QUARTERS, PERIOD_LABEL_FORMAT
from app.core.errors import PeriodAlreadyExists, PersistenceReadError
from app.models.global_setting import GlobalSetting
from app.models.period import Period
from app.services.calendar import ensure_period_slots, fixed_holidays

logger = logging.getLogger(__name__)

QuarterCandidate = namedtuple("QuarterCandidate", ["start", "end", "label"])


def quarter_start(d: date) -> date:
    return date(d.year, 3 * ((d.month - 1) // 3) + 1, 1)


def add_months(d: date, months: int) -> date:
    """First-of-month arithmetic (callers only pass quarter starts)."""
    idx = d.year * 12 + (d.month - 1) + months
    return date(idx // 12, idx % 12 + 1, 1)


def quarter_label(start: date) -> str:
    return PERIOD_LABEL_FORMAT.format(quarter=(start.month - 1) // 3 + 1, year=start.year)


def quarter_candidates(now: datetime, count: int = LIFECYCLE_CANDIDATE_QUARTERS) -> list[QuarterCandidate]:
    """Current quarter and the following ones, computed on the UTC date of now."""
    q0 = quarter_start(now.astimezone(timezone.utc).date())
    out = []
    for i in range(count):
        start = add_months(q0, 3 * i)
        end = add_months(start, 3) - timedelta(days=1)
        out.append(QuarterCandidate(start=start, end=end, label=quarter_label(start)))
    return out


def _utc_midnight(d: date) -> datetime:
    return datetime.combine(d, time(0, 0), tzinfo=timezone.utc)


def _as_days(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def get_global_overrides(db: Session) -> dict[str, int]:
    """open_lead_days / planning_lead_days from automation_settings[key='global'], env defaults otherwise."""
    out = {"open_lead_days": OPEN_LEAD_DAYS, "planning_lead_days": PLANNING_LEAD_DAYS}
    try:
        row = db.get(GlobalSetting, GLOBAL_SETTINGS_KEY)
    except SQLAlchemyError as e:
        logger.warning("Could not read global automation settings (using defaults): %s", e)
        db.rollback()
        return out
    s = (row.settings if row else None) or {}
    out["open_lead_days"] = _as_days(s.get("open_lead_days"), out["open_lead_days"])
    out["planning_lead_days"] = _as_days(s.get("planning_generate_before_days"), out["planning_lead_days"])
    return out


def _period_exists(db: Session, label: str) -> bool:
    try:
        return db.query(Period.id).filter(Period.label == label).first() is not None
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceReadError(f"Could not check period {label}: {e}") from e


def _insert_period_with_slots(
    db: Session,
    period: Period,
    start: date,
    end: date,
    holidays: list[date] | None = None,
) -> int:
    """Period row and its slots in one transaction; on any failure neither is kept."""
    db.add(period)
    try:
        db.flush()
        slots = ensure_period_slots(db, period, start, end, holidays, commit=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(period)
    return slots


def create_quarter_period(
    db: Session,
    cand: QuarterCandidate,
    planning_lead_days: int,
    tz_name: str = DEFAULT_TIMEZONE,
) -> tuple[Period, int] | None:
    """Insert the period row with its slots. Returns None if another run created the same label concurrently."""
    open_at = _utc_midnight(cand.start)
    period = Period(
        label=cand.label,
        open_at=open_at,
        close_at=datetime.combine(cand.end, time(23, 59, 59), tzinfo=timezone.utc),
        generate_at=open_at - timedelta(days=planning_lead_days),
        timezone=tz_name,
    )
    try:
        slots = _insert_period_with_slots(db, period, cand.start, cand.end)
    except IntegrityError:
        logger.info("Period %s created concurrently by another run; skipping", cand.label)
        return None
    return period, slots


def run_period_lifecycle(
    db: Session,
    now: datetime | None = None,
    open_lead_days: int | None = None,
    tz_name: str = DEFAULT_TIMEZONE,
) -> dict[str, Any]:
    """
    One lifecycle tick. Returns {"ok": True, "created": None | {period_id, label, slots}}.
    Raises PersistenceReadError if the period store cannot be read.
    """
    now = now or datetime.now(timezone.utc)
    overrides = get_global_overrides(db)
    lead = overrides["open_lead_days"] if open_lead_days is None else open_lead_days

    for cand in quarter_candidates(now):
        open_from = _utc_midnight(cand.start) - timedelta(days=lead)
        if not (open_from <= now < _utc_midnight(cand.start)):
            continue
        if _period_exists(db, cand.label):
            continue
        created = create_quarter_period(db, cand, overrides["planning_lead_days"], tz_name)
        if created is None:
            break
        period, slots = created
        logger.info("Lifecycle: created period %s (id=%s) with %s slots", period.label, period.id, slots)
        return {"ok": True, "created": {"period_id": period.id, "label": period.label, "slots": slots}}

    return {"ok": True, "created": None}


def create_period(
    db: Session,
    label: str,
    start: date,
    end: date,
    open_at: datetime | None = None,
    tz_name: str = DEFAULT_TIMEZONE,
    holidays: list[date] | None = None,
    auto_holidays: bool = False,
) -> dict[str, Any]:
    """
    Admin path: create a period over [start, end] and generate its slots.
    open_at defaults to UTC midnight of start; close_at is end at 23:59:59 UTC.
    Raises PeriodAlreadyExists for a taken label, ValueError for an inverted range.
    """
    label = (label or "").strip()
    if not label:
        raise ValueError("label is required")
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e
    if end < start:
        raise ValueError(f"end {end} is before start {start}")
    if _period_exists(db, label):
        raise PeriodAlreadyExists(f"Period {label} already exists")
    days_off = set(holidays or [])
    if auto_holidays:
        days_off |= fixed_holidays(start, end)
    period = Period(
        label=label,
        open_at=open_at or _utc_midnight(start),
        close_at=datetime.combine(end, time(23, 59, 59), tzinfo=timezone.utc),
        timezone=tz_name,
    )
    try:
        slots = _insert_period_with_slots(db, period, start, end, sorted(days_off))
    except IntegrityError as e:
        raise PeriodAlreadyExists(f"Period {label} already exists") from e
    logger.info("Created period %s (id=%s) %s..%s with %s slots", label, period.id, start, end, slots)
    return {"period_id": period.id, "label": period.label, "slots": slots, "holidays": [d.isoformat() for d in sorted(days_off)]}
