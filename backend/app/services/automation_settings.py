"""
Automation settings resolver: per-period day offsets -> absolute instants.

    avail_open_at  = period.open_at - slots_generate_before_days
    avail_deadline = period.open_at - avail_deadline_before_days
    generate_at    = period.open_at - planning_generate_before_days

Derived values are recomputed on every settings write and whenever the period's open_at moves.
generate_at is also copied onto the period row: the UI countdown reads it from there.
"""
import logging
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.automation_config import (
    DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS,
    DEFAULT_PLANNING_GENERATE_BEFORE_DAYS,
    DEFAULT_REMINDER_HOURS,
    DEFAULT_SLOTS_GENERATE_BEFORE_DAYS,
)
from app.core.errors import PeriodNotFound, PersistenceReadError
from app.models.period import Period
from app.models.period_automation import PeriodAutomation

logger = logging.getLogger(__name__)

ResolvedInstants = namedtuple("ResolvedInstants", ["avail_open_at", "avail_deadline", "generate_at"])


def coerce_offset(value: Any, default: int) -> int:
    """Non-negative whole days; anything non-numeric (None, '', 'abc', 2.5) falls back to default."""
    if isinstance(value, bool):
        return default
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return max(0, n)


def coerce_reminder_hours(value: Any) -> list[int]:
    """Ordered set of non-negative hour offsets, largest first. Non-list input gives the defaults."""
    if not isinstance(value, (list, tuple)):
        return list(DEFAULT_REMINDER_HOURS)
    hours = set()
    for raw in value:
        if isinstance(raw, bool):
            continue
        try:
            h = int(str(raw).strip())
        except (TypeError, ValueError):
            continue
        if h >= 0:
            hours.add(h)
    return sorted(hours, reverse=True)


def resolve_instants(
    open_at: datetime,
    slots_generate_before_days: int,
    avail_deadline_before_days: int,
    planning_generate_before_days: int,
) -> ResolvedInstants:
    """Whole-day subtractions from open_at; wall time is preserved."""
    return ResolvedInstants(
        avail_open_at=open_at - timedelta(days=slots_generate_before_days),
        avail_deadline=open_at - timedelta(days=avail_deadline_before_days),
        generate_at=open_at - timedelta(days=planning_generate_before_days),
    )


def default_settings(period_id: int | None) -> dict[str, Any]:
    return {
        "period_id": period_id,
        "slots_generate_before_days": DEFAULT_SLOTS_GENERATE_BEFORE_DAYS,
        "avail_deadline_before_days": DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS,
        "planning_generate_before_days": DEFAULT_PLANNING_GENERATE_BEFORE_DAYS,
        "weekly_reminder": True,
        "extra_reminder_hours": list(DEFAULT_REMINDER_HOURS),
        "lock_assignments": False,
        "avail_open_at": None,
        "avail_deadline": None,
        "updated_at": None,
    }


def settings_to_dict(row: PeriodAutomation) -> dict[str, Any]:
    return {
        "period_id": row.period_id,
        "slots_generate_before_days": row.slots_generate_before_days,
        "avail_deadline_before_days": row.avail_deadline_before_days,
        "planning_generate_before_days": row.planning_generate_before_days,
        "weekly_reminder": row.weekly_reminder,
        "extra_reminder_hours": list(row.extra_reminder_hours or []),
        "lock_assignments": row.lock_assignments,
        "avail_open_at": row.avail_open_at.isoformat() if row.avail_open_at else None,
        "avail_deadline": row.avail_deadline.isoformat() if row.avail_deadline else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def period_to_dict(p: Period) -> dict[str, Any]:
    return {
        "id": p.id,
        "label": p.label,
        "open_at": p.open_at.isoformat() if p.open_at else None,
        "close_at": p.close_at.isoformat() if p.close_at else None,
        "generate_at": p.generate_at.isoformat() if p.generate_at else None,
        "timezone": p.timezone,
    }


def _apply_derived(period: Period, row: PeriodAutomation) -> None:
    resolved = resolve_instants(
        period.open_at,
        row.slots_generate_before_days,
        row.avail_deadline_before_days,
        row.planning_generate_before_days,
    )
    row.avail_open_at = resolved.avail_open_at
    row.avail_deadline = resolved.avail_deadline
    row.updated_at = datetime.now(timezone.utc)
    period.generate_at = resolved.generate_at


def upsert_automation_settings(db: Session, period_id: int, payload: dict[str, Any]) -> PeriodAutomation:
    """
    Create or replace the settings of a period from a loosely-typed payload (admin form).
    Offsets are coerced (invalid -> default), derived timestamps and period.generate_at recomputed. Commits.
    """
    period = db.get(Period, period_id)
    if period is None:
        raise PeriodNotFound(f"Period {period_id} not found")
    row = db.get(PeriodAutomation, period_id)
    if row is None:
        row = PeriodAutomation(period_id=period_id)
        db.add(row)
    row.slots_generate_before_days = coerce_offset(
        payload.get("slots_generate_before_days"), DEFAULT_SLOTS_GENERATE_BEFORE_DAYS
    )
    row.avail_deadline_before_days = coerce_offset(
        payload.get("avail_deadline_before_days"), DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS
    )
    row.planning_generate_before_days = coerce_offset(
        payload.get("planning_generate_before_days"), DEFAULT_PLANNING_GENERATE_BEFORE_DAYS
    )
    row.weekly_reminder = bool(payload.get("weekly_reminder", True))
    row.extra_reminder_hours = coerce_reminder_hours(payload.get("extra_reminder_hours"))
    row.lock_assignments = bool(payload.get("lock_assignments", False))
    _apply_derived(period, row)
    db.commit()
    db.refresh(row)
    logger.info(
        "Automation settings saved for period %s: open=%s deadline=%s generate=%s",
        period.label,
        row.avail_open_at,
        row.avail_deadline,
        period.generate_at,
    )
    return row


def update_period_open_at(db: Session, period_id: int, open_at: datetime) -> Period:
    """Move a period's open_at and re-derive its settings timestamps (if it has settings). Commits."""
    period = db.get(Period, period_id)
    if period is None:
        raise PeriodNotFound(f"Period {period_id} not found")
    period.open_at = open_at
    row = db.get(PeriodAutomation, period_id)
    if row is not None:
        _apply_derived(period, row)
    db.commit()
    db.refresh(period)
    return period


def get_automation_settings(db: Session, period_id: int) -> dict[str, Any]:
    """Settings of one period as a dict, or the defaults when none were saved yet."""
    row = db.get(PeriodAutomation, period_id)
    return settings_to_dict(row) if row else default_settings(period_id)


def list_periods(db: Session) -> list[dict[str, Any]]:
    rows = db.query(Period).order_by(Period.open_at.desc()).all()
    return [period_to_dict(p) for p in rows]


def list_periods_with_automation(db: Session) -> list[Period]:
    """Periods that have a settings row (others get no reminders), oldest first. Read errors -> PersistenceReadError."""
    try:
        return (
            db.query(Period)
            .join(PeriodAutomation, PeriodAutomation.period_id == Period.id)
            .options(joinedload(Period.automation))
            .order_by(Period.open_at.asc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceReadError(f"Could not load periods: {e}") from e
