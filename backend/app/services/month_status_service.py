"""
Month status store: (user_id, period_id, month) -> validated_at, locked, opted_out.

A doctor needs reminding for a period when one of its months (months that have slots) is
unlocked, not opted out and not validated. A month with no row counts as not validated.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import PeriodNotFound
from app.models.doctor_period_month import DoctorPeriodMonth
from app.models.period import Period
from app.models.slot import Slot

logger = logging.getLogger(__name__)

_UNSET = object()
MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def months_for_period(db: Session, period_id: int) -> list[str]:
    """Distinct YYYY-MM months that have at least one slot, ascending."""
    dates = db.query(Slot.date).filter(Slot.period_id == period_id).distinct().all()
    return sorted({d.strftime("%Y-%m") for (d,) in dates})


def get_month_status(db: Session, user_id: str, period_id: int, month: str) -> DoctorPeriodMonth | None:
    return (
        db.query(DoctorPeriodMonth)
        .filter(
            DoctorPeriodMonth.user_id == user_id,
            DoctorPeriodMonth.period_id == period_id,
            DoctorPeriodMonth.month == month,
        )
        .first()
    )


def set_month_status(
    db: Session,
    user_id: str,
    period_id: int,
    month: str,
    validated=_UNSET,
    locked=_UNSET,
    opted_out=_UNSET,
) -> DoctorPeriodMonth:
    """
    Upsert one month row. validated=True stamps validated_at (now), False clears it;
    arguments left out keep their current value. Commits.
    """
    row = get_month_status(db, user_id, period_id, month)
    if row is None:
        row = DoctorPeriodMonth(user_id=user_id, period_id=period_id, month=month, locked=False, opted_out=False)
        db.add(row)
    if validated is not _UNSET:
        row.validated_at = datetime.now(timezone.utc) if validated else None
    if locked is not _UNSET:
        row.locked = bool(locked)
    if opted_out is not _UNSET:
        row.opted_out = bool(opted_out)
    db.commit()
    db.refresh(row)
    return row


def needs_reminding(db: Session, user_id: str, period_id: int) -> bool:
    rows = {
        r.month: r
        for r in db.query(DoctorPeriodMonth).filter(
            DoctorPeriodMonth.user_id == user_id,
            DoctorPeriodMonth.period_id == period_id,
        )
    }
    if any(not r.locked and not r.opted_out and r.validated_at is None for r in rows.values()):
        return True
    return any(month not in rows for month in months_for_period(db, period_id))


def month_status_to_dict(row: DoctorPeriodMonth) -> dict[str, Any]:
    return {
        "user_id": row.user_id,
        "period_id": row.period_id,
        "month": row.month,
        "validated_at": row.validated_at.isoformat() if row.validated_at else None,
        "locked": bool(row.locked),
        "opted_out": bool(row.opted_out),
    }


def _require_period(db: Session, period_id: int) -> None:
    if db.get(Period, period_id) is None:
        raise PeriodNotFound(f"Period {period_id} not found")


def list_month_statuses(db: Session, user_id: str, period_id: int) -> dict[str, Any]:
    """Every slot month of the period for one doctor; months without a row are reported unvalidated."""
    _require_period(db, period_id)
    rows = {
        r.month: r
        for r in db.query(DoctorPeriodMonth).filter(
            DoctorPeriodMonth.user_id == user_id,
            DoctorPeriodMonth.period_id == period_id,
        )
    }
    months = sorted(set(months_for_period(db, period_id)) | set(rows))
    return {
        "months": [
            month_status_to_dict(rows[m])
            if m in rows
            else {"user_id": user_id, "period_id": period_id, "month": m, "validated_at": None, "locked": False, "opted_out": False}
            for m in months
        ],
        "needs_reminding": needs_reminding(db, user_id, period_id),
    }


def update_month_status(
    db: Session,
    user_id: str,
    period_id: int,
    month: str,
    validated: bool | None = None,
    locked: bool | None = None,
    opted_out: bool | None = None,
) -> dict[str, Any]:
    """
    Admin path around set_month_status: None leaves a flag unchanged.
    Raises PeriodNotFound, ValueError for an empty user_id or a month not in YYYY-MM form.
    """
    if not (user_id or "").strip():
        raise ValueError("user_id is required")
    if not MONTH_RE.match(month or ""):
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    _require_period(db, period_id)
    changes = {
        name: value
        for name, value in (("validated", validated), ("locked", locked), ("opted_out", opted_out))
        if value is not None
    }
    row = set_month_status(db, user_id, period_id, month, **changes)
    logger.info("Month status %s/%s/%s updated: %s", user_id, period_id, month, changes)
    return {**month_status_to_dict(row), "needs_reminding": needs_reminding(db, user_id, period_id)}
