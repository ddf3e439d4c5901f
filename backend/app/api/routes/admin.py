"""
Admin automation API: per-period settings, manual period/slot generation, doctor month status,
manual reminder run.
Same authorization gate as the cron triggers.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.automation_config import DEFAULT_TIMEZONE
from app.core.errors import AutomationError, automation_error_to_http
from app.core.security import require_trigger_auth
from app.db.session import get_db
from app.services.automation_settings import (
    get_automation_settings,
    list_periods,
    settings_to_dict,
    upsert_automation_settings,
)
from app.services.month_status_service import list_month_statuses, update_month_status
from app.services.period_lifecycle import create_period
from app.services.reminders.tick import run_period_reminders

router = APIRouter(dependencies=[Depends(require_trigger_auth)])
logger = logging.getLogger(__name__)


def _as_utc(dt: datetime | None) -> datetime | None:
    # naive ISO strings from the admin UI are UTC
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


# --- Settings ---


@router.get("/automation-settings")
def read_automation_settings(
    db: Session = Depends(get_db),
    period_id: int | None = Query(None, description="Period whose settings to return (defaults if none saved)"),
) -> dict[str, Any]:
    """All periods (newest first) and, when period_id is given, that period's settings."""
    return {
        "periods": list_periods(db),
        "settings": get_automation_settings(db, period_id) if period_id is not None else None,
    }


class AutomationSettingsRequest(BaseModel):
    # Loosely typed on purpose: the admin form posts strings; the service coerces (invalid -> default)
    period_id: int
    slots_generate_before_days: Any = None
    avail_deadline_before_days: Any = None
    planning_generate_before_days: Any = None
    weekly_reminder: bool = True
    extra_reminder_hours: Any = None
    lock_assignments: bool = False


@router.post("/automation-settings")
def save_automation_settings(
    body: AutomationSettingsRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Upsert a period's settings; derived instants and period.generate_at are recomputed."""
    try:
        row = upsert_automation_settings(db, body.period_id, body.model_dump(exclude={"period_id"}))
    except AutomationError as e:
        raise automation_error_to_http(e) from e
    return {"ok": True, "settings": settings_to_dict(row)}


# --- Period + slots ---


class GenerateSlotsRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=64)
    start_date: date
    end_date: date
    open_at: datetime | None = Field(None, description="Defaults to start_date 00:00 UTC")
    timezone: str = DEFAULT_TIMEZONE
    holidays: list[date] = Field(default_factory=list)
    auto_holidays: bool = Field(False, description="Add fixed French public holidays in range")


@router.post("/generate-slots")
def generate_slots(body: GenerateSlotsRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Create a period and its slots. 409 if the label exists."""
    try:
        created = create_period(
            db,
            body.label,
            body.start_date,
            body.end_date,
            open_at=_as_utc(body.open_at),
            tz_name=body.timezone,
            holidays=body.holidays,
            auto_holidays=body.auto_holidays,
        )
    except (AutomationError, ValueError) as e:
        raise automation_error_to_http(e) from e
    return {"ok": True, **created}


# --- Manual run ---


class RunRemindersRequest(BaseModel):
    now: datetime | None = Field(None, description="Evaluate as of this instant (ISO 8601); default: now")
    force_kinds: list[str] = Field(default_factory=list)
    dry_run: bool = True


@router.post("/periods/{period_id}/run-reminders")
def run_reminders(
    period_id: int,
    body: RunRemindersRequest | None = None,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Run reminders for one period. Dry run by default."""
    body = body or RunRemindersRequest()
    try:
        return run_period_reminders(
            db,
            period_id,
            now=_as_utc(body.now),
            dry_run=body.dry_run,
            force_kinds=body.force_kinds,
        )
    except (AutomationError, ValueError) as e:
        raise automation_error_to_http(e) from e


# --- Month status ---


@router.get("/month-status")
def read_month_status(
    user_id: str = Query(..., min_length=1),
    period_id: int = Query(...),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """One doctor's months for a period, and whether reminders still target them."""
    try:
        return list_month_statuses(db, user_id, period_id)
    except AutomationError as e:
        raise automation_error_to_http(e) from e


class MonthStatusRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    period_id: int
    month: str = Field(..., description="YYYY-MM")
    validated: bool | None = None
    locked: bool | None = None
    opted_out: bool | None = None


@router.post("/month-status")
def save_month_status(body: MonthStatusRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Set or clear validation, lock and opt-out for one month; omitted flags are unchanged."""
    try:
        row = update_month_status(
            db,
            body.user_id,
            body.period_id,
            body.month,
            validated=body.validated,
            locked=body.locked,
            opted_out=body.opted_out,
        )
    except (AutomationError, ValueError) as e:
        raise automation_error_to_http(e) from e
    return {"ok": True, "status": row}
