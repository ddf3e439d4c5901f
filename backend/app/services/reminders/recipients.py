"""
Recipient resolver: who still has to act for a period.

Two strategies tried in order; the first non-empty answer wins:
1. aggregate view (v_reminder_targets): doctors with an unfinished month, not globally opted out
2. month status rows joined to profiles: locked = false, opted_out false/NULL, not validated, role doctor

Both drop recipients without an email. Switching to the fallback is a heuristic based on
emptiness only: an empty view because everyone is done cannot be told apart from a stale one.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import ASSIGNMENT_STATE_PUBLISHED, DOCTOR_ROLE
from app.core.errors import PersistenceReadError
from app.models.assignment import Assignment
from app.models.doctor_period_month import DoctorPeriodMonth
from app.models.profile import Profile
from app.models.reminder_target import ReminderTarget
from app.models.slot import Slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    user_id: str
    email: str
    full_name: str | None = None


def _has_email():
    return (Profile.email.isnot(None), Profile.email != "")


def _unique(rows: list[Profile]) -> list[Recipient]:
    seen: set[str] = set()
    out = []
    for p in rows:
        if p.user_id in seen:
            continue
        seen.add(p.user_id)
        out.append(Recipient(user_id=p.user_id, email=p.email.strip(), full_name=p.full_name))
    return out


class RecipientStrategy(Protocol):
    name: str

    def resolve(self, db: Session, period_id: int) -> list[Recipient]:
        ...


class AggregateViewStrategy:
    """Primary: the precomputed v_reminder_targets view."""

    name = "aggregate_view"

    def resolve(self, db: Session, period_id: int) -> list[Recipient]:
        rows = (
            db.query(Profile)
            .join(ReminderTarget, ReminderTarget.user_id == Profile.user_id)
            .filter(
                ReminderTarget.period_id == period_id,
                Profile.reminders_opted_out.is_(False),
                *_has_email(),
            )
            .order_by(Profile.email.asc())
            .all()
        )
        return _unique(rows)


class MonthStatusStrategy:
    """Fallback: month rows joined to identities directly. A doctor with several open months appears once."""

    name = "month_status"

    def resolve(self, db: Session, period_id: int) -> list[Recipient]:
        rows = (
            db.query(Profile)
            .join(DoctorPeriodMonth, DoctorPeriodMonth.user_id == Profile.user_id)
            .filter(
                DoctorPeriodMonth.period_id == period_id,
                DoctorPeriodMonth.locked.is_(False),
                or_(DoctorPeriodMonth.opted_out.is_(False), DoctorPeriodMonth.opted_out.is_(None)),
                DoctorPeriodMonth.validated_at.is_(None),
                Profile.role == DOCTOR_ROLE,
                Profile.reminders_opted_out.is_(False),
                *_has_email(),
            )
            .order_by(Profile.email.asc())
            .all()
        )
        return _unique(rows)


@dataclass
class ResolvedRecipients:
    recipients: list[Recipient]
    source: str | None  # strategy name that answered; None when all were empty


class RecipientResolver:
    """Tries strategies in order. A failing strategy is skipped; if the last one tried fails, the read is an outage."""

    def __init__(self, strategies: list[RecipientStrategy] | None = None):
        self.strategies = strategies if strategies is not None else [AggregateViewStrategy(), MonthStatusStrategy()]

    def resolve(self, db: Session, period_id: int) -> ResolvedRecipients:
        last_error: Exception | None = None
        for strategy in self.strategies:
            try:
                recipients = strategy.resolve(db, period_id)
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Recipient strategy %s failed for period %s: %s", strategy.name, period_id, e)
                last_error = e
                continue
            last_error = None
            if recipients:
                return ResolvedRecipients(recipients=recipients, source=strategy.name)
            logger.debug("Recipient strategy %s returned nobody for period %s", strategy.name, period_id)
        if last_error is not None:
            raise PersistenceReadError(f"Recipients for period {period_id}: {last_error}") from last_error
        return ResolvedRecipients(recipients=[], source=None)


# ---------------------------------------------------------------------------
# Assignment reminders (J-n before a published shift)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssignmentReminder:
    period_id: int
    slot_id: int
    start_ts: datetime
    end_ts: datetime
    slot_kind: str
    recipient: Recipient


def fetch_assignment_reminders(
    db: Session,
    now: datetime,
    days_before: int,
    window: timedelta,
) -> list[AssignmentReminder]:
    """Published assignments whose slot starts in [now + days_before, now + days_before + window)."""
    start = now + timedelta(days=days_before)
    try:
        rows = (
            db.query(Assignment, Slot, Profile)
            .join(Slot, Slot.id == Assignment.slot_id)
            .join(Profile, Profile.user_id == Assignment.user_id)
            .filter(
                Assignment.state == ASSIGNMENT_STATE_PUBLISHED,
                Slot.start_ts >= start,
                Slot.start_ts < start + window,
                *_has_email(),
            )
            .order_by(Slot.start_ts.asc(), Slot.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceReadError(f"Could not load assignments (J-{days_before}): {e}") from e
    return [
        AssignmentReminder(
            period_id=a.period_id,
            slot_id=s.id,
            start_ts=s.start_ts,
            end_ts=s.end_ts,
            slot_kind=s.kind,
            recipient=Recipient(user_id=p.user_id, email=p.email.strip(), full_name=p.full_name),
        )
        for a, s, p in rows
    ]
