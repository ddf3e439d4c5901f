"""
Reminder tick: one pass of the whole pipeline.

    periods with settings -> due kinds (evaluator) -> recipients (resolver, once per period)
    -> dispatcher (ledger claim, send, outcome) ; then J-n assignment reminders

Periods are processed one after another and each (period, kind) batch is sequential, so the
rate limit stays global. A read outage aborts the affected period (or the whole tick when the
period list itself cannot be read); per-recipient problems only land in the errors list.
The response is always ok; idempotency lives in the ledger, so a cut-short tick resumes on the next one.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from app.core.automation_config import DEFAULT_REMINDER_HOURS, AutomationConfig, get_automation_config
from app.core.errors import PeriodNotFound, PersistenceReadError, TransportNotConfigured
from app.models.period import Period
from app.services.automation_settings import default_settings, list_periods_with_automation, resolve_instants
from app.services.email import templates
from app.services.email.transport import EmailTransport, get_transport
from app.services.reminders.dispatcher import (
    Dispatcher,
    DispatchReport,
    OutboundMessage,
    RateLimiter,
    error_entry,
)
from app.services.reminders.due import (
    ASSIGNMENT_KINDS,
    DEADLINE_TIER_HOURS,
    KIND_ORDER,
    PERIOD_KINDS,
    DuePolicy,
    ReminderKind,
    due_kinds,
    period_window_key,
    slot_window_key,
)
from app.services.reminders.ledger import DedupLedger
from app.services.reminders.recipients import Recipient, RecipientResolver, fetch_assignment_reminders

logger = logging.getLogger(__name__)


class TimeBudget:
    """Checked between batches only; a batch in flight always finishes."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._until = clock() + seconds

    def exhausted(self) -> bool:
        return self._clock() >= self._until


class PeriodWindow:
    """Effective instants and reminder flags of one period."""

    def __init__(self, period: Period, cfg: AutomationConfig):
        self.period = period
        self.tz_name = period.timezone or cfg.default_timezone
        row = period.automation
        if row is not None:
            self.avail_open_at = row.avail_open_at
            self.deadline = row.avail_deadline or period.close_at
            self.weekly_enabled = bool(row.weekly_reminder)
            self.hours = list(row.extra_reminder_hours or DEFAULT_REMINDER_HOURS)
        else:
            d = default_settings(period.id)
            resolved = resolve_instants(
                period.open_at,
                d["slots_generate_before_days"],
                d["avail_deadline_before_days"],
                d["planning_generate_before_days"],
            )
            self.avail_open_at = resolved.avail_open_at
            self.deadline = resolved.avail_deadline or period.close_at
            self.weekly_enabled = d["weekly_reminder"]
            self.hours = list(DEFAULT_REMINDER_HOURS)

    def due(self, now: datetime, policy: DuePolicy) -> list[ReminderKind]:
        return due_kinds(
            now,
            self.deadline,
            self.weekly_enabled,
            self.hours,
            self.tz_name,
            avail_open_at=self.avail_open_at,
            policy=policy,
        )

    def is_open(self, now: datetime) -> bool:
        if self.deadline is None or now >= self.deadline:
            return False
        return self.avail_open_at is None or now >= self.avail_open_at


def _new_summary(now: datetime, dry_run: bool) -> dict[str, Any]:
    summary = {
        "ok": True,
        "now": now.isoformat(),
        "dry_run": dry_run,
        "aborted": False,
        "truncated": False,
        "due_kinds": [],
        "recipients_considered": 0,
        "sent_count": 0,
        "skipped_count": 0,
        "failed_count": 0,
        "errors": [],
    }
    if dry_run:
        summary["would_send"] = []
    return summary


def _apply_report(summary: dict[str, Any], report: DispatchReport, period_id: int, kind: ReminderKind, window_key: str) -> None:
    summary["sent_count"] += len(report.sent)
    summary["skipped_count"] += len(report.skipped)
    summary["failed_count"] += len(report.failed)
    summary["errors"].extend(report.errors)
    if summary["dry_run"] and report.would_send:
        summary["would_send"].append(
            {"period_id": period_id, "kind": kind.value, "window_key": window_key, "targets": report.would_send}
        )


def _period_message(kind: ReminderKind, recipient: Recipient, window: PeriodWindow) -> OutboundMessage:
    label = window.period.label
    if kind == ReminderKind.WEEKLY:
        content = templates.weekly_email(recipient.full_name, label, window.deadline, window.tz_name)
    elif kind == ReminderKind.OPENING:
        content = templates.opening_email(recipient.full_name, label, window.deadline, window.tz_name)
    else:
        content = templates.deadline_email(
            recipient.full_name, label, window.deadline, DEADLINE_TIER_HOURS[kind], window.tz_name
        )
    return OutboundMessage(
        recipient=recipient,
        subject=content.subject,
        html=content.html,
        text=content.text,
        meta={"user_id": recipient.user_id, "deadline": window.deadline.isoformat() if window.deadline else None},
    )


def _process_period(
    db: Session,
    window: PeriodWindow,
    kinds: list[ReminderKind],
    now: datetime,
    dispatcher: Dispatcher,
    resolver: RecipientResolver,
    budget: TimeBudget,
    summary: dict[str, Any],
    debug_entry: dict[str, Any] | None,
) -> None:
    """Dispatch every due kind of one period. Raises PersistenceReadError on read outages."""
    period = window.period
    resolved = resolver.resolve(db, period.id)
    summary["recipients_considered"] += len(resolved.recipients)
    if debug_entry is not None:
        debug_entry["recipients_source"] = resolved.source
        debug_entry["recipients"] = [r.email for r in resolved.recipients]
    if not resolved.recipients:
        logger.info("Period %s: %s due but nobody to remind", period.label, [k.value for k in kinds])
        return
    for kind in kinds:
        if budget.exhausted():
            summary["truncated"] = True
            return
        window_key = period_window_key(kind, now, window.tz_name, window.deadline, window.avail_open_at)
        messages = [_period_message(kind, r, window) for r in resolved.recipients]
        report = dispatcher.dispatch(period.id, kind, window_key, messages, dry_run=summary["dry_run"])
        _apply_report(summary, report, period.id, kind, window_key)
        if debug_entry is not None:
            debug_entry.setdefault("batches", []).append(
                {
                    "kind": kind.value,
                    "window_key": window_key,
                    "sent": report.sent,
                    "skipped": report.skipped,
                    "failed": report.failed,
                }
            )
        logger.info(
            "Period %s %s [%s]: sent=%s skipped=%s failed=%s",
            period.label,
            kind.value,
            window_key,
            len(report.sent),
            len(report.skipped),
            len(report.failed),
        )


def _run_assignment_reminders(
    db: Session,
    now: datetime,
    cfg: AutomationConfig,
    dispatcher: Dispatcher,
    budget: TimeBudget,
    summary: dict[str, Any],
) -> None:
    window = timedelta(minutes=cfg.firing_window_minutes)
    for days in sorted(cfg.assignment_reminder_days):
        kind = ASSIGNMENT_KINDS.get(days)
        if kind is None:
            continue
        try:
            reminders = fetch_assignment_reminders(db, now, days, window)
        except PersistenceReadError as e:
            logger.error("Assignment reminders J-%s aborted: %s", days, e)
            summary["errors"].append(error_entry("persistence", None, kind, None, str(e)))
            continue
        for reminder in reminders:
            if budget.exhausted():
                summary["truncated"] = True
                return
            content = templates.assignment_email(
                reminder.recipient.full_name, reminder.start_ts, reminder.end_ts, days, cfg.default_timezone
            )
            msg = OutboundMessage(
                recipient=reminder.recipient,
                subject=content.subject,
                html=content.html,
                text=content.text,
                meta={"user_id": reminder.recipient.user_id, "slot_id": reminder.slot_id, "slot_kind": reminder.slot_kind},
            )
            window_key = slot_window_key(reminder.slot_id)
            try:
                report = dispatcher.dispatch(reminder.period_id, kind, window_key, [msg], dry_run=summary["dry_run"])
            except PersistenceReadError as e:
                logger.error("Assignment reminders J-%s aborted at slot %s: %s", days, reminder.slot_id, e)
                summary["errors"].append(
                    error_entry("persistence", reminder.period_id, kind, reminder.recipient.email, str(e))
                )
                break
            _apply_report(summary, report, reminder.period_id, kind, window_key)


def _build_dispatcher(
    db: Session,
    cfg: AutomationConfig,
    transport: EmailTransport | None,
    rate_limiter: RateLimiter | None,
    sleep: Callable[[float], None],
    dry_run: bool,
) -> Dispatcher:
    if transport is None and not dry_run:
        transport = get_transport()
    # dry runs never reach the transport
    return Dispatcher(
        transport,
        DedupLedger(db),
        rate_limiter or RateLimiter.from_config(cfg),
        max_attempts=cfg.email_max_attempts,
        backoff_seconds=cfg.email_retry_backoff_ms / 1000.0,
        sleep=sleep,
    )


def run_reminder_tick(
    db: Session,
    now: datetime | None = None,
    dry_run: bool = False,
    debug: bool = False,
    transport: EmailTransport | None = None,
    rate_limiter: RateLimiter | None = None,
    resolver: RecipientResolver | None = None,
    config: AutomationConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """
    Evaluate and send every due reminder. Returns
    {ok, now, dry_run, aborted, truncated, due_kinds, recipients_considered,
     sent_count, skipped_count, failed_count, errors[, would_send][, debug]}.
    """
    now = now or datetime.now(timezone.utc)
    cfg = config or get_automation_config()
    policy = DuePolicy.from_config(cfg)
    resolver = resolver or RecipientResolver()
    budget = TimeBudget(cfg.tick_time_budget_seconds, clock)
    summary = _new_summary(now, dry_run)
    try:
        dispatcher = _build_dispatcher(db, cfg, transport, rate_limiter, sleep, dry_run)
    except TransportNotConfigured as e:
        logger.error("Reminder tick aborted: %s", e)
        summary["aborted"] = True
        summary["errors"].append(error_entry("transport", None, detail=str(e)))
        return summary
    debug_periods: list[dict[str, Any]] = []

    try:
        periods = list_periods_with_automation(db)
    except PersistenceReadError as e:
        logger.error("Reminder tick aborted, periods unreadable: %s", e)
        summary["aborted"] = True
        summary["errors"].append(error_entry("persistence", None, detail=str(e)))
        return summary

    for period in periods:
        if budget.exhausted():
            summary["truncated"] = True
            break
        window = PeriodWindow(period, cfg)
        kinds = window.due(now, policy)
        debug_entry = None
        if debug:
            debug_entry = {
                "period_id": period.id,
                "label": period.label,
                "avail_open_at": window.avail_open_at.isoformat() if window.avail_open_at else None,
                "deadline": window.deadline.isoformat() if window.deadline else None,
                "kinds": [k.value for k in kinds],
            }
            debug_periods.append(debug_entry)
        if not kinds:
            continue
        summary["due_kinds"].append({"period_id": period.id, "label": period.label, "kinds": [k.value for k in kinds]})
        try:
            _process_period(db, window, kinds, now, dispatcher, resolver, budget, summary, debug_entry)
        except PersistenceReadError as e:
            logger.error("Reminders for period %s aborted: %s", period.label, e)
            summary["errors"].append(error_entry("persistence", period.id, detail=str(e)))

    if not summary["truncated"]:
        _run_assignment_reminders(db, now, cfg, dispatcher, budget, summary)

    if debug:
        summary["debug"] = {"periods": debug_periods, "policy": {
            "tolerance_minutes": cfg.due_tolerance_minutes,
            "firing_window_minutes": cfg.firing_window_minutes,
            "weekly_weekday": cfg.weekly_weekday,
            "weekly_hour": cfg.weekly_hour,
        }}
    logger.info(
        "Reminder tick done (dry_run=%s): due=%s sent=%s skipped=%s failed=%s errors=%s truncated=%s",
        dry_run,
        len(summary["due_kinds"]),
        summary["sent_count"],
        summary["skipped_count"],
        summary["failed_count"],
        len(summary["errors"]),
        summary["truncated"],
    )
    return summary


def parse_kinds(values: Iterable[str]) -> list[ReminderKind]:
    """Period-level kinds from strings, in KIND_ORDER. Unknown or assignment kinds raise ValueError."""
    wanted = set()
    for v in values:
        try:
            kind = ReminderKind(v)
        except ValueError:
            raise ValueError(f"Unknown reminder kind: {v}") from None
        if kind not in PERIOD_KINDS:
            raise ValueError(f"{v} cannot be forced for a period")
        wanted.add(kind)
    return [k for k in KIND_ORDER if k in wanted]


def run_period_reminders(
    db: Session,
    period_id: int,
    now: datetime | None = None,
    dry_run: bool = True,
    force_kinds: Iterable[str] | None = None,
    transport: EmailTransport | None = None,
    rate_limiter: RateLimiter | None = None,
    resolver: RecipientResolver | None = None,
    config: AutomationConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """
    Run reminders for one period (admin action). Due kinds are only evaluated while
    now is in [avail_open_at, deadline); forced kinds bypass that check.
    Raises PeriodNotFound, ValueError (bad force_kinds), PersistenceReadError and
    TransportNotConfigured (real run without an email provider).
    """
    now = now or datetime.now(timezone.utc)
    cfg = config or get_automation_config()
    forced = parse_kinds(force_kinds or [])
    period = db.get(Period, period_id)
    if period is None:
        raise PeriodNotFound(f"Period {period_id} not found")

    window = PeriodWindow(period, cfg)
    summary = _new_summary(now, dry_run)
    summary["period_id"] = period.id
    summary["label"] = period.label
    summary["window"] = {
        "avail_open_at": window.avail_open_at.isoformat() if window.avail_open_at else None,
        "deadline": window.deadline.isoformat() if window.deadline else None,
    }

    if forced:
        needs_deadline = any(k in DEADLINE_TIER_HOURS for k in forced)
        if (needs_deadline and window.deadline is None) or (ReminderKind.OPENING in forced and window.avail_open_at is None):
            raise ValueError("Forced kinds need a deadline / opening instant on the period")
        kinds = forced
    elif window.is_open(now):
        kinds = window.due(now, DuePolicy.from_config(cfg))
    else:
        summary["skipped_reason"] = "outside_window"
        return summary

    if not kinds:
        return summary
    summary["due_kinds"].append({"period_id": period.id, "label": period.label, "kinds": [k.value for k in kinds]})
    dispatcher = _build_dispatcher(db, cfg, transport, rate_limiter, sleep, dry_run)
    budget = TimeBudget(cfg.tick_time_budget_seconds)
    _process_period(db, window, kinds, now, dispatcher, resolver or RecipientResolver(), budget, summary, None)
    return summary
