"""
Automation policy config. .env is the source of truth; these defaults apply only when
the env var is unset. All values read at import time.

Env vars: OPEN_LEAD_DAYS, PLANNING_LEAD_DAYS, DEFAULT_SLOTS_GENERATE_BEFORE_DAYS,
DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS, DEFAULT_PLANNING_GENERATE_BEFORE_DAYS, DEFAULT_REMINDER_HOURS,
DEFAULT_TIMEZONE, DUE_TOLERANCE_MINUTES, FIRING_WINDOW_MINUTES, WEEKLY_REMINDER_WEEKDAY,
WEEKLY_REMINDER_HOUR, ASSIGNMENT_REMINDER_DAYS, EMAIL_MIN_GAP_MS, EMAIL_MAX_ATTEMPTS,
EMAIL_RETRY_BACKOFF_MS, REMINDER_TICK_MINUTES, LIFECYCLE_CRON_HOUR, TICK_TIME_BUDGET_SECONDS.

The tolerance and firing windows encode how often the tick is invoked. If the tick interval
changes, change them together: a window shorter than the tick interval misses reminders.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load backend/.env so scripts and tests that import this module see the same values as the app
_backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(_backend_dir / ".env", override=False)  # no-op if file missing

_log = logging.getLogger(__name__)


def _int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = os.environ.get(key)
    if raw is None:
        v = default
    else:
        try:
            v = int(raw.strip())
        except ValueError:
            v = default
    if min_val is not None and v < min_val:
        v = min_val
    if max_val is not None and v > max_val:
        v = max_val
    return v


def _list_int(key: str, default: List[int], min_val: int | None = None) -> List[int]:
    raw = os.environ.get(key)
    if not raw:
        return default
    out = []
    for s in raw.split(","):
        s = s.strip()
        if not s:
            continue
        try:
            n = int(s)
        except ValueError:
            continue
        if min_val is not None and n < min_val:
            continue
        out.append(n)
    return out if out else default


# -----------------------------------------------------------------------------
# Period lifecycle and per-period offsets (days before period open_at)
# -----------------------------------------------------------------------------
OPEN_LEAD_DAYS = _int("OPEN_LEAD_DAYS", 45, min_val=0, max_val=365)
PLANNING_LEAD_DAYS = _int("PLANNING_LEAD_DAYS", 21, min_val=0, max_val=365)
DEFAULT_SLOTS_GENERATE_BEFORE_DAYS = _int("DEFAULT_SLOTS_GENERATE_BEFORE_DAYS", 45, min_val=0)
DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS = _int("DEFAULT_AVAIL_DEADLINE_BEFORE_DAYS", 15, min_val=0)
DEFAULT_PLANNING_GENERATE_BEFORE_DAYS = _int("DEFAULT_PLANNING_GENERATE_BEFORE_DAYS", 21, min_val=0)
DEFAULT_REMINDER_HOURS = _list_int("DEFAULT_REMINDER_HOURS", [48, 24, 1], min_val=0)
DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "Europe/Paris").strip() or "Europe/Paris"

# -----------------------------------------------------------------------------
# Due windows (minutes); weekly reminder fires on WEEKLY_REMINDER_WEEKDAY (0 = Monday) at WEEKLY_REMINDER_HOUR local
# -----------------------------------------------------------------------------
DUE_TOLERANCE_MINUTES = _int("DUE_TOLERANCE_MINUTES", 15, min_val=1, max_val=180)
FIRING_WINDOW_MINUTES = _int("FIRING_WINDOW_MINUTES", 60, min_val=5, max_val=24 * 60)
WEEKLY_REMINDER_WEEKDAY = _int("WEEKLY_REMINDER_WEEKDAY", 0, min_val=0, max_val=6)
WEEKLY_REMINDER_HOUR = _int("WEEKLY_REMINDER_HOUR", 9, min_val=0, max_val=23)
ASSIGNMENT_REMINDER_DAYS = _list_int("ASSIGNMENT_REMINDER_DAYS", [1, 7], min_val=1)

# -----------------------------------------------------------------------------
# Dispatch: the email provider allows ~2 req/s; keep a gap between sends
# -----------------------------------------------------------------------------
EMAIL_MIN_GAP_MS = _int("EMAIL_MIN_GAP_MS", 700, min_val=0, max_val=60_000)
EMAIL_MAX_ATTEMPTS = _int("EMAIL_MAX_ATTEMPTS", 3, min_val=1, max_val=10)
EMAIL_RETRY_BACKOFF_MS = _int("EMAIL_RETRY_BACKOFF_MS", 1200, min_val=0, max_val=60_000)

# -----------------------------------------------------------------------------
# Scheduler
# -----------------------------------------------------------------------------
REMINDER_TICK_MINUTES = _int("REMINDER_TICK_MINUTES", 15, min_val=1, max_val=60)
LIFECYCLE_CRON_HOUR = _int("LIFECYCLE_CRON_HOUR", 3, min_val=0, max_val=23)
TICK_TIME_BUDGET_SECONDS = _int("TICK_TIME_BUDGET_SECONDS", 280, min_val=10, max_val=3600)

# Log effective config at import so each environment can verify env vars are applied
_log.info(
    "Automation config (from env): open_lead_days=%s tolerance_min=%s firing_window_min=%s "
    "weekly=%s@%sh reminder_hours=%s email_gap_ms=%s max_attempts=%s tick_min=%s",
    OPEN_LEAD_DAYS,
    DUE_TOLERANCE_MINUTES,
    FIRING_WINDOW_MINUTES,
    WEEKLY_REMINDER_WEEKDAY,
    WEEKLY_REMINDER_HOUR,
    DEFAULT_REMINDER_HOURS,
    EMAIL_MIN_GAP_MS,
    EMAIL_MAX_ATTEMPTS,
    REMINDER_TICK_MINUTES,
)


@dataclass(frozen=True)
class AutomationConfig:
    """Snapshot of automation config for passing around (e.g. tests)."""
    open_lead_days: int = OPEN_LEAD_DAYS
    planning_lead_days: int = PLANNING_LEAD_DAYS
    default_timezone: str = DEFAULT_TIMEZONE
    due_tolerance_minutes: int = DUE_TOLERANCE_MINUTES
    firing_window_minutes: int = FIRING_WINDOW_MINUTES
    weekly_weekday: int = WEEKLY_REMINDER_WEEKDAY
    weekly_hour: int = WEEKLY_REMINDER_HOUR
    assignment_reminder_days: tuple[int, ...] = tuple(ASSIGNMENT_REMINDER_DAYS)
    email_min_gap_ms: int = EMAIL_MIN_GAP_MS
    email_max_attempts: int = EMAIL_MAX_ATTEMPTS
    email_retry_backoff_ms: int = EMAIL_RETRY_BACKOFF_MS
    tick_time_budget_seconds: int = TICK_TIME_BUDGET_SECONDS


def get_automation_config() -> AutomationConfig:
    return AutomationConfig()
