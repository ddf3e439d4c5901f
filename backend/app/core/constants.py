"""
Centralized constants for the scheduler and the automation engine (Encapsulate What Changes).

Change job IDs or enumerations here instead of scattering literals across main and routes.
Tunable windows and delays come from automation_config (env-driven).
"""
from app.core.automation_config import (  # noqa: F401
    LIFECYCLE_CRON_HOUR,
    REMINDER_TICK_MINUTES,
)

# Scheduler job IDs (must match ids used in main.py add_job)
PERIOD_LIFECYCLE_JOB_ID = "period_lifecycle"
REMINDER_TICK_JOB_ID = "reminder_tick"

# Tick interval from .env (automation_config); name used by main.py and the health endpoint
REMINDER_TICK_INTERVAL_MINUTES = REMINDER_TICK_MINUTES

# Key of the global row in automation_settings
GLOBAL_SETTINGS_KEY = "global"

# Identity directory role that receives planning reminders
DOCTOR_ROLE = "doctor"

# Assignment states; only published assignments get J-n reminders
ASSIGNMENT_STATE_DRAFT = "draft"
ASSIGNMENT_STATE_PUBLISHED = "published"

# Quarter labels: "T1 2025" .. "T4 2025"
PERIOD_LABEL_FORMAT = "T{quarter} {year}"

# Number of quarters the lifecycle trigger looks at (current + next three)
LIFECYCLE_CANDIDATE_QUARTERS = 4
