from app.services.automation_settings import get_automation_settings, upsert_automation_settings
from app.services.period_lifecycle import run_period_lifecycle
from app.services.reminders.tick import run_period_reminders, run_reminder_tick

__all__ = [
    "get_automation_settings",
    "upsert_automation_settings",
    "run_period_lifecycle",
    "run_period_reminders",
    "run_reminder_tick",
]
