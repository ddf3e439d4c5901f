"""
Single source of truth for database tables and views that exist after migrations.

Use these names when writing raw SQL. alembic/env.py checks that the registered models match.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "periods",
    "period_automation",
    "slots",
    "profiles",
    "doctor_period_months",
    "assignments",
    "automation_email_log",
    "automation_settings",
)

# Views: mapped as read-only models, created by migration (never by create_all in production).
VIEW_NAMES = ("v_reminder_targets",)
