"""Planning automation schema: periods, settings, slots, month status, assignments, email ledger, v_reminder_targets view

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Doctors with at least one unfinished month (unlocked, not opted out, not validated), not globally opted out.
# Months with slots but no status row count as unfinished.
V_REMINDER_TARGETS_SQL = """
CREATE VIEW v_reminder_targets AS
SELECT DISTINCT m.period_id, m.user_id
FROM doctor_period_months m
JOIN profiles p ON p.user_id = m.user_id
WHERE m.locked = false
  AND COALESCE(m.opted_out, false) = false
  AND m.validated_at IS NULL
  AND p.role = 'doctor'
  AND p.reminders_opted_out = false
UNION
SELECT DISTINCT s.period_id, p.user_id
FROM slots s
CROSS JOIN profiles p
WHERE p.role = 'doctor'
  AND p.reminders_opted_out = false
  AND NOT EXISTS (
    SELECT 1 FROM doctor_period_months m2
    WHERE m2.user_id = p.user_id
      AND m2.period_id = s.period_id
      AND m2.month = to_char(s.date, 'YYYY-MM')
  )
"""


def upgrade() -> None:
    op.create_table(
        "periods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("label", sa.String(64), nullable=False),
        sa.Column("open_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("close_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("generate_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Europe/Paris"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("label", name="uq_periods_label"),
    )

    op.create_table(
        "period_automation",
        sa.Column("period_id", sa.Integer(), sa.ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("slots_generate_before_days", sa.Integer(), nullable=False, server_default="45"),
        sa.Column("avail_deadline_before_days", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("planning_generate_before_days", sa.Integer(), nullable=False, server_default="21"),
        sa.Column("weekly_reminder", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "extra_reminder_hours",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[48, 24, 1]'::jsonb"),
        ),
        sa.Column("lock_assignments", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("avail_open_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("avail_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )

    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period_id", sa.Integer(), sa.ForeignKey("periods.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.UniqueConstraint("period_id", "date", "kind", name="uq_slots_period_date_kind"),
    )
    op.create_index("ix_slots_period_id", "slots", ["period_id"], unique=False)
    op.create_index("ix_slots_start_ts", "slots", ["start_ts"], unique=False)

    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("full_name", sa.String(256), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="doctor"),
        sa.Column("reminders_opted_out", sa.Boolean(), nullable=False, server_default="false"),
    )
    op.create_index("ix_profiles_role", "profiles", ["role"], unique=False)

    op.create_table(
        "doctor_period_months",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("period_id", sa.Integer(), sa.ForeignKey("periods.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("opted_out", sa.Boolean(), nullable=True, server_default="false"),
        sa.UniqueConstraint("user_id", "period_id", "month", name="uq_doctor_period_months_user_period_month"),
    )
    op.create_index("ix_doctor_period_months_user_id", "doctor_period_months", ["user_id"], unique=False)
    op.create_index("ix_doctor_period_months_period_id", "doctor_period_months", ["period_id"], unique=False)

    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period_id", sa.Integer(), sa.ForeignKey("periods.id", ondelete="CASCADE"), nullable=False),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("state", sa.String(16), nullable=False, server_default="draft"),
        sa.UniqueConstraint("slot_id", name="uq_assignments_slot"),
    )
    op.create_index("ix_assignments_period_id", "assignments", ["period_id"], unique=False)

    op.create_table(
        "automation_email_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("window_key", sa.String(128), nullable=False),
        sa.Column("target", sa.String(320), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="claimed"),
        sa.Column("meta", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("period_id", "event_type", "window_key", "target", name="uq_automation_email_log_event"),
    )
    op.create_index("ix_automation_email_log_period_id", "automation_email_log", ["period_id"], unique=False)

    op.create_table(
        "automation_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )

    op.execute(V_REMINDER_TARGETS_SQL)


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS v_reminder_targets")
    op.drop_table("automation_settings")
    op.drop_table("automation_email_log")
    op.drop_table("assignments")
    op.drop_table("doctor_period_months")
    op.drop_table("profiles")
    op.drop_table("slots")
    op.drop_table("period_automation")
    op.drop_table("periods")
