"""Dedup ledger: one row per (period, event_type, window_key, target). The unique constraint is the at-most-once guard.

status: claimed (row written before the send), sent, failed (permanent failure; final for this window).
"""
from sqlalchemy import JSON, Column, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import UTCDateTime


class ReminderEvent(Base):
    __tablename__ = "automation_email_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(32), nullable=False)
    window_key = Column(String(128), nullable=False)
    target = Column(String(320), nullable=False)  # recipient email
    status = Column(String(16), nullable=False, default="claimed")
    meta = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "period_id", "event_type", "window_key", "target", name="uq_automation_email_log_event"
        ),
    )
