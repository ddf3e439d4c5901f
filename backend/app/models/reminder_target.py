"""Read-only mapping of the v_reminder_targets view: doctors with at least one unfinished month, not globally opted out.

The view is created by migration 001. Tests create it as a plain table and fill it directly,
which also lets them simulate a stale aggregate.
"""
from sqlalchemy import Column, Integer, String

from app.db.base import Base


class ReminderTarget(Base):
    __tablename__ = "v_reminder_targets"
    __table_args__ = {"info": {"is_view": True}}

    period_id = Column(Integer, primary_key=True)
    user_id = Column(String(64), primary_key=True)
