"""Automation settings, one row per period. avail_open_at / avail_deadline are derived from period.open_at minus the day offsets."""
from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import UTCDateTime


class PeriodAutomation(Base):
    __tablename__ = "period_automation"

    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True)
    slots_generate_before_days = Column(Integer, nullable=False, default=45)
    avail_deadline_before_days = Column(Integer, nullable=False, default=15)
    planning_generate_before_days = Column(Integer, nullable=False, default=21)
    weekly_reminder = Column(Boolean, nullable=False, default=True)
    extra_reminder_hours = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)  # e.g. [48, 24, 1]
    lock_assignments = Column(Boolean, nullable=False, default=False)
    avail_open_at = Column(UTCDateTime, nullable=True)  # derived
    avail_deadline = Column(UTCDateTime, nullable=True)  # derived
    updated_at = Column(UTCDateTime, server_default=func.now(), nullable=True)

    period = relationship("Period", back_populates="automation")
