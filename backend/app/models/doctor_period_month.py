"""Commitment status of one doctor for one month of a period. No row for a month with slots = not validated."""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from app.db.base import Base
from app.db.types import UTCDateTime


class DoctorPeriodMonth(Base):
    __tablename__ = "doctor_period_months"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(String(7), nullable=False)  # YYYY-MM
    validated_at = Column(UTCDateTime, nullable=True)
    locked = Column(Boolean, nullable=False, default=False)
    opted_out = Column(Boolean, nullable=True, default=False)  # legacy rows may hold NULL (= not opted out)

    __table_args__ = (UniqueConstraint("user_id", "period_id", "month", name="uq_doctor_period_months_user_period_month"),)
