"""Who covers a slot. Only state='published' rows get J-n reminders."""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from app.core.constants import ASSIGNMENT_STATE_DRAFT
from app.db.base import Base


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=True)
    state = Column(String(16), nullable=False, default=ASSIGNMENT_STATE_DRAFT)

    __table_args__ = (UniqueConstraint("slot_id", name="uq_assignments_slot"),)
