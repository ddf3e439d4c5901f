"""One bookable block. Created once by the calendar generator, never mutated."""
from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint

from app.db.base import Base
from app.db.types import UTCDateTime


class Slot(Base):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)  # local calendar date of the block start
    start_ts = Column(UTCDateTime, nullable=False, index=True)
    end_ts = Column(UTCDateTime, nullable=False)
    kind = Column(String(32), nullable=False)  # WEEKDAY_20_00 | SAT_12_18 | ... (see services.calendar.SlotKind)

    __table_args__ = (UniqueConstraint("period_id", "date", "kind", name="uq_slots_period_date_kind"),)
