"""One scheduling epoch (a calendar quarter). Created by the lifecycle trigger or an admin; only generate_at is updated afterwards."""
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.db.types import UTCDateTime


class Period(Base):
    __tablename__ = "periods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    label = Column(String(64), nullable=False, unique=True)  # "T4 2025"
    open_at = Column(UTCDateTime, nullable=False)  # first day of the quarter
    close_at = Column(UTCDateTime, nullable=True)  # last day of the quarter, 23:59:59
    generate_at = Column(UTCDateTime, nullable=True)  # planning generation (UI countdown reads it here)
    timezone = Column(String(64), nullable=False, default="Europe/Paris")
    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)

    automation = relationship("PeriodAutomation", back_populates="period", uselist=False)
