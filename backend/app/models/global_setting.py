"""Global automation overrides (key='global'): JSON settings such as open_lead_days, planning_generate_before_days."""
from sqlalchemy import JSON, Column, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class GlobalSetting(Base):
    __tablename__ = "automation_settings"

    key = Column(String(64), primary_key=True)
    settings = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
