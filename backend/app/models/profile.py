"""Identity directory row: user_id -> email, name, role. reminders_opted_out = global opt-out from planning reminders."""
from sqlalchemy import Boolean, Column, String

from app.core.constants import DOCTOR_ROLE
from app.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=True)
    full_name = Column(String(256), nullable=True)
    role = Column(String(32), nullable=False, default=DOCTOR_ROLE, index=True)
    reminders_opted_out = Column(Boolean, nullable=False, default=False)
