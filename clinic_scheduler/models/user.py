"""User model definitions."""

from sqlalchemy import Boolean, Column, String

from clinic_scheduler.database import Base
from clinic_scheduler.models.mixins import TimestampMixin, new_id

ROLE_DOCTOR = "DOCTOR"
ROLE_STAFF = "STAFF"
ROLE_ADMIN = "ADMIN"
USER_ROLES = (ROLE_DOCTOR, ROLE_STAFF, ROLE_ADMIN)


class User(TimestampMixin, Base):
    """Represents a clinic user; doctors are users with the DOCTOR role."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    mobile_number = Column(String(20), nullable=True)
    hashed_password = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default=ROLE_STAFF)  # DOCTOR/STAFF/ADMIN
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR and bool(self.is_active)
