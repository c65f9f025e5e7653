"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from clinic_scheduler.database import Base
from clinic_scheduler.models.mixins import TimestampMixin, new_id

APPOINTMENT_STATUSES = ("WAITING", "CHECKED_IN", "NO_SHOW")
GENDERS = ("MALE", "FEMALE", "OTHER")
SOURCES = ("PHONE", "WHATSAPP", "WALK_IN", "WEBSITE", "OTHER")


class Appointment(TimestampMixin, Base):
    """Represents a patient appointment held on a booked slot."""
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(String(36), ForeignKey("slot_instances.id"), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    mobile_number = Column(String(20), nullable=False)
    gender = Column(String(10), nullable=False)
    source = Column(String(20), nullable=False, default="PHONE")
    appointment_status = Column(String(20), nullable=False, default="WAITING")
    appointment_date_time = Column(DateTime, nullable=False, index=True)

    doctor = relationship("User", lazy="joined")
    slot = relationship("SlotInstance", lazy="joined")
