"""Slot ledger model definitions."""

from sqlalchemy import Column, Date, ForeignKey, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship

from clinic_scheduler.database import Base
from clinic_scheduler.models.mixins import TimestampMixin, new_id

SLOT_BOOKED = "BOOKED"
SLOT_BLOCKED = "BLOCKED"


class SlotInstance(TimestampMixin, Base):
    """A booked or blocked slot; the only record conflict checks look at."""
    __tablename__ = "slot_instances"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    working_hour_id = Column(String(36), ForeignKey("working_hours.id"), nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_status = Column(String(10), nullable=False)  # BOOKED/BLOCKED

    doctor = relationship("User", lazy="joined")

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", "start_time", name="uq_slot_instance_key"),
    )
