"""Working hour and off-day model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Time, UniqueConstraint, text
from sqlalchemy.orm import relationship

from clinic_scheduler.database import Base
from clinic_scheduler.models.mixins import TimestampMixin, new_id

DAY_LABELS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class WorkingHourRule(TimestampMixin, Base):
    """A doctor's recurring working hours for one day of the week."""
    __tablename__ = "working_hours"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Monday .. 6=Sunday, same as date.weekday()
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    doctor = relationship("User", lazy="joined")

    __table_args__ = (
        Index(
            "uq_working_hours_active_day",
            "doctor_id",
            "day_of_week",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    @property
    def day_of_week_label(self) -> str:
        return DAY_LABELS[self.day_of_week]


class OffDay(TimestampMixin, Base):
    """A full-day exclusion for one doctor."""
    __tablename__ = "off_days"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)

    doctor = relationship("User", lazy="joined")

    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_off_day_doctor_date"),
    )
