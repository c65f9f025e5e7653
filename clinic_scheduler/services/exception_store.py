"""Doctor off-days: full-day exclusions that override working hours."""

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduler.core import errors
from clinic_scheduler.models.schedule import OffDay
from clinic_scheduler.models.slot import SLOT_BOOKED, SlotInstance
from clinic_scheduler.services.doctors import require_doctor

logger = logging.getLogger(__name__)


class ExceptionStore:
    def __init__(self, db: Session):
        self.db = db

    def list_off_days(
        self,
        doctor_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[OffDay]:
        query = self.db.query(OffDay)
        if doctor_id:
            query = query.filter(OffDay.doctor_id == doctor_id)
        if start_date:
            query = query.filter(OffDay.date >= start_date)
        if end_date:
            query = query.filter(OffDay.date <= end_date)

        return query.order_by(OffDay.date.asc()).all()

    def off_dates(self, doctor_id: str, start_date: date, end_date: date) -> set[date]:
        rows = self.db.query(OffDay.date).filter(
            OffDay.doctor_id == doctor_id,
            OffDay.date >= start_date,
            OffDay.date <= end_date,
        ).all()
        return {off_date for (off_date,) in rows}

    def is_off_day(self, doctor_id: str, day: date) -> bool:
        return self.db.query(OffDay.id).filter(
            OffDay.doctor_id == doctor_id,
            OffDay.date == day,
        ).first() is not None

    def create_off_day(self, doctor_id: str, day: date, reason: str | None = None) -> OffDay:
        require_doctor(self.db, doctor_id)

        if self.is_off_day(doctor_id, day):
            raise errors.Conflict(
                'An off day already exists for this date.',
                details={'date': ['An off day already exists for this date.']},
            )

        off_day = OffDay(doctor_id=doctor_id, date=day, reason=reason)
        self.db.add(off_day)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise errors.Conflict(
                'An off day already exists for this date.',
                details={'date': ['An off day already exists for this date.']},
            ) from exc
        self.db.refresh(off_day)

        booked_count = self.db.query(SlotInstance.id).filter(
            SlotInstance.doctor_id == doctor_id,
            SlotInstance.date == day,
            SlotInstance.slot_status == SLOT_BOOKED,
        ).count()
        if booked_count:
            # Existing bookings are kept; staff reschedule them by hand.
            logger.warning(
                'Off day %s for doctor %s overlaps %s booked slot(s)',
                day.isoformat(), doctor_id, booked_count,
            )

        return off_day

    def delete_off_day(self, off_day_id: str) -> None:
        off_day = self.db.query(OffDay).filter(OffDay.id == off_day_id).first()
        if off_day is None:
            raise errors.NotFound('Off day not found.')

        self.db.delete(off_day)
        self.db.commit()
