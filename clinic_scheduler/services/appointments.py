"""Appointment listing and status updates.

Status changes never touch the slot ledger: a BOOKED slot stays booked.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from clinic_scheduler.core import errors
from clinic_scheduler.models.appointment import APPOINTMENT_STATUSES, Appointment

logger = logging.getLogger(__name__)


def list_appointments(
    db: Session,
    page: int = 1,
    page_size: int = 20,
    on_date: date | None = None,
    doctor_id: str | None = None,
) -> tuple[list[Appointment], int]:
    query = db.query(Appointment)
    if on_date:
        day_start = datetime.combine(on_date, time.min)
        query = query.filter(
            Appointment.appointment_date_time >= day_start,
            Appointment.appointment_date_time < day_start + timedelta(days=1),
        )
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)

    count = query.count()
    appointments = query.order_by(Appointment.appointment_date_time.asc()).offset(
        (page - 1) * page_size
    ).limit(page_size).all()

    return appointments, count


def update_status(db: Session, appointment_id: str, appointment_status: str) -> Appointment:
    if appointment_status not in APPOINTMENT_STATUSES:
        raise errors.ValidationError(
            'Invalid appointment status.',
            details={'appointment_status': [f'Must be one of {", ".join(APPOINTMENT_STATUSES)}.']},
        )

    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise errors.NotFound('Appointment not found.')

    previous_status = appointment.appointment_status
    appointment.appointment_status = appointment_status
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s moved from %s to %s', appointment_id, previous_status, appointment_status)
    return appointment
