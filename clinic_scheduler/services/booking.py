"""Race-checked writes to the booking ledger.

Every write for a (doctor, date, start time) key runs check-then-insert while
holding a lock for that key, so two requests in this process cannot both see
the slot as free. The ledger's unique index covers writers in other
processes: losing that race surfaces as an IntegrityError on flush, which is
reported as a ``Conflict`` exactly like a lost lock-protected check.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from threading import Lock

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config, errors
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.slot import SLOT_BLOCKED, SLOT_BOOKED, SlotInstance
from clinic_scheduler.services.availability import AvailabilityCalculator
from clinic_scheduler.services.booking_ledger import BookingLedger
from clinic_scheduler.services.doctors import require_doctor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatientDetails:
    name: str
    mobile_number: str
    gender: str
    source: str = 'PHONE'


class KeyedLocks:
    """Locks created on demand per key and dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = Lock()
        self._entries: dict[tuple, list] = {}

    @contextmanager
    def hold(self, key: tuple, timeout: float):
        with self._guard:
            entry = self._entries.setdefault(key, [Lock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=timeout)
        try:
            if not acquired:
                raise errors.Conflict(
                    'This slot is being booked by another request. Please pick another slot.',
                )
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


slot_locks = KeyedLocks()


def _conflict_for(slot: SlotInstance) -> errors.Conflict:
    if slot.slot_status == SLOT_BLOCKED:
        message = 'This slot is blocked. Please pick another slot.'
    else:
        message = 'This slot is already booked. Please pick another slot.'
    return errors.Conflict(message, details={'start_time': [message]})


class BookingCoordinator:
    def __init__(self, db: Session, locks: KeyedLocks | None = None):
        self.db = db
        self.locks = locks if locks is not None else slot_locks
        self.calculator = AvailabilityCalculator(db)
        self.ledger = BookingLedger(db)

    def book(self, doctor_id: str, slot_date: date, start_time: time, patient: PatientDetails) -> Appointment:
        require_doctor(self.db, doctor_id)

        with self.locks.hold((doctor_id, slot_date, start_time), config.SLOT_LOCK_TIMEOUT_SECONDS):
            slot = self._reserve(doctor_id, slot_date, start_time, SLOT_BOOKED)
            appointment = Appointment(
                doctor_id=doctor_id,
                slot_id=slot.id,
                name=patient.name,
                mobile_number=patient.mobile_number,
                gender=patient.gender,
                source=patient.source,
                appointment_status='WAITING',
                appointment_date_time=datetime.combine(slot_date, start_time),
            )
            self.db.add(appointment)
            self._commit(slot.id)
            self.db.refresh(appointment)

        logger.info(
            'Booked slot %s for doctor %s on %s at %s (appointment %s)',
            slot.id, doctor_id, slot_date.isoformat(), start_time, appointment.id,
        )
        return appointment

    def block(self, doctor_id: str, slot_date: date, start_time: time) -> SlotInstance:
        require_doctor(self.db, doctor_id)

        with self.locks.hold((doctor_id, slot_date, start_time), config.SLOT_LOCK_TIMEOUT_SECONDS):
            slot = self._reserve(doctor_id, slot_date, start_time, SLOT_BLOCKED)
            self._commit(slot.id)
            self.db.refresh(slot)

        logger.info('Blocked slot %s for doctor %s on %s at %s', slot.id, doctor_id, slot_date.isoformat(), start_time)
        return slot

    def unblock(self, slot_id: str) -> None:
        slot = self.ledger.get(slot_id)
        if slot is None:
            raise errors.NotFound('Slot not found.')

        with self.locks.hold((slot.doctor_id, slot.date, slot.start_time), config.SLOT_LOCK_TIMEOUT_SECONDS):
            # Another request may have unblocked it while we waited.
            self.db.expire(slot)
            slot = self.ledger.get(slot_id)
            if slot is None:
                raise errors.NotFound('Slot not found.')
            if slot.slot_status != SLOT_BLOCKED:
                raise errors.InvalidState(
                    'Only blocked slots can be unblocked.',
                    details={'slot_status': [slot.slot_status]},
                )

            try:
                self.ledger.remove(slot)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise

        logger.info('Unblocked slot %s', slot_id)

    def _reserve(self, doctor_id: str, slot_date: date, start_time: time, slot_status: str) -> SlotInstance:
        rule, window = self.calculator.resolve_window(doctor_id, slot_date, start_time)

        existing = self.ledger.find(doctor_id, slot_date, start_time)
        if existing is not None:
            raise _conflict_for(existing)

        try:
            return self.ledger.insert(
                doctor_id=doctor_id,
                slot_date=slot_date,
                start_time=window.start_time,
                end_time=window.end_time,
                slot_status=slot_status,
                working_hour_id=rule.id,
            )
        except IntegrityError as exc:
            self.db.rollback()
            logger.info('Lost slot race for doctor %s on %s at %s', doctor_id, slot_date.isoformat(), start_time)
            raise errors.Conflict(
                'This slot was just taken. Please pick another slot.',
                details={'start_time': ['This slot was just taken. Please pick another slot.']},
            ) from exc

    def _commit(self, slot_id: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise errors.Conflict(
                'This slot was just taken. Please pick another slot.',
                details={'start_time': ['This slot was just taken. Please pick another slot.']},
            ) from exc
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Could not commit slot %s', slot_id)
            raise
