from datetime import date, datetime, time, timedelta
from threading import Barrier, Thread

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clinic_scheduler.core import config, errors
from clinic_scheduler.database import Base
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.slot import SLOT_BLOCKED, SLOT_BOOKED, SlotInstance
from clinic_scheduler.models.user import ROLE_DOCTOR, ROLE_STAFF, User
from clinic_scheduler.services.availability import AvailabilityCalculator
from clinic_scheduler.services.booking import BookingCoordinator, KeyedLocks, PatientDetails
from clinic_scheduler.services.booking_ledger import BookingLedger
from clinic_scheduler.services.exception_store import ExceptionStore
from clinic_scheduler.services.schedule_store import ScheduleStore

MONDAY = date(2026, 1, 5)

PATIENT = PatientDetails(name='Ravi Kumar', mobile_number='9876500001', gender='MALE')


def _available_starts(db, doctor_id: str, day: date = MONDAY) -> list[time]:
    days = AvailabilityCalculator(db).compute_availability(doctor_id, day, day)
    return [window.start_time for window in days[0].slots]


def test_book_creates_waiting_appointment_and_booked_slot(db, doctor, monday_rule) -> None:
    appointment = BookingCoordinator(db, locks=KeyedLocks()).book(doctor.id, MONDAY, time(9, 30), PATIENT)

    assert appointment.appointment_status == 'WAITING'
    assert appointment.appointment_date_time == datetime(2026, 1, 5, 9, 30)
    assert appointment.source == 'PHONE'
    assert appointment.slot.slot_status == SLOT_BOOKED
    assert appointment.slot.end_time == time(10, 0)
    assert appointment.slot.working_hour_id == monday_rule.id
    assert appointment.doctor.id == doctor.id


def test_book_block_unblock_walkthrough(db, doctor, monday_rule) -> None:
    coordinator = BookingCoordinator(db, locks=KeyedLocks())

    coordinator.book(doctor.id, MONDAY, time(9, 30), PATIENT)
    assert _available_starts(db, doctor.id) == [time(9, 0), time(10, 0), time(10, 30), time(11, 0), time(11, 30)]

    blocked = coordinator.block(doctor.id, MONDAY, time(10, 0))
    assert blocked.slot_status == SLOT_BLOCKED
    assert time(10, 0) not in _available_starts(db, doctor.id)

    with pytest.raises(errors.Conflict) as exception_info:
        coordinator.book(doctor.id, MONDAY, time(10, 0), PATIENT)
    assert exception_info.value.message == 'This slot is blocked. Please pick another slot.'

    coordinator.unblock(blocked.id)
    assert _available_starts(db, doctor.id) == [time(9, 0), time(10, 0), time(10, 30), time(11, 0), time(11, 30)]

    appointment = coordinator.book(doctor.id, MONDAY, time(10, 0), PATIENT)
    assert appointment.slot.start_time == time(10, 0)


def test_book_rejects_already_booked_slot(db, doctor, monday_rule) -> None:
    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    coordinator.book(doctor.id, MONDAY, time(9, 0), PATIENT)

    with pytest.raises(errors.Conflict) as exception_info:
        coordinator.book(doctor.id, MONDAY, time(9, 0), PATIENT)

    assert exception_info.value.message == 'This slot is already booked. Please pick another slot.'
    assert db.query(Appointment).count() == 1


def test_block_rejects_booked_slot(db, doctor, monday_rule) -> None:
    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    coordinator.book(doctor.id, MONDAY, time(11, 30), PATIENT)

    with pytest.raises(errors.Conflict):
        coordinator.block(doctor.id, MONDAY, time(11, 30))


def test_every_available_window_can_be_taken(db, doctor, monday_rule) -> None:
    calculator = AvailabilityCalculator(db)
    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    end = MONDAY + timedelta(days=13)

    windows = [window for day in calculator.compute_availability(doctor.id, MONDAY, end) for window in day.slots]
    for index, window in enumerate(windows):
        if index % 2:
            coordinator.block(doctor.id, window.date, window.start_time)
        else:
            coordinator.book(doctor.id, window.date, window.start_time, PATIENT)

    assert len(windows) == 12
    assert all(day.slots == [] for day in calculator.compute_availability(doctor.id, MONDAY, end))


@pytest.mark.parametrize('start_time', [time(9, 15), time(12, 0), time(8, 0)])
def test_book_rejects_start_times_outside_the_partition(db, doctor, monday_rule, start_time: time) -> None:
    with pytest.raises(errors.ValidationError):
        BookingCoordinator(db, locks=KeyedLocks()).book(doctor.id, MONDAY, start_time, PATIENT)

    assert db.query(SlotInstance).count() == 0


def test_book_rejects_off_day(db, doctor, monday_rule) -> None:
    ExceptionStore(db).create_off_day(doctor.id, MONDAY, 'Conference')

    with pytest.raises(errors.ValidationError) as exception_info:
        BookingCoordinator(db, locks=KeyedLocks()).book(doctor.id, MONDAY, time(9, 0), PATIENT)

    assert exception_info.value.message == 'The doctor is off on this date.'


def test_block_rejects_day_without_working_hours(db, doctor, monday_rule) -> None:
    with pytest.raises(errors.ValidationError):
        BookingCoordinator(db, locks=KeyedLocks()).block(doctor.id, MONDAY + timedelta(days=1), time(9, 0))


def test_book_rejects_unknown_doctor(db, monday_rule) -> None:
    with pytest.raises(errors.NotFound):
        BookingCoordinator(db, locks=KeyedLocks()).book('missing-doctor', MONDAY, time(9, 0), PATIENT)


def test_book_rejects_user_who_is_not_a_doctor(db, staff_user, monday_rule) -> None:
    with pytest.raises(errors.NotFound):
        BookingCoordinator(db, locks=KeyedLocks()).book(staff_user.id, MONDAY, time(9, 0), PATIENT)


def test_unblock_rejects_booked_slot(db, doctor, monday_rule) -> None:
    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    appointment = coordinator.book(doctor.id, MONDAY, time(9, 0), PATIENT)

    with pytest.raises(errors.InvalidState):
        coordinator.unblock(appointment.slot_id)

    assert BookingLedger(db).get(appointment.slot_id).slot_status == SLOT_BOOKED


def test_unblock_rejects_unknown_slot(db, doctor, monday_rule) -> None:
    with pytest.raises(errors.NotFound):
        BookingCoordinator(db, locks=KeyedLocks()).unblock('missing-slot')


def test_insert_race_is_reported_as_conflict(db, doctor, monday_rule, monkeypatch: pytest.MonkeyPatch) -> None:
    BookingLedger(db).insert(doctor.id, MONDAY, time(9, 0), time(9, 30), SLOT_BOOKED, monday_rule.id)
    db.commit()

    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    # Simulates a writer in another process that won between the check and the insert.
    monkeypatch.setattr(coordinator.ledger, 'find', lambda *args: None)

    with pytest.raises(errors.Conflict) as exception_info:
        coordinator.book(doctor.id, MONDAY, time(9, 0), PATIENT)

    assert exception_info.value.message == 'This slot was just taken. Please pick another slot.'
    assert db.query(SlotInstance).count() == 1
    assert db.query(Appointment).count() == 0


def test_lock_timeout_is_reported_as_conflict(db, doctor, monday_rule, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SLOT_LOCK_TIMEOUT_SECONDS', 0.01)
    locks = KeyedLocks()

    with locks.hold((doctor.id, MONDAY, time(9, 0)), timeout=1):
        with pytest.raises(errors.Conflict):
            BookingCoordinator(db, locks=locks).book(doctor.id, MONDAY, time(9, 0), PATIENT)

    assert db.query(SlotInstance).count() == 0


def test_keyed_locks_forget_released_keys() -> None:
    locks = KeyedLocks()

    with locks.hold(('doctor', MONDAY, time(9, 0)), timeout=1):
        with locks.hold(('doctor', MONDAY, time(9, 30)), timeout=1):
            assert len(locks) == 2

    assert len(locks) == 0


@pytest.fixture
def shared_database(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 10},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = factory()
    doctor = User(name='Dr. Meera Iyer', email='meera@clinic.test', role=ROLE_DOCTOR)
    desk = User(name='Desk', email='front@clinic.test', role=ROLE_STAFF)
    setup.add_all([doctor, desk])
    setup.commit()
    ScheduleStore(setup).create_rule(doctor.id, 0, time(9, 0), time(12, 0), 30)
    doctor_id = doctor.id
    setup.close()

    try:
        yield factory, doctor_id
    finally:
        engine.dispose()


def test_concurrent_bookings_for_one_slot_admit_exactly_one(shared_database) -> None:
    factory, doctor_id = shared_database
    locks = KeyedLocks()
    barrier = Barrier(4)
    outcomes: list[str] = []

    def attempt(index: int) -> None:
        session = factory()
        try:
            coordinator = BookingCoordinator(session, locks=locks)
            barrier.wait()
            coordinator.book(
                doctor_id,
                MONDAY,
                time(10, 30),
                PatientDetails(name=f'Patient {index}', mobile_number=f'98765000{index:02d}', gender='FEMALE'),
            )
            outcomes.append('booked')
        except errors.Conflict:
            outcomes.append('conflict')
        finally:
            session.close()

    threads = [Thread(target=attempt, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ['booked', 'conflict', 'conflict', 'conflict']
    assert len(locks) == 0

    check = factory()
    try:
        assert check.query(SlotInstance).count() == 1
        assert check.query(Appointment).count() == 1
    finally:
        check.close()


class _UnblockedWhileWaiting(KeyedLocks):
    """Lets another session remove the slot before the lock is granted."""

    def __init__(self, session_factory, slot_id: str):
        super().__init__()
        self.session_factory = session_factory
        self.slot_id = slot_id

    def hold(self, key, timeout):
        other = self.session_factory()
        try:
            BookingCoordinator(other, locks=KeyedLocks()).unblock(self.slot_id)
        finally:
            other.close()
        return super().hold(key, timeout)


def test_unblock_reports_not_found_when_slot_vanishes_while_waiting(
    db, doctor, monday_rule, session_factory
) -> None:
    slot = BookingCoordinator(db, locks=KeyedLocks()).block(doctor.id, MONDAY, time(10, 0))

    coordinator = BookingCoordinator(db, locks=_UnblockedWhileWaiting(session_factory, slot.id))

    with pytest.raises(errors.NotFound):
        coordinator.unblock(slot.id)

    assert db.query(SlotInstance).count() == 0
