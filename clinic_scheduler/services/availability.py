"""Availability window calculation.

Turns a doctor's weekly working hours, off-days and the booking ledger into
concrete bookable windows for a date range. The functions at module level are
pure; ``AvailabilityCalculator`` loads the inputs for a whole range with one
query per store and hands them to ``build_availability``.

Results are advisory: reads take no locks, and ``BookingCoordinator``
re-validates every write against the live ledger.
"""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Mapping

from sqlalchemy.orm import Session

from clinic_scheduler.core import errors
from clinic_scheduler.models.schedule import DAY_LABELS, WorkingHourRule
from clinic_scheduler.services.booking_ledger import BookingLedger
from clinic_scheduler.services.doctors import find_doctor
from clinic_scheduler.services.exception_store import ExceptionStore
from clinic_scheduler.services.schedule_store import ScheduleStore


@dataclass(frozen=True)
class AvailableWindow:
    date: date
    start_time: time
    end_time: time


@dataclass
class DayAvailability:
    date: date
    slots: list[AvailableWindow] = field(default_factory=list)

    @property
    def day_of_week(self) -> str:
        return DAY_LABELS[self.date.weekday()]


def iterate_dates(start_date: date, end_date: date):
    # Offsets from the start, so a range ending on date.max never steps past it.
    for offset in range((end_date - start_date).days + 1):
        yield start_date + timedelta(days=offset)


def _since_midnight(value: time) -> timedelta:
    return timedelta(hours=value.hour, minutes=value.minute, seconds=value.second)


def _clock(offset: timedelta) -> time:
    seconds = int(offset.total_seconds())
    return time(seconds // 3600, seconds % 3600 // 60, seconds % 60)


def partition_windows(
    day: date,
    start_time: time,
    end_time: time,
    slot_duration_minutes: int,
) -> list[AvailableWindow]:
    """Split [start_time, end_time) into full windows; a short tail is dropped."""
    windows: list[AvailableWindow] = []
    step = timedelta(minutes=slot_duration_minutes)
    # Offsets from midnight keep the arithmetic off the calendar.
    current = _since_midnight(start_time)
    limit = _since_midnight(end_time)

    while current + step <= limit:
        windows.append(AvailableWindow(date=day, start_time=_clock(current), end_time=_clock(current + step)))
        current += step

    return windows


def build_availability(
    start_date: date,
    end_date: date,
    rules_by_weekday: Mapping[int, WorkingHourRule],
    off_dates: set[date],
    occupied: Mapping[date, set[time]],
) -> list[DayAvailability]:
    days: list[DayAvailability] = []

    for day in iterate_dates(start_date, end_date):
        day_availability = DayAvailability(date=day)
        days.append(day_availability)

        if day in off_dates:
            continue

        rule = rules_by_weekday.get(day.weekday())
        if rule is None:
            continue

        taken = occupied.get(day, set())
        day_availability.slots = [
            window
            for window in partition_windows(day, rule.start_time, rule.end_time, rule.slot_duration_minutes)
            if window.start_time not in taken
        ]

    return days


class AvailabilityCalculator:
    def __init__(self, db: Session):
        self.db = db
        self.schedule = ScheduleStore(db)
        self.exceptions = ExceptionStore(db)
        self.ledger = BookingLedger(db)

    def compute_availability(self, doctor_id: str, start_date: date, end_date: date) -> list[DayAvailability]:
        if start_date > end_date:
            return []

        if find_doctor(self.db, doctor_id) is None:
            return []

        return build_availability(
            start_date,
            end_date,
            rules_by_weekday=self.schedule.active_rules_by_weekday(doctor_id),
            off_dates=self.exceptions.off_dates(doctor_id, start_date, end_date),
            occupied=self.ledger.occupied_starts(doctor_id, start_date, end_date),
        )

    def resolve_window(self, doctor_id: str, day: date, start_time: time) -> tuple[WorkingHourRule, AvailableWindow]:
        """Return the schedule window starting at ``start_time``, ignoring the ledger.

        Raises ``ValidationError`` when the doctor does not work a window
        starting at that time on that date.
        """
        if self.exceptions.is_off_day(doctor_id, day):
            raise errors.ValidationError(
                'The doctor is off on this date.',
                details={'date': ['The doctor is off on this date.']},
            )

        rule = self.schedule.active_rule_for(doctor_id, day.weekday())
        if rule is None:
            raise errors.ValidationError(
                f'The doctor does not work on {DAY_LABELS[day.weekday()]}.',
                details={'date': [f'The doctor does not work on {DAY_LABELS[day.weekday()]}.']},
            )

        for window in partition_windows(day, rule.start_time, rule.end_time, rule.slot_duration_minutes):
            if window.start_time == start_time:
                return rule, window

        raise errors.ValidationError(
            'The requested start time is not a slot in the doctor\'s working hours.',
            details={'start_time': ['The requested start time is not a slot in the doctor\'s working hours.']},
        )
