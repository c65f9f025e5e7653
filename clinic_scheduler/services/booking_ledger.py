"""Booked and blocked slot instances, the single source of truth for conflicts."""

from collections import defaultdict
from datetime import date, time

from sqlalchemy.orm import Session

from clinic_scheduler.models.slot import SLOT_BLOCKED, SLOT_BOOKED, SlotInstance

OCCUPYING_STATUSES = (SLOT_BOOKED, SLOT_BLOCKED)


class BookingLedger:
    def __init__(self, db: Session):
        self.db = db

    def occupied_starts(self, doctor_id: str, start_date: date, end_date: date) -> dict[date, set[time]]:
        rows = self.db.query(SlotInstance.date, SlotInstance.start_time).filter(
            SlotInstance.doctor_id == doctor_id,
            SlotInstance.date >= start_date,
            SlotInstance.date <= end_date,
            SlotInstance.slot_status.in_(OCCUPYING_STATUSES),
        ).all()

        occupied: dict[date, set[time]] = defaultdict(set)
        for slot_date, slot_start in rows:
            occupied[slot_date].add(slot_start)
        return occupied

    def find(self, doctor_id: str, slot_date: date, start_time: time) -> SlotInstance | None:
        return self.db.query(SlotInstance).filter(
            SlotInstance.doctor_id == doctor_id,
            SlotInstance.date == slot_date,
            SlotInstance.start_time == start_time,
            SlotInstance.slot_status.in_(OCCUPYING_STATUSES),
        ).first()

    def get(self, slot_id: str) -> SlotInstance | None:
        return self.db.query(SlotInstance).filter(SlotInstance.id == slot_id).first()

    def insert(
        self,
        doctor_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        slot_status: str,
        working_hour_id: str | None = None,
    ) -> SlotInstance:
        """Stage a new instance; the caller owns the transaction.

        The flush surfaces a unique-key violation immediately as IntegrityError.
        """
        slot = SlotInstance(
            doctor_id=doctor_id,
            working_hour_id=working_hour_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            slot_status=slot_status,
        )
        self.db.add(slot)
        self.db.flush()
        return slot

    def remove(self, slot: SlotInstance) -> None:
        self.db.delete(slot)
        self.db.flush()
