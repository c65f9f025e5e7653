"""Doctor working hours: one active rule per doctor and day of the week."""

import logging
from datetime import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config, errors
from clinic_scheduler.models.schedule import DAY_LABELS, WorkingHourRule
from clinic_scheduler.models.slot import SlotInstance
from clinic_scheduler.services.doctors import require_doctor

logger = logging.getLogger(__name__)

_UNSET = object()


def validate_rule_bounds(start_time: time, end_time: time, slot_duration_minutes: int) -> None:
    if start_time >= end_time:
        raise errors.ValidationError(
            'End time must be after start time.',
            details={'end_time': ['End time must be after start time.']},
        )

    if slot_duration_minutes <= 0:
        raise errors.ValidationError(
            'Slot duration must be a positive number of minutes.',
            details={'slot_duration_minutes': ['Slot duration must be a positive number of minutes.']},
        )


def validate_day_of_week(day_of_week: int) -> None:
    if not 0 <= day_of_week <= 6:
        raise errors.ValidationError(
            'Day of week must be between 0 (Monday) and 6 (Sunday).',
            details={'day_of_week': ['Day of week must be between 0 (Monday) and 6 (Sunday).']},
        )


class ScheduleStore:
    def __init__(self, db: Session):
        self.db = db

    def list_rules(self, doctor_id: str | None = None) -> list[WorkingHourRule]:
        query = self.db.query(WorkingHourRule)
        if doctor_id:
            query = query.filter(WorkingHourRule.doctor_id == doctor_id)

        return query.order_by(
            WorkingHourRule.doctor_id.asc(),
            WorkingHourRule.day_of_week.asc(),
            WorkingHourRule.start_time.asc(),
        ).all()

    def get_rule(self, rule_id: str) -> WorkingHourRule:
        rule = self.db.query(WorkingHourRule).filter(WorkingHourRule.id == rule_id).first()
        if rule is None:
            raise errors.NotFound('Working hour not found.')
        return rule

    def active_rules_by_weekday(self, doctor_id: str) -> dict[int, WorkingHourRule]:
        rules = self.db.query(WorkingHourRule).filter(
            WorkingHourRule.doctor_id == doctor_id,
            WorkingHourRule.is_active.is_(True),
        ).all()
        return {rule.day_of_week: rule for rule in rules}

    def active_rule_for(self, doctor_id: str, day_of_week: int) -> WorkingHourRule | None:
        return self.db.query(WorkingHourRule).filter(
            WorkingHourRule.doctor_id == doctor_id,
            WorkingHourRule.day_of_week == day_of_week,
            WorkingHourRule.is_active.is_(True),
        ).first()

    def create_rule(
        self,
        doctor_id: str,
        day_of_week: int,
        start_time: time,
        end_time: time,
        slot_duration_minutes: int | None = None,
    ) -> WorkingHourRule:
        require_doctor(self.db, doctor_id)

        if slot_duration_minutes is None:
            slot_duration_minutes = config.DEFAULT_SLOT_DURATION_MINUTES

        validate_day_of_week(day_of_week)
        validate_rule_bounds(start_time, end_time, slot_duration_minutes)
        self._ensure_day_is_free(doctor_id, day_of_week)

        rule = WorkingHourRule(
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            slot_duration_minutes=slot_duration_minutes,
            is_active=True,
        )
        self.db.add(rule)
        self._commit(day_of_week)
        self.db.refresh(rule)

        logger.info(
            'Created working hour %s for doctor %s on %s (%s-%s, %s min)',
            rule.id, doctor_id, DAY_LABELS[day_of_week], start_time, end_time, slot_duration_minutes,
        )
        return rule

    def update_rule(
        self,
        rule_id: str,
        start_time=_UNSET,
        end_time=_UNSET,
        slot_duration_minutes=_UNSET,
        is_active=_UNSET,
    ) -> WorkingHourRule:
        rule = self.get_rule(rule_id)

        new_start = rule.start_time if start_time is _UNSET else start_time
        new_end = rule.end_time if end_time is _UNSET else end_time
        new_duration = rule.slot_duration_minutes if slot_duration_minutes is _UNSET else slot_duration_minutes
        new_active = rule.is_active if is_active is _UNSET else is_active

        validate_rule_bounds(new_start, new_end, new_duration)
        if new_active and not rule.is_active:
            self._ensure_day_is_free(rule.doctor_id, rule.day_of_week, exclude_rule_id=rule.id)

        rule.start_time = new_start
        rule.end_time = new_end
        rule.slot_duration_minutes = new_duration
        rule.is_active = new_active
        self._commit(rule.day_of_week)
        self.db.refresh(rule)

        return rule

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule, or deactivate it when booked or blocked slots refer to it.

        Returns True when the rule was physically deleted.
        """
        rule = self.get_rule(rule_id)

        referenced = self.db.query(SlotInstance.id).filter(
            SlotInstance.working_hour_id == rule.id,
        ).first()

        if referenced:
            rule.is_active = False
            self.db.commit()
            logger.info('Deactivated working hour %s; slot history refers to it', rule.id)
            return False

        self.db.delete(rule)
        self.db.commit()
        logger.info('Deleted working hour %s', rule_id)
        return True

    def _ensure_day_is_free(self, doctor_id: str, day_of_week: int, exclude_rule_id: str | None = None) -> None:
        query = self.db.query(WorkingHourRule).filter(
            WorkingHourRule.doctor_id == doctor_id,
            WorkingHourRule.day_of_week == day_of_week,
            WorkingHourRule.is_active.is_(True),
        )
        if exclude_rule_id:
            query = query.filter(WorkingHourRule.id != exclude_rule_id)

        if query.first():
            raise errors.Conflict(
                f'An active working hour already exists for {DAY_LABELS[day_of_week]}.',
                details={'day_of_week': ['Only one active working hour is allowed per day.']},
            )

    def _commit(self, day_of_week: int) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Partial unique index lost a race with another writer.
            self.db.rollback()
            raise errors.Conflict(
                f'An active working hour already exists for {DAY_LABELS[day_of_week]}.',
                details={'day_of_week': ['Only one active working hour is allowed per day.']},
            ) from exc
