from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from sqlalchemy.orm import Session

from clinic_scheduler.auth.dependencies import get_current_user
from clinic_scheduler.core.formats import format_wire_date, format_wire_time
from clinic_scheduler.routes.common import (
    ApiResponse,
    DoctorSummary,
    coerce_wire_date,
    coerce_wire_time,
    ensure_database_ready,
    get_db,
    ok,
    parse_date_param,
    storage_errors,
)
from clinic_scheduler.services.exception_store import ExceptionStore
from clinic_scheduler.services.schedule_store import ScheduleStore

router = APIRouter(tags=['doctor-schedule'], dependencies=[Depends(get_current_user)])

MAX_OFF_DAY_REASON_LENGTH = 255


class CreateWorkingHourRequest(BaseModel):
    doctor_id: str
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int | None = None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_time(cls, value):
        return coerce_wire_time(value)

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Doctor is required.')
        return normalized


class UpdateWorkingHourRequest(BaseModel):
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    is_active: bool | None = None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_time(cls, value):
        return coerce_wire_time(value)


class WorkingHourResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    doctor: DoctorSummary
    day_of_week: int
    day_of_week_label: str
    start_time: time
    end_time: time
    slot_duration_minutes: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @field_serializer('start_time', 'end_time')
    def serialize_time(self, value: time) -> str:
        return format_wire_time(value)


class CreateOffDayRequest(BaseModel):
    doctor_id: str
    date: date
    reason: str | None = None

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_OFF_DAY_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_OFF_DAY_REASON_LENGTH} characters or fewer.')

        return normalized


class OffDayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    doctor: DoctorSummary
    date: date
    reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_serializer('date')
    def serialize_date(self, value: date) -> str:
        return format_wire_date(value)


@router.get('/working-hours', response_model=ApiResponse[list[WorkingHourResponse]])
def list_working_hours(
    doctor_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with storage_errors(db):
        rules = ScheduleStore(db).list_rules(doctor_id)
        return ok([WorkingHourResponse.model_validate(rule) for rule in rules])


@router.post(
    '/working-hours',
    response_model=ApiResponse[WorkingHourResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_working_hour(data: CreateWorkingHourRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        rule = ScheduleStore(db).create_rule(
            doctor_id=data.doctor_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=data.slot_duration_minutes,
        )
        return ok(WorkingHourResponse.model_validate(rule))


@router.put('/working-hours/{working_hour_id}', response_model=ApiResponse[WorkingHourResponse])
def update_working_hour(
    working_hour_id: str,
    data: UpdateWorkingHourRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    # Explicit nulls from the client mean "leave unchanged".
    updates = data.model_dump(exclude_unset=True, exclude_none=True)

    with storage_errors(db):
        rule = ScheduleStore(db).update_rule(working_hour_id, **updates)
        return ok(WorkingHourResponse.model_validate(rule))


@router.delete('/working-hours/{working_hour_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_working_hour(working_hour_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        ScheduleStore(db).delete_rule(working_hour_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/off-days', response_model=ApiResponse[list[OffDayResponse]])
def list_off_days(
    doctor_id: str | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    range_start = parse_date_param('start_date', start_date)
    range_end = parse_date_param('end_date', end_date)

    ensure_database_ready()

    with storage_errors(db):
        off_days = ExceptionStore(db).list_off_days(doctor_id, range_start, range_end)
        return ok([OffDayResponse.model_validate(off_day) for off_day in off_days])


@router.post('/off-days', response_model=ApiResponse[OffDayResponse], status_code=status.HTTP_201_CREATED)
def create_off_day(data: CreateOffDayRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        off_day = ExceptionStore(db).create_off_day(data.doctor_id, data.date, data.reason)
        return ok(OffDayResponse.model_validate(off_day))


@router.delete('/off-days/{off_day_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_off_day(off_day_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        ExceptionStore(db).delete_off_day(off_day_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
