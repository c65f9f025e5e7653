import re
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from sqlalchemy.orm import Session

from clinic_scheduler.auth.dependencies import get_current_user
from clinic_scheduler.core.formats import format_wire_date, format_wire_time
from clinic_scheduler.models.appointment import GENDERS, SOURCES
from clinic_scheduler.routes.common import (
    ApiResponse,
    DoctorSummary,
    coerce_wire_date,
    coerce_wire_time,
    ensure_database_ready,
    get_db,
    ok,
    require_date_param,
    storage_errors,
)
from clinic_scheduler.services.availability import AvailabilityCalculator
from clinic_scheduler.services.booking import BookingCoordinator, PatientDetails

router = APIRouter(tags=['slots'], dependencies=[Depends(get_current_user)])

AVAILABLE_STATUS = 'AVAILABLE'
MAX_PATIENT_NAME_LENGTH = 200
PHONE_SEPARATORS = re.compile(r'[\s\-()]')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{6,14}$')


def normalize_mobile_number(value: str) -> str:
    """Strip separators and check 7-15 digits, optional leading +, first digit 1-9."""
    cleaned = PHONE_SEPARATORS.sub('', value or '')
    if not cleaned:
        raise ValueError('Mobile number is required.')

    digit_count = sum(character.isdigit() for character in cleaned)
    if digit_count < 7:
        raise ValueError('Phone number must have at least 7 digits.')
    if digit_count > 15:
        raise ValueError('Phone number is too long (maximum 15 digits).')
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError('Please enter a valid phone number.')

    return cleaned


class SlotKeyRequest(BaseModel):
    doctor_id: str
    date: date
    start_time: time

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_start_time(cls, value):
        return coerce_wire_time(value)

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Doctor is required.')
        return normalized


class BookSlotRequest(SlotKeyRequest):
    name: str
    mobile_number: str
    gender: str
    source: str = 'PHONE'

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        if len(normalized) > MAX_PATIENT_NAME_LENGTH:
            raise ValueError(f'Name must be {MAX_PATIENT_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('mobile_number')
    @classmethod
    def validate_mobile_number(cls, value: str) -> str:
        return normalize_mobile_number(value)

    @field_validator('gender')
    @classmethod
    def validate_gender(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in GENDERS:
            raise ValueError('Gender is required.')
        return normalized

    @field_validator('source', mode='before')
    @classmethod
    def validate_source(cls, value: str | None) -> str:
        if value is None or not str(value).strip():
            return 'PHONE'
        normalized = str(value).strip().upper()
        if normalized not in SOURCES:
            raise ValueError('Invalid appointment source.')
        return normalized


class AvailableSlotResponse(BaseModel):
    start_time: time
    end_time: time
    status: str = AVAILABLE_STATUS

    @field_serializer('start_time', 'end_time')
    def serialize_time(self, value: time) -> str:
        return format_wire_time(value)


class DaySlotsResponse(BaseModel):
    date: date
    day_of_week: str
    slots: list[AvailableSlotResponse]

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_serializer('date')
    def serialize_date(self, value: date) -> str:
        return format_wire_date(value)


class AvailableSlotsResponse(BaseModel):
    doctor_id: str
    start_date: date
    end_date: date
    days: list[DaySlotsResponse]

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_serializer('start_date', 'end_date')
    def serialize_date(self, value: date) -> str:
        return format_wire_date(value)


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    date: date
    start_time: time
    end_time: time
    slot_status: str
    created_at: datetime
    updated_at: datetime

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, value):
        return coerce_wire_date(value)

    @field_serializer('date')
    def serialize_date(self, value: date) -> str:
        return format_wire_date(value)

    @field_serializer('start_time', 'end_time')
    def serialize_time(self, value: time) -> str:
        return format_wire_time(value)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    mobile_number: str
    gender: str
    doctor: DoctorSummary | None = None
    slot: SlotResponse | None = None
    appointment_date_time: datetime | None = None
    appointment_status: str
    source: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@router.get('/available', response_model=ApiResponse[AvailableSlotsResponse])
def list_available_slots(
    doctor_id: str = Query(...),
    start_date: str = Query(...),
    end_date: str = Query(...),
    db: Session = Depends(get_db),
):
    range_start = require_date_param('start_date', start_date)
    range_end = require_date_param('end_date', end_date)

    ensure_database_ready()

    with storage_errors(db):
        days = AvailabilityCalculator(db).compute_availability(doctor_id, range_start, range_end)

    return ok(
        AvailableSlotsResponse(
            doctor_id=doctor_id,
            start_date=range_start,
            end_date=range_end,
            days=[
                DaySlotsResponse(
                    date=day.date,
                    day_of_week=day.day_of_week,
                    slots=[
                        AvailableSlotResponse(start_time=window.start_time, end_time=window.end_time)
                        for window in day.slots
                    ],
                )
                for day in days
            ],
        )
    )


@router.post('/book', response_model=ApiResponse[AppointmentResponse], status_code=status.HTTP_201_CREATED)
def book_slot(data: BookSlotRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        appointment = BookingCoordinator(db).book(
            data.doctor_id,
            data.date,
            data.start_time,
            PatientDetails(
                name=data.name,
                mobile_number=data.mobile_number,
                gender=data.gender,
                source=data.source,
            ),
        )
        return ok(AppointmentResponse.model_validate(appointment))


@router.post('/block', response_model=ApiResponse[SlotResponse], status_code=status.HTTP_201_CREATED)
def block_slot(data: SlotKeyRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        slot = BookingCoordinator(db).block(data.doctor_id, data.date, data.start_time)
        return ok(SlotResponse.model_validate(slot))


@router.delete('/block/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def unblock_slot(slot_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        BookingCoordinator(db).unblock(slot_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
