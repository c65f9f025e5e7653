from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_scheduler.auth.dependencies import get_current_user
from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import APPOINTMENT_STATUSES
from clinic_scheduler.routes.common import ApiResponse, ensure_database_ready, get_db, ok, parse_date_param, storage_errors
from clinic_scheduler.routes.slot_routes import AppointmentResponse
from clinic_scheduler.services import appointments as appointment_service

router = APIRouter(tags=['appointments'], dependencies=[Depends(get_current_user)])


class UpdateAppointmentStatusRequest(BaseModel):
    appointment_status: str

    @field_validator('appointment_status')
    @classmethod
    def validate_appointment_status(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError(f'Must be one of {", ".join(APPOINTMENT_STATUSES)}.')
        return normalized


class AppointmentPageResponse(BaseModel):
    count: int
    next: str | None = None
    previous: str | None = None
    results: list[AppointmentResponse]


def build_page_url(request: Request, page: int) -> str:
    return str(request.url.include_query_params(page=page))


@router.get('/all/appointments', response_model=ApiResponse[AppointmentPageResponse])
def list_appointments(
    request: Request,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1),
    date: str | None = Query(default=None),
    doctor_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    on_date = parse_date_param('date', date)
    page_size = min(page_size, config.MAX_APPOINTMENT_PAGE_SIZE)

    ensure_database_ready()

    with storage_errors(db):
        appointments, count = appointment_service.list_appointments(
            db,
            page=page,
            page_size=page_size,
            on_date=on_date,
            doctor_id=doctor_id,
        )

        return ok(
            AppointmentPageResponse(
                count=count,
                next=build_page_url(request, page + 1) if page * page_size < count else None,
                previous=build_page_url(request, page - 1) if page > 1 else None,
                results=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
            )
        )


@router.put('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def update_appointment_status(
    appointment_id: str,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with storage_errors(db):
        appointment = appointment_service.update_status(db, appointment_id, data.appointment_status)
        return ok(AppointmentResponse.model_validate(appointment))
