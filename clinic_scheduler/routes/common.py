import logging
from contextlib import contextmanager
from datetime import date
from typing import Generic, TypeVar

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import errors
from clinic_scheduler.core.formats import parse_wire_date, parse_wire_time
from clinic_scheduler.database import SessionLocal, ensure_schedule_schema, ensure_slot_ledger_schema

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

DataT = TypeVar('DataT')


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT


class DoctorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    mobile_number: str | None = None
    email: str | None = None
    role: str | None = None


def ok(data) -> dict:
    return {'success': True, 'data': data}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_slot_ledger_schema()
        ensure_schedule_schema()
    except SQLAlchemyError as exc:
        logger.exception('Schema check failed')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@contextmanager
def storage_errors(db: Session):
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while handling request')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def parse_date_param(name: str, value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return parse_wire_date(value)
    except ValueError as exc:
        raise errors.ValidationError(str(exc), details={name: [str(exc)]}) from exc


def require_date_param(name: str, value: str | None) -> date:
    parsed = parse_date_param(name, value)
    if parsed is None:
        raise errors.ValidationError(f'{name} is required.', details={name: [f'{name} is required.']})
    return parsed


def coerce_wire_date(value):
    if isinstance(value, str):
        return parse_wire_date(value)
    return value


def coerce_wire_time(value):
    if isinstance(value, str):
        return parse_wire_time(value)
    return value
