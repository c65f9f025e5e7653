import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from clinic_scheduler.auth import jwt_handler
from clinic_scheduler.auth.dependencies import get_current_user
from clinic_scheduler.auth.passwords import verify_password
from clinic_scheduler.models.user import User
from clinic_scheduler.routes.common import ApiResponse, DoctorSummary, ensure_database_ready, get_db, ok, storage_errors
from clinic_scheduler.services.doctors import list_doctors

router = APIRouter(tags=['auth'])
doctors_router = APIRouter(tags=['doctors'], dependencies=[Depends(get_current_user)])

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    mobile_number: str | None = None
    role: str


class RefreshRequest(BaseModel):
    refresh: str


class TokenResponse(BaseModel):
    access: str
    refresh: str
    user: UserResponse


def issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access=jwt_handler.create_access_token(subject=user.email, role=user.role),
        refresh=jwt_handler.create_refresh_token(subject=user.email),
        user=UserResponse.model_validate(user),
    )


@router.post('/login', response_model=ApiResponse[TokenResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        user = db.query(User).filter(User.email == data.email).first()

    if user is None or not user.is_active or not verify_password(data.password, user.hashed_password):
        logger.info('Rejected login for %s', data.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid email or password.',
        )

    return ok(issue_tokens(user))


@router.post('/refresh', response_model=ApiResponse[TokenResponse])
def refresh(data: RefreshRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_handler.decode_refresh_token(data.refresh)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid refresh token.',
        ) from exc

    ensure_database_ready()

    with storage_errors(db):
        user = db.query(User).filter(User.email == payload.get('sub')).first()

    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid refresh token.',
        )

    return ok(issue_tokens(user))


@router.get('/me', response_model=ApiResponse[UserResponse])
def me(current_user: User = Depends(get_current_user)):
    return ok(UserResponse.model_validate(current_user))


@doctors_router.get('', response_model=ApiResponse[list[DoctorSummary]])
def get_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    with storage_errors(db):
        return ok([DoctorSummary.model_validate(doctor) for doctor in list_doctors(db)])
