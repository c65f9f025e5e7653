from datetime import datetime, timedelta, timezone

import jwt

from clinic_scheduler.core import config

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _encode(subject: str, token_type: str, expire_minutes: int, role: str | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "exp": issued_at + timedelta(minutes=expire_minutes),
        "iat": issued_at,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def _decode(token: str, token_type: str) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError(f"Expected a {token_type} token.")
    return payload


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    return _encode(subject, ACCESS_TOKEN_TYPE, expires_minutes or config.JWT_EXPIRES_MINUTES, role)


def create_refresh_token(subject: str, expires_minutes: int | None = None) -> str:
    return _encode(subject, REFRESH_TOKEN_TYPE, expires_minutes or config.JWT_REFRESH_EXPIRES_MINUTES)


def decode_access_token(token: str) -> dict:
    return _decode(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict:
    return _decode(token, REFRESH_TOKEN_TYPE)
