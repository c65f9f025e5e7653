from sqlalchemy.orm import Session

from clinic_scheduler.core import errors
from clinic_scheduler.models.user import ROLE_DOCTOR, User


def find_doctor(db: Session, doctor_id: str) -> User | None:
    if not doctor_id:
        return None

    return db.query(User).filter(
        User.id == doctor_id,
        User.role == ROLE_DOCTOR,
        User.is_active.is_(True),
    ).first()


def require_doctor(db: Session, doctor_id: str) -> User:
    doctor = find_doctor(db, doctor_id)
    if doctor is None:
        raise errors.NotFound('Doctor not found.', details={'doctor_id': ['Unknown doctor id.']})
    return doctor


def list_doctors(db: Session) -> list[User]:
    return db.query(User).filter(
        User.role == ROLE_DOCTOR,
        User.is_active.is_(True),
    ).order_by(User.name.asc()).all()
