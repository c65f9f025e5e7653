"""Create a clinic user and print an access token for it.

Usage:
    python -m clinic_scheduler.create_staff_user <email> <name> <role> <password>

Role is one of DOCTOR, STAFF or ADMIN. Doctors created here are the ids the
schedule and slot endpoints accept as ``doctor_id``.
"""
import sys

from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.auth.jwt_handler import create_access_token
from clinic_scheduler.auth.passwords import hash_password
from clinic_scheduler.database import Base, SessionLocal, engine
from clinic_scheduler.models import appointment, schedule, slot  # noqa: F401
from clinic_scheduler.models.user import USER_ROLES, User


def create_user(db, email: str, name: str, role: str, password: str) -> User:
    normalized_email = email.strip().lower()
    normalized_role = role.strip().upper()
    if normalized_role not in USER_ROLES:
        raise ValueError(f"Role must be one of {', '.join(USER_ROLES)}.")

    if db.query(User).filter(User.email == normalized_email).first():
        raise ValueError(f"A user with email {normalized_email} already exists.")

    user = User(
        email=normalized_email,
        name=name.strip(),
        role=normalized_role,
        hashed_password=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 4:
        print(__doc__.strip(), file=sys.stderr)
        sys.exit(2)

    email, name, role, password = args

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = create_user(db, email, name, role, password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except SQLAlchemyError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    print(f"Created {user.role} {user.email} with id {user.id}")
    print(create_access_token(subject=user.email, role=user.role))


if __name__ == "__main__":
    main()
