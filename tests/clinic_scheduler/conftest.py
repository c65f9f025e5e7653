import os
from datetime import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models import appointment, schedule, slot  # noqa: E402,F401
from clinic_scheduler.models.user import ROLE_DOCTOR, ROLE_STAFF, User  # noqa: E402
from clinic_scheduler.services.schedule_store import ScheduleStore  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def doctor(db) -> User:
    user = User(name='Dr. Asha Rao', email='asha@clinic.test', mobile_number='9876543210', role=ROLE_DOCTOR)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db) -> User:
    user = User(name='Front Desk', email='desk@clinic.test', role=ROLE_STAFF)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def monday_rule(db, doctor):
    """Monday 09:00-12:00 in 30 minute slots."""
    return ScheduleStore(db).create_rule(doctor.id, 0, time(9, 0), time(12, 0), 30)
