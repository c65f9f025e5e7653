import pytest
from fastapi.testclient import TestClient

from clinic_scheduler.auth.dependencies import get_current_user
from clinic_scheduler.main import app
from clinic_scheduler.routes import appointment_routes, auth_routes, schedule_routes, slot_routes
from clinic_scheduler.routes.common import get_db


@pytest.fixture
def anonymous_client(session_factory, monkeypatch: pytest.MonkeyPatch):
    """Client backed by the test database; requests still need a bearer token."""
    for module in (appointment_routes, auth_routes, schedule_routes, slot_routes):
        monkeypatch.setattr(module, 'ensure_database_ready', lambda: None)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client(anonymous_client, staff_user):
    app.dependency_overrides[get_current_user] = lambda: staff_user
    return anonymous_client
