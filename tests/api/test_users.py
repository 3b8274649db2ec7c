import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from ebd.backend.main import app
from ebd.backend.api.auth import get_current_session
from ebd.backend.api.dependencies import get_db_client, get_postgres_pool, get_user_access_service
from ebd.backend.api.utilities.limiter import limiter
from ebd.backend.models.entities import Profile, Role


@pytest.fixture
def mock_service():
    service = AsyncMock()
    service.list_profiles.return_value = [Profile(id="u1", email="ana@ebd.org", full_name="Ana", role=Role.TEACHER)]
    service.create_user.return_value = Profile(id="u2", email="paulo@ebd.org", full_name="Paulo", role=Role.TEACHER)
    return service


@pytest.fixture
def client_for(mock_service):
    def _open(session):
        app.dependency_overrides[get_current_session] = lambda: session
        app.dependency_overrides[get_user_access_service] = lambda: mock_service
        return TestClient(app)

    limiter.enabled = False
    yield _open
    app.dependency_overrides.clear()
    limiter.enabled = True


def test_admin_lists_users(client_for, admin_session):
    with client_for(admin_session) as client:
        response = client.get("/api/v1/users")

    assert response.status_code == 200
    assert response.json()[0]["email"] == "ana@ebd.org"


def test_teacher_cannot_manage_users(client_for, teacher_session, mock_service):
    with client_for(teacher_session) as client:
        assert client.get("/api/v1/users").status_code == 403
        assert client.delete("/api/v1/users/u1").status_code == 403
    mock_service.delete_profile.assert_not_called()


def test_admin_invites_user(client_for, admin_session, mock_service):
    with client_for(admin_session) as client:
        response = client.post("/api/v1/users", json={
            "full_name": "Paulo", "email": "paulo@ebd.org", "password": "segredo123", "role": "TEACHER",
        })

    assert response.status_code == 201
    mock_service.create_user.assert_awaited_once_with("Paulo", "paulo@ebd.org", "segredo123", Role.TEACHER)


def test_admin_changes_role_and_removes_profile(client_for, admin_session, mock_service):
    with client_for(admin_session) as client:
        updated = client.put("/api/v1/users/u1", json={"full_name": "Ana", "role": "ADMIN"})
        deleted = client.delete("/api/v1/users/u1")

    assert updated.status_code == 204
    assert deleted.status_code == 204
    mock_service.update_profile.assert_awaited_once_with("u1", "Ana", Role.ADMIN)
    mock_service.delete_profile.assert_awaited_once_with("u1")


# --- Maintenance ---

def test_backfill_without_database(client_for, admin_session):
    app.dependency_overrides[get_postgres_pool] = lambda: None
    with client_for(admin_session) as client:
        response = client.post("/api/v1/admin/maintenance/backfill-class-links")

    assert response.status_code == 503


def test_backfill_reports_links(client_for, admin_session):
    db_client = AsyncMock()
    db_client.backfill_class_links.return_value = {"teacher_links": 2, "category_links": 1}
    app.dependency_overrides[get_db_client] = lambda: db_client
    with client_for(admin_session) as client:
        response = client.post("/api/v1/admin/maintenance/backfill-class-links")

    assert response.status_code == 200
    assert response.json() == {"teacher_links": 2, "category_links": 1}


def test_backfill_is_admin_only(client_for, teacher_session):
    with client_for(teacher_session) as client:
        response = client.post("/api/v1/admin/maintenance/backfill-class-links")

    assert response.status_code == 403


def test_health():
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
