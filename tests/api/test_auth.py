import time

import jwt
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from ebd.backend.main import app
from ebd.backend.api.dependencies import get_auth_client, get_http_client, get_redis_client, get_store_client
from ebd.backend.api.utilities.limiter import limiter
from ebd.backend.config.config import settings
from ebd.backend.db.store_client import AuthError, StoreConnectionError
from ebd.backend.models.entities import (
    AuthSession, Category, Identity, SchoolClass, Student, Teacher, Workspace
)
from ebd.backend.services.errors import SessionResolutionError

JWT_SECRET = "test-secret"


def _token(sub="uid-ana", email="ana@ebd.org", expires_in=3600, secret=JWT_SECRET):
    payload = {"sub": sub, "email": email, "aud": "authenticated", "exp": int(time.time()) + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


def _workspace() -> Workspace:
    return Workspace(
        classes=[SchoolClass(id="C1", name="Juniores", teacher="Ana"), SchoolClass(id="C2", name="Adultos", teacher="Paulo")],
        students=[Student(id="S1", name="Lucas", class_id="C1"), Student(id="S3", name="João", class_id="C2")],
        teachers=[Teacher(id="T1", name="Ana"), Teacher(id="T2", name="Paulo")],
        categories=[Category(id="K1", name="Kids")],
    )


@pytest.fixture
def mock_auth():
    return AsyncMock()


@pytest.fixture
def mock_redis():
    redis_client = AsyncMock()
    redis_client.is_token_revoked.return_value = False
    return redis_client


@pytest.fixture
def client(mock_auth, mock_redis):
    limiter.enabled = False
    app.dependency_overrides[get_auth_client] = lambda: mock_auth
    app.dependency_overrides[get_store_client] = lambda: AsyncMock()
    app.dependency_overrides[get_redis_client] = lambda: mock_redis
    app.dependency_overrides[get_http_client] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    limiter.enabled = True


# --- Login ---

def test_login_returns_token_session_and_scoped_workspace(client, mock_auth, teacher_session):
    mock_auth.sign_in_with_password.return_value = AuthSession(
        access_token="jwt", refresh_token="rt", expires_in=3600,
        user=Identity(id="uid-ana", email="ana@ebd.org"),
    )

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls, \
            patch("ebd.backend.api.auth.ConsoleService") as service_cls:
        resolver_cls.return_value.resolve = AsyncMock(return_value=teacher_session)
        service_cls.return_value.load_workspace = AsyncMock(return_value=_workspace())
        response = client.post("/api/v1/auth/login", json={"email": "ana@ebd.org", "password": "segredo"})

    assert response.status_code == 200
    data = response.json()
    assert data["token"]["access_token"] == "jwt"
    assert data["token"]["refresh_token"] == "rt"
    assert data["session"]["role"] == "TEACHER"
    assert data["session"]["assigned_class_id"] == "C1"
    assert [c["id"] for c in data["workspace"]["classes"]] == ["C1"]
    assert [s["id"] for s in data["workspace"]["students"]] == ["S1"]
    assert data["workspace"]["teachers"] == []


def test_login_with_bad_credentials(client, mock_auth):
    mock_auth.sign_in_with_password.side_effect = AuthError("Invalid login credentials", status_code=400)

    response = client.post("/api/v1/auth/login", json={"email": "ana@ebd.org", "password": "errada"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password."


def test_login_refused_when_no_session_can_be_built(client, mock_auth):
    mock_auth.sign_in_with_password.return_value = AuthSession(access_token="jwt", user=Identity(id="uid-x", email="x@ebd.org"))

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls:
        resolver_cls.return_value.resolve = AsyncMock(side_effect=SessionResolutionError("No access profile is registered for this account."))
        response = client.post("/api/v1/auth/login", json={"email": "x@ebd.org", "password": "segredo"})

    assert response.status_code == 401


def test_login_when_store_is_down(client, mock_auth):
    mock_auth.sign_in_with_password.side_effect = StoreConnectionError("Could not reach the authentication service.")

    response = client.post("/api/v1/auth/login", json={"email": "ana@ebd.org", "password": "segredo"})

    assert response.status_code == 503


# --- Protected routes ---

def test_session_requires_a_token(client):
    response = client.get("/api/v1/auth/session")
    assert response.status_code == 401


def test_session_from_locally_verified_token(client, monkeypatch, admin_session):
    monkeypatch.setattr(settings, "STORE_JWT_SECRET", JWT_SECRET)

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls:
        resolver_cls.return_value.resolve = AsyncMock(return_value=admin_session)
        response = client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {_token()}"})

    assert response.status_code == 200
    assert response.json()["role"] == "ADMIN"
    identity = resolver_cls.return_value.resolve.await_args.args[0]
    assert identity.id == "uid-ana"
    assert identity.email == "ana@ebd.org"


def test_expired_token_is_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "STORE_JWT_SECRET", JWT_SECRET)

    response = client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {_token(expires_in=-60)}"})

    assert response.status_code == 401


def test_token_signed_with_another_secret_is_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "STORE_JWT_SECRET", JWT_SECRET)

    response = client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {_token(secret='someone-else')}"})

    assert response.status_code == 401


def test_identity_from_auth_api_without_secret(client, monkeypatch, mock_auth, teacher_session):
    monkeypatch.setattr(settings, "STORE_JWT_SECRET", None)
    mock_auth.get_user.return_value = Identity(id="uid-ana", email="ana@ebd.org")

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls:
        resolver_cls.return_value.resolve = AsyncMock(return_value=teacher_session)
        response = client.get("/api/v1/auth/session", headers={"Authorization": "Bearer opaque"})

    assert response.status_code == 200
    mock_auth.get_user.assert_awaited_once_with("opaque")


def test_signed_out_token_is_rejected(client, mock_redis, mock_auth):
    mock_redis.is_token_revoked.return_value = True

    response = client.get("/api/v1/auth/session", headers={"Authorization": "Bearer revoked"})

    assert response.status_code == 401
    mock_auth.get_user.assert_not_called()


# --- Logout ---

def test_logout_signs_out_and_denies_token(client, monkeypatch, mock_auth, mock_redis, admin_session):
    monkeypatch.setattr(settings, "STORE_JWT_SECRET", JWT_SECRET)
    token = _token(expires_in=600)

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls:
        resolver_cls.return_value.resolve = AsyncMock(return_value=admin_session)
        response = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 204
    mock_auth.sign_out.assert_awaited_once_with(token)
    revoked_token = mock_redis.revoke_token.await_args.args[0]
    ttl = mock_redis.revoke_token.await_args.kwargs["ttl"]
    assert revoked_token == token
    assert 0 < ttl <= 600


# --- Refresh ---

def test_refresh_resolves_the_session_again(client, mock_auth, teacher_session):
    mock_auth.refresh_session.return_value = AuthSession(
        access_token="jwt-2", refresh_token="rt-2", user=Identity(id="uid-ana", email="ana@ebd.org"),
    )

    with patch("ebd.backend.api.auth.SessionResolver") as resolver_cls:
        resolver_cls.return_value.resolve = AsyncMock(return_value=teacher_session)
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": "rt-1"})

    assert response.status_code == 200
    assert response.json()["token"]["access_token"] == "jwt-2"
    assert response.json()["session"]["assigned_class_id"] == "C1"
    mock_auth.refresh_session.assert_awaited_once_with("rt-1")


def test_refresh_with_expired_refresh_token(client, mock_auth):
    mock_auth.refresh_session.side_effect = AuthError("Invalid Refresh Token", status_code=400)

    response = client.post("/api/v1/auth/refresh", json={"refresh_token": "old"})

    assert response.status_code == 401
