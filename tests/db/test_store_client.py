import json

import httpx
import pytest

from ebd.backend.db.store_client import (
    AuthClient, AuthError, StoreClient, StoreConnectionError, StoreError
)

BASE_URL = "https://ebd.example.co"
API_KEY = "anon-key"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestStoreClient:

    async def test_select_sends_filters_order_and_caller_token(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["request"] = request
            return httpx.Response(200, json=[{"id": "C1"}])

        async with _client(handler) as http:
            store = StoreClient(http, BASE_URL, API_KEY, access_token="user-jwt")
            rows = await store.select("classes", "*", filters={"teacher": "Ana"}, order="name.asc")

        request = seen["request"]
        assert rows == [{"id": "C1"}]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/classes"
        assert request.url.params["select"] == "*"
        assert request.url.params["teacher"] == "eq.Ana"
        assert request.url.params["order"] == "name.asc"
        assert request.headers["apikey"] == API_KEY
        assert request.headers["authorization"] == "Bearer user-jwt"

    async def test_anonymous_calls_use_the_api_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json=[])

        async with _client(handler) as http:
            await StoreClient(http, BASE_URL, API_KEY).select("teachers")

        assert seen["auth"] == f"Bearer {API_KEY}"

    async def test_upsert_asks_for_merge(self):
        seen = {}

        def handler(request):
            seen["prefer"] = request.headers["prefer"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=[{"id": "new-id", "name": "Kids"}])

        async with _client(handler) as http:
            rows = await StoreClient(http, BASE_URL, API_KEY).upsert("categories", {"name": "Kids"})

        assert "resolution=merge-duplicates" in seen["prefer"]
        assert seen["body"] == {"name": "Kids"}
        assert rows[0]["id"] == "new-id"

    async def test_update_and_delete_filter_by_column(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.params.get("id")))
            return httpx.Response(204) if request.method == "DELETE" else httpx.Response(200, json=[])

        async with _client(handler) as http:
            store = StoreClient(http, BASE_URL, API_KEY)
            await store.update("profiles", {"role": "ADMIN"}, "id", "u1")
            await store.delete("teachers", "id", "T3")

        assert seen == [("PATCH", "eq.u1"), ("DELETE", "eq.T3")]

    async def test_select_one_needs_exactly_one_row(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": "T1"}, {"id": "T9"}])

        async with _client(handler) as http:
            assert await StoreClient(http, BASE_URL, API_KEY).select_one("teachers", email="ana@ebd.org") is None

    async def test_rejection_carries_message_details_and_code(self):
        def handler(request):
            return httpx.Response(409, json={
                "message": "duplicate key value violates unique constraint",
                "details": "Key (name)=(Kids) already exists.",
                "code": "23505",
            })

        async with _client(handler) as http:
            with pytest.raises(StoreError) as excinfo:
                await StoreClient(http, BASE_URL, API_KEY).insert("categories", {"name": "Kids"})

        error = excinfo.value
        assert error.code == "23505"
        assert error.status_code == 409
        assert str(error) == "duplicate key value violates unique constraint | Key (name)=(Kids) already exists."
        assert not isinstance(error, StoreConnectionError)

    async def test_network_failure_is_a_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as http:
            with pytest.raises(StoreConnectionError):
                await StoreClient(http, BASE_URL, API_KEY).select("classes")


@pytest.mark.asyncio
class TestAuthClient:

    async def test_password_sign_in(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={
                "access_token": "jwt", "refresh_token": "rt", "token_type": "bearer", "expires_in": 3600,
                "user": {"id": "uid-ana", "email": "ana@ebd.org", "user_metadata": {"full_name": "Ana"}},
            })

        async with _client(handler) as http:
            session = await AuthClient(http, BASE_URL, API_KEY).sign_in_with_password("ana@ebd.org", "segredo")

        assert seen["request"].url.path == "/auth/v1/token"
        assert seen["request"].url.params["grant_type"] == "password"
        assert session.access_token == "jwt"
        assert session.user.id == "uid-ana"
        assert session.user.user_metadata["full_name"] == "Ana"

    async def test_bad_credentials_raise_auth_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

        async with _client(handler) as http:
            with pytest.raises(AuthError) as excinfo:
                await AuthClient(http, BASE_URL, API_KEY).sign_in_with_password("ana@ebd.org", "errada")

        assert excinfo.value.message == "Invalid login credentials"

    async def test_sign_up_returns_identity_from_bare_user(self):
        def handler(request):
            assert json.loads(request.content)["data"] == {"full_name": "Paulo", "role": "TEACHER"}
            return httpx.Response(200, json={"id": "uid-paulo", "email": "paulo@ebd.org"})

        async with _client(handler) as http:
            identity = await AuthClient(http, BASE_URL, API_KEY).sign_up("paulo@ebd.org", "segredo123", {"full_name": "Paulo", "role": "TEACHER"})

        assert identity.id == "uid-paulo"

    async def test_get_user_with_token(self):
        def handler(request):
            assert request.headers["authorization"] == "Bearer jwt"
            return httpx.Response(200, json={"id": "uid-ana", "email": "ana@ebd.org"})

        async with _client(handler) as http:
            identity = await AuthClient(http, BASE_URL, API_KEY).get_user("jwt")

        assert identity.email == "ana@ebd.org"
        assert identity.user_metadata == {}
