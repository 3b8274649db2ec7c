# ebd/backend/db/store_client.py

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..models.entities import AuthSession, Identity

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the store rejects a request."""

    def __init__(self, message: str, details: Optional[str] = None, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.code = code
        self.status_code = status_code

    def __str__(self):
        if self.details:
            return f"{self.message} | {self.details}"
        return self.message


class StoreConnectionError(StoreError):
    """Raised when the store cannot be reached at all."""
    pass


class AuthError(StoreError):
    """Raised when the auth API refuses credentials or a token."""
    pass


def _error_from_response(response: httpx.Response, error_class=StoreError) -> StoreError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("message") or body.get("msg") or body.get("error_description")
        or body.get("error") or response.text or f"HTTP {response.status_code}"
    )
    details = body.get("details") or body.get("hint")
    code = body.get("code") or body.get("error_code")
    return error_class(
        message=str(message),
        details=str(details) if details else None,
        code=str(code) if code is not None else None,
        status_code=response.status_code,
    )


class StoreClient:
    """
    Client for the store's table API (PostgREST dialect).

    The HTTP client is injected and shared; the access token is per caller so
    the store's row-level rules apply to whoever is logged in.
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, api_key: str, access_token: Optional[str] = None):
        self._client = http_client
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self._access_token = access_token

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(self, method: str, table: str, params: List[Tuple[str, str]] = None, json: Any = None, prefer: Optional[str] = None) -> httpx.Response:
        url = f"{self._rest_url}/{table}"
        try:
            response = await self._client.request(method, url, params=params, json=json, headers=self._headers(prefer))
        except httpx.RequestError as e:
            logger.error(f"Network error on {method} {table}: {e}", exc_info=True)
            raise StoreConnectionError(f"Could not reach the store while accessing '{table}'.") from e
        if response.is_error:
            error = _error_from_response(response)
            logger.warning(f"Store rejected {method} {table}: {error} (code={error.code})")
            raise error
        return response

    @staticmethod
    def _filters(filters: Optional[Dict[str, Any]]) -> List[Tuple[str, str]]:
        return [(column, f"eq.{value}") for column, value in (filters or {}).items()]

    async def select(self, table: str, columns: str = "*", filters: Optional[Dict[str, Any]] = None, order: Optional[str] = None) -> List[Dict[str, Any]]:
        """Returns the rows of `table`; `order` is `column.asc` or `column.desc`."""
        params = [("select", columns)] + self._filters(filters)
        if order:
            params.append(("order", order))
        response = await self._send("GET", table, params=params)
        return response.json() or []

    async def select_one(self, table: str, columns: str = "*", **filters) -> Optional[Dict[str, Any]]:
        """Returns the single matching row, or None when zero or several rows match."""
        rows = await self.select(table, columns, filters=filters)
        if len(rows) == 1:
            return rows[0]
        if len(rows) > 1:
            logger.warning(f"Expected one row in '{table}' for {filters}, got {len(rows)}.")
        return None

    async def upsert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Insert-or-update keyed by primary id. Last write wins."""
        response = await self._send("POST", table, json=row, prefer="resolution=merge-duplicates,return=representation")
        return response.json() or []

    async def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        response = await self._send("POST", table, json=row, prefer="return=representation")
        return response.json() or []

    async def update(self, table: str, values: Dict[str, Any], column: str, value: Any) -> List[Dict[str, Any]]:
        response = await self._send("PATCH", table, params=self._filters({column: value}), json=values, prefer="return=representation")
        return response.json() or []

    async def delete(self, table: str, column: str, value: Any) -> None:
        await self._send("DELETE", table, params=self._filters({column: value}))


class AuthClient:
    """
    Client for the store's authentication API (GoTrue dialect).
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, api_key: str):
        self._client = http_client
        self._auth_url = f"{base_url.rstrip('/')}/auth/v1"
        self._api_key = api_key

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token or self._api_key}",
        }

    async def _post(self, path: str, json: Any = None, params: Dict[str, str] = None, access_token: Optional[str] = None) -> httpx.Response:
        try:
            response = await self._client.post(f"{self._auth_url}/{path}", json=json, params=params, headers=self._headers(access_token))
        except httpx.RequestError as e:
            logger.error(f"Network error calling auth '{path}': {e}", exc_info=True)
            raise StoreConnectionError("Could not reach the authentication service.") from e
        if response.is_error:
            raise _error_from_response(response, AuthError)
        return response

    @staticmethod
    def _identity(user: Dict[str, Any]) -> Identity:
        return Identity(id=str(user["id"]), email=user.get("email") or "", user_metadata=user.get("user_metadata") or {})

    def _auth_session(self, body: Dict[str, Any]) -> AuthSession:
        return AuthSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            token_type=body.get("token_type", "bearer"),
            expires_in=body.get("expires_in"),
            user=self._identity(body["user"]),
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        logger.info(f"Signing in '{email}' against the auth API.")
        response = await self._post("token", json={"email": email, "password": password}, params={"grant_type": "password"})
        return self._auth_session(response.json())

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        response = await self._post("token", json={"refresh_token": refresh_token}, params={"grant_type": "refresh_token"})
        return self._auth_session(response.json())

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Identity:
        response = await self._post("signup", json={"email": email, "password": password, "data": metadata or {}})
        body = response.json()
        # Depending on email confirmation settings the user comes bare or wrapped in a session.
        return self._identity(body.get("user") or body)

    async def sign_out(self, access_token: str) -> None:
        await self._post("logout", access_token=access_token)

    async def get_user(self, access_token: str) -> Identity:
        try:
            response = await self._client.get(f"{self._auth_url}/user", headers=self._headers(access_token))
        except httpx.RequestError as e:
            logger.error(f"Network error fetching the current user: {e}", exc_info=True)
            raise StoreConnectionError("Could not reach the authentication service.") from e
        if response.is_error:
            raise _error_from_response(response, AuthError)
        return self._identity(response.json())
