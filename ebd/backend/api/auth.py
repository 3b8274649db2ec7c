import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
import jwt
import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from .schemas.auth import LoginRequest, LoginResponse, RefreshRequest, RefreshResponse, Token
from ..config.config import settings
from ..db.redis_client import RedisClient
from ..db.store_client import AuthClient, AuthError, StoreClient, StoreError
from ..models.entities import Identity, Role, UserSession
from ..services.console_service import ConsoleService
from ..services.errors import SessionResolutionError
from ..services.scoping import scope_workspace
from ..services.session_resolver import SessionResolver
from .dependencies import get_access_token, get_auth_client, get_http_client, get_redis_client, get_store_client
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


# --- Helpers ---

def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _caller_store(http_client: httpx.AsyncClient, access_token: str) -> StoreClient:
    return StoreClient(
        http_client=http_client,
        base_url=settings.STORE_URL,
        api_key=settings.STORE_ANON_KEY,
        access_token=access_token,
    )


def _seconds_until_expiry(access_token: str) -> int:
    """Remaining lifetime of a token, read from its `exp` claim without verifying it."""
    try:
        payload = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return 0
    exp = payload.get("exp")
    if not exp:
        return 0
    return max(0, int(exp - datetime.now(timezone.utc).timestamp()))


async def identity_from_token(access_token: str, auth: AuthClient) -> Identity:
    """
    Verifies the token locally when the signing secret is known, otherwise
    asks the auth API who it belongs to.
    """
    if settings.STORE_JWT_SECRET:
        payload = jwt.decode(
            access_token,
            settings.STORE_JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.STORE_JWT_AUDIENCE,
        )
        return Identity(
            id=payload["sub"],
            email=payload.get("email") or "",
            user_metadata=payload.get("user_metadata") or {},
        )
    return await auth.get_user(access_token)


# --- Dependencies for protected routes ---

async def get_current_session(
    token: str = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
    store: StoreClient = Depends(get_store_client),
    redis_client: Optional[RedisClient] = Depends(get_redis_client)
) -> UserSession:
    """
    Resolves the caller's session from scratch on every request: token,
    deny-list, identity, then profile and class assignment.
    """
    if redis_client is not None:
        try:
            revoked = await redis_client.is_token_revoked(token)
        except redis.RedisError as e:
            logger.error(f"Could not check the token deny-list: {e}", exc_info=True)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Session store is unavailable.")
        if revoked:
            logger.warning("A signed-out token was presented again.")
            raise _credentials_exception("This session has ended. Please log in again.")

    try:
        identity = await identity_from_token(token, auth)
    except (jwt.PyJWTError, KeyError) as e:
        logger.warning(f"Token validation error: {e}")
        raise _credentials_exception()
    except StoreError as e:
        raise to_http_exception(e) from e

    try:
        return await SessionResolver(store).resolve(identity)
    except SessionResolutionError as e:
        raise to_http_exception(e) from e


async def get_admin_session(session: UserSession = Depends(get_current_session)) -> UserSession:
    if session.role != Role.ADMIN:
        logger.warning(f"'{session.email}' ({session.role.value}) tried to reach an ADMIN-only route.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This operation is only valid for administrators.")
    return session


# --- API endpoints ---

@router.post("/login", response_model=LoginResponse)
@limiter.limit("20/minute")
async def login(
    request: Request,
    login_request: LoginRequest,
    auth: AuthClient = Depends(get_auth_client),
    http_client: httpx.AsyncClient = Depends(get_http_client)
):
    """Signs in, resolves the session and returns the first scoped reload."""
    logger.info(f"Login attempt for '{login_request.email}'.")
    try:
        auth_session = await auth.sign_in_with_password(login_request.email, login_request.password)
    except AuthError:
        logger.warning(f"Authentication failed for '{login_request.email}' (invalid credentials).")
        raise _credentials_exception("Invalid email or password.")
    except StoreError as e:
        raise to_http_exception(e) from e

    store = _caller_store(http_client, auth_session.access_token)
    try:
        session = await SessionResolver(store).resolve(auth_session.user)
    except SessionResolutionError as e:
        raise to_http_exception(e) from e

    workspace = await ConsoleService(store).load_workspace()
    logger.info(f"'{session.email}' logged in as {session.role.value}.")
    return LoginResponse(
        token=Token.from_auth_session(auth_session),
        session=session,
        workspace=scope_workspace(session, workspace),
    )


@router.post("/refresh", response_model=RefreshResponse)
@limiter.limit("30/minute")
async def refresh(
    request: Request,
    refresh_request: RefreshRequest,
    auth: AuthClient = Depends(get_auth_client),
    http_client: httpx.AsyncClient = Depends(get_http_client)
):
    """A token refresh is an authentication event, so the session is resolved again."""
    try:
        auth_session = await auth.refresh_session(refresh_request.refresh_token)
        session = await SessionResolver(_caller_store(http_client, auth_session.access_token)).resolve(auth_session.user)
    except AuthError:
        raise _credentials_exception("The refresh token is invalid or expired.")
    except (StoreError, SessionResolutionError) as e:
        raise to_http_exception(e) from e
    return RefreshResponse(token=Token.from_auth_session(auth_session), session=session)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def logout(
    request: Request,
    token: str = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
    redis_client: Optional[RedisClient] = Depends(get_redis_client),
    current_session: UserSession = Depends(get_current_session)
):
    """Signs out at the store and denies the token for the rest of its lifetime."""
    logger.info(f"'{current_session.email}' logging out.")
    try:
        await auth.sign_out(token)
    except StoreError as e:
        logger.warning(f"Sign-out at the auth API failed for '{current_session.email}': {e}")

    if redis_client is None:
        logger.warning("No Redis configured; the token stays usable until it expires.")
    else:
        try:
            await redis_client.revoke_token(token, ttl=_seconds_until_expiry(token))
        except redis.RedisError:
            logger.error(f"Could not deny the token of '{current_session.email}'.", exc_info=True)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An error occurred during logout.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/session", response_model=UserSession)
@limiter.limit("120/minute")
async def read_session(request: Request, current_session: UserSession = Depends(get_current_session)):
    return current_session
