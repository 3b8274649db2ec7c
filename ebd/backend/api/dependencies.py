# ebd/backend/api/dependencies.py
from typing import Optional

import asyncpg
import httpx
import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from ..config.config import settings
from ..db.db_client import AsyncPostgresClient
from ..db.redis_client import RedisClient
from ..db.store_client import AuthClient, StoreClient
from ..services.console_service import ConsoleService
from ..services.user_access_service import UserAccessService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_http_client(request: Request) -> httpx.AsyncClient:
    """
    The HTTP client shared by every store call, created in the app lifespan.
    """
    return request.app.state.http_client


def get_redis_pool(request: Request) -> Optional[redis.ConnectionPool]:
    return getattr(request.app.state, "redis_pool", None)


def get_postgres_pool(request: Request) -> Optional[asyncpg.Pool]:
    return getattr(request.app.state, "postgres_pool", None)


def get_access_token(token: str = Depends(oauth2_scheme)) -> str:
    return token


def get_auth_client(http_client: httpx.AsyncClient = Depends(get_http_client)) -> AuthClient:
    return AuthClient(http_client=http_client, base_url=settings.STORE_URL, api_key=settings.STORE_ANON_KEY)


def get_store_client(
    token: str = Depends(get_access_token),
    http_client: httpx.AsyncClient = Depends(get_http_client)
) -> StoreClient:
    """
    A table client acting as the caller, so the store's row rules see their token.
    """
    return StoreClient(
        http_client=http_client,
        base_url=settings.STORE_URL,
        api_key=settings.STORE_ANON_KEY,
        access_token=token,
    )


def get_redis_client(redis_pool: Optional[redis.ConnectionPool] = Depends(get_redis_pool)) -> Optional[RedisClient]:
    """None when no Redis is configured; signed-out tokens then expire on their own."""
    if redis_pool is None:
        return None
    return RedisClient(pool=redis_pool)


def get_db_client(postgres_pool: Optional[asyncpg.Pool] = Depends(get_postgres_pool)) -> AsyncPostgresClient:
    if postgres_pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Direct database access is not configured (DATABASE_URL)."
        )
    return AsyncPostgresClient(pool=postgres_pool)


def get_console_service(store: StoreClient = Depends(get_store_client)) -> ConsoleService:
    """
    A fresh ConsoleService per request, bound to the caller's token.
    """
    return ConsoleService(store=store)


def get_user_access_service(
    store: StoreClient = Depends(get_store_client),
    auth: AuthClient = Depends(get_auth_client)
) -> UserAccessService:
    return UserAccessService(store=store, auth=auth)
