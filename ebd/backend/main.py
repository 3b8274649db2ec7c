# ebd/backend/main.py
from fastapi import FastAPI
from contextlib import asynccontextmanager
import httpx
import redis.asyncio as redis
import asyncpg
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import admin, auth, console, users
from .api.utilities.limiter import limiter

from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Opens the shared HTTP client and the optional Redis and PostgreSQL pools,
    and closes them on shutdown.
    """
    setup_logging()
    app.state.limiter = limiter

    logger.info("Starting the EBD console API...")

    app.state.http_client = httpx.AsyncClient(timeout=settings.STORE_TIMEOUT_SECONDS)
    app.state.redis_pool = None
    app.state.postgres_pool = None

    if settings.APPLICATION_REDIS_URL:
        app.state.redis_pool = redis.ConnectionPool.from_url(
            settings.APPLICATION_REDIS_URL, decode_responses=True
        )
        logger.info("Redis connection pool created.")
    else:
        logger.warning("APPLICATION_REDIS_URL is not set; logged-out tokens stay valid until they expire.")

    if settings.DATABASE_URL:
        try:
            app.state.postgres_pool = await asyncpg.create_pool(
                dsn=settings.DATABASE_URL, min_size=1, max_size=5
            )
            logger.info("PostgreSQL connection pool created.")
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Could not open the PostgreSQL pool; maintenance routes are disabled: {e}")
            app.state.postgres_pool = None

    yield

    logger.info("Shutting down...")
    await app.state.http_client.aclose()
    if app.state.postgres_pool:
        await app.state.postgres_pool.close()
        logger.info("PostgreSQL connection pool closed.")
    if app.state.redis_pool:
        await app.state.redis_pool.disconnect()
        logger.info("Redis connection pool closed.")


app = FastAPI(
    title="EBD Console API",
    description="Sunday-school attendance, roster and offering management API",
    version="1.0.0",
    lifespan=lifespan
)

origins = [
   "*"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(console.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Liveness check."""
    return {"status": "ok", "message": "EBD console API is running."}
