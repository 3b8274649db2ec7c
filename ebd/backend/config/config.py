import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Settings read straight from environment variables.
    """
    # Backend-as-a-service project (table API + auth API)
    STORE_URL: str = os.environ.get("STORE_URL", "http://localhost:54321")
    STORE_ANON_KEY: str = os.environ.get("STORE_ANON_KEY", "")
    # When set, access tokens are verified locally instead of asking the auth API.
    STORE_JWT_SECRET: str = os.environ.get("STORE_JWT_SECRET")
    STORE_JWT_AUDIENCE: str = os.environ.get("STORE_JWT_AUDIENCE", "authenticated")
    STORE_TIMEOUT_SECONDS: float = float(os.environ.get("STORE_TIMEOUT_SECONDS", 30))

    # Direct Postgres access, only needed by maintenance tasks
    DATABASE_URL: str = os.environ.get("DATABASE_URL")

    # Redis
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL")

    # ADMIN keeps the historical bootstrap behavior, DENY refuses accounts without a profile.
    MISSING_PROFILE_POLICY: str = os.environ.get("MISSING_PROFILE_POLICY", "ADMIN").upper()

    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")

# Single importable settings instance
settings = Config()
