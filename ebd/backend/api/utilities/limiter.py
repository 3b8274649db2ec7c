# ebd/backend/api/utilities/limiter.py

from fastapi import Request
import jwt

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings


def get_limiter_key(request: Request) -> str:
    """
    Rate limit key: the token subject when the bearer token verifies against
    STORE_JWT_SECRET, otherwise the client address.
    """
    auth_header = request.headers.get("authorization")
    if settings.STORE_JWT_SECRET and auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ")[1]
        try:
            # Expiry does not matter here, only who the caller is.
            payload = jwt.decode(
                token,
                settings.STORE_JWT_SECRET,
                algorithms=["HS256"],
                options={"verify_exp": False, "verify_aud": False}
            )
            subject = payload.get("sub")
            if subject:
                return subject
        except jwt.PyJWTError:
            pass

    return get_remote_address(request)

# Redis storage when configured, in-process counters otherwise.
limiter = Limiter(key_func=get_limiter_key, storage_uri=settings.RATE_LIMITER_REDIS_URL or "memory://")
