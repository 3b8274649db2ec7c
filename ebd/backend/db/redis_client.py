import hashlib
import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client holding the deny-list of signed-out access tokens.

    Sessions themselves are never stored: they are resolved again on every
    request. Only the fact that a still-unexpired token was signed out needs
    to survive between requests.
    """

    def __init__(self, pool: redis.ConnectionPool):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)

    @staticmethod
    def _token_key(access_token: str) -> str:
        digest = hashlib.sha256(access_token.encode("utf-8")).hexdigest()
        return f"revoked_tokens:{digest}"

    async def revoke_token(self, access_token: str, ttl: int):
        """Denies the token until it would have expired anyway."""
        if ttl <= 0:
            return
        await self._redis.set(self._token_key(access_token), "1", ex=ttl)

    async def is_token_revoked(self, access_token: str) -> bool:
        return bool(await self._redis.exists(self._token_key(access_token)))
