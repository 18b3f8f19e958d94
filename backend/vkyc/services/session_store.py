"""
Revocable Session Store

Redis-backed key/value store with per-key TTL that makes stateless signed
tokens revocable. The existence of a key is the only source of truth for
"this token is still active": deleting the key revokes the token on the very
next request, and the key TTL caps a token's lifetime independently of its
own exp claim.

Every Redis failure is raised as StoreUnavailable so callers fail closed.
"""
import hashlib
import logging
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from vkyc.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class RevocableSessionStore:
    """Thin wrapper over a redis.asyncio client with the store's key layout"""

    SESSION_PREFIX = "session"
    TEMP_TOKEN_PREFIX = "verification:temp_token"
    AUDIT_ACCESS_PREFIX = "audit:session"
    AUDIT_REFRESH_PREFIX = "audit:refresh_token"

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RevocableSessionStore":
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
        )
        logger.info("Redis client created")
        return cls(client)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Key layout
    # ------------------------------------------------------------------

    @classmethod
    def session_key(cls, jti: str) -> str:
        return f"{cls.SESSION_PREFIX}:{jti}"

    @classmethod
    def temp_token_key(cls, token: str) -> str:
        # Keyed on a digest so the raw token never sits in the store
        token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"{cls.TEMP_TOKEN_PREFIX}:{token_hash}"

    @classmethod
    def audit_access_key(cls, jti: str) -> str:
        return f"{cls.AUDIT_ACCESS_PREFIX}:{jti}"

    @classmethod
    def audit_refresh_key(cls, username: str, jti: str) -> str:
        return f"{cls.AUDIT_REFRESH_PREFIX}:{username}:{jti}"

    @classmethod
    def audit_refresh_pattern(cls, username: str) -> str:
        # Escape glob metacharacters so one username cannot match another's keys
        escaped = "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in username)
        return f"{cls.AUDIT_REFRESH_PREFIX}:{escaped}:*"

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set key (overwriting any prior value) with a TTL"""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            logger.error(f"Redis write failed for {key.split(':')[0]} key: {e}")
            raise StoreUnavailable(detail="revocation store write failed") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as e:
            logger.error(f"Redis read failed for {key.split(':')[0]} key: {e}")
            raise StoreUnavailable(detail="revocation store read failed") from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except (RedisError, OSError) as e:
            logger.error(f"Redis delete failed for {key.split(':')[0]} key: {e}")
            raise StoreUnavailable(detail="revocation store delete failed") from e

    async def consume(self, key: str) -> Optional[str]:
        """
        Atomically read and delete a key (GETDEL).

        Of any number of concurrent consumers of the same key at most one
        receives the value; the rest get None.
        """
        try:
            return await self._client.getdel(key)
        except (RedisError, OSError) as e:
            logger.error(f"Redis consume failed for {key.split(':')[0]} key: {e}")
            raise StoreUnavailable(detail="revocation store consume failed") from e

    async def keys(self, pattern: str) -> List[str]:
        """Enumerate keys matching a glob pattern (SCAN, not KEYS)"""
        try:
            return [key async for key in self._client.scan_iter(match=pattern, count=500)]
        except (RedisError, OSError) as e:
            logger.error(f"Redis scan failed: {e}")
            raise StoreUnavailable(detail="revocation store scan failed") from e

    async def delete_many(self, keys: List[str]) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client.delete(*keys))
        except (RedisError, OSError) as e:
            logger.error(f"Redis bulk delete failed: {e}")
            raise StoreUnavailable(detail="revocation store bulk delete failed") from e

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 when absent, -1 when no expiry)"""
        try:
            return int(await self._client.ttl(key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(detail="revocation store ttl failed") from e

    # ------------------------------------------------------------------
    # End-user sessions
    # ------------------------------------------------------------------

    async def store_session(self, jti: str, session_uid: str, ttl_seconds: int) -> None:
        await self.put(self.session_key(jti), session_uid, ttl_seconds)

    async def validate_session(self, jti: str) -> Optional[str]:
        return await self.get(self.session_key(jti))

    async def revoke_session(self, jti: str) -> bool:
        return await self.delete(self.session_key(jti))

    async def store_temp_token(self, token: str, session_uid: str, ttl_seconds: int) -> None:
        await self.put(self.temp_token_key(token), session_uid, ttl_seconds)

    async def consume_temp_token(self, token: str) -> Optional[str]:
        return await self.consume(self.temp_token_key(token))

    # ------------------------------------------------------------------
    # Auditor sessions
    # ------------------------------------------------------------------

    async def store_audit_session(self, jti: str, username: str, ttl_seconds: int) -> None:
        await self.put(self.audit_access_key(jti), username, ttl_seconds)

    async def validate_audit_session(self, jti: str) -> Optional[str]:
        return await self.get(self.audit_access_key(jti))

    async def revoke_audit_session(self, jti: str) -> bool:
        return await self.delete(self.audit_access_key(jti))

    async def store_refresh_token(self, username: str, jti: str, ttl_seconds: int) -> None:
        await self.put(self.audit_refresh_key(username, jti), username, ttl_seconds)

    async def validate_refresh_token(self, username: str, jti: str) -> bool:
        stored = await self.get(self.audit_refresh_key(username, jti))
        return stored == username

    async def revoke_refresh_token(self, username: str, jti: str) -> bool:
        return await self.delete(self.audit_refresh_key(username, jti))

    async def revoke_all_refresh_tokens(self, username: str) -> int:
        keys = await self.keys(self.audit_refresh_pattern(username))
        revoked = await self.delete_many(keys)
        logger.info(f"Revoked {revoked} refresh tokens for auditor {username}")
        return revoked
