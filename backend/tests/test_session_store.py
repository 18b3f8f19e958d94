"""
Tests for RevocableSessionStore
"""
import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from vkyc.errors import StoreUnavailable
from vkyc.services.session_store import RevocableSessionStore


async def _raise_connection_error(*args, **kwargs):
    raise RedisConnectionError("Connection refused")


class TestKeyLayout:
    """Key naming used by the store"""

    def test_session_key(self):
        assert RevocableSessionStore.session_key("abc") == "session:abc"

    def test_temp_token_key_hides_raw_token(self):
        key = RevocableSessionStore.temp_token_key("raw.token.value")

        assert key.startswith("verification:temp_token:")
        assert "raw.token.value" not in key
        assert len(key.rsplit(":", 1)[1]) == 64

    def test_refresh_key_and_pattern(self):
        assert RevocableSessionStore.audit_refresh_key("alice", "j1") == "audit:refresh_token:alice:j1"
        assert RevocableSessionStore.audit_refresh_pattern("alice") == "audit:refresh_token:alice:*"

    def test_refresh_pattern_escapes_glob(self):
        assert RevocableSessionStore.audit_refresh_pattern("a*") == "audit:refresh_token:a\\*:*"


class TestSessionStore:
    """Behaviour against an in-process Redis"""

    async def test_put_get_with_ttl(self, store):
        await store.put("session:j1", "sess-1", 900)

        assert await store.get("session:j1") == "sess-1"
        ttl = await store.ttl("session:j1")
        assert 0 < ttl <= 900

    async def test_put_overwrites(self, store):
        await store.put("k", "first", 60)
        await store.put("k", "second", 60)
        assert await store.get("k") == "second"

    async def test_put_rejects_non_positive_ttl(self, store):
        with pytest.raises(ValueError):
            await store.put("k", "v", 0)

    async def test_delete_revokes(self, store):
        await store.store_session("j1", "sess-1", 900)

        assert await store.revoke_session("j1") is True
        assert await store.validate_session("j1") is None
        assert await store.revoke_session("j1") is False

    async def test_consume_returns_value_once(self, store):
        await store.store_temp_token("tok", "sess-1", 60)

        assert await store.consume_temp_token("tok") == "sess-1"
        assert await store.consume_temp_token("tok") is None

    async def test_concurrent_consume_has_single_winner(self, store):
        """Of many concurrent consumers exactly one receives the value"""
        await store.store_temp_token("tok", "sess-1", 60)

        results = await asyncio.gather(*[store.consume_temp_token("tok") for _ in range(10)])

        assert results.count("sess-1") == 1
        assert results.count(None) == 9

    async def test_refresh_tokens(self, store):
        await store.store_refresh_token("alice", "r1", 3600)

        assert await store.validate_refresh_token("alice", "r1") is True
        assert await store.validate_refresh_token("bob", "r1") is False
        assert await store.validate_refresh_token("alice", "r2") is False

    async def test_revoke_all_refresh_tokens_is_per_user(self, store):
        await store.store_refresh_token("alice", "r1", 3600)
        await store.store_refresh_token("alice", "r2", 3600)
        await store.store_refresh_token("alice2", "r3", 3600)

        revoked = await store.revoke_all_refresh_tokens("alice")

        assert revoked == 2
        assert await store.validate_refresh_token("alice", "r1") is False
        assert await store.validate_refresh_token("alice", "r2") is False
        assert await store.validate_refresh_token("alice2", "r3") is True

    async def test_revoke_all_with_nothing_stored(self, store):
        assert await store.revoke_all_refresh_tokens("nobody") == 0

    async def test_audit_session_round_trip(self, store):
        await store.store_audit_session("a1", "alice", 120)

        assert await store.validate_audit_session("a1") == "alice"
        await store.revoke_audit_session("a1")
        assert await store.validate_audit_session("a1") is None

    async def test_ping(self, store):
        assert await store.ping() is True


class TestStoreFailures:
    """Every backend failure surfaces as StoreUnavailable"""

    @pytest.mark.parametrize("method", ["get", "set", "delete", "getdel", "ttl"])
    async def test_failures_raise_store_unavailable(self, store, redis_client, monkeypatch, method):
        monkeypatch.setattr(redis_client, method, _raise_connection_error)

        with pytest.raises(StoreUnavailable):
            if method == "get":
                await store.validate_session("j1")
            elif method == "set":
                await store.store_session("j1", "sess-1", 60)
            elif method == "delete":
                await store.revoke_session("j1")
            elif method == "getdel":
                await store.consume_temp_token("tok")
            else:
                await store.ttl("session:j1")

    async def test_ping_reports_false_on_failure(self, store, redis_client, monkeypatch):
        monkeypatch.setattr(redis_client, "ping", _raise_connection_error)
        assert await store.ping() is False
