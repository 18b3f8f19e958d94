"""
Tests for SessionLifecycleService: create, activate, authenticate, complete
"""
import asyncio
import time

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from vkyc.errors import (
    SessionAlreadyCompleted, SessionNotPending, SessionRevokedOrAbsent,
    SignatureInvalid, StoreUnavailable, TokenAlreadyConsumed, TokenExpired
)
from vkyc.models.data_models import IssuedToken, SessionStatus
from vkyc.services.session_lifecycle import SessionLifecycleService
from vkyc.services.session_manager import SessionManager
from vkyc.services.token_issuer import TokenIssuer
from tests.conftest import ACME_KEY, TEST_SECRET, make_pan_data


async def _raise_connection_error(*args, **kwargs):
    raise RedisConnectionError("Connection refused")


class TestSessionLifecycle:
    """End-user credential lifecycle"""

    @pytest.fixture
    def issuer(self):
        return TokenIssuer(secret=TEST_SECRET)

    @pytest.fixture
    def manager(self, database):
        return SessionManager(database)

    @pytest.fixture
    def lifecycle(self, manager, issuer, store):
        return SessionLifecycleService(manager, issuer, store)

    @pytest.fixture
    async def acme(self, database):
        return await database.get_api_client_by_key(ACME_KEY)

    async def _active_session(self, lifecycle, acme, txn="TXN-1"):
        created = await lifecycle.create_session(acme, txn, make_pan_data())
        issued = await lifecycle.activate(created.temp_token.token)
        return created.session, issued

    async def test_create_stores_temp_token(self, lifecycle, acme, store):
        created = await lifecycle.create_session(acme, "TXN-1", make_pan_data())

        key = store.temp_token_key(created.temp_token.token)
        assert await store.get(key) == created.session.session_uid
        assert 0 < await store.ttl(key) <= 60
        assert created.temp_token.expires_in == 60

    async def test_activate_issues_session_token(self, lifecycle, acme, store, issuer):
        session, issued = await self._active_session(lifecycle, acme)

        claims = issuer.verify(issued.token)
        assert claims["session_id"] == session.session_uid
        assert await store.validate_session(issued.jti) == session.session_uid
        assert 0 < await store.ttl(store.session_key(issued.jti)) <= 15 * 60

    async def test_temp_token_single_use(self, lifecycle, acme):
        created = await lifecycle.create_session(acme, "TXN-1", make_pan_data())
        await lifecycle.activate(created.temp_token.token)

        with pytest.raises(TokenAlreadyConsumed):
            await lifecycle.activate(created.temp_token.token)

    async def test_concurrent_activation_has_single_winner(self, lifecycle, acme):
        """Two concurrent activations with one temp token: exactly one succeeds"""
        created = await lifecycle.create_session(acme, "TXN-1", make_pan_data())

        results = await asyncio.gather(
            lifecycle.activate(created.temp_token.token),
            lifecycle.activate(created.temp_token.token),
            return_exceptions=True,
        )

        assert len([r for r in results if isinstance(r, IssuedToken)]) == 1
        assert len([r for r in results if isinstance(r, TokenAlreadyConsumed)]) == 1

    async def test_unstored_temp_token_rejected(self, lifecycle, issuer, manager):
        """A validly signed temp token that was never stored cannot be exchanged"""
        session = await manager.create_session("acme", "TXN-1", make_pan_data())
        forged = issuer.issue_temp_token(session.session_uid)

        with pytest.raises(TokenAlreadyConsumed):
            await lifecycle.activate(forged.token)

    async def test_expired_temp_token_rejected(self, lifecycle, manager, store):
        session = await manager.create_session("acme", "TXN-1", make_pan_data())
        past = TokenIssuer(secret=TEST_SECRET, clock=lambda: time.time() - 3600)
        expired = past.issue_temp_token(session.session_uid)
        await store.store_temp_token(expired.token, session.session_uid, 60)

        with pytest.raises(TokenExpired):
            await lifecycle.activate(expired.token)

    async def test_session_token_cannot_activate(self, lifecycle, acme):
        _, issued = await self._active_session(lifecycle, acme)
        with pytest.raises(SignatureInvalid):
            await lifecycle.activate(issued.token)

    async def test_activate_non_pending_session(self, lifecycle, acme, manager):
        created = await lifecycle.create_session(acme, "TXN-1", make_pan_data())
        await manager.mark_incomplete_if_pending(created.session.session_uid)

        with pytest.raises(SessionNotPending):
            await lifecycle.activate(created.temp_token.token)

    async def test_activate_completed_session(self, lifecycle, acme, manager):
        created = await lifecycle.create_session(acme, "TXN-1", make_pan_data())
        await manager.complete_session(created.session.session_uid)

        with pytest.raises(SessionAlreadyCompleted):
            await lifecycle.activate(created.temp_token.token)

    async def test_authenticate(self, lifecycle, acme):
        session, issued = await self._active_session(lifecycle, acme)

        auth = await lifecycle.authenticate(issued.token)

        assert auth.session_id == session.session_uid
        assert auth.jti == issued.jti
        assert auth.session.status == SessionStatus.PENDING

    async def test_revocation_observed_on_next_request(self, lifecycle, acme, store):
        """Deleting the store entry rejects the still-unexpired token"""
        _, issued = await self._active_session(lifecycle, acme)
        await lifecycle.authenticate(issued.token)

        await store.revoke_session(issued.jti)

        with pytest.raises(SessionRevokedOrAbsent):
            await lifecycle.authenticate(issued.token)

    async def test_store_entry_for_other_session_rejected(self, lifecycle, acme, store):
        _, issued = await self._active_session(lifecycle, acme)
        await store.store_session(issued.jti, "someone-else", 900)

        with pytest.raises(SessionRevokedOrAbsent):
            await lifecycle.authenticate(issued.token)

    async def test_complete_then_reuse_rejected(self, lifecycle, acme, manager, store):
        """After completion the old token fails, and so does its store entry"""
        session, issued = await self._active_session(lifecycle, acme)
        auth = await lifecycle.authenticate(issued.token)

        await lifecycle.complete(auth)

        assert (await manager.get_session(session.session_uid)).status == SessionStatus.COMPLETED
        assert await store.validate_session(issued.jti) is None
        with pytest.raises(SessionRevokedOrAbsent):
            await lifecycle.authenticate(issued.token)

    async def test_completed_session_rejected_even_with_store_entry(self, lifecycle, acme, manager):
        session, issued = await self._active_session(lifecycle, acme)
        await manager.complete_session(session.session_uid)

        with pytest.raises(SessionAlreadyCompleted):
            await lifecycle.authenticate(issued.token)

    async def test_logout_revokes_without_completing(self, lifecycle, acme, manager):
        session, issued = await self._active_session(lifecycle, acme)
        auth = await lifecycle.authenticate(issued.token)

        await lifecycle.logout(auth)

        assert (await manager.get_session(session.session_uid)).status == SessionStatus.PENDING
        with pytest.raises(SessionRevokedOrAbsent):
            await lifecycle.authenticate(issued.token)

    async def test_expired_token_marks_session_incomplete(self, lifecycle, manager):
        """Presenting an expired session token moves a pending session to incomplete"""
        session = await manager.create_session("acme", "TXN-1", make_pan_data())
        past = TokenIssuer(secret=TEST_SECRET, clock=lambda: time.time() - 3600)
        expired = past.issue_session_token(session.session_uid)

        with pytest.raises(TokenExpired):
            await lifecycle.authenticate(expired.token)

        assert (await manager.get_session(session.session_uid)).status == SessionStatus.INCOMPLETE

    async def test_expired_token_leaves_completed_session(self, lifecycle, manager):
        session = await manager.create_session("acme", "TXN-1", make_pan_data())
        await manager.complete_session(session.session_uid)
        past = TokenIssuer(secret=TEST_SECRET, clock=lambda: time.time() - 3600)

        with pytest.raises(TokenExpired):
            await lifecycle.authenticate(past.issue_session_token(session.session_uid).token)

        assert (await manager.get_session(session.session_uid)).status == SessionStatus.COMPLETED

    async def test_forged_token_does_not_touch_session(self, lifecycle, manager):
        """A token signed with another key never triggers expire-on-read"""
        session = await manager.create_session("acme", "TXN-1", make_pan_data())
        forger = TokenIssuer(
            secret="attacker-signing-secret-0123456789abcdef", clock=lambda: time.time() - 3600
        )

        with pytest.raises(SignatureInvalid):
            await lifecycle.authenticate(forger.issue_session_token(session.session_uid).token)

        assert (await manager.get_session(session.session_uid)).status == SessionStatus.PENDING

    async def test_store_down_fails_closed(self, lifecycle, acme, redis_client, monkeypatch):
        """Valid signature but unreachable store: the request is rejected"""
        _, issued = await self._active_session(lifecycle, acme)
        monkeypatch.setattr(redis_client, "get", _raise_connection_error)

        with pytest.raises(StoreUnavailable):
            await lifecycle.authenticate(issued.token)

    async def test_create_with_store_down_leaves_pending_row(
        self, lifecycle, acme, manager, redis_client, monkeypatch
    ):
        monkeypatch.setattr(redis_client, "set", _raise_connection_error)

        with pytest.raises(StoreUnavailable):
            await lifecycle.create_session(acme, "TXN-1", make_pan_data())

        pending = await manager.list_sessions("pending")
        assert [s.external_txn_id for s in pending] == ["TXN-1"]
