"""
Session Lifecycle Orchestrator (end-user and API-client flows)

    create (HMAC-gated)  -> pending row + one-time temp token (store, ~60s)
    activate(temp token) -> consume store entry once, mint session token,
                            store {jti -> session_uid} (~15 min)
    authenticate(token)  -> verify, store lookup, DB state check
    complete / logout    -> delete the jti entry (complete also marks the row)

No session state is cached in-process: every authentication re-checks the
store, so a revocation is observable on the very next request.
"""
import logging

from vkyc.errors import (
    SessionAlreadyCompleted, SessionNotPending, SessionRevokedOrAbsent,
    SignatureInvalid, StoreUnavailable, TokenAlreadyConsumed, TokenExpired
)
from vkyc.models.data_models import (
    ApiClient, AuthenticatedSession, CreatedSession, IssuedToken, PanData,
    SessionStatus, TokenType
)
from vkyc.services.session_manager import SessionManager
from vkyc.services.session_store import RevocableSessionStore
from vkyc.services.token_issuer import TokenIssuer

logger = logging.getLogger(__name__)


class SessionLifecycleService:
    """Issues, validates and revokes end-user verification credentials"""

    def __init__(
        self,
        session_manager: SessionManager,
        token_issuer: TokenIssuer,
        session_store: RevocableSessionStore,
    ):
        self.sessions = session_manager
        self.tokens = token_issuer
        self.store = session_store

    async def create_session(
        self, api_client: ApiClient, external_txn_id: str, pan_data: PanData
    ) -> CreatedSession:
        """
        Create a pending session and its one-time activation token

        The session row commits before the temp token is stored. If the store
        write then fails the caller gets StoreUnavailable and the session is
        left pending until the sweep marks it incomplete; there is no
        compensating rollback.
        """
        session = await self.sessions.create_session(api_client.client_name, external_txn_id, pan_data)

        temp_token = self.tokens.issue_temp_token(session.session_uid)
        try:
            await self.store.store_temp_token(temp_token.token, session.session_uid, temp_token.expires_in)
        except StoreUnavailable:
            logger.error(
                f"Session {session.session_uid} committed but its activation token could not be stored"
            )
            raise

        return CreatedSession(session=session, temp_token=temp_token)

    async def activate(self, temp_token: str) -> IssuedToken:
        """
        Exchange a one-time temp token for a session token

        Raises:
            TokenExpired / SignatureInvalid: temp token fails verification
            TokenAlreadyConsumed: temp token was already exchanged (or never stored)
            SessionNotPending / SessionAlreadyCompleted: session left the pending state
        """
        claims = self.tokens.verify(temp_token, expected_type=TokenType.TEMP)
        session_id = claims.get("session_id")
        if not session_id:
            raise SignatureInvalid(detail="temp token missing session_id")

        stored_session_id = await self.store.consume_temp_token(temp_token)
        if stored_session_id is None:
            logger.info(f"Temp token for session {session_id} already consumed or unknown")
            raise TokenAlreadyConsumed(detail="temp token not present in store")
        if stored_session_id != session_id:
            raise TokenAlreadyConsumed(detail="temp token store entry does not match claims")

        session = await self.sessions.get_session(session_id)
        if session is None:
            raise SessionRevokedOrAbsent(detail=f"session {session_id} not found")
        if session.status == SessionStatus.COMPLETED:
            raise SessionAlreadyCompleted(detail=f"session {session_id} already completed")
        if session.status != SessionStatus.PENDING:
            raise SessionNotPending(detail=f"session {session_id} is {session.status.value}")

        issued = self.tokens.issue_session_token(session_id)
        await self.store.store_session(issued.jti, session_id, issued.expires_in)
        logger.info(f"Session {session_id} activated")
        return issued

    async def _expire_on_read(self, token: str) -> None:
        """Best-effort: mark the session of an expired token incomplete"""
        claims = self.tokens.peek_claims(token)
        if not claims or claims.get("typ") != TokenType.SESSION.value:
            return
        session_id = claims.get("session_id")
        if not session_id:
            return
        try:
            if await self.sessions.mark_incomplete_if_pending(session_id):
                logger.info(f"Session {session_id} marked as incomplete due to token expiration")
        except Exception as e:
            logger.error(f"Error updating session status on token expiration: {e}", exc_info=True)

    async def authenticate(self, token: str) -> AuthenticatedSession:
        """
        Resolve a session token into an active, non-completed session

        Raises:
            TokenExpired: after best-effort marking of the session incomplete
            SignatureInvalid: bad token
            SessionRevokedOrAbsent: jti not in the store, or store/claims disagree
            SessionAlreadyCompleted: session already completed
            StoreUnavailable: store unreachable (fail closed)
        """
        try:
            claims = self.tokens.verify(token, expected_type=TokenType.SESSION)
        except TokenExpired:
            await self._expire_on_read(token)
            raise

        session_id = claims.get("session_id")
        jti = claims.get("jti")
        if not session_id or not jti:
            raise SignatureInvalid(detail="session token missing session_id or jti")

        stored_session_id = await self.store.validate_session(jti)
        if stored_session_id is None:
            raise SessionRevokedOrAbsent(detail="session not found in store (revoked or expired)")
        if stored_session_id != session_id:
            raise SessionRevokedOrAbsent(detail="store entry does not match token session")

        session = await self.sessions.get_session(session_id)
        if session is None:
            raise SessionRevokedOrAbsent(detail=f"session {session_id} not found")
        if session.status == SessionStatus.COMPLETED:
            raise SessionAlreadyCompleted(detail=f"session {session_id} already completed")

        return AuthenticatedSession(session=session, jti=jti)

    async def complete(self, auth: AuthenticatedSession) -> None:
        await self.sessions.complete_session(auth.session_id)
        await self.store.revoke_session(auth.jti)

    async def logout(self, auth: AuthenticatedSession) -> None:
        await self.store.revoke_session(auth.jti)
        logger.info(f"Session {auth.session_id} logged out")
