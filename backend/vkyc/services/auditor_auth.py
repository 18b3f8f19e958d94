"""
Auditor authentication: login, access-token validation, refresh and logout.

Structurally the same pipeline as the end-user flow. Access tokens live ~2
minutes with a store entry keyed by jti; refresh tokens live ~7 days with a
store entry keyed by (username, jti), which also lets every refresh token of
one auditor be revoked at once.
"""
import logging
from typing import Optional

from vkyc.errors import (
    AuthenticationError, InvalidCredentials, SessionRevokedOrAbsent, SignatureInvalid
)
from vkyc.models.data_models import AuditorLogin, AuthenticatedAuditor, IssuedToken, TokenType
from vkyc.services.database_service import DatabaseService
from vkyc.services.session_store import RevocableSessionStore
from vkyc.services.token_issuer import TokenIssuer

logger = logging.getLogger(__name__)


class AuditorAuthService:
    """Issues, validates and revokes auditor access and refresh tokens"""

    def __init__(
        self,
        database_service: DatabaseService,
        token_issuer: TokenIssuer,
        session_store: RevocableSessionStore,
    ):
        self.db = database_service
        self.tokens = token_issuer
        self.store = session_store

    async def _issue_access_token(self, username: str) -> IssuedToken:
        access = self.tokens.issue_access_token(username)
        await self.store.store_audit_session(access.jti, username, access.expires_in)
        return access

    async def login(self, username: str, password: str) -> AuditorLogin:
        """
        Check credentials and issue an access + refresh token pair

        Raises:
            InvalidCredentials: unknown user or wrong password
        """
        auditor = await self.db.get_auditor_by_username(username)
        # TODO: replace with a salted password hash and constant-time verification
        if auditor is None or auditor.password != password:
            logger.info(f"Auditor login failed for {username}")
            raise InvalidCredentials(detail="unknown username or wrong password")

        access = await self._issue_access_token(auditor.username)
        refresh = self.tokens.issue_refresh_token(auditor.username)
        await self.store.store_refresh_token(auditor.username, refresh.jti, refresh.expires_in)

        logger.info(f"Auditor {auditor.username} logged in")
        return AuditorLogin(username=auditor.username, access_token=access, refresh_token=refresh)

    async def authenticate(self, token: str) -> AuthenticatedAuditor:
        """
        Resolve an access token into an auditor account

        Raises:
            TokenExpired / SignatureInvalid: token fails verification
            SessionRevokedOrAbsent: jti not active in the store or auditor gone
            StoreUnavailable: store unreachable (fail closed)
        """
        claims = self.tokens.verify(token, expected_type=TokenType.ACCESS)
        username = claims.get("username")
        jti = claims.get("jti")
        if not username or not jti:
            raise SignatureInvalid(detail="access token missing username or jti")

        stored_username = await self.store.validate_audit_session(jti)
        if stored_username is None or stored_username != username:
            raise SessionRevokedOrAbsent(detail="audit session not found in store (revoked or expired)")

        auditor = await self.db.get_auditor_by_username(username)
        if auditor is None:
            raise SessionRevokedOrAbsent(detail=f"auditor {username} no longer exists")

        return AuthenticatedAuditor(auditor=auditor, jti=jti)

    async def refresh(self, refresh_token: str) -> IssuedToken:
        """
        Mint a new access token from a valid refresh token

        The refresh token itself is not rotated.
        """
        claims = self.tokens.verify(refresh_token, expected_type=TokenType.REFRESH)
        username = claims.get("username")
        jti = claims.get("jti")
        if not username or not jti:
            raise SignatureInvalid(detail="refresh token missing username or jti")

        if not await self.store.validate_refresh_token(username, jti):
            raise SessionRevokedOrAbsent(detail="refresh token revoked or expired")

        access = await self._issue_access_token(username)
        logger.info(f"Issued refreshed access token for auditor {username}")
        return access

    async def logout(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        """
        Revoke whatever the presented tokens still reference

        Succeeds even when the access token has already expired; the caller
        clears cookies regardless.
        """
        if access_token:
            try:
                claims = self.tokens.verify(access_token, expected_type=TokenType.ACCESS)
            except AuthenticationError as e:
                logger.info(f"Logout with unusable access token: {e.detail}")
            else:
                if claims.get("jti"):
                    await self.store.revoke_audit_session(claims["jti"])

        if refresh_token:
            try:
                claims = self.tokens.verify(refresh_token, expected_type=TokenType.REFRESH)
            except AuthenticationError as e:
                logger.info(f"Logout with unusable refresh token: {e.detail}")
            else:
                if claims.get("username") and claims.get("jti"):
                    await self.store.revoke_refresh_token(claims["username"], claims["jti"])

    async def logout_everywhere(self, auth: AuthenticatedAuditor) -> int:
        """Revoke the current access session and every refresh token of the auditor"""
        await self.store.revoke_audit_session(auth.jti)
        return await self.store.revoke_all_refresh_tokens(auth.username)
