"""
Token Issuer for the Video-KYC auth core

Signs and verifies compact HS256 JWTs for the four credential kinds used by
the system: end-user session tokens, one-time activation (temp) tokens, and
auditor access/refresh tokens. All kinds share one signing secret; a ``typ``
claim keeps a token of one kind from being accepted as another.

The issuer is pure: it holds no state beyond the secret and a clock, and it
never touches the revocation store. Revocation and one-time use are enforced
by the callers through RevocableSessionStore.
"""
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import jwt as pyjwt

from vkyc.errors import SignatureInvalid, TokenExpired
from vkyc.models.data_models import IssuedToken, TokenType

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Issues and validates signed, time-boxed claim sets"""

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: str,
        session_ttl_seconds: int = 15 * 60,
        temp_ttl_seconds: int = 60,
        access_ttl_seconds: int = 2 * 60,
        refresh_ttl_seconds: int = 7 * 24 * 60 * 60,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize token issuer

        Args:
            secret: HMAC signing secret shared by all token kinds
            session_ttl_seconds: Lifetime of end-user session tokens
            temp_ttl_seconds: Lifetime of one-time activation tokens
            access_ttl_seconds: Lifetime of auditor access tokens
            refresh_ttl_seconds: Lifetime of auditor refresh tokens
            clock: Time source in epoch seconds (defaults to time.time)
        """
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self._secret = secret
        self.session_ttl_seconds = session_ttl_seconds
        self.temp_ttl_seconds = temp_ttl_seconds
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self._clock = clock or time.time

    @staticmethod
    def new_jti() -> str:
        return uuid.uuid4().hex

    def sign(
        self,
        claims: Dict[str, Any],
        expires_in: int,
        jti: Optional[str] = None,
    ) -> str:
        """
        Sign a claim set with an expiry.

        Args:
            claims: Application claims (must not contain exp/iat/jti)
            expires_in: Seconds until the token expires
            jti: Optional token id, written to the standard ``jti`` claim

        Returns:
            Encoded JWT string
        """
        if expires_in <= 0:
            raise ValueError("expires_in must be positive")

        now = int(self._clock())
        payload = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + expires_in
        if jti is not None:
            payload["jti"] = jti

        return pyjwt.encode(payload, self._secret, algorithm=self.ALGORITHM)

    def verify(self, token: str, expected_type: Optional[TokenType] = None) -> Dict[str, Any]:
        """
        Verify signature and expiry and return the claims.

        Raises:
            TokenExpired: Signature is valid but the token has expired
            SignatureInvalid: Malformed token, bad signature or wrong token kind
        """
        if not token:
            raise SignatureInvalid(detail="empty token")

        try:
            claims = pyjwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except pyjwt.ExpiredSignatureError as e:
            raise TokenExpired(detail="token expired") from e
        except pyjwt.InvalidTokenError as e:
            raise SignatureInvalid(detail=f"invalid token: {type(e).__name__}") from e

        if expected_type is not None and claims.get("typ") != expected_type.value:
            raise SignatureInvalid(
                detail=f"token type {claims.get('typ')!r} where {expected_type.value!r} expected"
            )
        return claims

    def peek_claims(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode claims WITHOUT verifying signature or expiry.

        Only for best-effort bookkeeping on tokens that were already rejected
        (e.g. recovering session_id from an expired session token). Never use
        the result for an authorization decision.
        """
        try:
            return pyjwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
                algorithms=[self.ALGORITHM],
            )
        except pyjwt.InvalidTokenError:
            return None

    # ------------------------------------------------------------------
    # Token kinds
    # ------------------------------------------------------------------

    def issue_session_token(self, session_id: str) -> IssuedToken:
        jti = self.new_jti()
        token = self.sign(
            {"session_id": session_id, "typ": TokenType.SESSION.value},
            self.session_ttl_seconds,
            jti=jti,
        )
        return IssuedToken(token=token, expires_in=self.session_ttl_seconds, jti=jti)

    def issue_temp_token(self, session_id: str) -> IssuedToken:
        # No jti: single use is enforced by the store entry keyed on the token hash
        token = self.sign(
            {"session_id": session_id, "typ": TokenType.TEMP.value, "nonce": uuid.uuid4().hex},
            self.temp_ttl_seconds,
        )
        return IssuedToken(token=token, expires_in=self.temp_ttl_seconds)

    def issue_access_token(self, username: str) -> IssuedToken:
        jti = self.new_jti()
        token = self.sign(
            {"username": username, "typ": TokenType.ACCESS.value},
            self.access_ttl_seconds,
            jti=jti,
        )
        return IssuedToken(token=token, expires_in=self.access_ttl_seconds, jti=jti)

    def issue_refresh_token(self, username: str) -> IssuedToken:
        jti = self.new_jti()
        token = self.sign(
            {"username": username, "typ": TokenType.REFRESH.value},
            self.refresh_ttl_seconds,
            jti=jti,
        )
        return IssuedToken(token=token, expires_in=self.refresh_ttl_seconds, jti=jti)
