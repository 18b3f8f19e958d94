"""
HMAC Request Authenticator

Gatekeeps session creation so only registered API clients can mint
verification sessions. A client signs every request with

    signature = hex(SHA256(api_secret + raw_request_body + timestamp))

and sends it in three headers: ``x-api-key``, ``x-hmac-signature`` and
``x-timestamp`` (Unix milliseconds). The body is signed over the exact bytes
received, never over a server-side re-serialization of parsed JSON.
"""
import hashlib
import hmac
import logging
import time
from typing import Callable, Optional

from vkyc.errors import (
    AuthHeaderMalformed, AuthHeaderMissing, ReplayWindowExceeded, SignatureInvalid
)
from vkyc.models.data_models import ApiClient
from vkyc.services.database_service import DatabaseService

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
SIGNATURE_HEADER = "x-hmac-signature"
TIMESTAMP_HEADER = "x-timestamp"

MAX_TIMESTAMP_DIGITS = 16


def compute_signature(api_secret: str, body: bytes, timestamp: str) -> str:
    """Hex digest of SHA256(secret || body || timestamp)"""
    digest = hashlib.sha256()
    digest.update(api_secret.encode("utf-8"))
    digest.update(body)
    digest.update(timestamp.encode("utf-8"))
    return digest.hexdigest()


def signatures_match(received_hex: str, expected_hex: str) -> bool:
    """
    Constant-time comparison of two hex signatures.

    Both values are decoded to bytes in full before comparing; malformed hex
    or unequal lengths return False instead of raising.
    """
    try:
        received = bytes.fromhex(received_hex)
        expected = bytes.fromhex(expected_hex)
    except ValueError:
        return False
    if len(received) != len(expected):
        return False
    return hmac.compare_digest(received, expected)


class HmacAuthenticator:
    """Validates API-client requests signed with the shared secret"""

    def __init__(
        self,
        database_service: DatabaseService,
        tolerance_ms: int = 300000,
        clock_ms: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            database_service: Source of API client records
            tolerance_ms: Maximum |now - timestamp| accepted (replay window)
            clock_ms: Time source in Unix milliseconds
        """
        self.db = database_service
        self.tolerance_ms = tolerance_ms
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    def check_timestamp(self, timestamp: str) -> int:
        value = timestamp.strip()
        # ASCII digits only; str.isdigit() also accepts e.g. superscripts
        if not (value.isascii() and value.isdigit()) or len(value) > MAX_TIMESTAMP_DIGITS:
            raise AuthHeaderMalformed(detail="timestamp is not an integer millisecond value")
        request_ms = int(value)
        drift = abs(self._clock_ms() - request_ms)
        if drift > self.tolerance_ms:
            raise ReplayWindowExceeded(
                detail=f"timestamp outside tolerance window ({drift}ms > {self.tolerance_ms}ms)"
            )
        return request_ms

    async def authenticate(
        self,
        api_key: Optional[str],
        signature: Optional[str],
        timestamp: Optional[str],
        body: bytes,
    ) -> ApiClient:
        """
        Authenticate one request.

        Returns:
            The active ApiClient that signed the request

        Raises:
            AuthHeaderMissing, AuthHeaderMalformed, SignatureInvalid,
            ReplayWindowExceeded
        """
        if not api_key or not signature or not timestamp:
            raise AuthHeaderMissing(detail="missing required authentication headers")

        api_client = await self.db.get_api_client_by_key(api_key)
        if api_client is None or not api_client.is_active:
            raise SignatureInvalid(detail="invalid API key or client is disabled")

        self.check_timestamp(timestamp)

        expected = compute_signature(api_client.api_secret, body, timestamp.strip())
        if not signatures_match(signature.strip(), expected):
            raise SignatureInvalid(detail="HMAC signature mismatch")

        logger.info(f"HMAC authentication succeeded for client {api_client.client_name}")
        return api_client
