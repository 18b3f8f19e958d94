"""
Error taxonomy for the session authentication & lifecycle core.

Every failure the core reports to a caller is one of these exceptions. Each
carries the HTTP status it maps to, the message that is safe to show to the
caller, and a diagnostic ``detail`` that is only logged (or surfaced in
development mode).
"""
from typing import Optional

GENERIC_AUTH_MESSAGE = "Authentication failed"


class VkycError(Exception):
    """Base class for all errors translated into the JSON error envelope"""

    status_code = 500
    public_message = "An unexpected error occurred"

    def __init__(self, detail: Optional[str] = None, public_message: Optional[str] = None):
        self.detail = detail or self.public_message
        if public_message is not None:
            self.public_message = public_message
        super().__init__(self.detail)


class AuthenticationError(VkycError):
    """401-class failure; the public message never says which check failed"""

    status_code = 401
    public_message = GENERIC_AUTH_MESSAGE


class AuthHeaderMissing(AuthenticationError):
    pass


class AuthHeaderMalformed(AuthenticationError):
    pass


class SignatureInvalid(AuthenticationError):
    pass


class TokenExpired(AuthenticationError):
    pass


class ReplayWindowExceeded(AuthenticationError):
    pass


class SessionRevokedOrAbsent(AuthenticationError):
    pass


class SessionAlreadyCompleted(AuthenticationError):
    pass


class SessionNotPending(AuthenticationError):
    pass


class InvalidCredentials(AuthenticationError):
    public_message = "Invalid username or password"


class BusinessRuleError(VkycError):
    status_code = 400
    public_message = "Request could not be processed"


class DuplicatePendingSession(BusinessRuleError):
    def __init__(self, remaining_seconds: int, detail: Optional[str] = None):
        self.remaining_seconds = max(int(remaining_seconds), 0)
        minutes, seconds = divmod(self.remaining_seconds, 60)
        super().__init__(
            detail=detail,
            public_message=(
                "A pending verification session already exists for this transaction. "
                f"Retry in {minutes}m {seconds}s."
            ),
        )


class TokenAlreadyConsumed(BusinessRuleError):
    public_message = "Activation token is invalid or has already been used"


class ValidationFailed(BusinessRuleError):
    public_message = "Invalid request"


class SessionNotFound(VkycError):
    status_code = 404
    public_message = "Verification session not found"


class ServiceUnavailable(VkycError):
    status_code = 503
    public_message = "Service temporarily unavailable"


class StoreUnavailable(ServiceUnavailable):
    pass


class DatabaseUnavailable(ServiceUnavailable):
    pass
