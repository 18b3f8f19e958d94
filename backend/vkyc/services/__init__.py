# Service layer components
from .database_service import DatabaseService
from .session_store import RevocableSessionStore
from .token_issuer import TokenIssuer
from .hmac_authenticator import HmacAuthenticator
from .session_manager import SessionManager
from .session_cleanup import SessionSweeper
from .session_lifecycle import SessionLifecycleService
from .auditor_auth import AuditorAuthService

__all__ = ['DatabaseService', 'RevocableSessionStore', 'TokenIssuer', 'HmacAuthenticator', 'SessionManager', 'SessionSweeper', 'SessionLifecycleService', 'AuditorAuthService']
