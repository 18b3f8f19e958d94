"""
Explicit wiring of the auth core.

Connections (database engine, Redis client) are constructed once by the
process, passed in here, and closed by whoever created them.
"""
from dataclasses import dataclass

from vkyc.config import Settings
from vkyc.services import (
    AuditorAuthService, DatabaseService, HmacAuthenticator, RevocableSessionStore,
    SessionLifecycleService, SessionManager, SessionSweeper, TokenIssuer
)


@dataclass
class ServiceContainer:
    settings: Settings
    database: DatabaseService
    store: RevocableSessionStore
    token_issuer: TokenIssuer
    hmac_authenticator: HmacAuthenticator
    session_manager: SessionManager
    lifecycle: SessionLifecycleService
    auditor_auth: AuditorAuthService
    sweeper: SessionSweeper


def build_container(
    settings: Settings,
    database: DatabaseService,
    store: RevocableSessionStore,
) -> ServiceContainer:
    token_issuer = TokenIssuer(
        secret=settings.jwt_secret,
        session_ttl_seconds=settings.session_token_ttl_seconds,
        temp_ttl_seconds=settings.temp_token_ttl_seconds,
        access_ttl_seconds=settings.audit_access_token_ttl_seconds,
        refresh_ttl_seconds=settings.audit_refresh_token_ttl_seconds,
    )
    session_manager = SessionManager(database, settings.pending_session_timeout_seconds)
    return ServiceContainer(
        settings=settings,
        database=database,
        store=store,
        token_issuer=token_issuer,
        hmac_authenticator=HmacAuthenticator(database, settings.hmac_timestamp_tolerance_ms),
        session_manager=session_manager,
        lifecycle=SessionLifecycleService(session_manager, token_issuer, store),
        auditor_auth=AuditorAuthService(database, token_issuer, store),
        sweeper=SessionSweeper(session_manager, settings.session_sweep_interval_seconds),
    )
