"""
Environment-driven configuration for the Video-KYC backend.

Values are read from the process environment (optionally populated from a
``.env`` file) once at startup and passed explicitly to the services that
need them.
"""
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

DEV_JWT_SECRET = "dev-only-insecure-jwt-secret-change-me"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass
class Settings:
    """Runtime settings consumed by the auth core and the HTTP layer"""

    environment: str = "production"
    log_level: str = "INFO"

    jwt_secret: str = DEV_JWT_SECRET
    database_url: str = "postgresql+asyncpg://localhost:5432/vkyc"
    redis_url: str = "redis://localhost:6379/0"

    # Token lifetimes (seconds); store TTLs mirror these
    session_token_ttl_seconds: int = 15 * 60
    temp_token_ttl_seconds: int = 60
    audit_access_token_ttl_seconds: int = 2 * 60
    audit_refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60

    # Replay window for HMAC-signed client requests (milliseconds)
    hmac_timestamp_tolerance_ms: int = 300000

    # Shared threshold for the duplicate-pending guard and the sweep
    pending_session_timeout_seconds: int = 15 * 60
    session_sweep_interval_seconds: int = 15 * 60

    session_cookie_name: str = "vkycSession"
    audit_cookie_name: str = "auditToken"
    audit_refresh_cookie_name: str = "auditRefreshToken"
    cookie_secure: bool = True
    cookie_samesite: str = "lax"

    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            RuntimeError: If JWT_SECRET is missing outside development
        """
        load_dotenv()

        environment = os.getenv("ENVIRONMENT", "production")
        jwt_secret = os.getenv("JWT_SECRET", "")
        if not jwt_secret:
            if environment.lower() not in ("development", "dev", "local"):
                raise RuntimeError("JWT_SECRET must be set outside development")
            jwt_secret = DEV_JWT_SECRET

        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

        return cls(
            environment=environment,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            jwt_secret=jwt_secret,
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            session_token_ttl_seconds=_env_int("SESSION_TOKEN_TTL_SECONDS", 15 * 60),
            temp_token_ttl_seconds=_env_int("TEMP_TOKEN_TTL_SECONDS", 60),
            audit_access_token_ttl_seconds=_env_int("AUDIT_ACCESS_TOKEN_TTL_SECONDS", 2 * 60),
            audit_refresh_token_ttl_seconds=_env_int(
                "AUDIT_REFRESH_TOKEN_TTL_SECONDS", 7 * 24 * 60 * 60
            ),
            hmac_timestamp_tolerance_ms=_env_int("HMAC_TIMESTAMP_TOLERANCE", 300000),
            pending_session_timeout_seconds=_env_int("PENDING_SESSION_TIMEOUT_SECONDS", 15 * 60),
            session_sweep_interval_seconds=_env_int("SESSION_SWEEP_INTERVAL_SECONDS", 15 * 60),
            session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "vkycSession"),
            audit_cookie_name=os.getenv("AUDIT_COOKIE_NAME", "auditToken"),
            audit_refresh_cookie_name=os.getenv("AUDIT_REFRESH_COOKIE_NAME", "auditRefreshToken"),
            cookie_secure=_env_bool("COOKIE_SECURE", True),
            cookie_samesite=os.getenv("COOKIE_SAMESITE", "lax").lower(),
            cors_origins=[o.strip() for o in origins if o.strip()],
        )
