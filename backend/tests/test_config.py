"""
Tests for environment-driven Settings
"""
import pytest

from vkyc import config as config_module
from vkyc.config import DEV_JWT_SECRET, Settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep a developer's .env file and shell out of these tests"""
    monkeypatch.setattr(config_module, "load_dotenv", lambda *args, **kwargs: False)
    for name in (
        "ENVIRONMENT", "JWT_SECRET", "DATABASE_URL", "REDIS_URL", "HMAC_TIMESTAMP_TOLERANCE",
        "COOKIE_SECURE", "CORS_ORIGINS", "SESSION_TOKEN_TTL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettings:

    def test_missing_secret_outside_development(self):
        with pytest.raises(RuntimeError):
            Settings.from_env()

    def test_development_falls_back_to_dev_secret(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")

        settings = Settings.from_env()

        assert settings.jwt_secret == DEV_JWT_SECRET
        assert settings.is_development is True

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "x" * 40)

        settings = Settings.from_env()

        assert settings.is_development is False
        assert settings.session_token_ttl_seconds == 900
        assert settings.temp_token_ttl_seconds == 60
        assert settings.audit_access_token_ttl_seconds == 120
        assert settings.audit_refresh_token_ttl_seconds == 604800
        assert settings.hmac_timestamp_tolerance_ms == 300000
        assert settings.pending_session_timeout_seconds == 900
        assert settings.cookie_secure is True

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "x" * 40)
        monkeypatch.setenv("HMAC_TIMESTAMP_TOLERANCE", "60000")
        monkeypatch.setenv("COOKIE_SECURE", "false")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

        settings = Settings.from_env()

        assert settings.hmac_timestamp_tolerance_ms == 60000
        assert settings.cookie_secure is False
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.redis_url == "redis://cache:6379/2"
