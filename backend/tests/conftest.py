"""
Shared fixtures: a file-backed SQLite database, an isolated fake Redis
server, and the wired service container.
"""
import time

import fakeredis
import pytest

from vkyc.config import Settings
from vkyc.container import build_container
from vkyc.models.data_models import ApiClientStatus, PanData
from vkyc.services import DatabaseService, RevocableSessionStore
from vkyc.services.hmac_authenticator import compute_signature

TEST_SECRET = "test-jwt-signing-secret-0123456789abcdef"

ACME_KEY = "acme-api-key-12345"
ACME_SECRET = "acme-api-secret-67890"
DISABLED_KEY = "disabled-api-key"
DISABLED_SECRET = "disabled-api-secret"

AUDITOR_USERNAME = "auditor1"
AUDITOR_PASSWORD = "correct-horse"


def make_pan_data(**overrides) -> PanData:
    fields = {
        "pan_number": "GYTPM3631L",
        "full_name": "GARVIT MANRAL",
        "father_name": "GIRISH MANRAL",
        "date_of_birth": "23-09-2003",
        "source_party": "ACME",
    }
    fields.update(overrides)
    return PanData(**fields)


def hmac_headers(api_key: str, api_secret: str, body: bytes, timestamp_ms: int = None) -> dict:
    """Headers an API client sends for a signed request"""
    timestamp = str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000))
    return {
        "x-api-key": api_key,
        "x-hmac-signature": compute_signature(api_secret, body, timestamp),
        "x-timestamp": timestamp,
        "content-type": "application/json",
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        jwt_secret=TEST_SECRET,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'vkyc.db'}",
        redis_url="redis://fake",
        cookie_secure=False,
    )


@pytest.fixture
async def database(settings):
    db = DatabaseService.from_url(settings.database_url)
    await db.create_schema()
    await db.add_api_client("acme", ACME_KEY, ACME_SECRET)
    await db.add_api_client("oldco", DISABLED_KEY, DISABLED_SECRET, status=ApiClientStatus.DISABLED)
    await db.add_auditor(AUDITOR_USERNAME, AUDITOR_PASSWORD)
    yield db
    await db.dispose()


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis_client):
    return RevocableSessionStore(redis_client)


@pytest.fixture
def container(settings, database, store):
    return build_container(settings, database, store)
