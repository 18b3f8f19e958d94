"""
FastAPI dependencies that authenticate each class of caller.

- require_api_client: HMAC-signed API-client requests (session creation)
- require_session:    end-user session cookie
- require_auditor:    auditor access cookie
"""
import logging

from fastapi import Request

from vkyc.container import ServiceContainer
from vkyc.errors import AuthHeaderMissing, ServiceUnavailable
from vkyc.models.data_models import ApiClient, AuthenticatedAuditor, AuthenticatedSession
from vkyc.services.hmac_authenticator import API_KEY_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER

logger = logging.getLogger(__name__)


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise ServiceUnavailable(detail="services not initialized")
    return container


async def require_api_client(request: Request) -> ApiClient:
    container = get_container(request)
    body = await request.body()
    api_client = await container.hmac_authenticator.authenticate(
        api_key=request.headers.get(API_KEY_HEADER),
        signature=request.headers.get(SIGNATURE_HEADER),
        timestamp=request.headers.get(TIMESTAMP_HEADER),
        body=body,
    )
    request.state.api_client = api_client
    return api_client


async def require_session(request: Request) -> AuthenticatedSession:
    container = get_container(request)
    token = request.cookies.get(container.settings.session_cookie_name)
    if not token:
        raise AuthHeaderMissing(detail="session cookie not present")
    auth = await container.lifecycle.authenticate(token)
    request.state.verification_session = auth
    return auth


async def require_auditor(request: Request) -> AuthenticatedAuditor:
    container = get_container(request)
    token = request.cookies.get(container.settings.audit_cookie_name)
    if not token:
        raise AuthHeaderMissing(detail="audit access cookie not present")
    auth = await container.auditor_auth.authenticate(token)
    request.state.auditor = auth
    return auth
