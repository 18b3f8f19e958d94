"""
FastAPI application entry point for the Video-KYC verification backend

Run with:
    uvicorn vkyc.main:create_app --factory
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from vkyc import __version__
from vkyc.api.dependencies import get_container, require_api_client, require_auditor, require_session
from vkyc.api.schemas import (
    ActivateSessionRequest, AuditStatusUpdateRequest, AuditorLoginRequest,
    CreateVerificationSessionRequest
)
from vkyc.config import Settings
from vkyc.container import build_container
from vkyc.errors import AuthHeaderMissing, AuthenticationError, ValidationFailed, VkycError
from vkyc.models.data_models import (
    ApiClient, AuditStatus, AuthenticatedAuditor, AuthenticatedSession, PanData
)
from vkyc.services import DatabaseService, RevocableSessionStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _success(data=None) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    return body


def _set_cookie(response: Response, settings: Settings, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )


def _clear_cookie(response: Response, settings: Settings, name: str) -> None:
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[DatabaseService] = None,
    store: Optional[RevocableSessionStore] = None,
) -> FastAPI:
    """
    Build the application.

    When database and store are given they are used as-is and stay owned by
    the caller; otherwise the lifespan handler creates them from settings and
    closes them on shutdown.
    """
    settings = settings or Settings.from_env()
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.container is None
        if owned:
            logger.info("Application startup: connecting database and session store")
            app.state.container = build_container(
                settings,
                DatabaseService.from_url(settings.database_url),
                RevocableSessionStore.from_url(settings.redis_url),
            )
        container = app.state.container
        container.sweeper.start()
        try:
            yield
        finally:
            logger.info("Application shutdown: stopping background tasks")
            await container.sweeper.stop()
            if owned:
                await container.store.close()
                await container.database.dispose()
                app.state.container = None

    app = FastAPI(
        title="Video-KYC Verification API",
        description="Session authentication and lifecycle for video KYC verification",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = (
        build_container(settings, database, store) if database is not None and store is not None else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    @app.exception_handler(VkycError)
    async def vkyc_error_handler(request: Request, exc: VkycError):
        """Render the error taxonomy as the standard JSON envelope"""
        if isinstance(exc, AuthenticationError):
            logger.info(f"Authentication failed on {request.url.path}: {type(exc).__name__}: {exc.detail}")
        elif exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.detail}")
        else:
            logger.info(f"Request rejected on {request.url.path}: {type(exc).__name__}: {exc.detail}")

        message = exc.public_message
        if settings.is_development and exc.detail and exc.detail != message:
            message = f"{message}: {exc.detail}"
        return _error_response(exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
        return _error_response(400, f"Missing or invalid fields: {', '.join(fields)}")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error_response(500, "An unexpected error occurred")

    # ------------------------------------------------------------------
    # Service endpoints
    # ------------------------------------------------------------------

    @app.get("/")
    async def root():
        return {"message": "Welcome to the Video KYC Backend API", "version": __version__}

    @app.get("/health")
    async def health_check(request: Request):
        """Health check reporting database and session store connectivity"""
        container = get_container(request)
        database_ok = await container.database.ping()
        store_ok = await container.store.ping()
        body = {
            "status": "healthy" if database_ok and store_ok else "unhealthy",
            "services": {
                "database": "connected" if database_ok else "disconnected",
                "session_store": "connected" if store_ok else "disconnected",
            },
        }
        return JSONResponse(status_code=200 if database_ok and store_ok else 503, content=body)

    # ------------------------------------------------------------------
    # API-client flow
    # ------------------------------------------------------------------

    @app.post("/api/verification-sessions", status_code=201)
    async def create_verification_session(
        request: Request,
        api_client: ApiClient = Depends(require_api_client),
    ):
        """
        Create a verification session for an HMAC-authenticated API client

        The body is parsed from the same raw bytes that were signed.

        Returns:
            The pending session and its one-time activation token

        Raises:
            ValidationFailed: Missing or invalid body fields
            DuplicatePendingSession: A fresh pending session exists for the transaction
        """
        try:
            payload = CreateVerificationSessionRequest.model_validate_json(await request.body())
        except ValidationError as e:
            fields = sorted({str(err["loc"][-1]) for err in e.errors() if err.get("loc")})
            raise ValidationFailed(
                detail=str(e),
                public_message=f"Missing or invalid fields: {', '.join(fields) or 'body'}",
            ) from e

        container = get_container(request)
        created = await container.lifecycle.create_session(
            api_client,
            payload.external_txn_id,
            PanData(
                pan_number=payload.pan_number,
                full_name=payload.full_name,
                father_name=payload.father_name,
                date_of_birth=payload.date_of_birth,
                source_party=payload.source_party,
            ),
        )
        data = created.session.to_dict()
        data["temp_token"] = created.temp_token.token
        data["temp_token_expires_in"] = created.temp_token.expires_in
        return _success(data)

    # ------------------------------------------------------------------
    # End-user flow
    # ------------------------------------------------------------------

    @app.post("/api/auth/activate")
    async def activate_session(body: ActivateSessionRequest, request: Request, response: Response):
        """Exchange a one-time activation token for a session cookie"""
        container = get_container(request)
        issued = await container.lifecycle.activate(body.temp_token)
        _set_cookie(response, settings, settings.session_cookie_name, issued.token, issued.expires_in)
        return _success({"authenticated": True, "expires_in": issued.expires_in})

    @app.get("/api/auth/check")
    async def check_auth(auth: AuthenticatedSession = Depends(require_session)):
        return _success({
            "authenticated": True,
            "session_id": auth.session_id,
            "status": auth.session.status.value,
        })

    @app.patch("/api/verification-sessions/complete")
    async def complete_verification_session(
        request: Request,
        response: Response,
        auth: AuthenticatedSession = Depends(require_session),
    ):
        """Mark the caller's session completed and revoke its token"""
        container = get_container(request)
        await container.lifecycle.complete(auth)
        _clear_cookie(response, settings, settings.session_cookie_name)
        return _success({"session_id": auth.session_id, "status": "completed"})

    @app.post("/api/auth/logout")
    async def logout_session(
        request: Request,
        response: Response,
        auth: AuthenticatedSession = Depends(require_session),
    ):
        container = get_container(request)
        await container.lifecycle.logout(auth)
        _clear_cookie(response, settings, settings.session_cookie_name)
        return _success()

    # ------------------------------------------------------------------
    # Auditor flow
    # ------------------------------------------------------------------

    @app.post("/api/audit/login")
    async def auditor_login(body: AuditorLoginRequest, request: Request, response: Response):
        container = get_container(request)
        result = await container.auditor_auth.login(body.username, body.password)
        _set_cookie(
            response, settings, settings.audit_cookie_name,
            result.access_token.token, result.access_token.expires_in,
        )
        _set_cookie(
            response, settings, settings.audit_refresh_cookie_name,
            result.refresh_token.token, result.refresh_token.expires_in,
        )
        return _success({
            "username": result.username,
            "expires_in": result.access_token.expires_in,
        })

    @app.post("/api/audit/refresh")
    async def auditor_refresh(request: Request, response: Response):
        """Issue a new access cookie from the refresh cookie (refresh token not rotated)"""
        container = get_container(request)
        refresh_token = request.cookies.get(settings.audit_refresh_cookie_name)
        if not refresh_token:
            raise AuthHeaderMissing(detail="refresh cookie not present")
        access = await container.auditor_auth.refresh(refresh_token)
        _set_cookie(response, settings, settings.audit_cookie_name, access.token, access.expires_in)
        return _success({"expires_in": access.expires_in})

    @app.post("/api/audit/logout")
    async def auditor_logout(request: Request, response: Response):
        """Revoke the presented tokens; always clears the cookies"""
        container = get_container(request)
        await container.auditor_auth.logout(
            request.cookies.get(settings.audit_cookie_name),
            request.cookies.get(settings.audit_refresh_cookie_name),
        )
        _clear_cookie(response, settings, settings.audit_cookie_name)
        _clear_cookie(response, settings, settings.audit_refresh_cookie_name)
        return _success()

    @app.post("/api/audit/logout-all")
    async def auditor_logout_all(
        request: Request,
        response: Response,
        auth: AuthenticatedAuditor = Depends(require_auditor),
    ):
        container = get_container(request)
        revoked = await container.auditor_auth.logout_everywhere(auth)
        _clear_cookie(response, settings, settings.audit_cookie_name)
        _clear_cookie(response, settings, settings.audit_refresh_cookie_name)
        return _success({"revoked_refresh_tokens": revoked})

    @app.get("/api/audit/pending-sessions")
    async def list_sessions_for_audit(
        request: Request,
        status_filter: str = Query("pending", alias="filter"),
        auth: AuthenticatedAuditor = Depends(require_auditor),
    ):
        """List sessions by status filter (pending|completed|all, default pending)"""
        container = get_container(request)
        sessions = await container.session_manager.list_sessions(status_filter)
        return _success({"sessions": [s.to_dict() for s in sessions], "total": len(sessions)})

    @app.patch("/api/audit/audit-status")
    async def update_audit_status(
        body: AuditStatusUpdateRequest,
        request: Request,
        auth: AuthenticatedAuditor = Depends(require_auditor),
    ):
        container = get_container(request)
        session = await container.session_manager.set_audit_status(
            body.session_id, AuditStatus(body.audit_status)
        )
        logger.info(f"Auditor {auth.username} set audit status of {body.session_id} to {body.audit_status}")
        return _success(session.to_dict())

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("vkyc.main:create_app", factory=True, host="0.0.0.0", port=8000)
