"""
Database Service for the Video-KYC auth core

Relational persistence for verification sessions, API clients and auditor
accounts. The service wraps an explicitly constructed SQLAlchemy AsyncEngine;
the owner creates it at startup and disposes it on shutdown.
"""
import contextlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from vkyc.errors import DatabaseUnavailable, DuplicatePendingSession
from vkyc.models.data_models import (
    ApiClient, ApiClientStatus, AuditStatus, AuditorAccount, PanData,
    SessionStatus, VerificationSession
)
from vkyc.models.tables import (
    PENDING_TXN_INDEX, api_clients, audit_session, business_partner_pan_data, metadata,
    verification_session
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _is_pending_txn_conflict(error: IntegrityError) -> bool:
    """True if the violation is the one-pending-session-per-transaction index"""
    message = str(error.orig)
    # PostgreSQL names the index; SQLite names the indexed columns
    return (
        PENDING_TXN_INDEX in message
        or "verification_session.external_txn_id" in message
    )


def _row_to_session(row) -> VerificationSession:
    return VerificationSession(
        session_uid=row.session_uid,
        external_txn_id=row.external_txn_id or "",
        client_name=row.client_name,
        status=SessionStatus(row.status),
        audit_status=AuditStatus(row.audit_status),
        created_at=_as_naive_utc(row.created_at),
        updated_at=_as_naive_utc(row.updated_at),
    )


class DatabaseService:
    """Async repository over the verification_session, api_clients and audit_session tables"""

    SESSION_FILTERS = ("pending", "completed", "all")

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str, **engine_kwargs) -> "DatabaseService":
        """Create the service with its own engine (pool_pre_ping on by default)"""
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine = create_async_engine(database_url, **engine_kwargs)
        logger.info(f"Database engine created for {database_url.split('@')[-1]}")
        return cls(engine)

    @contextlib.contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}", exc_info=True)
            raise DatabaseUnavailable(detail=f"database error during {operation}") from e
        except OSError as e:
            logger.error(f"Database connection error during {operation}: {e}", exc_info=True)
            raise DatabaseUnavailable(detail=f"database unreachable during {operation}") from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_schema(self) -> None:
        """Create all tables and indexes (development and tests)"""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(sa.text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")

    # ------------------------------------------------------------------
    # API clients & auditors (read-only for the auth core)
    # ------------------------------------------------------------------

    async def get_api_client_by_key(self, api_key: str) -> Optional[ApiClient]:
        query = sa.select(api_clients).where(api_clients.c.api_key == api_key).limit(1)
        with self._translate_errors("api client lookup"):
            async with self.engine.connect() as conn:
                row = (await conn.execute(query)).first()
        if row is None:
            return None
        try:
            status = ApiClientStatus(row.status)
        except ValueError:
            # Anything but an exact ACTIVE is treated as disabled
            logger.warning(f"API client {row.client_name} has unrecognized status {row.status!r}")
            status = ApiClientStatus.DISABLED
        return ApiClient(
            id=row.id,
            client_name=row.client_name,
            api_key=row.api_key,
            api_secret=row.api_secret,
            status=status,
        )

    async def get_auditor_by_username(self, username: str) -> Optional[AuditorAccount]:
        query = sa.select(audit_session).where(audit_session.c.username == username).limit(1)
        with self._translate_errors("auditor lookup"):
            async with self.engine.connect() as conn:
                row = (await conn.execute(query)).first()
        if row is None:
            return None
        return AuditorAccount(id=row.id, username=row.username, password=row.password)

    async def add_api_client(
        self,
        client_name: str,
        api_key: str,
        api_secret: str,
        status: ApiClientStatus = ApiClientStatus.ACTIVE,
    ) -> None:
        with self._translate_errors("api client insert"):
            async with self.engine.begin() as conn:
                await conn.execute(
                    api_clients.insert().values(
                        client_name=client_name,
                        api_key=api_key,
                        api_secret=api_secret,
                        status=status.value,
                    )
                )

    async def add_auditor(self, username: str, password: str) -> None:
        with self._translate_errors("auditor insert"):
            async with self.engine.begin() as conn:
                await conn.execute(audit_session.insert().values(username=username, password=password))

    # ------------------------------------------------------------------
    # Verification sessions
    # ------------------------------------------------------------------

    async def find_pending_session(
        self, client_name: str, external_txn_id: str
    ) -> Optional[VerificationSession]:
        query = (
            sa.select(verification_session)
            .where(
                verification_session.c.client_name == client_name,
                verification_session.c.external_txn_id == external_txn_id,
                verification_session.c.status == SessionStatus.PENDING.value,
            )
            .limit(1)
        )
        with self._translate_errors("pending session lookup"):
            async with self.engine.connect() as conn:
                row = (await conn.execute(query)).first()
        return _row_to_session(row) if row is not None else None

    async def create_session_with_pan_data(
        self, client_name: str, external_txn_id: str, pan_data: PanData
    ) -> VerificationSession:
        """
        Insert a pending session and its PAN data in a single transaction.

        Raises:
            DuplicatePendingSession: If the partial unique index rejects the insert
        """
        session_uid = str(uuid.uuid4())
        now = utcnow()
        try:
            with self._translate_errors("session creation"):
                async with self.engine.begin() as conn:
                    await conn.execute(
                        verification_session.insert().values(
                            session_uid=session_uid,
                            external_txn_id=external_txn_id,
                            client_name=client_name,
                            status=SessionStatus.PENDING.value,
                            audit_status=AuditStatus.PENDING.value,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    await conn.execute(
                        business_partner_pan_data.insert().values(
                            session_uid=session_uid,
                            pan_number=pan_data.pan_number,
                            full_name=pan_data.full_name,
                            father_name=pan_data.father_name,
                            date_of_birth=pan_data.date_of_birth,
                            source_party=pan_data.source_party or client_name,
                        )
                    )
        except IntegrityError as e:
            if not _is_pending_txn_conflict(e):
                logger.error(f"Integrity error creating session for client={client_name}: {e.orig}")
                raise
            logger.warning(
                f"Unique pending-session constraint hit for client={client_name} txn={external_txn_id}"
            )
            raise DuplicatePendingSession(
                remaining_seconds=0, detail="pending session inserted concurrently"
            ) from e

        return VerificationSession(
            session_uid=session_uid,
            external_txn_id=external_txn_id,
            client_name=client_name,
            status=SessionStatus.PENDING,
            audit_status=AuditStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    async def get_session(self, session_uid: str) -> Optional[VerificationSession]:
        query = sa.select(verification_session).where(verification_session.c.session_uid == session_uid)
        with self._translate_errors("session lookup"):
            async with self.engine.connect() as conn:
                row = (await conn.execute(query)).first()
        return _row_to_session(row) if row is not None else None

    async def update_session_status(self, session_uid: str, status: SessionStatus) -> bool:
        """Unconditionally set status; returns False if the session does not exist"""
        stmt = (
            verification_session.update()
            .where(verification_session.c.session_uid == session_uid)
            .values(status=status.value, updated_at=utcnow())
        )
        with self._translate_errors("session status update"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        return result.rowcount > 0

    async def mark_incomplete_if_pending(self, session_uid: str) -> bool:
        """Conditional pending -> incomplete transition; True if a row changed"""
        stmt = (
            verification_session.update()
            .where(
                verification_session.c.session_uid == session_uid,
                verification_session.c.status == SessionStatus.PENDING.value,
            )
            .values(status=SessionStatus.INCOMPLETE.value, updated_at=utcnow())
        )
        with self._translate_errors("incomplete transition"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        return result.rowcount > 0

    async def mark_stale_pending_as_incomplete(self, max_age_seconds: int) -> int:
        """Bulk-update every pending session older than max_age_seconds"""
        now = utcnow()
        cutoff = now - timedelta(seconds=max_age_seconds)
        stmt = (
            verification_session.update()
            .where(
                verification_session.c.status == SessionStatus.PENDING.value,
                verification_session.c.created_at < cutoff,
            )
            .values(status=SessionStatus.INCOMPLETE.value, updated_at=now)
        )
        with self._translate_errors("stale session sweep"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        return result.rowcount or 0

    async def update_audit_status(self, session_uid: str, audit_status: AuditStatus) -> bool:
        stmt = (
            verification_session.update()
            .where(verification_session.c.session_uid == session_uid)
            .values(audit_status=audit_status.value, updated_at=utcnow())
        )
        with self._translate_errors("audit status update"):
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        return result.rowcount > 0

    async def set_session_created_at(self, session_uid: str, created_at: datetime) -> None:
        """Backdate a session (maintenance scripts and tests)"""
        stmt = (
            verification_session.update()
            .where(verification_session.c.session_uid == session_uid)
            .values(created_at=_as_naive_utc(created_at))
        )
        with self._translate_errors("session backdate"):
            async with self.engine.begin() as conn:
                await conn.execute(stmt)

    async def list_sessions(self, status_filter: str = "pending") -> List[VerificationSession]:
        """List sessions newest first; status_filter is pending, completed or all"""
        query = sa.select(verification_session).order_by(verification_session.c.created_at.desc())
        if status_filter != "all":
            query = query.where(verification_session.c.status == status_filter)
        with self._translate_errors("session listing"):
            async with self.engine.connect() as conn:
                rows = (await conn.execute(query)).all()
        return [_row_to_session(row) for row in rows]
