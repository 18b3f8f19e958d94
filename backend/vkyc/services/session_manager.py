"""
Session Manager for the Video-KYC verification flow

Owns the verification-session state machine:

    status:        pending -> completed | incomplete   (both terminal)
    audit_status:  pending -> pass | fail              (independent axis)

and the duplicate-submission guard on (client_name, external_txn_id).
"""
import logging
from typing import List, Optional

from vkyc.errors import DuplicatePendingSession, SessionNotFound, ValidationFailed
from vkyc.models.data_models import (
    AuditStatus, PanData, SessionStatus, VerificationSession
)
from vkyc.services.database_service import DatabaseService, utcnow

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages verification session state transitions"""

    PENDING_TIMEOUT_SECONDS = 15 * 60  # shared by the duplicate guard and the sweep

    def __init__(self, database_service: DatabaseService, pending_timeout_seconds: Optional[int] = None):
        """
        Initialize session manager

        Args:
            database_service: Database service for persistence
            pending_timeout_seconds: Age after which a pending session is stale
        """
        self.db = database_service
        self.pending_timeout_seconds = pending_timeout_seconds or self.PENDING_TIMEOUT_SECONDS

    def _pending_age_seconds(self, session: VerificationSession) -> float:
        return (utcnow() - session.created_at).total_seconds()

    async def create_session(
        self, client_name: str, external_txn_id: str, pan_data: PanData
    ) -> VerificationSession:
        """
        Create a new pending session for an authenticated API client

        A still-fresh pending session for the same (client, transaction) blocks
        creation; a stale one is moved to incomplete first.

        Args:
            client_name: Name of the authenticated API client
            external_txn_id: Caller-supplied correlation id
            pan_data: Partner-provided identity fields, written in the same transaction

        Returns:
            The newly created pending VerificationSession

        Raises:
            DuplicatePendingSession: A pending session younger than the timeout exists
        """
        if not external_txn_id:
            raise ValidationFailed(public_message="external_txn_id is required")

        existing = await self.db.find_pending_session(client_name, external_txn_id)
        if existing is not None:
            age = self._pending_age_seconds(existing)
            if age > self.pending_timeout_seconds:
                await self.db.mark_incomplete_if_pending(existing.session_uid)
                logger.info(
                    f"Stale pending session {existing.session_uid} marked incomplete "
                    f"before re-creation (age {age:.0f}s)"
                )
            else:
                remaining = int(self.pending_timeout_seconds - age) + 1
                logger.info(
                    f"Duplicate session rejected for client={client_name} txn={external_txn_id}, "
                    f"{remaining}s remaining"
                )
                raise DuplicatePendingSession(remaining_seconds=remaining)

        try:
            session = await self.db.create_session_with_pan_data(client_name, external_txn_id, pan_data)
        except DuplicatePendingSession:
            # Lost a race against a concurrent create; report the winner's wait time
            winner = await self.db.find_pending_session(client_name, external_txn_id)
            remaining = self.pending_timeout_seconds
            if winner is not None:
                remaining = int(self.pending_timeout_seconds - self._pending_age_seconds(winner)) + 1
            raise DuplicatePendingSession(remaining_seconds=remaining)

        logger.info(f"Created session {session.session_uid} for client {client_name}")
        return session

    async def get_session(self, session_uid: str) -> Optional[VerificationSession]:
        return await self.db.get_session(session_uid)

    async def complete_session(self, session_uid: str) -> None:
        """
        Mark a session completed

        Not guarded against repetition: completing twice rewrites the same
        terminal state.
        """
        updated = await self.db.update_session_status(session_uid, SessionStatus.COMPLETED)
        if not updated:
            raise SessionNotFound(detail=f"session {session_uid} not found")
        logger.info(f"Session {session_uid} marked as completed")

    async def mark_incomplete_if_pending(self, session_uid: str) -> bool:
        """
        Move a pending session to incomplete

        Returns:
            True if the session was pending and has been transitioned
        """
        changed = await self.db.mark_incomplete_if_pending(session_uid)
        if changed:
            logger.info(f"Session {session_uid} marked as incomplete")
        return changed

    async def sweep_stale_sessions(self) -> int:
        """
        Bulk-transition every pending session older than the timeout

        Returns:
            Number of sessions marked incomplete
        """
        count = await self.db.mark_stale_pending_as_incomplete(self.pending_timeout_seconds)
        if count > 0:
            logger.info(f"Background cleanup: {count} expired sessions marked as incomplete")
        return count

    async def set_audit_status(self, session_uid: str, audit_status: AuditStatus) -> VerificationSession:
        """
        Record an audit outcome (allowed in any primary status)

        Raises:
            ValidationFailed: audit_status is not pass or fail
            SessionNotFound: No such session
        """
        if audit_status not in (AuditStatus.PASS, AuditStatus.FAIL):
            raise ValidationFailed(public_message="audit_status must be 'pass' or 'fail'")
        updated = await self.db.update_audit_status(session_uid, audit_status)
        if not updated:
            raise SessionNotFound(detail=f"session {session_uid} not found")
        session = await self.db.get_session(session_uid)
        logger.info(f"Audit status of session {session_uid} set to {audit_status.value}")
        return session

    async def list_sessions(self, status_filter: str = "pending") -> List[VerificationSession]:
        """List sessions; unknown filters fall back to pending"""
        if status_filter not in DatabaseService.SESSION_FILTERS:
            status_filter = "pending"
        return await self.db.list_sessions(status_filter)
