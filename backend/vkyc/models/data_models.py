"""
Data models shared by the auth core services
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SessionStatus(str, Enum):
    """Progress of the end-user verification flow"""
    PENDING = "pending"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class AuditStatus(str, Enum):
    """Outcome of audit review, independent of SessionStatus"""
    PENDING = "pending"
    PASS = "pass"
    FAIL = "fail"


class ApiClientStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class TokenType(str, Enum):
    """Kinds of bearer credential issued by the TokenIssuer"""
    SESSION = "session"
    TEMP = "temp"
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class VerificationSession:
    session_uid: str
    external_txn_id: str
    client_name: str
    status: SessionStatus
    audit_status: AuditStatus
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["audit_status"] = self.audit_status.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass
class PanData:
    """Partner-provided identity fields stored alongside a new session"""
    pan_number: str
    full_name: str
    father_name: str
    date_of_birth: str
    source_party: Optional[str] = None


@dataclass
class ApiClient:
    id: int
    client_name: str
    api_key: str
    api_secret: str
    status: ApiClientStatus

    @property
    def is_active(self) -> bool:
        return self.status == ApiClientStatus.ACTIVE


@dataclass
class AuditorAccount:
    id: int
    username: str
    password: str


@dataclass
class IssuedToken:
    """A signed token together with the identifiers needed to track it"""
    token: str
    expires_in: int
    jti: Optional[str] = None


@dataclass
class CreatedSession:
    session: VerificationSession
    temp_token: IssuedToken


@dataclass
class AuthenticatedSession:
    """Resolved end-user identity attached to an authenticated request"""
    session: VerificationSession
    jti: str

    @property
    def session_id(self) -> str:
        return self.session.session_uid


@dataclass
class AuditorLogin:
    username: str
    access_token: IssuedToken
    refresh_token: IssuedToken


@dataclass
class AuthenticatedAuditor:
    auditor: AuditorAccount
    jti: str

    @property
    def username(self) -> str:
        return self.auditor.username
