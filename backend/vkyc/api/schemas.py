"""
Request bodies accepted by the HTTP surface
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class CreateVerificationSessionRequest(BaseModel):
    """Body of POST /api/verification-sessions (signed by the API client)"""
    external_txn_id: str = Field(min_length=1, max_length=128)
    pan_number: str = Field(min_length=1, max_length=16)
    full_name: str = Field(min_length=1, max_length=256)
    father_name: str = Field(min_length=1, max_length=256)
    date_of_birth: str = Field(min_length=1, max_length=16)
    source_party: Optional[str] = Field(default=None, max_length=128)


class ActivateSessionRequest(BaseModel):
    temp_token: str = Field(min_length=1)


class AuditorLoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuditStatusUpdateRequest(BaseModel):
    session_id: str = Field(min_length=1)
    audit_status: Literal["pass", "fail"]
