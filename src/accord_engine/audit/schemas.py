"""Pydantic schemas for audit entries and chain verification."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from accord_engine.common.models import as_utc


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    DOWNLOADED = "downloaded"
    REMINDER_SENT = "reminder_sent"
    EXPIRED = "expired"
    RENEWED = "renewed"
    TERMINATED = "terminated"
    DELETED = "deleted"


class AuditEntry(BaseModel):
    id: str
    seq: int
    contract_id: str
    action: AuditAction
    performed_by: str
    performed_at: datetime
    details: dict[str, Any] = {}
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    prev_hash: Optional[str] = None
    entry_hash: str
    signature: str

    model_config = {"from_attributes": True}

    @field_validator("performed_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("details", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}


class AuditChainVerification(BaseModel):
    valid: bool
    entries_checked: int
    break_at: Optional[str] = None
