"""Pydantic models for the contract aggregate and engine operations."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from accord_engine.common.models import generate_uuid, utcnow
from accord_engine.contracts.status import ContractStatus


class PartyType(str, Enum):
    BRAND = "brand"
    INFLUENCER = "influencer"
    AGENCY = "agency"
    VENDOR = "vendor"
    OTHER = "other"


class PartyRole(str, Enum):
    CLIENT = "client"
    CONTRACTOR = "contractor"
    WITNESS = "witness"
    APPROVER = "approver"


# Roles whose signatures complete a contract
REQUIRED_SIGNER_ROLES: frozenset[PartyRole] = frozenset({PartyRole.CLIENT, PartyRole.CONTRACTOR})


def normalize_tags(value: Any) -> list[str]:
    """Tags have set semantics: strip, de-duplicate, sort."""
    if value is None:
        return []
    return sorted({str(tag).strip() for tag in value if str(tag).strip()})


# ── Aggregate ──


class GeoLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = None


class Party(BaseModel):
    id: str = Field(default_factory=generate_uuid)
    type: PartyType = PartyType.OTHER
    name: str
    email: str
    role: PartyRole
    phone: Optional[str] = None
    company: Optional[str] = None
    signing_order: Optional[int] = None

    # Written only by the engine
    signed_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    reminders_sent: int = 0
    last_reminder_at: Optional[datetime] = None

    @property
    def must_sign(self) -> bool:
        return self.role in REQUIRED_SIGNER_ROLES


class Signature(BaseModel):
    """One party's recorded assent. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_uuid)
    party_id: str
    type: str
    data: str
    timestamp: datetime = Field(default_factory=utcnow)
    ip_address: str = ""
    user_agent: str = ""
    location: Optional[GeoLocation] = None
    verified: bool = False
    verification_method: Optional[str] = None


class Contract(BaseModel):
    id: str = Field(default_factory=generate_uuid)
    version: int = 1
    parent_id: Optional[str] = None
    template_id: Optional[str] = None

    title: str
    content: str = ""
    content_html: Optional[str] = None
    variables: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    parties: list[Party] = Field(default_factory=list)
    signatures: list[Signature] = Field(default_factory=list)
    status: ContractStatus = ContractStatus.DRAFT

    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    renewal_date: Optional[datetime] = None
    reminders_due: list[datetime] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)

    def find_party(self, email: str) -> Optional[Party]:
        wanted = email.strip().casefold()
        for party in self.parties:
            if party.email.casefold() == wanted:
                return party
        return None

    def get_party(self, party_id: str) -> Optional[Party]:
        for party in self.parties:
            if party.id == party_id:
                return party
        return None

    def signatures_for(self, party_id: str) -> list[Signature]:
        return [s for s in self.signatures if s.party_id == party_id]

    def all_required_signed(self) -> bool:
        signed_ids = {s.party_id for s in self.signatures}
        required = [p for p in self.parties if p.must_sign]
        return bool(required) and all(p.id in signed_ids for p in required)


# ── Operation inputs ──


class PartyCreate(BaseModel):
    type: PartyType = PartyType.OTHER
    name: str
    email: str
    role: PartyRole
    phone: Optional[str] = None
    company: Optional[str] = None
    signing_order: Optional[int] = None


class ContractCreate(BaseModel):
    template_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    parties: list[PartyCreate] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    expires_in: Optional[int] = None  # days
    parent_id: Optional[str] = None
    created_by: str = "system"


class ContractUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    parties: Optional[list[PartyCreate]] = None
    variables: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    tags: Optional[list[str]] = None
    status: Optional[ContractStatus] = None
    expires_at: Optional[datetime] = None
    renewal_date: Optional[datetime] = None


class SendOptions(BaseModel):
    subject: Optional[str] = None
    message: Optional[str] = None
    reminder_days: list[int] = Field(default_factory=list)
    expires_in: Optional[int] = None  # days
    attachments: list[str] = Field(default_factory=list)


class SignatureInput(BaseModel):
    type: str
    data: str


class SignRequest(BaseModel):
    contract_id: str
    signer_email: str
    signature: SignatureInput
    location: Optional[GeoLocation] = None
    ip_address: str = ""
    user_agent: str = ""


# ── Queries ──


DateField = Literal["created", "sent", "signed", "expires"]

SORTABLE_FIELDS: frozenset[str] = frozenset({
    "created_at",
    "updated_at",
    "sent_at",
    "completed_at",
    "expires_at",
    "renewal_date",
    "title",
    "status",
    "version",
})


class PartyFilter(BaseModel):
    email: Optional[str] = None
    type: Optional[PartyType] = None
    name: Optional[str] = None


class DateRange(BaseModel):
    field: DateField = "created"
    start: datetime
    end: datetime


class SortSpec(BaseModel):
    field: str = "created_at"
    order: Literal["asc", "desc"] = "desc"

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        if value not in SORTABLE_FIELDS:
            raise ValueError(f"cannot sort by {value!r}; choose one of {sorted(SORTABLE_FIELDS)}")
        return value


class SearchFilters(BaseModel):
    status: Optional[list[ContractStatus]] = None
    parties: Optional[PartyFilter] = None
    date_range: Optional[DateRange] = None
    template_id: Optional[str] = None
    tags: Optional[list[str]] = None
    search: Optional[str] = None
    sort: Optional[SortSpec] = None
    offset: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=1)


class ExpiringQuery(BaseModel):
    days: int = Field(..., ge=1)
    status: Optional[list[ContractStatus]] = None
    include_renewable: bool = False


class PartySigningStatus(BaseModel):
    party_id: str
    email: str
    name: str
    role: PartyRole
    signed: bool
    signature_count: int = 0
    verified: bool = False
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    reminders_sent: int = 0
    last_reminder_at: Optional[datetime] = None


# ── HTTP request / response bodies ──


class ViewRequest(BaseModel):
    viewer_email: str


class SignBody(BaseModel):
    signer_email: str
    signature: SignatureInput
    location: Optional[GeoLocation] = None


class TerminateRequest(BaseModel):
    reason: str = ""


class RenewRequest(BaseModel):
    extend_days: int = Field(..., ge=1)


class SweepResult(BaseModel):
    expired: list[str] = Field(default_factory=list)
    reminded: int = 0
