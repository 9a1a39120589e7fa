"""SQLAlchemy models for contract persistence."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from accord_engine.common.models import Base, TimestampMixin, generate_uuid, utcnow


class ContractModel(Base, TimestampMixin):
    """One row per contract; ``document`` holds the full serialized aggregate.

    The scalar columns duplicate document fields that queries filter on.
    """

    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    template_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    parent_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    document: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class ContractArtifactModel(Base):
    __tablename__ = "contract_artifacts"

    contract_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contracts.id", ondelete="CASCADE"), primary_key=True
    )
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
