"""Audit log: append, query, and verify the per-contract hash chain."""

import asyncio
import hashlib
import hmac as hmac_mod
import json
from datetime import datetime
from typing import Any

from sqlalchemy import select

from accord_engine.audit.models import AuditEntryModel
from accord_engine.audit.schemas import AuditAction, AuditChainVerification, AuditEntry
from accord_engine.common.config import AccordSettings
from accord_engine.common.database import DatabaseManager
from accord_engine.common.exceptions import ValidationError
from accord_engine.common.models import as_utc, generate_uuid, utcnow


class AuditLog:
    """Append-only record of contract actions, hash-chained per contract.

    Entries are never updated or deleted. Each entry links to the previous
    entry of the same contract via ``prev_hash`` and is signed with the
    current HMAC key so rotated keys still verify.
    """

    def __init__(self, settings: AccordSettings, db: DatabaseManager):
        self.settings = settings
        self.db = db
        # Serializes chain-head reads with their append
        self._lock = asyncio.Lock()

    # ── Write ──

    async def log(
        self,
        contract_id: str,
        action: AuditAction | str,
        performed_by: str,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditEntry:
        """Append one entry. Rejects only a missing contract_id, action or performed_by."""
        missing = [
            name
            for name, value in (
                ("contract_id", contract_id),
                ("action", action),
                ("performed_by", performed_by),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                f"Audit entry is missing required field(s): {', '.join(missing)}",
                fields=missing,
            )
        try:
            action = AuditAction(action)
        except ValueError as exc:
            raise ValidationError(f"Unknown audit action {action!r}", fields=["action"]) from exc

        # Store exactly what the hash covers
        details = json.loads(json.dumps(details or {}, default=str))

        async with self._lock:
            async with self.db.get_session() as session:
                head = await self._chain_head(session, contract_id)
                prev_hash = head.entry_hash if head else None
                entry_id = generate_uuid()
                entry_hash = self._compute_entry_hash(
                    entry_id, contract_id, action.value, performed_by,
                    details, ip_address, user_agent, prev_hash,
                )
                row = AuditEntryModel(
                    id=entry_id,
                    contract_id=contract_id,
                    action=action.value,
                    performed_by=performed_by,
                    performed_at=utcnow(),
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    prev_hash=prev_hash,
                    entry_hash=entry_hash,
                    signature=self._sign(entry_hash),
                )
                session.add(row)
                await session.flush()
                return AuditEntry.model_validate(row)

    # ── Read ──

    async def by_contract(self, contract_id: str) -> list[AuditEntry]:
        """Chronological case history, oldest first."""
        query = (
            select(AuditEntryModel)
            .where(AuditEntryModel.contract_id == contract_id)
            .order_by(AuditEntryModel.seq.asc())
        )
        return await self._fetch(query)

    async def by_actor(self, performed_by: str, limit: int = 50, offset: int = 0) -> list[AuditEntry]:
        query = select(AuditEntryModel).where(AuditEntryModel.performed_by == performed_by)
        return await self._fetch(self._newest_first(query, limit, offset))

    async def by_action(
        self, action: AuditAction | str, limit: int = 50, offset: int = 0,
    ) -> list[AuditEntry]:
        query = select(AuditEntryModel).where(AuditEntryModel.action == AuditAction(action).value)
        return await self._fetch(self._newest_first(query, limit, offset))

    async def by_date_range(
        self, start: datetime, end: datetime, limit: int = 50, offset: int = 0,
    ) -> list[AuditEntry]:
        """Entries performed within [start, end], newest first."""
        query = select(AuditEntryModel).where(
            AuditEntryModel.performed_at >= as_utc(start),
            AuditEntryModel.performed_at <= as_utc(end),
        )
        return await self._fetch(self._newest_first(query, limit, offset))

    async def get_chain_head(self, contract_id: str) -> AuditEntry | None:
        """Return the most recent entry for a contract."""
        async with self.db.get_session() as session:
            head = await self._chain_head(session, contract_id)
            return AuditEntry.model_validate(head) if head else None

    # ── Verify ──

    async def verify_chain(self, contract_id: str) -> AuditChainVerification:
        """Walk the chain oldest→newest, verify linkage, hashes and signatures."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(AuditEntryModel)
                .where(AuditEntryModel.contract_id == contract_id)
                .order_by(AuditEntryModel.seq.asc())
            )
            entries = list(result.scalars().all())

        prev_hash = None
        for index, entry in enumerate(entries):
            expected_hash = self._compute_entry_hash(
                entry.id, entry.contract_id, entry.action, entry.performed_by,
                entry.details or {}, entry.ip_address, entry.user_agent, entry.prev_hash,
            )
            if (
                entry.prev_hash != prev_hash
                or entry.entry_hash != expected_hash
                or not self._verify_signature(entry.entry_hash, entry.signature)
            ):
                return AuditChainVerification(valid=False, entries_checked=index, break_at=entry.id)
            prev_hash = entry.entry_hash

        return AuditChainVerification(valid=True, entries_checked=len(entries), break_at=None)

    # ── Internal helpers ──

    @staticmethod
    async def _chain_head(session, contract_id: str) -> AuditEntryModel | None:
        result = await session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.contract_id == contract_id)
            .order_by(AuditEntryModel.seq.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _newest_first(query, limit: int, offset: int):
        return query.order_by(AuditEntryModel.seq.desc()).offset(offset).limit(limit)

    async def _fetch(self, query) -> list[AuditEntry]:
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [AuditEntry.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    def _compute_entry_hash(
        entry_id: str,
        contract_id: str,
        action: str,
        performed_by: str,
        details: dict[str, Any],
        ip_address: str | None,
        user_agent: str | None,
        prev_hash: str | None,
    ) -> str:
        """SHA-256 of canonical JSON of the entry fields."""
        canonical = json.dumps(
            {
                "id": entry_id,
                "contract_id": contract_id,
                "action": action,
                "performed_by": performed_by,
                "details": details,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "prev_hash": prev_hash,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, entry_hash: str) -> str:
        """HMAC-SHA256 of entry_hash with the current HMAC key."""
        return hmac_mod.new(
            self.settings.current_hmac_key.encode(),
            entry_hash.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _verify_signature(self, entry_hash: str, signature: str) -> bool:
        """Verify signature against all keys in the keyring."""
        for _version, key in self.settings.hmac_keyring.items():
            expected = hmac_mod.new(
                key.encode(), entry_hash.encode(), hashlib.sha256,
            ).hexdigest()
            if hmac_mod.compare_digest(expected, signature):
                return True
        return False
