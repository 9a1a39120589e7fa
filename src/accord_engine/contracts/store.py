"""Contract stores: keyed persistence with optimistic versioning.

Every write is conditional: ``expected_version=None`` inserts a new
contract, any other value is a compare-and-swap on ``version``. A losing
writer gets ConflictError and must reload; stores never retry.
"""

import asyncio
import logging
from typing import Iterable, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from accord_engine.common.database import DatabaseManager
from accord_engine.common.exceptions import ConflictError, ContractNotFoundError
from accord_engine.common.models import utcnow
from accord_engine.contracts.models import ContractArtifactModel, ContractModel
from accord_engine.contracts.schemas import Contract
from accord_engine.contracts.status import ContractStatus

logger = logging.getLogger(__name__)


class ContractStore(Protocol):
    async def load(self, contract_id: str) -> Optional[Contract]: ...

    async def current_version(self, contract_id: str) -> Optional[int]: ...

    async def save(self, contract: Contract, expected_version: Optional[int] = None) -> None: ...

    async def delete(self, contract_id: str, expected_version: Optional[int] = None) -> None: ...

    async def list_contracts(
        self, statuses: Optional[Iterable[ContractStatus]] = None,
    ) -> list[Contract]: ...

    async def save_artifact(self, contract_id: str, data: bytes) -> None: ...

    async def load_artifact(self, contract_id: str) -> Optional[bytes]: ...


def _status_values(statuses: Optional[Iterable[ContractStatus]]) -> Optional[set[str]]:
    if statuses is None:
        return None
    return {ContractStatus(s).value for s in statuses}


class InMemoryContractStore:
    """Process-local store. Hands out deep copies so callers cannot mutate stored state."""

    def __init__(self):
        self._contracts: dict[str, Contract] = {}
        self._artifacts: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def load(self, contract_id: str) -> Optional[Contract]:
        contract = self._contracts.get(contract_id)
        return contract.model_copy(deep=True) if contract else None

    async def current_version(self, contract_id: str) -> Optional[int]:
        contract = self._contracts.get(contract_id)
        return contract.version if contract else None

    async def save(self, contract: Contract, expected_version: Optional[int] = None) -> None:
        async with self._lock:
            existing = self._contracts.get(contract.id)
            if expected_version is None:
                if existing is not None:
                    raise ConflictError(
                        contract.id, None, existing.version,
                        message=f"Contract {contract.id} already exists",
                    )
            else:
                actual = existing.version if existing else None
                if actual != expected_version:
                    raise ConflictError(contract.id, expected_version, actual)
            self._contracts[contract.id] = contract.model_copy(deep=True)

    async def delete(self, contract_id: str, expected_version: Optional[int] = None) -> None:
        async with self._lock:
            existing = self._contracts.get(contract_id)
            if existing is None:
                raise ContractNotFoundError(f"Contract {contract_id} not found")
            if expected_version is not None and existing.version != expected_version:
                raise ConflictError(contract_id, expected_version, existing.version)
            del self._contracts[contract_id]
            self._artifacts.pop(contract_id, None)

    async def list_contracts(
        self, statuses: Optional[Iterable[ContractStatus]] = None,
    ) -> list[Contract]:
        wanted = _status_values(statuses)
        contracts = sorted(self._contracts.values(), key=lambda c: (c.created_at, c.id))
        return [
            c.model_copy(deep=True)
            for c in contracts
            if wanted is None or ContractStatus(c.status).value in wanted
        ]

    async def save_artifact(self, contract_id: str, data: bytes) -> None:
        self._artifacts[contract_id] = bytes(data)

    async def load_artifact(self, contract_id: str) -> Optional[bytes]:
        return self._artifacts.get(contract_id)


class SqlContractStore:
    """SQLAlchemy-backed store; compare-and-swap via ``UPDATE ... WHERE version = :expected``."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    @staticmethod
    def _columns(contract: Contract) -> dict:
        return {
            "version": contract.version,
            "status": ContractStatus(contract.status).value,
            "title": contract.title[:255],
            "template_id": contract.template_id,
            "parent_id": contract.parent_id,
            "expires_at": contract.expires_at,
            "updated_at": contract.updated_at,
            "document": contract.model_dump(mode="json"),
        }

    async def load(self, contract_id: str) -> Optional[Contract]:
        async with self.db.get_session() as session:
            row = await session.get(ContractModel, contract_id)
            if row is None:
                return None
            return Contract.model_validate(row.document)

    async def current_version(self, contract_id: str) -> Optional[int]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ContractModel.version).where(ContractModel.id == contract_id)
            )
            return result.scalar_one_or_none()

    async def save(self, contract: Contract, expected_version: Optional[int] = None) -> None:
        if expected_version is None:
            await self._insert(contract)
            return

        async with self.db.get_session() as session:
            result = await session.execute(
                update(ContractModel)
                .where(
                    ContractModel.id == contract.id,
                    ContractModel.version == expected_version,
                )
                .values(**self._columns(contract))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = await session.execute(
                    select(ContractModel.version).where(ContractModel.id == contract.id)
                )
                raise ConflictError(contract.id, expected_version, current.scalar_one_or_none())

    async def _insert(self, contract: Contract) -> None:
        try:
            async with self.db.get_session() as session:
                existing = await session.get(ContractModel, contract.id)
                if existing is not None:
                    raise ConflictError(
                        contract.id, None, existing.version,
                        message=f"Contract {contract.id} already exists",
                    )
                session.add(ContractModel(
                    id=contract.id,
                    created_at=contract.created_at,
                    **self._columns(contract),
                ))
                await session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                contract.id, None, None,
                message=f"Contract {contract.id} already exists",
            ) from exc

    async def delete(self, contract_id: str, expected_version: Optional[int] = None) -> None:
        async with self.db.get_session() as session:
            query = delete(ContractModel).where(ContractModel.id == contract_id)
            if expected_version is not None:
                query = query.where(ContractModel.version == expected_version)
            result = await session.execute(query.execution_options(synchronize_session=False))
            if result.rowcount != 1:
                current = await session.execute(
                    select(ContractModel.version).where(ContractModel.id == contract_id)
                )
                actual = current.scalar_one_or_none()
                if actual is None:
                    raise ContractNotFoundError(f"Contract {contract_id} not found")
                raise ConflictError(contract_id, expected_version, actual)
            await session.execute(
                delete(ContractArtifactModel).where(ContractArtifactModel.contract_id == contract_id)
            )

    async def list_contracts(
        self, statuses: Optional[Iterable[ContractStatus]] = None,
    ) -> list[Contract]:
        query = select(ContractModel).order_by(ContractModel.created_at.asc(), ContractModel.id.asc())
        wanted = _status_values(statuses)
        if wanted is not None:
            query = query.where(ContractModel.status.in_(sorted(wanted)))
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [Contract.model_validate(row.document) for row in result.scalars().all()]

    async def save_artifact(self, contract_id: str, data: bytes) -> None:
        async with self.db.get_session() as session:
            await session.merge(ContractArtifactModel(
                contract_id=contract_id, data=bytes(data), generated_at=utcnow(),
            ))

    async def load_artifact(self, contract_id: str) -> Optional[bytes]:
        async with self.db.get_session() as session:
            row = await session.get(ContractArtifactModel, contract_id)
            return row.data if row else None


class CachedContractStore:
    """Read-through cache in front of another store.

    Entries are keyed by id and trusted only while their version matches the
    authoritative one, so a write from another process is picked up on the
    next load without any TTL.
    """

    def __init__(self, inner: ContractStore):
        self.inner = inner
        self._cache: dict[str, Contract] = {}
        self.hits = 0
        self.misses = 0

    def invalidate(self, contract_id: str | None = None) -> None:
        if contract_id is None:
            self._cache.clear()
        else:
            self._cache.pop(contract_id, None)

    async def load(self, contract_id: str) -> Optional[Contract]:
        version = await self.inner.current_version(contract_id)
        if version is None:
            self._cache.pop(contract_id, None)
            return None
        cached = self._cache.get(contract_id)
        if cached is not None and cached.version == version:
            self.hits += 1
            return cached.model_copy(deep=True)

        self.misses += 1
        contract = await self.inner.load(contract_id)
        if contract is None:
            self._cache.pop(contract_id, None)
            return None
        self._cache[contract_id] = contract.model_copy(deep=True)
        return contract

    async def current_version(self, contract_id: str) -> Optional[int]:
        return await self.inner.current_version(contract_id)

    async def save(self, contract: Contract, expected_version: Optional[int] = None) -> None:
        try:
            await self.inner.save(contract, expected_version)
        except ConflictError:
            self._cache.pop(contract.id, None)
            raise
        self._cache[contract.id] = contract.model_copy(deep=True)

    async def delete(self, contract_id: str, expected_version: Optional[int] = None) -> None:
        self._cache.pop(contract_id, None)
        await self.inner.delete(contract_id, expected_version)

    async def list_contracts(
        self, statuses: Optional[Iterable[ContractStatus]] = None,
    ) -> list[Contract]:
        contracts = await self.inner.list_contracts(statuses)
        for contract in contracts:
            self._cache[contract.id] = contract.model_copy(deep=True)
        return contracts

    async def save_artifact(self, contract_id: str, data: bytes) -> None:
        await self.inner.save_artifact(contract_id, data)

    async def load_artifact(self, contract_id: str) -> Optional[bytes]:
        return await self.inner.load_artifact(contract_id)
