"""Tests for contract stores: compare-and-swap writes, listing, artifacts, caching."""

from datetime import timedelta

import pytest

from accord_engine.common.exceptions import ConflictError, ContractNotFoundError
from accord_engine.contracts.schemas import Contract, Party
from accord_engine.contracts.status import ContractStatus
from accord_engine.contracts.store import (
    CachedContractStore,
    InMemoryContractStore,
    SqlContractStore,
)

from tests.conftest import PARTIES


def make_contract(**overrides) -> Contract:
    fields = {
        "title": "Store test",
        "content": "Body",
        "parties": [Party(**p) for p in PARTIES],
    }
    fields.update(overrides)
    return Contract(**fields)


def bumped(contract: Contract, **changes) -> Contract:
    updated = contract.model_copy(deep=True)
    updated.version = contract.version + 1
    for name, value in changes.items():
        setattr(updated, name, value)
    return updated


@pytest.fixture(params=["memory", "sql", "cached"])
def any_store(request, db):
    if request.param == "memory":
        return InMemoryContractStore()
    if request.param == "sql":
        return SqlContractStore(db)
    return CachedContractStore(SqlContractStore(db))


class TestCompareAndSwap:
    async def test_insert_and_load(self, any_store):
        contract = make_contract()
        await any_store.save(contract, expected_version=None)
        loaded = await any_store.load(contract.id)
        assert loaded == contract
        assert await any_store.current_version(contract.id) == 1

    async def test_load_missing(self, any_store):
        assert await any_store.load("missing") is None
        assert await any_store.current_version("missing") is None

    async def test_duplicate_insert_conflicts(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        with pytest.raises(ConflictError):
            await any_store.save(contract, expected_version=None)

    async def test_update_with_matching_version(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        await any_store.save(bumped(contract, title="Renamed"), expected_version=1)
        loaded = await any_store.load(contract.id)
        assert loaded.title == "Renamed"
        assert loaded.version == 2

    async def test_stale_write_loses(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        await any_store.save(bumped(contract, title="First writer"), expected_version=1)

        with pytest.raises(ConflictError) as exc:
            await any_store.save(bumped(contract, title="Second writer"), expected_version=1)
        assert exc.value.code == "CONFLICT"
        assert exc.value.expected_version == 1
        assert exc.value.actual_version == 2
        assert (await any_store.load(contract.id)).title == "First writer"

    async def test_update_of_missing_contract_conflicts(self, any_store):
        with pytest.raises(ConflictError):
            await any_store.save(make_contract(version=2), expected_version=1)

    async def test_delete(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        await any_store.delete(contract.id, expected_version=1)
        assert await any_store.load(contract.id) is None

    async def test_delete_stale_version(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        await any_store.save(bumped(contract), expected_version=1)
        with pytest.raises(ConflictError):
            await any_store.delete(contract.id, expected_version=1)

    async def test_delete_missing(self, any_store):
        with pytest.raises(ContractNotFoundError):
            await any_store.delete("missing")


class TestListing:
    async def test_list_in_creation_order(self, any_store):
        first = make_contract(title="First")
        second = make_contract(title="Second", created_at=first.created_at + timedelta(seconds=1))
        await any_store.save(first)
        await any_store.save(second)
        titles = [c.title for c in await any_store.list_contracts()]
        assert titles == ["First", "Second"]

    async def test_list_by_status(self, any_store):
        draft = make_contract(title="Draft")
        sent = make_contract(title="Sent", status=ContractStatus.SENT)
        await any_store.save(draft)
        await any_store.save(sent)
        found = await any_store.list_contracts([ContractStatus.SENT, ContractStatus.VIEWED])
        assert [c.id for c in found] == [sent.id]


class TestArtifacts:
    async def test_round_trip(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        assert await any_store.load_artifact(contract.id) is None
        await any_store.save_artifact(contract.id, b"final copy")
        assert await any_store.load_artifact(contract.id) == b"final copy"

    async def test_overwrite(self, any_store):
        contract = make_contract()
        await any_store.save(contract)
        await any_store.save_artifact(contract.id, b"one")
        await any_store.save_artifact(contract.id, b"two")
        assert await any_store.load_artifact(contract.id) == b"two"


class TestIsolation:
    async def test_memory_store_hands_out_copies(self):
        store = InMemoryContractStore()
        contract = make_contract()
        await store.save(contract)
        loaded = await store.load(contract.id)
        loaded.title = "Mutated"
        loaded.parties[0].name = "Mutated"
        again = await store.load(contract.id)
        assert again.title == "Store test"
        assert again.parties[0].name == "Brand Co"


class TestCachedStore:
    async def test_load_after_save_is_a_hit(self, db):
        store = CachedContractStore(SqlContractStore(db))
        contract = make_contract()
        await store.save(contract)
        await store.load(contract.id)
        await store.load(contract.id)
        assert store.hits == 2
        assert store.misses == 0

    async def test_external_write_is_picked_up(self, db):
        inner = SqlContractStore(db)
        store = CachedContractStore(inner)
        contract = make_contract()
        await store.save(contract)
        await store.load(contract.id)

        # another process writes behind the cache
        await inner.save(bumped(contract, title="Elsewhere"), expected_version=1)

        loaded = await store.load(contract.id)
        assert loaded.title == "Elsewhere"
        assert store.misses == 1

    async def test_conflict_evicts_entry(self, db):
        inner = SqlContractStore(db)
        store = CachedContractStore(inner)
        contract = make_contract()
        await store.save(contract)
        await inner.save(bumped(contract), expected_version=1)

        with pytest.raises(ConflictError):
            await store.save(bumped(contract, title="Stale"), expected_version=1)
        assert contract.id not in store._cache

    async def test_delete_evicts(self, db):
        store = CachedContractStore(SqlContractStore(db))
        contract = make_contract()
        await store.save(contract)
        await store.delete(contract.id, expected_version=1)
        assert await store.load(contract.id) is None

    async def test_invalidate(self, db):
        store = CachedContractStore(SqlContractStore(db))
        contract = make_contract()
        await store.save(contract)
        store.invalidate()
        await store.load(contract.id)
        assert store.misses == 1
