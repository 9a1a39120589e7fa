"""Tests for contract filtering, sorting and pagination."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from accord_engine.contracts.schemas import Contract, Party, SearchFilters, SortSpec
from accord_engine.contracts.search import apply_filters, contract_date, matches, sort_contracts
from accord_engine.contracts.status import ContractStatus

from tests.conftest import CLIENT_EMAIL, PARTIES

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


def make_contract(title: str, day: int = 0, **overrides) -> Contract:
    fields = {
        "title": title,
        "content": f"Terms for {title}",
        "parties": [Party(**p) for p in PARTIES],
        "created_at": BASE + timedelta(days=day),
    }
    fields.update(overrides)
    return Contract(**fields)


@pytest.fixture
def contracts():
    return [
        make_contract("Alpha NDA", 0, tags=["nda"], template_id="nda-standard"),
        make_contract(
            "Beta campaign", 1, tags=["campaign", "q2"], status=ContractStatus.SENT,
            sent_at=BASE + timedelta(days=2),
        ),
        make_contract(
            "Gamma retainer", 2, status=ContractStatus.SIGNED,
            completed_at=BASE + timedelta(days=5), expires_at=BASE + timedelta(days=60),
        ),
        make_contract(
            "Delta vendor", 3, parties=[
                Party(name="Parts Vendor", email="sales@parts.example", role="client", type="vendor"),
                Party(name="Workshop", email="hello@workshop.example", role="contractor", type="agency"),
            ],
        ),
    ]


def titles(result):
    return [c.title for c in result]


class TestMatches:
    def test_no_filters_match_everything(self, contracts):
        assert titles(apply_filters(contracts, SearchFilters())) == [c.title for c in contracts]

    def test_status_any_of(self, contracts):
        filters = SearchFilters(status=["sent", "signed"])
        assert titles(apply_filters(contracts, filters)) == ["Beta campaign", "Gamma retainer"]

    def test_party_email_case_insensitive(self, contracts):
        filters = SearchFilters(parties={"email": CLIENT_EMAIL.upper()})
        assert len(apply_filters(contracts, filters)) == 3

    def test_party_conditions_hold_for_one_party(self, contracts):
        # the vendor party exists, but not with that email
        filters = SearchFilters(parties={"type": "vendor", "email": "hello@workshop.example"})
        assert apply_filters(contracts, filters) == []

    def test_party_name_substring(self, contracts):
        filters = SearchFilters(parties={"name": "workshop"})
        assert titles(apply_filters(contracts, filters)) == ["Delta vendor"]

    def test_tags_any_of(self, contracts):
        filters = SearchFilters(tags=["q2", "nda"])
        assert titles(apply_filters(contracts, filters)) == ["Alpha NDA", "Beta campaign"]

    def test_template(self, contracts):
        filters = SearchFilters(template_id="nda-standard")
        assert titles(apply_filters(contracts, filters)) == ["Alpha NDA"]

    def test_text_search_title_or_content(self, contracts):
        assert titles(apply_filters(contracts, SearchFilters(search="RETAINER"))) == ["Gamma retainer"]
        assert titles(apply_filters(contracts, SearchFilters(search="terms for delta"))) == ["Delta vendor"]

    def test_date_range_inclusive(self, contracts):
        filters = SearchFilters(date_range={
            "field": "created", "start": BASE + timedelta(days=1), "end": BASE + timedelta(days=2),
        })
        assert titles(apply_filters(contracts, filters)) == ["Beta campaign", "Gamma retainer"]

    def test_date_range_skips_missing_dates(self, contracts):
        filters = SearchFilters(date_range={
            "field": "signed", "start": BASE, "end": BASE + timedelta(days=30),
        })
        assert titles(apply_filters(contracts, filters)) == ["Gamma retainer"]

    def test_filters_combine_with_and(self, contracts):
        filters = SearchFilters(status=["draft"], tags=["nda"], search="alpha")
        assert titles(apply_filters(contracts, filters)) == ["Alpha NDA"]
        filters = SearchFilters(status=["sent"], tags=["nda"])
        assert apply_filters(contracts, filters) == []

    def test_matches_single(self, contracts):
        assert matches(contracts[1], SearchFilters(status=["sent"]))
        assert not matches(contracts[0], SearchFilters(status=["sent"]))

    def test_contract_date_mapping(self, contracts):
        assert contract_date(contracts[2], "signed") == BASE + timedelta(days=5)
        assert contract_date(contracts[2], "expires") == BASE + timedelta(days=60)
        assert contract_date(contracts[0], "sent") is None


class TestSorting:
    def test_title_ascending(self, contracts):
        result = sort_contracts(contracts, SortSpec(field="title", order="asc"))
        assert titles(result) == ["Alpha NDA", "Beta campaign", "Delta vendor", "Gamma retainer"]

    def test_created_descending(self, contracts):
        result = sort_contracts(contracts, SortSpec(field="created_at"))
        assert titles(result) == ["Delta vendor", "Gamma retainer", "Beta campaign", "Alpha NDA"]

    def test_missing_values_sort_last_either_way(self, contracts):
        for order in ("asc", "desc"):
            result = sort_contracts(contracts, SortSpec(field="sent_at", order=order))
            assert result[0].title == "Beta campaign"

    def test_stable_for_ties(self, contracts):
        result = sort_contracts(contracts, SortSpec(field="status", order="asc"))
        assert titles(result) == ["Alpha NDA", "Delta vendor", "Beta campaign", "Gamma retainer"]

    def test_unknown_sort_field_rejected(self):
        with pytest.raises(PydanticValidationError):
            SortSpec(field="content")


class TestPagination:
    def test_unpaginated_without_offset_or_limit(self):
        many = [make_contract(f"C{i:02d}", i) for i in range(25)]
        assert len(apply_filters(many, SearchFilters())) == 25

    def test_default_limit_applies_with_offset(self):
        many = [make_contract(f"C{i:02d}", i) for i in range(25)]
        result = apply_filters(many, SearchFilters(offset=5), default_limit=10)
        assert titles(result) == [f"C{i:02d}" for i in range(5, 15)]

    def test_limit_capped(self):
        many = [make_contract(f"C{i:02d}", i) for i in range(25)]
        result = apply_filters(many, SearchFilters(limit=50), max_limit=20)
        assert len(result) == 20

    def test_sort_before_paginate(self, contracts):
        filters = SearchFilters(sort={"field": "title", "order": "desc"}, limit=2)
        assert titles(apply_filters(contracts, filters)) == ["Gamma retainer", "Delta vendor"]

    def test_negative_offset_rejected(self):
        with pytest.raises(PydanticValidationError):
            SearchFilters(offset=-1)
