"""
In-memory contract filtering, sorting and pagination.

Filters combine with AND. Within one filter:
- status: contract status is any of the listed statuses
- parties: some single party matches every given party condition
  (email exact and case-insensitive, type equal, name substring case-insensitive)
- date_range: the selected date exists and lies within [start, end]
- tags: the contract carries at least one of the listed tags
- search: case-insensitive substring of title or content
"""

from datetime import datetime
from typing import Any, Iterable, Optional

from accord_engine.common.models import as_utc
from accord_engine.contracts.schemas import (
    Contract,
    DateRange,
    Party,
    PartyFilter,
    SearchFilters,
    SortSpec,
)

DATE_FIELDS = {
    "created": "created_at",
    "sent": "sent_at",
    "signed": "completed_at",
    "expires": "expires_at",
}


def contract_date(contract: Contract, field: str) -> Optional[datetime]:
    return as_utc(getattr(contract, DATE_FIELDS[field]))


def _party_matches(party: Party, wanted: PartyFilter) -> bool:
    if wanted.email and party.email.casefold() != wanted.email.strip().casefold():
        return False
    if wanted.type and party.type != wanted.type:
        return False
    if wanted.name and wanted.name.casefold() not in party.name.casefold():
        return False
    return True


def _in_range(contract: Contract, date_range: DateRange) -> bool:
    value = contract_date(contract, date_range.field)
    if value is None:
        return False
    return as_utc(date_range.start) <= value <= as_utc(date_range.end)


def matches(contract: Contract, filters: SearchFilters) -> bool:
    if filters.status and contract.status not in filters.status:
        return False
    if filters.parties and not any(_party_matches(p, filters.parties) for p in contract.parties):
        return False
    if filters.date_range and not _in_range(contract, filters.date_range):
        return False
    if filters.template_id and contract.template_id != filters.template_id:
        return False
    if filters.tags and not set(filters.tags) & set(contract.tags):
        return False
    if filters.search:
        needle = filters.search.casefold()
        if needle not in contract.title.casefold() and needle not in contract.content.casefold():
            return False
    return True


def _sort_value(contract: Contract, field: str) -> Any:
    value = getattr(contract, field)
    if isinstance(value, datetime):
        return as_utc(value)
    if hasattr(value, "value"):  # enums sort by their wire value
        return value.value
    if isinstance(value, str):
        return value.casefold()
    return value


def sort_contracts(contracts: list[Contract], sort: SortSpec) -> list[Contract]:
    """Stable sort; contracts without a value for the field always go last."""
    present = [c for c in contracts if getattr(c, sort.field) is not None]
    missing = [c for c in contracts if getattr(c, sort.field) is None]
    present.sort(key=lambda c: _sort_value(c, sort.field), reverse=sort.order == "desc")
    return present + missing


def apply_filters(
    contracts: Iterable[Contract],
    filters: SearchFilters,
    default_limit: int = 10,
    max_limit: int = 100,
) -> list[Contract]:
    """Filter, then sort, then paginate.

    Pagination only applies when offset or limit is given; a missing limit
    then falls back to ``default_limit``. Limits are capped at ``max_limit``.
    """
    result = [c for c in contracts if matches(c, filters)]
    if filters.sort:
        result = sort_contracts(result, filters.sort)
    if filters.offset is not None or filters.limit is not None:
        offset = filters.offset or 0
        limit = min(filters.limit or default_limit, max_limit)
        result = result[offset:offset + limit]
    return result
