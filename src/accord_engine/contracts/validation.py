"""
Input validation for contract create/update requests.

Validation never mutates its inputs. Every failure raises ValidationError
naming the offending fields so callers can explain the refusal.
"""

import re
from typing import Any, Sequence, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from accord_engine.common.exceptions import ValidationError
from accord_engine.contracts.schemas import (
    Contract,
    ContractCreate,
    ContractUpdate,
    PartyCreate,
    PartyRole,
)
from accord_engine.contracts.status import PROTOCOL_STATUSES, ContractStatus, check_transition

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Fields frozen once a contract leaves DRAFT
CONTENT_FIELDS = ("parties", "content")

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: type[ModelT], data: Any) -> ModelT:
    """Coerce operation input into ``model``, raising ValidationError with the failing fields."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = exc.errors()
        fields = [".".join(str(part) for part in err["loc"]) for err in errors]
        problems = "; ".join(
            f"{name or model.__name__}: {err['msg']}" for name, err in zip(fields, errors)
        )
        raise ValidationError(f"Invalid {model.__name__}: {problems}", fields=fields) from exc


def validate_parties(parties: Sequence[PartyCreate]) -> None:
    """
    Check the party list of a contract.

    Checks:
    - at least one client and one contractor
    - every party has a name and a well-formed email
    - emails are unique within the contract (case-insensitive)
    """
    roles = {p.role for p in parties}
    missing = [r.value for r in (PartyRole.CLIENT, PartyRole.CONTRACTOR) if r not in roles]
    if missing:
        raise ValidationError(
            "A contract needs at least one client and one contractor party "
            f"(missing: {', '.join(missing)})",
            fields=["parties"],
        )

    seen: set[str] = set()
    for i, party in enumerate(parties):
        if not party.name or not party.name.strip():
            raise ValidationError(f"Party {i} has no name", fields=[f"parties[{i}].name"])
        if not EMAIL_PATTERN.match(party.email or ""):
            raise ValidationError(
                f"Party {i} has an invalid email address: {party.email!r}",
                fields=[f"parties[{i}].email"],
            )
        key = party.email.strip().casefold()
        if key in seen:
            raise ValidationError(
                f"Duplicate party email {party.email!r}; emails identify signers",
                fields=[f"parties[{i}].email"],
            )
        seen.add(key)


def validate_create(params: ContractCreate) -> None:
    if not params.template_id and not (params.content and params.content.strip()):
        raise ValidationError(
            "Either a template_id or non-empty content is required",
            fields=["template_id", "content"],
        )
    validate_parties(params.parties)
    if params.expires_in is not None and params.expires_in <= 0:
        raise ValidationError(
            f"expires_in must be a positive number of days, got {params.expires_in}",
            fields=["expires_in"],
        )


def validate_update(patch: ContractUpdate, contract: Contract) -> None:
    changes = patch.model_dump(exclude_unset=True)
    status = ContractStatus(contract.status)

    if status != ContractStatus.DRAFT:
        frozen = [f for f in CONTENT_FIELDS if f in changes]
        if "variables" in changes and contract.template_id:
            # variable changes re-render templated content
            frozen.append("variables")
        if frozen:
            raise ValidationError(
                f"{', '.join(frozen)} cannot change once the contract has left draft "
                f"(status is {status.value})",
                fields=frozen,
            )

    if "parties" in changes:
        if patch.parties is None:
            raise ValidationError("parties cannot be null", fields=["parties"])
        validate_parties(patch.parties)

    if "content" in changes and not contract.template_id:
        if not (patch.content and patch.content.strip()):
            raise ValidationError("content cannot be emptied", fields=["content"])

    target = changes.get("status")
    if target is not None and ContractStatus(target) != status:
        target = ContractStatus(target)
        if target in PROTOCOL_STATUSES:
            raise ValidationError(
                f"Status {target.value} is set by the send/view/sign operations, not by update",
                fields=["status"],
            )
        check_transition(status, target)
