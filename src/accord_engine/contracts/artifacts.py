"""Final-artifact generation for fully signed contracts."""

import hashlib
from typing import Protocol

from accord_engine.contracts.schemas import Contract


class ArtifactGenerator(Protocol):
    async def render_final(self, contract: Contract) -> bytes: ...


def content_digest(contract: Contract) -> str:
    return hashlib.sha256(contract.content.encode("utf-8")).hexdigest()


class TextArtifactGenerator:
    """Plain-text signed-contract record.

    Lists the content, its SHA-256 digest, the parties and every recorded
    signature with its verification outcome.
    """

    media_type = "text/plain; charset=utf-8"

    async def render_final(self, contract: Contract) -> bytes:
        lines = [
            contract.title,
            "=" * len(contract.title),
            "",
            f"Contract ID: {contract.id}",
            f"Version: {contract.version}",
            f"Status: {contract.status.value}",
            f"Completed: {contract.completed_at.isoformat() if contract.completed_at else '-'}",
            f"Content SHA-256: {content_digest(contract)}",
            "",
            contract.content,
            "",
            "Parties",
            "-------",
        ]
        for party in contract.parties:
            signed = party.signed_at.isoformat() if party.signed_at else "not signed"
            lines.append(f"{party.name} <{party.email}> ({party.role.value}): {signed}")

        lines += ["", "Signatures", "----------"]
        for sig in contract.signatures:
            party = contract.get_party(sig.party_id)
            who = party.email if party else sig.party_id
            outcome = "verified" if sig.verified else "unverified"
            lines.append(
                f"{sig.timestamp.isoformat()} {who} {sig.type} {outcome}"
                + (f" from {sig.ip_address}" if sig.ip_address else "")
            )
        return ("\n".join(lines) + "\n").encode("utf-8")
