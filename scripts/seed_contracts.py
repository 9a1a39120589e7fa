#!/usr/bin/env python3
"""Seed the database with demo contracts: one draft and one awaiting signatures.

Usage:
    python -m scripts.seed_contracts
    # or from project root:
    python scripts/seed_contracts.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from accord_engine.deps import get_contract_engine, get_db

DEMO_PARTIES = [
    {"name": "Acme Brands", "email": "legal@acme.example", "role": "client", "type": "brand"},
    {"name": "Jo Creator", "email": "jo@creator.example", "role": "contractor", "type": "influencer"},
]


async def seed_contracts() -> None:
    db = get_db()
    await db.init()
    await db.create_all()

    engine = get_contract_engine()

    draft = await engine.create({
        "title": "Demo services agreement",
        "content": "The contractor will deliver the agreed services.\n\nPayment is due in 30 days.",
        "parties": DEMO_PARTIES,
        "tags": ["demo"],
        "created_by": "seed",
    })
    print(f"  [created] {draft.id} {draft.title} ({draft.status.value})")

    nda = await engine.create({
        "template_id": "nda-standard",
        "variables": {
            "effective_date": "2025-01-15",
            "disclosing_party.name": "Acme Brands",
            "receiving_party.name": "Jo Creator",
            "purpose": "evaluating a sponsorship",
        },
        "parties": DEMO_PARTIES,
        "tags": ["demo", "nda"],
        "created_by": "seed",
    })
    nda = await engine.send(nda.id, {"reminder_days": [3, 7]}, performed_by="seed")
    print(f"  [created] {nda.id} {nda.title} ({nda.status.value})")

    await db.close()
    print("\nDone. 2 contracts seeded.")


if __name__ == "__main__":
    asyncio.run(seed_contracts())
