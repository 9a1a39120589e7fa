"""Shared test fixtures for Accord-Engine."""

import os
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from accord_engine.audit.service import AuditLog
from accord_engine.common.config import AccordSettings
from accord_engine.common.database import DatabaseManager
from accord_engine.contracts.engine import ContractEngine
from accord_engine.contracts.events import EventDispatcher
from accord_engine.contracts.store import InMemoryContractStore
from accord_engine.signatures.verifier import SignatureVerifier
from accord_engine.templates.renderer import JinjaTemplateRenderer, default_templates


HMAC_KEY = "test-hmac-key-for-unit-tests"
API_KEY = "test-admin-api-key"

CLIENT_EMAIL = "client@brand.example"
CONTRACTOR_EMAIL = "creator@studio.example"
WITNESS_EMAIL = "witness@law.example"

PARTIES = [
    {"name": "Brand Co", "email": CLIENT_EMAIL, "role": "client", "type": "brand"},
    {"name": "Studio Creator", "email": CONTRACTOR_EMAIL, "role": "contractor", "type": "influencer"},
]


def make_settings(**overrides) -> AccordSettings:
    defaults = {"hmac_key": HMAC_KEY, "db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return AccordSettings(**defaults)


def contract_params(**overrides) -> dict:
    params = {
        "title": "Sponsored post agreement",
        "content": "The creator publishes one sponsored post.\n\nPayment within 30 days.",
        "parties": [dict(p) for p in PARTIES],
        "tags": ["sponsorship"],
        "created_by": "ops@brand.example",
    }
    params.update(overrides)
    return params


def typed(text: str = "Jane Q. Signer") -> dict:
    return {"type": "typed", "data": text}


@pytest.fixture
def hmac_key():
    return HMAC_KEY


@pytest.fixture
def api_key():
    return API_KEY


# ── Engine wiring ──


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def audit_log(db):
    return AuditLog(make_settings(), db)


@pytest.fixture
def store():
    return InMemoryContractStore()


@pytest.fixture
def notifier():
    sender = AsyncMock()
    sender.notify = AsyncMock()
    return sender


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def received(dispatcher):
    """Every event delivered through the dispatcher, in order."""
    events = []
    dispatcher.subscribe("*", events.append)
    return events


@pytest.fixture
def make_engine(store, audit_log, notifier, dispatcher):
    def _make(**overrides) -> ContractEngine:
        settings = make_settings(**overrides)
        return ContractEngine(
            settings,
            store,
            audit_log,
            SignatureVerifier(settings),
            template_renderer=JinjaTemplateRenderer(default_templates()),
            notifier=notifier,
            dispatcher=dispatcher,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


# ── HTTP ──


@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["ACCORD_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["ACCORD_HMAC_KEY"] = HMAC_KEY
    os.environ["ACCORD_API_KEY"] = API_KEY
    os.environ["ACCORD_NOTIFY_WEBHOOK_URL"] = ""
    os.environ["ACCORD_SWEEP_INTERVAL"] = "0"

    # Clear caches and singletons so new env vars take effect
    from accord_engine.common.config import get_settings
    get_settings.cache_clear()

    from accord_engine.deps import reset_singletons
    reset_singletons()

    from accord_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from accord_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-Accord-Api-Key": API_KEY}
