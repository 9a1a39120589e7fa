"""Dependency injection singletons for Accord-Engine."""

from accord_engine.audit.service import AuditLog
from accord_engine.common.config import get_settings
from accord_engine.common.database import DatabaseManager
from accord_engine.contracts.engine import ContractEngine
from accord_engine.contracts.events import EventDispatcher
from accord_engine.contracts.store import (
    CachedContractStore,
    ContractStore,
    InMemoryContractStore,
    SqlContractStore,
)
from accord_engine.notifications.sender import (
    LoggingNotificationSender,
    NotificationSender,
    WebhookNotificationSender,
)
from accord_engine.signatures.verifier import SignatureVerifier
from accord_engine.templates.renderer import JinjaTemplateRenderer, default_templates

_db: DatabaseManager | None = None
_store: ContractStore | None = None
_audit: AuditLog | None = None
_verifier: SignatureVerifier | None = None
_templates: JinjaTemplateRenderer | None = None
_notifier: NotificationSender | None = None
_dispatcher: EventDispatcher | None = None
_engine: ContractEngine | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_contract_store() -> ContractStore:
    global _store
    if _store is None:
        settings = get_settings()
        if settings.store_backend == "memory":
            store: ContractStore = InMemoryContractStore()
        else:
            store = SqlContractStore(get_db())
        if settings.cache_contracts:
            store = CachedContractStore(store)
        _store = store
    return _store


def get_audit_log() -> AuditLog:
    global _audit
    if _audit is None:
        _audit = AuditLog(get_settings(), get_db())
    return _audit


def get_verifier() -> SignatureVerifier:
    global _verifier
    if _verifier is None:
        _verifier = SignatureVerifier(get_settings())
    return _verifier


def get_template_renderer() -> JinjaTemplateRenderer:
    global _templates
    if _templates is None:
        _templates = JinjaTemplateRenderer(default_templates())
    return _templates


def get_notifier() -> NotificationSender:
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.notify_webhook_url:
            _notifier = WebhookNotificationSender(settings)
        else:
            _notifier = LoggingNotificationSender()
    return _notifier


def get_dispatcher() -> EventDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EventDispatcher()
    return _dispatcher


def get_contract_engine() -> ContractEngine:
    global _engine
    if _engine is None:
        _engine = ContractEngine(
            get_settings(),
            get_contract_store(),
            get_audit_log(),
            get_verifier(),
            template_renderer=get_template_renderer(),
            notifier=get_notifier(),
            dispatcher=get_dispatcher(),
        )
    return _engine


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _store, _audit, _verifier, _templates, _notifier, _dispatcher, _engine
    _db = None
    _store = None
    _audit = None
    _verifier = None
    _templates = None
    _notifier = None
    _dispatcher = None
    _engine = None
