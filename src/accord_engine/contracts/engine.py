"""
Contract lifecycle engine.

Owns every mutation of a Contract. Each mutating operation loads the
current version, validates, builds the new state on a copy and commits it
through one path:

    copy at next version -> mutate -> compare-and-swap save
        -> audit entry -> notifications -> domain events

A lost compare-and-swap raises ConflictError before any side effect runs.
Audit, notification, artifact and event failures are logged and never undo
the saved contract.
"""

import asyncio
import html
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from accord_engine.audit.schemas import AuditAction, AuditEntry
from accord_engine.audit.service import AuditLog
from accord_engine.common.config import AccordSettings
from accord_engine.common.exceptions import (
    ConflictError,
    ContractError,
    ContractNotFoundError,
    SignatureError,
    TemplateError,
    ValidationError,
)
from accord_engine.common.models import as_utc, utcnow
from accord_engine.contracts.artifacts import ArtifactGenerator, TextArtifactGenerator
from accord_engine.contracts.events import DomainEvent, EventDispatcher, EventOutbox
from accord_engine.contracts.schemas import (
    Contract,
    ContractCreate,
    ContractUpdate,
    DateRange,
    ExpiringQuery,
    Party,
    PartySigningStatus,
    SearchFilters,
    SendOptions,
    Signature,
    SignRequest,
    normalize_tags,
)
from accord_engine.contracts.search import apply_filters
from accord_engine.contracts.status import (
    EXPIRABLE_STATUSES,
    SIGNABLE_STATUSES,
    ContractStatus,
    check_transition,
)
from accord_engine.contracts.store import ContractStore
from accord_engine.contracts.validation import parse_input, validate_create, validate_update
from accord_engine.notifications.sender import (
    ContractNotification,
    NotificationSender,
    NotificationType,
    compose_notification,
)
from accord_engine.signatures.verifier import SignatureVerifier
from accord_engine.templates.renderer import TemplateRenderer

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

# Fields that may be explicitly cleared by an update
NULLABLE_UPDATE_FIELDS = ("expires_at", "renewal_date")

RENEWABLE_STATUSES = frozenset({ContractStatus.SIGNED, ContractStatus.ACTIVE})
DEFAULT_EXPIRING_STATUSES = [ContractStatus.ACTIVE, ContractStatus.SIGNED]


def content_to_html(content: str) -> str:
    """Blank-line separated paragraphs as escaped ``<p>`` blocks."""
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", content.strip()) if p.strip()]
    return "\n".join(
        "<p>" + html.escape(p).replace("\n", "<br>\n") + "</p>" for p in paragraphs
    )


class ContractEngine:
    """Lifecycle operations over contracts held in a ContractStore."""

    def __init__(
        self,
        settings: AccordSettings,
        store: ContractStore,
        audit_log: AuditLog,
        verifier: SignatureVerifier,
        template_renderer: Optional[TemplateRenderer] = None,
        notifier: Optional[NotificationSender] = None,
        artifact_generator: Optional[ArtifactGenerator] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.settings = settings
        self.store = store
        self.audit_log = audit_log
        self.verifier = verifier
        self.template_renderer = template_renderer
        self.notifier = notifier
        self.artifact_generator = artifact_generator or TextArtifactGenerator()
        self.dispatcher = dispatcher
        self.outbox = EventOutbox(settings.outbox_max_events)
        self._sweep_lock = asyncio.Lock()

    # ── Create / read ──

    async def create(self, params: ContractCreate | dict[str, Any]) -> Contract:
        params = parse_input(ContractCreate, params)
        validate_create(params)

        title = params.title
        expires_in = params.expires_in
        if params.template_id:
            if self.template_renderer is None:
                raise TemplateError("No template renderer is configured")
            template = self.template_renderer.get(params.template_id)
            content = self.template_renderer.render(params.template_id, params.variables)
            title = title or template.name
            if expires_in is None:
                expires_in = template.default_expiry_days
        else:
            content = params.content or ""

        if params.parent_id and await self.store.current_version(params.parent_id) is None:
            raise ValidationError(
                f"Parent contract {params.parent_id} does not exist", fields=["parent_id"],
            )

        now = utcnow()
        contract = Contract(
            parent_id=params.parent_id,
            template_id=params.template_id,
            title=title or "Untitled contract",
            content=content,
            content_html=content_to_html(content),
            variables=params.variables,
            metadata=params.metadata,
            tags=params.tags,
            parties=[Party(**p.model_dump()) for p in params.parties],
            status=ContractStatus.DRAFT,
            created_by=params.created_by,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(days=expires_in) if expires_in else None,
        )
        await self.store.save(contract, expected_version=None)
        logger.info("Contract created: %s (%s)", contract.id, contract.title)

        await self._after_commit(
            contract,
            AuditAction.CREATED,
            params.created_by,
            details={
                "title": contract.title,
                "template_id": contract.template_id,
                "parties": len(contract.parties),
            },
            events=[self._event("contract:created", contract)],
        )
        return contract

    async def get(self, contract_id: str) -> Contract:
        contract = await self.store.load(contract_id)
        if contract is None:
            raise ContractNotFoundError(f"Contract {contract_id} not found")
        return contract

    # ── Update / delete ──

    async def update(
        self,
        contract_id: str,
        patch: ContractUpdate | dict[str, Any],
        performed_by: str = SYSTEM_ACTOR,
    ) -> Contract:
        patch = parse_input(ContractUpdate, patch)
        contract = await self.get(contract_id)
        validate_update(patch, contract)

        updated = self._next_version(contract)
        changed: list[str] = []
        for name in sorted(patch.model_fields_set):
            value = getattr(patch, name)
            if value is None and name not in NULLABLE_UPDATE_FIELDS:
                continue
            if name == "status":
                if ContractStatus(value) == contract.status:
                    continue
                updated.status = ContractStatus(value)
            elif name == "parties":
                updated.parties = [Party(**p.model_dump()) for p in value]
            elif name == "tags":
                updated.tags = normalize_tags(value)
            elif name == "content":
                updated.content = value
                updated.content_html = content_to_html(value)
            else:
                setattr(updated, name, value)
            changed.append(name)

        if "variables" in changed and contract.template_id:
            if self.template_renderer is None:
                raise TemplateError("No template renderer is configured")
            updated.content = self.template_renderer.render(contract.template_id, updated.variables)
            updated.content_html = content_to_html(updated.content)
            if "content" not in changed:
                changed.append("content")

        if not changed:
            return contract

        details: dict[str, Any] = {"changes": sorted(changed)}
        if updated.status != contract.status:
            details["status"] = {"from": contract.status.value, "to": updated.status.value}

        return await self._commit(
            contract,
            updated,
            AuditAction.UPDATED,
            performed_by,
            details=details,
            events=[self._event("contract:updated", updated, changes=sorted(changed))],
        )

    async def delete(self, contract_id: str, performed_by: str = SYSTEM_ACTOR) -> None:
        """Delete a draft. Contracts that have left DRAFT are never deleted."""
        contract = await self.get(contract_id)
        if contract.status != ContractStatus.DRAFT:
            raise ContractError(
                f"Only draft contracts can be deleted; contract {contract_id} is {contract.status.value}"
            )
        await self.store.delete(contract_id, expected_version=contract.version)
        logger.info("Contract deleted: %s", contract_id)

        await self._after_commit(
            contract,
            AuditAction.DELETED,
            performed_by,
            details={"title": contract.title, "version": contract.version},
            events=[self._event("contract:deleted", contract)],
        )

    # ── Send / view ──

    async def send(
        self,
        contract_id: str,
        options: SendOptions | dict[str, Any] | None = None,
        performed_by: str = SYSTEM_ACTOR,
    ) -> Contract:
        options = parse_input(SendOptions, options or {})
        contract = await self.get(contract_id)
        check_transition(contract.status, ContractStatus.SENT)

        if options.expires_in is not None and options.expires_in <= 0:
            raise ValidationError(
                f"expires_in must be a positive number of days, got {options.expires_in}",
                fields=["expires_in"],
            )
        bad_days = [d for d in options.reminder_days if d <= 0]
        if bad_days:
            raise ValidationError(
                f"reminder_days must be positive, got {bad_days}", fields=["reminder_days"],
            )

        now = utcnow()
        updated = self._next_version(contract)
        updated.status = ContractStatus.SENT
        updated.sent_at = now
        if options.expires_in:
            updated.expires_at = now + timedelta(days=options.expires_in)
        updated.reminders_due = sorted(now + timedelta(days=d) for d in set(options.reminder_days))

        recipients = [p for p in updated.parties if p.must_sign]
        notifications = [
            self._compose(
                NotificationType.CONTRACT_SENT, updated, party,
                subject=options.subject, message=options.message,
                metadata={"attachments": options.attachments} if options.attachments else None,
            )
            for party in recipients
        ]
        return await self._commit(
            contract,
            updated,
            AuditAction.SENT,
            performed_by,
            details={
                "recipients": [p.email for p in recipients],
                "reminder_days": sorted(set(options.reminder_days)),
                "expires_at": updated.expires_at.isoformat() if updated.expires_at else None,
            },
            events=[self._event("contract:sent", updated, recipients=[p.email for p in recipients])],
            notifications=notifications,
        )

    async def record_view(
        self,
        contract_id: str,
        viewer_email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Contract:
        """Stamp a party's first view; the first view of a SENT contract moves it to VIEWED."""
        contract = await self.get(contract_id)
        party = contract.find_party(viewer_email)
        if party is None:
            raise ContractError(f"{viewer_email} is not a party to contract {contract_id}")
        if contract.status not in SIGNABLE_STATUSES:
            raise ContractError(
                f"Contract {contract_id} cannot be viewed for signing in status {contract.status.value}"
            )
        if party.viewed_at is not None:
            return contract

        updated = self._next_version(contract)
        updated.get_party(party.id).viewed_at = utcnow()
        if contract.status == ContractStatus.SENT:
            check_transition(contract.status, ContractStatus.VIEWED)
            updated.status = ContractStatus.VIEWED

        return await self._commit(
            contract,
            updated,
            AuditAction.VIEWED,
            party.email,
            details={"party_id": party.id, "status": updated.status.value},
            events=[self._event("contract:viewed", updated, viewer_email=party.email)],
            ip_address=ip_address,
            user_agent=user_agent,
        )

    # ── Sign ──

    async def sign(self, request: SignRequest | dict[str, Any]) -> Contract:
        """Record one party's signature and recompute completion."""
        request = parse_input(SignRequest, request)
        contract = await self.get(request.contract_id)

        party = contract.find_party(request.signer_email)
        if party is None:
            logger.info(
                "Signature refused: %s is not a party to contract %s",
                request.signer_email, contract.id,
            )
            raise SignatureError(
                f"{request.signer_email} is not a party to contract {contract.id}"
            )
        if contract.status not in SIGNABLE_STATUSES:
            raise SignatureError(
                f"Contract {contract.id} cannot be signed in status {contract.status.value}; "
                f"signing requires one of: {', '.join(sorted(s.value for s in SIGNABLE_STATUSES))}"
            )
        if self.settings.resign_policy == "reject" and contract.signatures_for(party.id):
            raise SignatureError(f"{party.email} has already signed contract {contract.id}")

        result = self.verifier.check(request.signature)
        if not result.valid:
            logger.warning(
                "Unverified %s signature from %s on contract %s: %s",
                request.signature.type, party.email, contract.id, result.code,
            )

        now = utcnow()
        signature = Signature(
            party_id=party.id,
            type=request.signature.type,
            data=request.signature.data,
            timestamp=now,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            location=request.location,
            verified=result.valid,
            verification_method=result.method or None,
        )

        updated = self._next_version(contract)
        updated.signatures.append(signature)
        updated.get_party(party.id).signed_at = now

        target = ContractStatus.SIGNED if updated.all_required_signed() else ContractStatus.PARTIALLY_SIGNED
        if target != contract.status:
            check_transition(contract.status, target)
            updated.status = target
        completed = target == ContractStatus.SIGNED and contract.completed_at is None
        if completed:
            updated.completed_at = now

        notifications = [self._compose(NotificationType.CONTRACT_SIGNED, updated, party)]
        events = [self._event(
            "contract:signed", updated,
            signer_email=party.email, signature_id=signature.id, verified=result.valid,
        )]
        if completed:
            notifications += [
                self._compose(NotificationType.CONTRACT_COMPLETED, updated, p) for p in updated.parties
            ]
            events.append(self._event("contract:completed", updated))

        return await self._commit(
            contract,
            updated,
            AuditAction.SIGNED,
            party.email,
            details={
                "party_id": party.id,
                "signature": {
                    "id": signature.id,
                    "type": signature.type,
                    "verified": result.valid,
                    "code": result.code,
                },
                "location": request.location.model_dump() if request.location else None,
                "status": updated.status.value,
            },
            events=events,
            notifications=notifications,
            ip_address=request.ip_address or None,
            user_agent=request.user_agent or None,
            render_artifact=completed,
        )

    # ── Reminders ──

    async def send_reminders(self, contract_id: str, performed_by: str = SYSTEM_ACTOR) -> Contract:
        """Remind every client/contractor party that has not signed yet."""
        contract = await self.get(contract_id)
        if contract.status not in SIGNABLE_STATUSES:
            raise ContractError(
                f"Reminders are only sent while awaiting signatures; "
                f"contract {contract_id} is {contract.status.value}"
            )
        return await self._remind(contract, performed_by, due=[])

    async def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """Send scheduled reminders that have come due; returns contracts reminded."""
        now = as_utc(now) or utcnow()
        reminded = 0
        for contract in await self.store.list_contracts(SIGNABLE_STATUSES):
            due = [d for d in contract.reminders_due if as_utc(d) <= now]
            if not due:
                continue
            try:
                await self._remind(contract, SYSTEM_ACTOR, due=due)
            except ConflictError:
                logger.warning("Scheduled reminder for contract %s skipped: modified concurrently", contract.id)
                continue
            reminded += 1
        if reminded:
            logger.info("Scheduled reminders sent for %d contract(s)", reminded)
        return reminded

    async def _remind(self, contract: Contract, performed_by: str, due: list[datetime]) -> Contract:
        signed_ids = {s.party_id for s in contract.signatures}
        pending = [p for p in contract.parties if p.must_sign and p.id not in signed_ids]
        if not pending:
            return contract

        now = utcnow()
        updated = self._next_version(contract)
        consumed = set(due)
        updated.reminders_due = [d for d in updated.reminders_due if d not in consumed]
        for party in pending:
            target = updated.get_party(party.id)
            target.reminders_sent += 1
            target.last_reminder_at = now

        return await self._commit(
            contract,
            updated,
            AuditAction.REMINDER_SENT,
            performed_by,
            details={"recipients": [p.email for p in pending], "scheduled": bool(due)},
            events=[self._event("contract:reminder_sent", updated, recipients=[p.email for p in pending])],
            notifications=[
                self._compose(NotificationType.SIGNATURE_REMINDER, updated, p) for p in pending
            ],
        )

    # ── Terminate / renew ──

    async def terminate(
        self, contract_id: str, reason: str = "", performed_by: str = SYSTEM_ACTOR,
    ) -> Contract:
        contract = await self.get(contract_id)
        check_transition(contract.status, ContractStatus.TERMINATED)

        updated = self._next_version(contract)
        updated.status = ContractStatus.TERMINATED
        return await self._commit(
            contract,
            updated,
            AuditAction.TERMINATED,
            performed_by,
            details={"reason": reason, "from": contract.status.value},
            events=[self._event("contract:terminated", updated, reason=reason)],
            notifications=[
                self._compose(NotificationType.CONTRACT_TERMINATED, updated, p, message=reason or None)
                for p in updated.parties
            ],
        )

    async def renew(
        self, contract_id: str, extend_days: int, performed_by: str = SYSTEM_ACTOR,
    ) -> Contract:
        """Extend the term of a signed or active contract."""
        if extend_days is None or extend_days < 1:
            raise ValidationError(
                f"extend_days must be a positive number of days, got {extend_days}",
                fields=["extend_days"],
            )
        contract = await self.get(contract_id)
        if contract.status not in RENEWABLE_STATUSES:
            raise ContractError(
                f"Only signed or active contracts can be renewed; contract {contract_id} is "
                f"{contract.status.value}"
            )

        now = utcnow()
        base = max(now, as_utc(contract.expires_at)) if contract.expires_at else now
        updated = self._next_version(contract)
        updated.expires_at = base + timedelta(days=extend_days)
        updated.renewal_date = None
        return await self._commit(
            contract,
            updated,
            AuditAction.RENEWED,
            performed_by,
            details={
                "extend_days": extend_days,
                "previous_expires_at": contract.expires_at.isoformat() if contract.expires_at else None,
                "expires_at": updated.expires_at.isoformat(),
            },
            events=[self._event("contract:renewed", updated, expires_at=updated.expires_at.isoformat())],
            notifications=[
                self._compose(NotificationType.CONTRACT_RENEWED, updated, p) for p in updated.parties
            ],
        )

    # ── Artifacts ──

    async def download_artifact(self, contract_id: str, performed_by: str = SYSTEM_ACTOR) -> bytes:
        """Stored final artifact of a completed contract, or one rendered on demand."""
        contract = await self.get(contract_id)
        data = None
        if contract.completed_at is not None:
            data = await self.store.load_artifact(contract_id)
        if data is None:
            data = await self.artifact_generator.render_final(contract)

        await self._record(
            contract.id,
            AuditAction.DOWNLOADED,
            performed_by,
            details={"version": contract.version, "bytes": len(data)},
        )
        return data

    # ── Queries ──

    async def search(self, filters: SearchFilters | dict[str, Any] | None = None) -> list[Contract]:
        filters = parse_input(SearchFilters, filters or {})
        contracts = await self.store.list_contracts(filters.status)
        return apply_filters(
            contracts,
            filters,
            default_limit=self.settings.default_search_limit,
            max_limit=self.settings.max_search_limit,
        )

    async def get_expiring(self, query: ExpiringQuery | dict[str, Any]) -> list[Contract]:
        """Contracts expiring within ``days``; optionally those due for renewal too."""
        query = parse_input(ExpiringQuery, query)
        now = utcnow()
        cutoff = now + timedelta(days=query.days)
        contracts = await self.search(SearchFilters(
            status=query.status or DEFAULT_EXPIRING_STATUSES,
            date_range=DateRange(field="expires", start=now, end=cutoff),
        ))

        if query.include_renewable:
            seen = {c.id for c in contracts}
            for contract in await self.store.list_contracts():
                renewal = as_utc(contract.renewal_date)
                if renewal and now <= renewal <= cutoff and contract.id not in seen:
                    contracts.append(contract)
                    seen.add(contract.id)
        return contracts

    async def get_signing_status(self, contract_id: str) -> list[PartySigningStatus]:
        contract = await self.get(contract_id)
        statuses = []
        for party in contract.parties:
            signatures = contract.signatures_for(party.id)
            statuses.append(PartySigningStatus(
                party_id=party.id,
                email=party.email,
                name=party.name,
                role=party.role,
                signed=bool(signatures),
                signature_count=len(signatures),
                verified=any(s.verified for s in signatures),
                sent_at=contract.sent_at,
                viewed_at=party.viewed_at,
                signed_at=party.signed_at,
                reminders_sent=party.reminders_sent,
                last_reminder_at=party.last_reminder_at,
            ))
        return statuses

    async def get_audit_trail(self, contract_id: str) -> list[AuditEntry]:
        return await self.audit_log.by_contract(contract_id)

    # ── Sweep ──

    async def check_expired_contracts(self, now: Optional[datetime] = None) -> list[Contract]:
        """Expire every signable contract whose expiry has passed.

        Only one sweep runs at a time; an overlapping call returns an empty
        list without touching anything.
        """
        if self._sweep_lock.locked():
            logger.info("Expiry sweep already running; skipping")
            return []

        async with self._sweep_lock:
            now = as_utc(now) or utcnow()
            candidates = await self.store.list_contracts(EXPIRABLE_STATUSES)
            expired: list[Contract] = []
            for contract in candidates:
                expires_at = as_utc(contract.expires_at)
                if expires_at is None or expires_at >= now:
                    continue
                try:
                    expired.append(await self._expire(contract))
                except ConflictError:
                    logger.warning("Contract %s changed during the expiry sweep; skipped", contract.id)
            logger.info(
                "Expiry sweep finished: %d of %d candidate(s) expired",
                len(expired), len(candidates),
            )
            return expired

    async def _expire(self, contract: Contract) -> Contract:
        check_transition(contract.status, ContractStatus.EXPIRED)
        updated = self._next_version(contract)
        updated.status = ContractStatus.EXPIRED
        updated.reminders_due = []
        return await self._commit(
            contract,
            updated,
            AuditAction.EXPIRED,
            SYSTEM_ACTOR,
            details={
                "from": contract.status.value,
                "expires_at": contract.expires_at.isoformat() if contract.expires_at else None,
            },
            events=[self._event("contract:expired", updated)],
            notifications=[
                self._compose(NotificationType.CONTRACT_EXPIRED, updated, p)
                for p in updated.parties if p.must_sign
            ],
        )

    # ── Commit path ──

    async def _commit(
        self,
        current: Contract,
        updated: Contract,
        action: AuditAction,
        performed_by: str,
        details: dict[str, Any],
        events: list[DomainEvent],
        notifications: Iterable[ContractNotification] = (),
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        render_artifact: bool = False,
    ) -> Contract:
        await self.store.save(updated, expected_version=current.version)

        if updated.status != current.status:
            logger.info(
                "Contract %s: %s -> %s (v%d)",
                updated.id, current.status.value, updated.status.value, updated.version,
            )
        if render_artifact:
            await self._store_final_artifact(updated)

        await self._after_commit(
            updated, action, performed_by, details, events,
            notifications=notifications, ip_address=ip_address, user_agent=user_agent,
        )
        return updated

    async def _after_commit(
        self,
        contract: Contract,
        action: AuditAction,
        performed_by: str,
        details: dict[str, Any],
        events: list[DomainEvent],
        notifications: Iterable[ContractNotification] = (),
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        await self._record(contract.id, action, performed_by, details, ip_address, user_agent)
        for notification in notifications:
            await self._notify(notification)
        self.outbox.extend(events)
        await self.flush_events()

    async def flush_events(self) -> int:
        """Deliver queued events; without a dispatcher they stay queued (bounded) for the caller to drain."""
        if self.dispatcher is None:
            return 0
        return await self.dispatcher.dispatch_all(self.outbox.drain())

    async def _record(
        self,
        contract_id: str,
        action: AuditAction,
        performed_by: str,
        details: dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        try:
            await self.audit_log.log(
                contract_id, action, performed_by, details,
                ip_address=ip_address, user_agent=user_agent,
            )
        except Exception:
            logger.exception("Audit entry %s for contract %s was not written", action.value, contract_id)

    async def _notify(self, notification: ContractNotification) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(notification)
        except Exception:
            logger.exception(
                "Notification %s to %s failed for contract %s",
                notification.type.value, notification.recipient_email, notification.contract_id,
            )

    async def _store_final_artifact(self, contract: Contract) -> None:
        try:
            data = await self.artifact_generator.render_final(contract)
            await self.store.save_artifact(contract.id, data)
        except Exception:
            logger.exception("Final artifact for contract %s was not stored", contract.id)

    # ── Helpers ──

    @staticmethod
    def _next_version(contract: Contract) -> Contract:
        """Working copy for the next version; only saved through _commit."""
        updated = contract.model_copy(deep=True)
        updated.version = contract.version + 1
        updated.updated_at = utcnow()
        return updated

    @staticmethod
    def _event(name: str, contract: Contract, **payload: Any) -> DomainEvent:
        return DomainEvent(
            name=name,
            contract_id=contract.id,
            payload={"status": contract.status.value, "version": contract.version, **payload},
        )

    @staticmethod
    def _compose(
        kind: NotificationType,
        contract: Contract,
        party: Party,
        subject: Optional[str] = None,
        message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ContractNotification:
        return compose_notification(
            kind,
            contract_id=contract.id,
            title=contract.title,
            recipient_email=party.email,
            recipient_name=party.name,
            subject=subject,
            message=message,
            metadata=metadata,
        )
