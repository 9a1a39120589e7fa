"""Domain events, the per-operation outbox, and the dispatcher that delivers them."""

import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Union

from accord_engine.common.models import utcnow

logger = logging.getLogger(__name__)

EVENT_NAMES: frozenset[str] = frozenset({
    "contract:created",
    "contract:updated",
    "contract:deleted",
    "contract:sent",
    "contract:viewed",
    "contract:signed",
    "contract:completed",
    "contract:expired",
    "contract:terminated",
    "contract:renewed",
    "contract:reminder_sent",
})

WILDCARD = "*"


@dataclass(frozen=True)
class DomainEvent:
    name: str
    contract_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.name not in EVENT_NAMES:
            raise ValueError(f"Unknown domain event {self.name!r}")


EventHandler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventOutbox:
    """Events recorded by committed operations, awaiting delivery.

    With ``max_events`` set the outbox is bounded: once full, the oldest
    pending event is dropped to make room and counted in ``dropped``.
    """

    def __init__(self, max_events: int | None = None):
        if max_events is not None and max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self.max_events = max_events
        self.dropped = 0
        self._pending: deque[DomainEvent] = deque()

    def enqueue(self, event: DomainEvent) -> None:
        if self.max_events is not None and len(self._pending) >= self.max_events:
            lost = self._pending.popleft()
            self.dropped += 1
            logger.warning(
                "Event outbox full (%d), dropping %s for contract %s",
                self.max_events, lost.name, lost.contract_id,
            )
        self._pending.append(event)

    def extend(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.enqueue(event)

    def drain(self) -> list[DomainEvent]:
        events = list(self._pending)
        self._pending.clear()
        return events

    def __len__(self) -> int:
        return len(self._pending)


class EventDispatcher:
    """Delivers events to subscribed handlers.

    Handlers subscribe to one event name or to ``*``. A failing handler is
    logged and skipped; it never affects other handlers or the operation
    that produced the event.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, name: str, handler: EventHandler) -> None:
        if name != WILDCARD and name not in EVENT_NAMES:
            raise ValueError(f"Unknown domain event {name!r}")
        self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: DomainEvent) -> int:
        """Deliver one event; returns how many handlers succeeded."""
        delivered = 0
        for handler in [*self._handlers.get(event.name, []), *self._handlers.get(WILDCARD, [])]:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s on contract %s",
                    handler, event.name, event.contract_id,
                )
        return delivered

    async def dispatch_all(self, events: list[DomainEvent]) -> int:
        delivered = 0
        for event in events:
            delivered += await self.dispatch(event)
        return delivered
