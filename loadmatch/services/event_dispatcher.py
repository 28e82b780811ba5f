"""
In-process events for matching side effects.

Services emit only after their unit of work has committed, so handlers
(notifications, mostly) never run inside the suggestion transaction and a
failing handler cannot undo a refresh or a claim.

    await emit_event(
        EventType.SUGGESTION_CLAIMED,
        {"suggestion_id": row.id, "trip_id": row.trip_id, "load_id": row.load_id},
        company_id=row.company_id,
        owner_id=row.owner_id,
    )
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    SUGGESTIONS_REFRESHED = "suggestions.refreshed"
    SUGGESTION_ACTIONED = "suggestion.actioned"
    SUGGESTION_CLAIMED = "suggestion.claimed"


@dataclass
class Event:
    type: EventType
    data: Dict[str, Any]
    company_id: Optional[str] = None
    owner_id: Optional[str] = None
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


EventHandler = Callable[[Event], Any]


class EventDispatcher:
    """Process-wide registry of handlers keyed by event type."""

    _instance: Optional["EventDispatcher"] = None
    _handlers: Dict[EventType, List[EventHandler]]

    def __new__(cls) -> "EventDispatcher":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = {}
        return cls._instance

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("event_handler_subscribed", extra={"event_type": event_type.value})

    def clear(self) -> None:
        self._handlers = {}

    async def emit(self, event: Event) -> int:
        """Run every handler for ``event``; returns how many completed without error."""
        handlers = list(self._handlers.get(event.type, ()))
        if not handlers:
            return 0

        failed = 0
        pending = []
        for handler in handlers:
            try:
                outcome = handler(event)
            except Exception:
                failed += 1
                logger.exception("event_handler_failed", extra={"event_type": event.type.value})
                continue
            if asyncio.iscoroutine(outcome):
                pending.append(outcome)

        for outcome in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                failed += 1
                logger.error(
                    "event_handler_failed",
                    extra={"event_type": event.type.value, "error": str(outcome)},
                )

        delivered = len(handlers) - failed
        logger.debug(
            "event_dispatched",
            extra={"event_type": event.type.value, "delivered": delivered, "failed": failed},
        )
        return delivered


_dispatcher = EventDispatcher()
_background: Set[asyncio.Task] = set()


def get_dispatcher() -> EventDispatcher:
    return _dispatcher


async def emit_event(
    event_type: EventType,
    data: Dict[str, Any],
    company_id: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> int:
    return await _dispatcher.emit(Event(type=event_type, data=data, company_id=company_id, owner_id=owner_id))


def subscribe(event_type: EventType, handler: EventHandler) -> None:
    _dispatcher.subscribe(event_type, handler)


def emit_in_background(
    event_types: Sequence[EventType],
    data: Dict[str, Any],
    company_id: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> asyncio.Task:
    """
    Dispatch events in order on a separate task and return immediately.

    The task is independent of the caller, so cancelling the request that
    raised the events does not cancel their handlers.
    """

    async def _run() -> None:
        for event_type in event_types:
            try:
                await emit_event(event_type, data, company_id=company_id, owner_id=owner_id)
            except Exception:
                logger.exception("background_event_failed", extra={"event_type": event_type.value})

    task = asyncio.create_task(_run(), name="matching-events")
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


async def drain_background_events() -> None:
    """Wait for every in-flight background dispatch to finish."""
    while _background:
        await asyncio.gather(*list(_background), return_exceptions=True)
