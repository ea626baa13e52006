"""In-process routing of committed domain events to their handlers."""

from __future__ import annotations

import logging
from collections import defaultdict
from threading import RLock
from typing import Callable, Iterable

from .events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class DomainEventDispatcher:
    """Publish/subscribe hub for domain events.

    ``dispatch`` is only called once the command that produced the events has
    been persisted. A failing handler is logged and skipped; it never undoes
    the command nor stops the other handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[type[DomainEvent], list[EventHandler]] = defaultdict(list)
        self._global_handlers: list[EventHandler] = []
        self._lock = RLock()

    def register(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)
            logger.debug("registered %s for %s", _handler_name(handler), event_type.subject)

    def register_all(self, handler: EventHandler) -> None:
        """Register ``handler`` for every event type."""
        with self._lock:
            self._global_handlers.append(handler)

    def dispatch(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            with self._lock:
                handlers = [*self._handlers.get(type(event), ()), *self._global_handlers]
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        "event handler %s failed for %s (event %s, account %s)",
                        _handler_name(handler),
                        event.subject,
                        event.event_id,
                        event.account_id,
                    )


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", None) or type(handler).__name__
