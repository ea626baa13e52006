"""Translation of domain events into integration events and their delivery."""

from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime

from schemas import IntegrationEvent

from ..domain.dispatcher import DomainEventDispatcher
from ..domain.errors import TransportUnavailable
from ..domain.events import ACCOUNT_EVENT_TYPES, DomainEvent
from ..domain.ports import EventStore, IntegrationEventPublisher

logger = logging.getLogger(__name__)


def to_integration_event(event: DomainEvent) -> IntegrationEvent:
    """Flatten a domain event into a ``{subject, data}`` envelope of strings."""
    data: dict[str, str] = {}
    for item in fields(event):
        value = getattr(event, item.name)
        data[item.name] = value.isoformat() if isinstance(value, datetime) else str(value)
    return IntegrationEvent(subject=event.subject, data=data)


class IntegrationEventHandler:
    """Records and publishes each committed domain event once per TTL.

    Only the publish is mandatory. The event store is an audit log and a
    dedupe cache: when it is unreachable the handler logs and carries on, so
    a store outage never stops delivery. The processed marker is written
    after the broker accepted the event and the audit append has its own
    marker, so a redelivered event is published again but recorded once.
    Consumers may therefore see duplicates but never a gap.
    """

    def __init__(
        self,
        publisher: IntegrationEventPublisher,
        event_store: EventStore,
        *,
        ttl_seconds: int,
        key_prefix: str = "ledger",
    ) -> None:
        self._publisher = publisher
        self._event_store = event_store
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix

    def processed_key(self, event: DomainEvent) -> str:
        return f"{self._key_prefix}:processed:{event.event_id}"

    def recorded_key(self, event: DomainEvent) -> str:
        return f"{self._key_prefix}:recorded:{event.event_id}"

    def __call__(self, event: DomainEvent) -> None:
        if self._seen(self.processed_key(event), event):
            logger.debug("skipping already delivered event %s (%s)", event.event_id, event.subject)
            return

        envelope = to_integration_event(event)
        self._record(event, envelope)
        self._publisher.publish(envelope)
        self._mark(self.processed_key(event), event)
        logger.debug("published %s for account %s", event.subject, event.account_id)

    def _seen(self, key: str, event: DomainEvent) -> bool:
        try:
            return self._event_store.get(key) is not None
        except TransportUnavailable as exc:
            logger.warning("event store lookup failed for event %s: %s", event.event_id, exc)
            return False

    def _record(self, event: DomainEvent, envelope: IntegrationEvent) -> None:
        key = self.recorded_key(event)
        if self._seen(key, event):
            return
        try:
            self._event_store.save(event.account_id, envelope)
        except TransportUnavailable as exc:
            logger.warning(
                "audit append failed for event %s (account %s): %s",
                event.event_id,
                event.account_id,
                exc,
            )
            return
        self._mark(key, event)

    def _mark(self, key: str, event: DomainEvent) -> None:
        try:
            self._event_store.set(key, "1", self._ttl_seconds)
        except TransportUnavailable as exc:
            logger.warning("could not write marker %s for event %s: %s", key, event.event_id, exc)


def register_integration_handler(
    dispatcher: DomainEventDispatcher, handler: IntegrationEventHandler
) -> None:
    for event_type in ACCOUNT_EVENT_TYPES:
        dispatcher.register(event_type, handler)
