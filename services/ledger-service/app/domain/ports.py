"""Interfaces the domain layer depends on. Implementations live in adapters."""

from __future__ import annotations

from typing import Iterable, Protocol

from schemas import IntegrationEvent

from .account import Account


class AccountRepository(Protocol):
    """Persistence contract for account aggregates."""

    def allocate_id(self) -> str:
        """Return a new globally unique account id. Raises ``StorageUnavailable``."""
        ...

    def save(self, *accounts: Account) -> None:
        """Persist every account atomically with an optimistic version check.

        Raises ``ConcurrencyConflict`` if any stored version differs from the
        in-memory one; in that case nothing in the batch is written. On
        success each account's ``version`` is advanced by one.
        """
        ...

    def find_by_id(self, account_id: str) -> Account | None:
        ...

    def find_by_ids(self, account_ids: Iterable[str]) -> list[Account]:
        ...

    def find_by_name(self, name: str) -> list[Account]:
        ...


class IntegrationEventPublisher(Protocol):
    def publish(self, event: IntegrationEvent) -> None:
        """Hand ``event`` to the broker. Raises ``TransportUnavailable``."""
        ...


class EventStore(Protocol):
    """Durable audit log plus a short-lived key/value cache."""

    def save(self, entity_id: str, event: IntegrationEvent) -> None:
        ...

    def history(self, entity_id: str) -> list[IntegrationEvent]:
        ...

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...
