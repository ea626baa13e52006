"""Domain events buffered by the account aggregate."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar


def _new_event_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True, kw_only=True)
class DomainEvent:
    """A fact about an account state change, visible only after commit."""

    subject: ClassVar[str] = "account"

    account_id: str
    occurred_at: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=_new_event_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class AccountOpened(DomainEvent):
    subject: ClassVar[str] = "account.opened"

    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class AccountClosed(DomainEvent):
    subject: ClassVar[str] = "account.closed"


@dataclass(frozen=True, slots=True, kw_only=True)
class Deposited(DomainEvent):
    subject: ClassVar[str] = "account.deposited"

    amount: int
    balance: int


@dataclass(frozen=True, slots=True, kw_only=True)
class Withdrawn(DomainEvent):
    subject: ClassVar[str] = "account.withdrawn"

    amount: int
    balance: int


@dataclass(frozen=True, slots=True, kw_only=True)
class PasswordUpdated(DomainEvent):
    subject: ClassVar[str] = "account.password.updated"


ACCOUNT_EVENT_TYPES: tuple[type[DomainEvent], ...] = (
    AccountOpened,
    AccountClosed,
    Deposited,
    Withdrawn,
    PasswordUpdated,
)
