"""Domain-level command and snapshot contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class AccountRecord:
    """Persisted shape of an account, as stored by any repository backend."""

    account_id: str
    name: str
    credential_hash: str | None
    balance: int
    opened_at: datetime | None
    updated_at: datetime | None
    closed_at: datetime | None
    version: int


@dataclass(slots=True)
class OpenAccount:
    """Open a new account with an initial password."""

    name: str
    password: str


@dataclass(slots=True)
class Deposit:
    account_id: str
    amount: int


@dataclass(slots=True)
class Withdraw:
    account_id: str
    amount: int
    password: str


@dataclass(slots=True)
class Remit:
    """Move ``amount`` from the sender to the receiver in one atomic save."""

    sender_id: str
    receiver_id: str
    amount: int
    password: str


@dataclass(slots=True)
class UpdatePassword:
    account_id: str
    current_password: str
    new_password: str


@dataclass(slots=True)
class CloseAccount:
    account_id: str
    password: str
