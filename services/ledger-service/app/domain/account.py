from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..security.passwords import hash_secret, verify_secret
from .errors import InsufficientFunds, InvalidAmount, InvariantViolation, Unauthorized
from .events import (
    AccountClosed,
    AccountOpened,
    Deposited,
    DomainEvent,
    PasswordUpdated,
    Withdrawn,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_amount(amount: int) -> None:
    # bool is an int subclass; True is not one currency unit
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")


@dataclass(slots=True, eq=False)
class Account:
    """Aggregate root for a single bank account.

    All balance, credential, and lifecycle rules are enforced here. Every
    successful mutation appends one domain event to an internal buffer which
    the command handler drains with :meth:`commit` after the account has been
    persisted. A failed operation leaves the aggregate untouched, buffer
    included.

    Instances are built by :class:`~app.domain.factory.AccountFactory`; the
    repository never calls this constructor directly.
    """

    account_id: str
    name: str
    credential_hash: str | None = field(default=None, repr=False)
    balance: int = 0
    opened_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    version: int = 0
    _pending_events: list[DomainEvent] = field(default_factory=list, init=False, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return self.account_id == other.account_id

    def __hash__(self) -> int:
        return hash(self.account_id)

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None and self.closed_at is None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        """Events buffered since the last commit, oldest first."""
        return tuple(self._pending_events)

    def verify(self, secret: str) -> bool:
        """Constant-time comparison of ``secret`` against the stored credential."""
        return verify_secret(secret, self.credential_hash)

    def open(self, secret: str) -> None:
        """Set the initial credential and mark the account as opened."""
        if self.credential_hash is not None or self.opened_at is not None:
            raise InvariantViolation("account is already opened")
        if not secret:
            raise InvariantViolation("password must not be empty")

        now = _utcnow()
        self.credential_hash = hash_secret(secret)
        self.opened_at = now
        self.updated_at = now
        self._record(AccountOpened(account_id=self.account_id, name=self.name, occurred_at=now))

    def update_password(self, current_secret: str, new_secret: str) -> None:
        """Rotate the credential after checking the current one."""
        self._ensure_active()
        self._authorize(current_secret)
        if not new_secret:
            raise InvariantViolation("password must not be empty")

        now = _utcnow()
        self.credential_hash = hash_secret(new_secret)
        self.updated_at = now
        self._record(PasswordUpdated(account_id=self.account_id, occurred_at=now))

    def withdraw(self, amount: int, secret: str) -> None:
        """Take ``amount`` out of the balance; the credential is required."""
        self._ensure_active()
        self._authorize(secret)
        _require_amount(amount)
        if amount > self.balance:
            raise InsufficientFunds(
                f"cannot withdraw {amount} from account {self.account_id} with balance {self.balance}"
            )

        now = _utcnow()
        self.balance -= amount
        self.updated_at = now
        self._record(
            Withdrawn(account_id=self.account_id, amount=amount, balance=self.balance, occurred_at=now)
        )

    def check_deposit(self, amount: int) -> None:
        """Raise the error :meth:`deposit` would raise, without mutating."""
        self._ensure_active()
        _require_amount(amount)

    def deposit(self, amount: int) -> None:
        """Add ``amount`` to the balance. Deposits are not credential-gated."""
        self.check_deposit(amount)

        now = _utcnow()
        self.balance += amount
        self.updated_at = now
        self._record(
            Deposited(account_id=self.account_id, amount=amount, balance=self.balance, occurred_at=now)
        )

    def close(self, secret: str) -> None:
        """Close an empty account. Closed accounts are terminal."""
        self._ensure_active()
        self._authorize(secret)
        if self.balance > 0:
            raise InvariantViolation(
                f"account {self.account_id} still holds {self.balance} and cannot be closed"
            )

        now = _utcnow()
        self.closed_at = now
        self.updated_at = now
        self._record(AccountClosed(account_id=self.account_id, occurred_at=now))

    def commit(self) -> list[DomainEvent]:
        """Drain and return the buffered events."""
        events = list(self._pending_events)
        self._pending_events.clear()
        return events

    def _record(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    def _authorize(self, secret: str) -> None:
        if not self.verify(secret):
            raise Unauthorized("password does not match")

    def _ensure_active(self) -> None:
        if self.closed_at is not None:
            raise InvariantViolation(f"account {self.account_id} is closed")
        if self.opened_at is None:
            raise InvariantViolation(f"account {self.account_id} is not opened")
