"""Construction of account aggregates."""

from __future__ import annotations

from .account import Account
from .contracts import AccountRecord
from .errors import InvariantViolation


class AccountFactory:
    """Builds :class:`Account` instances, either fresh or from storage.

    Neither path buffers events: a fresh account only emits once it is
    opened, and a reconstituted one has already had its events flushed.
    """

    def create(self, account_id: str, name: str) -> Account:
        """Return an unopened, zero-balance account with the given identity."""
        if not account_id:
            raise InvariantViolation("account id must not be empty")
        if not name or not name.strip():
            raise InvariantViolation("account name must not be empty")
        return Account(account_id=account_id, name=name)

    def reconstitute(self, record: AccountRecord) -> Account:
        """Rebuild an aggregate from a persisted snapshot, version included."""
        return Account(
            account_id=record.account_id,
            name=record.name,
            credential_hash=record.credential_hash,
            balance=record.balance,
            opened_at=record.opened_at,
            updated_at=record.updated_at,
            closed_at=record.closed_at,
            version=record.version,
        )

    def snapshot(self, account: Account) -> AccountRecord:
        """Inverse of :meth:`reconstitute`; the record carries the in-memory version."""
        return AccountRecord(
            account_id=account.account_id,
            name=account.name,
            credential_hash=account.credential_hash,
            balance=account.balance,
            opened_at=account.opened_at,
            updated_at=account.updated_at,
            closed_at=account.closed_at,
            version=account.version,
        )
