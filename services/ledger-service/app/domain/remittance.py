"""Stateless transfer of funds between two account aggregates."""

from __future__ import annotations

from .account import Account
from .errors import InvariantViolation


class RemittanceService:
    """Withdraw from one account and deposit into another, in memory only.

    Persisting both aggregates in a single save is the caller's job. The
    receiver is checked before the sender is touched, so whichever side
    fails, neither account has changed and no events are buffered.
    """

    def remit(self, sender: Account, receiver: Account, amount: int, sender_secret: str) -> None:
        if sender.account_id == receiver.account_id:
            raise InvariantViolation("cannot remit to the same account")
        receiver.check_deposit(amount)
        sender.withdraw(amount, sender_secret)
        receiver.deposit(amount)
