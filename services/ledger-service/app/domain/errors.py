"""Typed failures raised by the ledger domain and its adapters."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure the ledger reports to its callers."""


class Unauthorized(LedgerError, ValueError):
    """The supplied secret does not match the stored credential."""


class InvalidAmount(LedgerError, ValueError):
    """Amounts must be positive integers in the smallest currency unit."""


class InsufficientFunds(LedgerError, ValueError):
    """A withdrawal would take the balance below zero."""


class InvariantViolation(LedgerError, ValueError):
    """The operation is not allowed in the account's current state."""


class NotFound(LedgerError, LookupError):
    """No account exists for the requested identifier."""


class ConcurrencyConflict(LedgerError):
    """The stored version moved on since the aggregate was loaded."""


class StorageUnavailable(LedgerError):
    """The account store could not be reached."""


class TransportUnavailable(LedgerError):
    """The message broker or event store could not be reached."""
