"""Shared schema exports."""

from .account import AccountSummary
from .events import IntegrationEvent

__all__ = [
    "AccountSummary",
    "IntegrationEvent",
]
