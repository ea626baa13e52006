"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel


class AccountSummary(BaseModel):
    """Read model of an account. Never carries the credential."""

    account_id: str
    name: str
    balance: int
    opened_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    version: int
