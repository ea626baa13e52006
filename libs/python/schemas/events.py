"""Integration event contracts published to other systems."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IntegrationEvent(BaseModel):
    """Broker envelope for an account domain event.

    ``subject`` doubles as the routing key (``account.deposited`` and so on);
    ``data`` is a flat string map so consumers need no shared types.
    """

    subject: str
    data: dict[str, str] = Field(default_factory=dict)
