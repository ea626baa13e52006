from __future__ import annotations

import os

# Keep PBKDF2 cheap for the suite; Settings reads the environment at import time.
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")

import fakeredis
import pytest

from app.domain.account import Account
from app.domain.dispatcher import DomainEventDispatcher
from app.domain.events import DomainEvent
from app.domain.factory import AccountFactory
from app.domain.service import AccountService
from app.messaging.supervisor import CircuitBreaker, RetryPolicy, SupervisedRedis
from app.repository import InMemoryAccountRepository


class RecordingHandler:
    """Dispatcher handler that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def subjects(self) -> list[str]:
        return [event.subject for event in self.events]


@pytest.fixture()
def factory() -> AccountFactory:
    return AccountFactory()


@pytest.fixture()
def opened_account(factory: AccountFactory) -> Account:
    """An opened account with password ``password1`` and no pending events."""
    account = factory.create("acct-1", "young")
    account.open("password1")
    account.commit()
    return account


@pytest.fixture()
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture()
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture()
def dispatcher(recorder: RecordingHandler) -> DomainEventDispatcher:
    dispatcher = DomainEventDispatcher()
    dispatcher.register_all(recorder)
    return dispatcher


@pytest.fixture()
def service(repository: InMemoryAccountRepository, dispatcher: DomainEventDispatcher) -> AccountService:
    return AccountService(repository, dispatcher)


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis(decode_responses=True)
    client.flushall()
    return client


@pytest.fixture()
def supervised(redis_client: fakeredis.FakeStrictRedis) -> SupervisedRedis:
    return SupervisedRedis(
        lambda: redis_client,
        name="test-redis",
        policy=RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05),
        breaker=CircuitBreaker(failure_threshold=2, reset_timeout=60),
        sleep=lambda _seconds: None,
    )
