"""Tests for domain event dispatch and integration event delivery."""

from __future__ import annotations

import json

import pytest

from app.domain.dispatcher import DomainEventDispatcher
from app.domain.errors import TransportUnavailable
from app.domain.events import AccountClosed, AccountOpened, Deposited, PasswordUpdated, Withdrawn
from app.domain.service import AccountService
from app.messaging.event_store import RedisEventStore
from app.messaging.integration import (
    IntegrationEventHandler,
    register_integration_handler,
    to_integration_event,
)
from app.messaging.publisher import RedisStreamPublisher


class FlakyPublisher:
    """Publisher that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.published = []

    def publish(self, event) -> None:
        if self.failures:
            self.failures -= 1
            raise TransportUnavailable("broker down")
        self.published.append(event)


@pytest.fixture()
def event_store(supervised) -> RedisEventStore:
    return RedisEventStore(supervised, key_prefix="test.store")


@pytest.fixture()
def publisher(supervised) -> RedisStreamPublisher:
    return RedisStreamPublisher(supervised, stream_prefix="test.events", maxlen=1000)


def test_dispatcher_routes_by_type_and_to_global_handlers(recorder):
    dispatcher = DomainEventDispatcher()
    deposits = []
    dispatcher.register(Deposited, deposits.append)
    dispatcher.register_all(recorder)

    opened = AccountOpened(account_id="a", name="young")
    deposited = Deposited(account_id="a", amount=5, balance=5)
    dispatcher.dispatch([opened, deposited])

    assert deposits == [deposited]
    assert recorder.events == [opened, deposited]


def test_dispatcher_isolates_failing_handlers(recorder):
    dispatcher = DomainEventDispatcher()

    def broken(event):
        raise RuntimeError("boom")

    dispatcher.register(AccountClosed, broken)
    dispatcher.register(AccountClosed, recorder)

    dispatcher.dispatch([AccountClosed(account_id="a")])

    assert recorder.subjects == ["account.closed"]


@pytest.mark.parametrize(
    ("event", "subject"),
    [
        (AccountOpened(account_id="a", name="young"), "account.opened"),
        (AccountClosed(account_id="a"), "account.closed"),
        (Deposited(account_id="a", amount=1, balance=1), "account.deposited"),
        (Withdrawn(account_id="a", amount=1, balance=0), "account.withdrawn"),
        (PasswordUpdated(account_id="a"), "account.password.updated"),
    ],
)
def test_subjects_match_routing_keys(event, subject):
    assert to_integration_event(event).subject == subject


def test_integration_event_data_is_flat_strings():
    event = Deposited(account_id="acct-1", amount=500, balance=750)
    envelope = to_integration_event(event)

    assert envelope.data["account_id"] == "acct-1"
    assert envelope.data["amount"] == "500"
    assert envelope.data["balance"] == "750"
    assert envelope.data["event_id"] == event.event_id
    assert envelope.data["occurred_at"] == event.occurred_at.isoformat()
    assert all(isinstance(value, str) for value in envelope.data.values())


def test_handler_publishes_records_and_marks_processed(publisher, event_store, redis_client):
    handler = IntegrationEventHandler(publisher, event_store, ttl_seconds=60, key_prefix="test.store")
    event = Deposited(account_id="acct-1", amount=500, balance=500)

    handler(event)

    entries = redis_client.xrange("test.events:account.deposited")
    assert len(entries) == 1
    _entry_id, fields = entries[0]
    assert fields["subject"] == "account.deposited"
    assert json.loads(fields["data"])["amount"] == "500"

    history = event_store.history("acct-1")
    assert [e.subject for e in history] == ["account.deposited"]
    key = handler.processed_key(event)
    assert event_store.get(key) == "1"
    assert 0 < redis_client.ttl(key) <= 60


def test_handler_skips_events_already_delivered(publisher, event_store, redis_client):
    handler = IntegrationEventHandler(publisher, event_store, ttl_seconds=60)
    event = AccountOpened(account_id="acct-1", name="young")

    handler(event)
    handler(event)

    assert redis_client.xlen("test.events:account.opened") == 1
    assert len(event_store.history("acct-1")) == 1


def test_failed_publish_is_retried_on_redelivery(event_store):
    publisher = FlakyPublisher(failures=1)
    handler = IntegrationEventHandler(publisher, event_store, ttl_seconds=60)
    event = Withdrawn(account_id="acct-1", amount=10, balance=0)

    with pytest.raises(TransportUnavailable):
        handler(event)
    assert event_store.get(handler.processed_key(event)) is None

    handler(event)
    assert [e.subject for e in publisher.published] == ["account.withdrawn"]
    assert event_store.get(handler.processed_key(event)) == "1"
    assert len(event_store.history("acct-1")) == 1


def test_service_publishes_committed_events(repository, publisher, event_store, redis_client):
    dispatcher = DomainEventDispatcher()
    register_integration_handler(
        dispatcher, IntegrationEventHandler(publisher, event_store, ttl_seconds=60)
    )
    service = AccountService(repository, dispatcher, event_store)

    account_id = service.open_account("young", "password1")
    service.deposit(account_id, 500)
    service.update_password(account_id, "password1", "password2")

    assert [e.subject for e in service.account_events(account_id)] == [
        "account.opened",
        "account.deposited",
        "account.password.updated",
    ]
    assert redis_client.xlen("test.events:account.password.updated") == 1


def test_publish_outage_does_not_fail_persisted_command(repository, event_store):
    dispatcher = DomainEventDispatcher()
    register_integration_handler(
        dispatcher, IntegrationEventHandler(FlakyPublisher(failures=10), event_store, ttl_seconds=60)
    )
    service = AccountService(repository, dispatcher, event_store)

    account_id = service.open_account("young", "password1")

    assert service.get_account(account_id).version == 1
    # the audit record was written before the publish attempt
    assert [e.subject for e in event_store.history(account_id)] == ["account.opened"]


class UnreachableEventStore:
    """Event store whose every call fails as a dead Redis would."""

    def save(self, account_id, event) -> None:
        raise TransportUnavailable("event store down")

    def history(self, account_id):
        raise TransportUnavailable("event store down")

    def get(self, key):
        raise TransportUnavailable("event store down")

    def set(self, key, value, ttl_seconds) -> None:
        raise TransportUnavailable("event store down")


def test_event_store_outage_does_not_block_publish(caplog):
    publisher = FlakyPublisher()
    handler = IntegrationEventHandler(publisher, UnreachableEventStore(), ttl_seconds=60)
    event = Deposited(account_id="acct-1", amount=5, balance=5)

    with caplog.at_level("WARNING", logger="app.messaging.integration"):
        handler(event)

    assert [e.subject for e in publisher.published] == ["account.deposited"]
    assert "event store lookup failed" in caplog.text
    assert "audit append failed" in caplog.text


def test_redelivery_after_failed_publish_records_audit_once(event_store):
    handler = IntegrationEventHandler(FlakyPublisher(failures=2), event_store, ttl_seconds=60)
    event = Deposited(account_id="acct-1", amount=5, balance=5)

    for _ in range(2):
        with pytest.raises(TransportUnavailable):
            handler(event)
    handler(event)

    assert [e.subject for e in event_store.history("acct-1")] == ["account.deposited"]
    assert event_store.get(handler.recorded_key(event)) == "1"
