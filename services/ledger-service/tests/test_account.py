from __future__ import annotations

import pytest

from app.domain.contracts import AccountRecord
from app.domain.errors import InsufficientFunds, InvalidAmount, InvariantViolation, Unauthorized
from app.domain.events import AccountClosed, AccountOpened, Deposited, PasswordUpdated, Withdrawn
from app.security.passwords import hash_secret, verify_secret


def test_create_yields_unopened_account_without_events(factory):
    account = factory.create("acct-9", "young")

    assert account.balance == 0
    assert account.version == 0
    assert account.credential_hash is None
    assert account.opened_at is None
    assert account.commit() == []


def test_create_rejects_blank_name(factory):
    with pytest.raises(InvariantViolation):
        factory.create("acct-9", "   ")


def test_open_sets_credential_and_buffers_event(factory):
    account = factory.create("acct-9", "young")
    account.open("password1")

    assert account.opened_at is not None
    assert account.updated_at == account.opened_at
    assert account.verify("password1")
    assert "password1" not in account.credential_hash
    events = account.commit()
    assert len(events) == 1
    assert isinstance(events[0], AccountOpened)
    assert events[0].name == "young"
    assert events[0].account_id == "acct-9"


def test_open_is_write_once(opened_account):
    with pytest.raises(InvariantViolation):
        opened_account.open("password1")
    assert opened_account.commit() == []


def test_open_rejects_empty_secret(factory):
    account = factory.create("acct-9", "young")
    with pytest.raises(InvariantViolation):
        account.open("")
    assert account.credential_hash is None
    assert account.opened_at is None


def test_same_secret_hashes_differently_each_write(factory):
    first = factory.create("a", "young")
    second = factory.create("b", "young")
    first.open("password1")
    second.open("password1")
    assert first.credential_hash != second.credential_hash

    before = first.credential_hash
    first.update_password("password1", "password1")
    assert first.credential_hash != before
    assert first.verify("password1")


@pytest.mark.parametrize("amount", [1, 7, 500])
def test_deposit_increases_balance_by_amount(opened_account, amount):
    opened_account.deposit(amount)

    assert opened_account.balance == amount
    events = opened_account.commit()
    assert len(events) == 1
    assert isinstance(events[0], Deposited)
    assert (events[0].amount, events[0].balance) == (amount, amount)


@pytest.mark.parametrize("amount", [0, -1, -500, True, 1.5, "10"])
def test_deposit_rejects_non_positive_amounts(opened_account, amount):
    opened_account.deposit(100)
    opened_account.commit()

    with pytest.raises(InvalidAmount):
        opened_account.deposit(amount)
    assert opened_account.balance == 100
    assert opened_account.pending_events == ()


def test_deposit_requires_no_credential_but_an_opened_account(factory):
    account = factory.create("acct-9", "young")
    with pytest.raises(InvariantViolation):
        account.deposit(10)


def test_withdraw_decreases_balance(opened_account):
    opened_account.deposit(500)
    opened_account.withdraw(150, "password1")

    assert opened_account.balance == 350
    withdrawn = opened_account.commit()[-1]
    assert isinstance(withdrawn, Withdrawn)
    assert (withdrawn.amount, withdrawn.balance) == (150, 350)


def test_withdraw_more_than_balance_fails(opened_account):
    opened_account.deposit(100)
    opened_account.commit()

    with pytest.raises(InsufficientFunds):
        opened_account.withdraw(101, "password1")
    assert opened_account.balance == 100
    assert opened_account.pending_events == ()


def test_withdraw_with_wrong_secret_fails(opened_account):
    opened_account.deposit(100)
    opened_account.commit()

    with pytest.raises(Unauthorized):
        opened_account.withdraw(10, "wrong")
    assert opened_account.balance == 100
    assert opened_account.pending_events == ()


def test_withdraw_checks_credential_before_amount(opened_account):
    with pytest.raises(Unauthorized):
        opened_account.withdraw(0, "wrong")
    with pytest.raises(InvalidAmount):
        opened_account.withdraw(0, "password1")


def test_update_password_rotates_credential(opened_account):
    opened_account.update_password("password1", "password2")

    assert opened_account.verify("password2")
    assert not opened_account.verify("password1")
    assert [type(e) for e in opened_account.commit()] == [PasswordUpdated]


def test_update_password_with_wrong_current_secret(opened_account):
    before = opened_account.credential_hash
    with pytest.raises(Unauthorized):
        opened_account.update_password("nope", "password2")
    assert opened_account.credential_hash == before


def test_close_requires_zero_balance(opened_account):
    opened_account.deposit(1)
    opened_account.commit()

    with pytest.raises(InvariantViolation):
        opened_account.close("password1")
    assert opened_account.closed_at is None
    assert opened_account.pending_events == ()


def test_close_requires_credential(opened_account):
    with pytest.raises(Unauthorized):
        opened_account.close("wrong")
    assert opened_account.closed_at is None


def test_close_marks_terminal_and_buffers_one_event(opened_account):
    opened_account.close("password1")

    assert opened_account.is_closed
    assert opened_account.updated_at == opened_account.closed_at
    events = opened_account.commit()
    assert len(events) == 1
    assert isinstance(events[0], AccountClosed)


@pytest.mark.parametrize(
    "operation",
    [
        lambda a: a.deposit(10),
        lambda a: a.withdraw(10, "password1"),
        lambda a: a.update_password("password1", "password2"),
        lambda a: a.close("password1"),
    ],
)
def test_closed_account_rejects_further_mutation(opened_account, operation):
    opened_account.close("password1")
    opened_account.commit()

    with pytest.raises(InvariantViolation):
        operation(opened_account)
    assert opened_account.pending_events == ()


def test_commit_drains_buffer_and_is_idempotent(opened_account):
    opened_account.deposit(5)
    opened_account.deposit(6)

    assert [e.amount for e in opened_account.commit()] == [5, 6]
    assert opened_account.commit() == []


def test_reconstitute_preserves_state_and_emits_nothing(factory):
    record = AccountRecord(
        account_id="acct-7",
        name="young",
        credential_hash=hash_secret("password1"),
        balance=250,
        opened_at=None,
        updated_at=None,
        closed_at=None,
        version=4,
    )
    account = factory.reconstitute(record)

    assert account.balance == 250
    assert account.version == 4
    assert account.verify("password1")
    assert account.commit() == []


def test_accounts_compare_by_identity(factory):
    assert factory.create("same", "a") == factory.create("same", "b")
    assert factory.create("one", "a") != factory.create("two", "a")


def test_verify_secret_rejects_malformed_hashes():
    assert not verify_secret("password1", None)
    assert not verify_secret("password1", "")
    assert not verify_secret("password1", "plain-text")
    assert not verify_secret("password1", "md5$1$00$00")
    assert verify_secret("password1", hash_secret("password1", iterations=10))
