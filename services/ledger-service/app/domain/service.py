"""Command handlers and queries for the account ledger.

Each handler is one transaction boundary: load the aggregates, run the
domain operation, save every touched aggregate in a single repository call,
then drain and dispatch the buffered events. Any failure before the save
returns leaves storage untouched and dispatches nothing. Errors, including
``ConcurrencyConflict``, reach the caller as raised; retrying is the caller's
decision.
"""

from __future__ import annotations

import logging

from schemas import AccountSummary, IntegrationEvent

from .account import Account
from .contracts import CloseAccount, Deposit, OpenAccount, Remit, UpdatePassword, Withdraw
from .dispatcher import DomainEventDispatcher
from .errors import NotFound
from .factory import AccountFactory
from .ports import AccountRepository, EventStore
from .remittance import RemittanceService

logger = logging.getLogger(__name__)


class _CommandHandler:
    def __init__(self, repository: AccountRepository, dispatcher: DomainEventDispatcher) -> None:
        self._repository = repository
        self._dispatcher = dispatcher

    def _load(self, account_id: str) -> Account:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFound(f"account {account_id} not found")
        return account

    def _persist(self, *accounts: Account) -> None:
        self._repository.save(*accounts)
        for account in accounts:
            self._dispatcher.dispatch(account.commit())


class OpenAccountHandler(_CommandHandler):
    def __init__(
        self,
        repository: AccountRepository,
        dispatcher: DomainEventDispatcher,
        factory: AccountFactory | None = None,
    ) -> None:
        super().__init__(repository, dispatcher)
        self._factory = factory or AccountFactory()

    def handle(self, command: OpenAccount) -> str:
        """Create, open, and persist a new account; return its id."""
        account = self._factory.create(self._repository.allocate_id(), command.name)
        account.open(command.password)
        self._persist(account)
        logger.info("opened account %s", account.account_id)
        return account.account_id


class DepositHandler(_CommandHandler):
    def handle(self, command: Deposit) -> None:
        account = self._load(command.account_id)
        account.deposit(command.amount)
        self._persist(account)
        logger.info("deposited %s into account %s", command.amount, command.account_id)


class WithdrawHandler(_CommandHandler):
    def handle(self, command: Withdraw) -> None:
        account = self._load(command.account_id)
        account.withdraw(command.amount, command.password)
        self._persist(account)
        logger.info("withdrew %s from account %s", command.amount, command.account_id)


class RemitHandler(_CommandHandler):
    def __init__(
        self,
        repository: AccountRepository,
        dispatcher: DomainEventDispatcher,
        remittance: RemittanceService | None = None,
    ) -> None:
        super().__init__(repository, dispatcher)
        self._remittance = remittance or RemittanceService()

    def handle(self, command: Remit) -> None:
        """Move funds between two accounts; both land in the same save call."""
        sender = self._load(command.sender_id)
        receiver = self._load(command.receiver_id)
        self._remittance.remit(sender, receiver, command.amount, command.password)
        self._persist(sender, receiver)
        logger.info(
            "remitted %s from account %s to account %s",
            command.amount,
            command.sender_id,
            command.receiver_id,
        )


class UpdatePasswordHandler(_CommandHandler):
    def handle(self, command: UpdatePassword) -> None:
        account = self._load(command.account_id)
        account.update_password(command.current_password, command.new_password)
        self._persist(account)
        logger.info("rotated password for account %s", command.account_id)


class CloseAccountHandler(_CommandHandler):
    def handle(self, command: CloseAccount) -> None:
        account = self._load(command.account_id)
        account.close(command.password)
        self._persist(account)
        logger.info("closed account %s", command.account_id)


def to_summary(account: Account) -> AccountSummary:
    return AccountSummary(
        account_id=account.account_id,
        name=account.name,
        balance=account.balance,
        opened_at=account.opened_at,
        updated_at=account.updated_at,
        closed_at=account.closed_at,
        version=account.version,
    )


class AccountQueries:
    """Read side: summaries built straight from the repository."""

    def __init__(self, repository: AccountRepository, event_store: EventStore | None = None) -> None:
        self._repository = repository
        self._event_store = event_store

    def get(self, account_id: str) -> AccountSummary:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFound(f"account {account_id} not found")
        return to_summary(account)

    def find_by_name(self, name: str) -> list[AccountSummary]:
        return [to_summary(account) for account in self._repository.find_by_name(name)]

    def events(self, account_id: str) -> list[IntegrationEvent]:
        """Return the audit trail recorded for ``account_id``, oldest first."""
        self.get(account_id)
        if self._event_store is None:
            return []
        return self._event_store.history(account_id)


class AccountService:
    """Account workflows wired from explicit ports, used by the HTTP layer."""

    def __init__(
        self,
        repository: AccountRepository,
        dispatcher: DomainEventDispatcher,
        event_store: EventStore | None = None,
    ) -> None:
        """Build one handler per command around the shared ports."""
        self._open = OpenAccountHandler(repository, dispatcher)
        self._deposit = DepositHandler(repository, dispatcher)
        self._withdraw = WithdrawHandler(repository, dispatcher)
        self._remit = RemitHandler(repository, dispatcher)
        self._update_password = UpdatePasswordHandler(repository, dispatcher)
        self._close = CloseAccountHandler(repository, dispatcher)
        self._queries = AccountQueries(repository, event_store)

    def open_account(self, name: str, password: str) -> str:
        return self._open.handle(OpenAccount(name=name, password=password))

    def deposit(self, account_id: str, amount: int) -> None:
        self._deposit.handle(Deposit(account_id=account_id, amount=amount))

    def withdraw(self, account_id: str, amount: int, password: str) -> None:
        self._withdraw.handle(Withdraw(account_id=account_id, amount=amount, password=password))

    def remit(self, sender_id: str, receiver_id: str, amount: int, password: str) -> None:
        self._remit.handle(
            Remit(sender_id=sender_id, receiver_id=receiver_id, amount=amount, password=password)
        )

    def update_password(self, account_id: str, current_password: str, new_password: str) -> None:
        self._update_password.handle(
            UpdatePassword(
                account_id=account_id,
                current_password=current_password,
                new_password=new_password,
            )
        )

    def close_account(self, account_id: str, password: str) -> None:
        self._close.handle(CloseAccount(account_id=account_id, password=password))

    def get_account(self, account_id: str) -> AccountSummary:
        return self._queries.get(account_id)

    def find_accounts(self, name: str) -> list[AccountSummary]:
        return self._queries.find_by_name(name)

    def account_events(self, account_id: str) -> list[IntegrationEvent]:
        return self._queries.events(account_id)
