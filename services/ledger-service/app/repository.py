"""Account repositories: Postgres for deployments, in-memory for local runs."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from threading import Lock
from typing import Iterable, Iterator, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import AccountRecord
from .domain.errors import ConcurrencyConflict, InvariantViolation, StorageUnavailable
from .domain.factory import AccountFactory

_COLUMNS = "account_id, name, credential_hash, balance, opened_at, updated_at, closed_at, version"


def _ensure_distinct(accounts: Sequence[Account]) -> None:
    ids = [account.account_id for account in accounts]
    if len(set(ids)) != len(ids):
        raise InvariantViolation("the same account cannot be saved twice in one batch")


class PostgresAccountRepository:
    """Postgres-backed account persistence with optimistic concurrency."""

    def __init__(self, pool: ConnectionPool, factory: AccountFactory | None = None) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool
        self._factory = factory or AccountFactory()

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except (pg_errors.DeadlockDetected, pg_errors.SerializationFailure) as exc:
            raise ConcurrencyConflict("concurrent write to the same accounts, retry") from exc
        except psycopg.OperationalError as exc:
            raise StorageUnavailable("account store is unavailable") from exc

    def allocate_id(self) -> str:
        """Ask the database for a fresh UUID."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute("SELECT gen_random_uuid()::text")
                row = cur.fetchone()
        return row[0]

    def save(self, *accounts: Account) -> None:
        """Write every account in one transaction, guarded by its version.

        A version-0 account is inserted; any other is updated only where the
        stored version still equals the in-memory one. One missed row raises
        ``ConcurrencyConflict`` and rolls the whole transaction back.
        Rows are written in account id order so that two batches touching the
        same accounts lock them in the same order.
        """
        if not accounts:
            return
        _ensure_distinct(accounts)
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    for account in sorted(accounts, key=lambda a: a.account_id):
                        if account.version == 0:
                            self._insert(cur, account)
                        else:
                            self._update(cur, account)
                        if cur.rowcount != 1:
                            raise ConcurrencyConflict(
                                f"account {account.account_id} changed since version {account.version}"
                            )
        for account in accounts:
            account.version += 1

    def _insert(self, cur: psycopg.Cursor, account: Account) -> None:
        cur.execute(
            f"""
            INSERT INTO accounts ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, 1)
            ON CONFLICT (account_id) DO NOTHING
            """,
            (
                account.account_id,
                account.name,
                account.credential_hash,
                account.balance,
                account.opened_at,
                account.updated_at,
                account.closed_at,
            ),
        )

    def _update(self, cur: psycopg.Cursor, account: Account) -> None:
        cur.execute(
            """
            UPDATE accounts
            SET credential_hash = %s,
                balance = %s,
                opened_at = %s,
                updated_at = %s,
                closed_at = %s,
                version = version + 1
            WHERE account_id = %s AND version = %s
            """,
            (
                account.credential_hash,
                account.balance,
                account.opened_at,
                account.updated_at,
                account.closed_at,
                account.account_id,
                account.version,
            ),
        )

    def find_by_id(self, account_id: str) -> Account | None:
        """Fetch an account by id or return ``None``."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM accounts WHERE account_id = %s", (account_id,))
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def find_by_ids(self, account_ids: Iterable[str]) -> list[Account]:
        ids = list(account_ids)
        if not ids:
            return []
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM accounts WHERE account_id = ANY(%s)", (ids,))
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def find_by_name(self, name: str) -> list[Account]:
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM accounts WHERE name = %s ORDER BY opened_at, account_id",
                    (name,),
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` aggregate."""
        return self._factory.reconstitute(AccountRecord(*row))


class InMemoryAccountRepository:
    """Thread-safe dict-backed repository with the same save semantics."""

    def __init__(self, factory: AccountFactory | None = None) -> None:
        self._records: dict[str, AccountRecord] = {}
        self._lock = Lock()
        self._factory = factory or AccountFactory()

    def allocate_id(self) -> str:
        return str(uuid.uuid4())

    def save(self, *accounts: Account) -> None:
        if not accounts:
            return
        _ensure_distinct(accounts)
        with self._lock:
            for account in accounts:
                stored = self._records.get(account.account_id)
                stored_version = stored.version if stored else 0
                if stored_version != account.version:
                    raise ConcurrencyConflict(
                        f"account {account.account_id} is at version {stored_version}, "
                        f"not {account.version}"
                    )
            for account in accounts:
                record = self._factory.snapshot(account)
                record.version += 1
                self._records[account.account_id] = record
        for account in accounts:
            account.version += 1

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            record = self._records.get(account_id)
        if record is None:
            return None
        return self._factory.reconstitute(record)

    def find_by_ids(self, account_ids: Iterable[str]) -> list[Account]:
        with self._lock:
            records = [self._records[i] for i in account_ids if i in self._records]
        return [self._factory.reconstitute(record) for record in records]

    def find_by_name(self, name: str) -> list[Account]:
        with self._lock:
            records = [record for record in self._records.values() if record.name == name]
        return [self._factory.reconstitute(record) for record in records]
