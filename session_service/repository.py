"""Database repository for accounts and confirmation requests."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg import Connection
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, AccountStatus, ConfirmationPurpose, ConfirmationRequest
from .errors import AlreadyExists, StoreUnavailable

_ACCOUNT_COLUMNS = """
    account_id, name, surname, password_digest, status,
    password_updated_at, created_at, updated_at, must_reset_on_next_login
"""

_CONFIRMATION_COLUMNS = """
    confirmation_id, account_id, purpose, created_at, redeemed, redeemed_at
"""

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    surname TEXT NOT NULL DEFAULT '',
    password_digest TEXT NOT NULL,
    status TEXT NOT NULL,
    password_updated_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    must_reset_on_next_login BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS account_confirmations (
    confirmation_id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    purpose TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    redeemed BOOLEAN NOT NULL DEFAULT FALSE,
    redeemed_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS account_confirmations_account_idx
    ON account_confirmations (account_id, purpose);
"""


class AccountRepository:
    """Postgres-backed ``AccountStore``.

    An instance created from a pool checks out a connection per call. Instances
    yielded by :meth:`transaction` are bound to one connection until the block
    exits.
    """

    def __init__(self, pool: ConnectionPool, *, connection: Connection | None = None) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool
        self._conn = connection

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if self._conn is not None:
            yield self._conn
            return
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as exc:
            raise StoreUnavailable(f"database unavailable: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator["AccountRepository"]:
        """Run the enclosed writes atomically; nested use creates a savepoint."""
        if self._conn is not None:
            with self._conn.transaction():
                yield self
            return
        with self._connection() as conn:
            with conn.transaction():
                yield AccountRepository(self._pool, connection=conn)

    def create_schema(self) -> None:
        with self._connection() as conn:
            conn.execute(SCHEMA)

    def find_account(self, account_id: str) -> Account | None:
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return self._map_account(row)

    def create_account(self, account: Account) -> None:
        try:
            with self._connection() as conn:
                conn.execute(
                    f"""
                    INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        account.account_id,
                        account.name,
                        account.surname,
                        account.password_digest,
                        account.status.value,
                        account.password_updated_at,
                        account.created_at,
                        account.updated_at,
                        account.must_reset_on_next_login,
                    ),
                )
        except pg_errors.UniqueViolation as exc:
            raise AlreadyExists(
                f"an account already exists for {account.account_id}",
                account_id=account.account_id,
            ) from exc

    def update_account(self, account: Account) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE accounts
                SET name = %s,
                    surname = %s,
                    password_digest = %s,
                    status = %s,
                    password_updated_at = %s,
                    updated_at = %s,
                    must_reset_on_next_login = %s
                WHERE account_id = %s
                """,
                (
                    account.name,
                    account.surname,
                    account.password_digest,
                    account.status.value,
                    account.password_updated_at,
                    account.updated_at,
                    account.must_reset_on_next_login,
                    account.account_id,
                ),
            )

    def delete_account(self, account_id: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM accounts WHERE account_id = %s", (account_id,))
            return cur.rowcount > 0

    def find_confirmation(
        self,
        confirmation_id: str,
        purpose: ConfirmationPurpose,
        *,
        for_update: bool = False,
    ) -> ConfirmationRequest | None:
        """Return the request matching both identifier and purpose."""
        query = f"""
            SELECT {_CONFIRMATION_COLUMNS}
            FROM account_confirmations
            WHERE confirmation_id = %s AND purpose = %s
        """
        if for_update:
            query += " FOR UPDATE"
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, (confirmation_id, purpose.value))
                row = cur.fetchone()
        if not row:
            return None
        return self._map_confirmation(row)

    def create_confirmation(self, request: ConfirmationRequest) -> None:
        with self._connection() as conn:
            conn.execute(
                f"""
                INSERT INTO account_confirmations ({_CONFIRMATION_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    request.confirmation_id,
                    request.account_id,
                    request.purpose.value,
                    request.created_at,
                    request.redeemed,
                    request.redeemed_at,
                ),
            )

    def update_confirmation(self, request: ConfirmationRequest) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE account_confirmations
                SET redeemed = %s, redeemed_at = %s
                WHERE confirmation_id = %s
                """,
                (request.redeemed, request.redeemed_at, request.confirmation_id),
            )

    def _map_account(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            name=row[1],
            surname=row[2],
            password_digest=row[3],
            status=AccountStatus(row[4]),
            password_updated_at=row[5],
            created_at=row[6],
            updated_at=row[7],
            must_reset_on_next_login=row[8],
        )

    def _map_confirmation(self, row: tuple) -> ConfirmationRequest:
        return ConfirmationRequest(
            confirmation_id=row[0],
            account_id=row[1],
            purpose=ConfirmationPurpose(row[2]),
            created_at=row[3],
            redeemed=row[4],
            redeemed_at=row[5],
        )
