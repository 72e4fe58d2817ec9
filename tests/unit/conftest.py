"""
In-memory fakes for unit tests: a pool, its connections and a tiny `account` table.

The fakes implement just enough of the asyncpg surface used by `Database`
(`acquire`/`release`/`close`, `fetch`, `transaction()`, `terminate()`).
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import asyncpg
import pytest

from transaction_machine.config import Settings
from transaction_machine.infrastructure.database import Database
from transaction_machine.machine import TransactionMachine

Responder = Callable[[str, Tuple[Any, ...]], List[Dict[str, Any]]]


class FakeTransaction:
    def __init__(self, connection: "FakeConnection") -> None:
        self._connection = connection

    async def start(self) -> None:
        self._connection.control("BEGIN")

    async def commit(self) -> None:
        self._connection.control("COMMIT")

    async def rollback(self) -> None:
        self._connection.control("ROLLBACK")


class FakeConnection:
    def __init__(self, pool: "FakePool", ident: int) -> None:
        self.pool = pool
        self.ident = ident
        self.terminated = False

    def __repr__(self) -> str:
        return f"<FakeConnection #{self.ident}>"

    def control(self, statement: str) -> None:
        self.pool.statements.append((self.ident, statement, ()))
        failure = self.pool.failures.get(statement)
        if failure is not None:
            raise failure

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def fetch(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        self.pool.statements.append((self.ident, sql, params))
        for marker, failure in self.pool.failures.items():
            if marker in sql:
                raise failure
        await asyncio.sleep(0)
        return self.pool.responder(sql, params)

    def terminate(self) -> None:
        self.terminated = True


class FakePool:
    """Bounded pool handing out `FakeConnection`s, reusing released healthy ones."""

    def __init__(self, max_size: int = 10) -> None:
        self.max_size = max_size
        self.created: List[FakeConnection] = []
        self.idle: List[FakeConnection] = []
        self.in_use: List[FakeConnection] = []
        self.statements: List[Tuple[int, str, Tuple[Any, ...]]] = []
        self.failures: Dict[str, BaseException] = {}
        self.responder: Responder = lambda sql, params: []
        self.acquire_calls = 0
        self.closed = False

    async def acquire(self, *, timeout: Optional[float] = None) -> FakeConnection:
        self.acquire_calls += 1
        await asyncio.sleep(0)
        if self.idle:
            connection = self.idle.pop()
        elif len(self.created) - self.discarded < self.max_size:
            connection = FakeConnection(self, len(self.created) + 1)
            self.created.append(connection)
        else:
            raise asyncio.TimeoutError()
        self.in_use.append(connection)
        return connection

    async def release(self, connection: FakeConnection) -> None:
        self.in_use.remove(connection)
        if not connection.terminated:
            self.idle.append(connection)

    async def close(self) -> None:
        self.closed = True

    @property
    def discarded(self) -> int:
        return sum(1 for connection in self.created if connection.terminated)

    def sql(self) -> List[str]:
        return [statement for _, statement, _ in self.statements]


_INSERT_RE = re.compile(r'INSERT INTO "account" \((?P<columns>[^)]*)\)')
_SET_RE = re.compile(r'"(\w+)" = \$(\d+)')
_WHERE_RE = re.compile(r'WHERE "(\w+)" = \$(\d+)')


def _violation(cls: type, message: str, **diagnostics: Any) -> BaseException:
    exc = cls(message)
    for name, value in diagnostics.items():
        setattr(exc, name, value)
    return exc


class FakeAccountTable:
    """Just enough of the `account` table for INSERT/SELECT/UPDATE ... RETURNING *."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self._next_id = 1

    def __call__(self, sql: str, params: Tuple[Any, ...]) -> List[Dict[str, Any]]:
        if sql.startswith("INSERT"):
            return [self._insert(sql, params)]
        if sql.startswith("UPDATE"):
            return self._update(sql, params)
        if sql.startswith("SELECT"):
            field, position = _WHERE_RE.search(sql).groups()
            value = params[int(position) - 1]
            return [dict(row) for row in self.rows if row[field] == value]
        return []

    def _insert(self, sql: str, params: Tuple[Any, ...]) -> Dict[str, Any]:
        columns = [name.strip().strip('"') for name in _INSERT_RE.search(sql)["columns"].split(",")]
        values = dict(zip(columns, params))
        if values.get("key") is None:
            raise _violation(
                asyncpg.NotNullViolationError,
                'null value in column "key" violates not-null constraint',
                table_name="account",
                column_name="key",
            )
        if any(row["key"] == values["key"] for row in self.rows):
            raise _violation(
                asyncpg.UniqueViolationError,
                'duplicate key value violates unique constraint "account_key_idx"',
                table_name="account",
                constraint_name="account_key_idx",
            )
        row = {
            "id": self._next_id,
            "key": values["key"],
            "type": values.get("type"),
            "balance": Decimal(str(values.get("balance", "0.00"))),
            "postpaid": values.get("postpaid", False),
            "status": values.get("status", "active"),
            "created_at": datetime.now(),
            "updated_at": None,
        }
        self._next_id += 1
        self.rows.append(row)
        return dict(row)

    def _update(self, sql: str, params: Tuple[Any, ...]) -> List[Dict[str, Any]]:
        set_clause, where_clause = sql.split(" WHERE ")
        account_id = params[int(_WHERE_RE.search("WHERE " + where_clause).group(2)) - 1]
        for row in self.rows:
            if row["id"] == account_id:
                for field, position in _SET_RE.findall(set_clause):
                    row[field] = params[int(position) - 1]
                row["updated_at"] = datetime.now()
                return [dict(row)]
        return []


@pytest.fixture
def settings() -> Settings:
    return Settings(db_name="transaction_machine_unit", db_connect_retries=1)


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def database(settings: Settings, fake_pool: FakePool) -> Database:
    async def factory(_: Settings) -> FakePool:
        return fake_pool

    return Database(settings, pool_factory=factory)


@pytest.fixture
def account_table(fake_pool: FakePool) -> FakeAccountTable:
    table = FakeAccountTable()
    fake_pool.responder = table
    return table


@pytest.fixture
def machine(settings: Settings, database: Database) -> TransactionMachine:
    return TransactionMachine.init(settings, database=database)
