"""
Connection and transaction management for the transaction machine.

`Database` owns an asyncpg connection pool and provides:

- `acquire()`: borrow a connection together with a `release` callable. Releasing
  with an error terminates the connection so the pool replaces it instead of
  handing a possibly protocol-broken connection to the next caller.
- `execute()`: the query execution interface used by the entity layer.
- `transaction()` / `with_transaction()`: BEGIN ... COMMIT/ROLLBACK units with
  guaranteed release.

Pool creation retries transient connection failures using tenacity. Nothing else
is retried here.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)

import asyncpg
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from transaction_machine.config import Settings, build_dsn, get_settings
from transaction_machine.errors import (
    ConstraintViolation,
    DatabaseConnectionError,
    InvalidDataError,
)
from transaction_machine.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Errors meaning the connection itself can no longer be trusted.
_CONNECTION_ERRORS: Tuple[type, ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    OSError,
)


class ConnectionPool(Protocol):
    """Borrow/release contract the manager needs from a pool (asyncpg.Pool fits)."""

    def acquire(self, *, timeout: Optional[float] = None) -> Awaitable[Any]: ...

    async def release(self, connection: Any) -> None: ...

    async def close(self) -> None: ...


PoolFactory = Callable[[Settings], Awaitable[ConnectionPool]]
Release = Callable[..., Awaitable[None]]


@dataclass
class QueryResult:
    """Rows returned by a statement, as plain dicts."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


async def create_asyncpg_pool(settings: Settings) -> asyncpg.Pool:
    """Default pool factory: an asyncpg pool sized from settings."""
    return await asyncpg.create_pool(
        dsn=build_dsn(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )


def _translate(exc: BaseException) -> BaseException:
    """Map driver errors onto the transaction machine taxonomy."""
    if isinstance(exc, asyncpg.IntegrityConstraintViolationError):
        return ConstraintViolation.from_postgres(exc)
    if isinstance(exc, asyncpg.DataError):
        return InvalidDataError.from_postgres(exc)
    if isinstance(exc, _CONNECTION_ERRORS):
        return DatabaseConnectionError(str(exc) or type(exc).__name__)
    return exc


class Database:
    """
    Pool-backed connection/transaction manager.

    Example
    -------
        async with Database(settings) as db:
            async with db.transaction() as txn:
                await txn.execute('INSERT INTO "account" ("key") VALUES ($1)', ["k1"])
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pool_factory: Optional[PoolFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._pool_factory = pool_factory or create_asyncpg_pool
        self._pool: Optional[ConnectionPool] = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self) -> "Database":
        """
        Create the connection pool (idempotent).

        Retries transient connection failures with exponential backoff, up to
        `DB_CONNECT_RETRIES` attempts, then raises `DatabaseConnectionError`.
        """
        async with self._open_lock:
            if self._pool is None:
                await self._create_pool()
        return self

    async def _create_pool(self) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.db_connect_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_CONNECTION_ERRORS),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self._pool = await self._pool_factory(self.settings)
        except _CONNECTION_ERRORS as exc:
            raise DatabaseConnectionError(f"unable to open connection pool: {exc}") from exc

        log.info(
            "connection pool opened",
            extra={
                "db_host": self.settings.db_host,
                "db_name": self.settings.db_name,
                "pool_max_size": self.settings.db_pool_max_size,
            },
        )

    async def close(self) -> None:
        """Close the pool and every idle connection in it."""
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        log.info("connection pool closed")

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def acquire(self) -> Tuple[Any, Release]:
        """
        Borrow a connection from the pool.

        Returns the connection and an async `release(error=None)` function. Without
        an error the connection goes back to the pool for reuse; with an error it is
        terminated first so the pool discards it. Calling `release` more than once
        is a no-op.
        """
        if self._pool is None:
            await self.open()
        pool = self._pool
        assert pool is not None

        timeout = self.settings.db_acquire_timeout
        try:
            connection = await pool.acquire(timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise DatabaseConnectionError(
                f"connection pool exhausted (no connection within {timeout}s)"
            ) from exc
        except _CONNECTION_ERRORS as exc:
            raise DatabaseConnectionError(f"unable to acquire connection: {exc}") from exc

        released = False

        async def release(error: Optional[BaseException] = None) -> None:
            nonlocal released
            if released:
                return
            released = True
            if error is not None:
                log.warning(
                    "discarding connection after error",
                    extra={"error": type(error).__name__, "reason": str(error)},
                )
                connection.terminate()
            await pool.release(connection)

        return connection, release

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Borrow a connection for the duration of the block."""
        connection, release = await self.acquire()
        try:
            yield connection
        except BaseException as exc:
            await release(exc)
            raise
        await release()

    async def execute(
        self, connection: Any, sql: str, params: Sequence[Any] = ()
    ) -> QueryResult:
        """
        Run a statement with positional `$n` parameters on a borrowed connection.

        Driver errors are translated: integrity violations become
        `ConstraintViolation`, rejected values (SQLSTATE class 22) become
        `InvalidDataError` and broken connections `DatabaseConnectionError`.
        """
        if self.settings.db_debug:
            log.debug("executing statement", extra={"sql": sql, "params": list(params)})
        try:
            records = await connection.fetch(sql, *params)
        except Exception as exc:
            translated = _translate(exc)
            if translated is exc:
                raise
            raise translated from exc
        rows = [dict(record) for record in records]
        return QueryResult(rows=rows, row_count=len(rows))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Transaction"]:
        """
        Run a block inside BEGIN ... COMMIT.

        An exception escaping the block rolls the transaction back and propagates.
        The block may also finish early with `await txn.complete(error)`.
        """
        connection, release = await self.acquire()
        txn = Transaction(self, connection, release)
        await txn.begin()
        try:
            yield txn
        except BaseException as exc:
            await txn.complete(exc)
            raise
        await txn.complete()

    async def with_transaction(self, body: Callable[["Transaction"], Awaitable[T]]) -> T:
        """Await `body(txn)` inside a transaction and return its result."""
        async with self.transaction() as txn:
            return await body(txn)


class Transaction:
    """A borrowed connection with an open transaction and a one-shot finalizer."""

    def __init__(self, database: Database, connection: Any, release: Release) -> None:
        self.database = database
        self.connection = connection
        self._release = release
        self._tx = connection.transaction()
        self.completed = False

    async def begin(self) -> None:
        try:
            await self._tx.start()
        except Exception as exc:
            self.completed = True
            await self._release(exc)
            translated = _translate(exc)
            if translated is exc:
                raise
            raise translated from exc

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        return await self.database.execute(self.connection, sql, params)

    async def complete(self, error: Optional[BaseException] = None) -> None:
        """
        Finish the transaction and release the connection.

        Without `error` the transaction is committed. With `error` it is rolled
        back, whatever the error was. A failing COMMIT or ROLLBACK discards the
        connection and is raised (a rollback failure is chained to `error`).
        """
        if self.completed:
            return
        self.completed = True

        failure: Optional[BaseException] = None
        try:
            if error is None:
                await self._tx.commit()
            else:
                await self._tx.rollback()
        except Exception as exc:
            failure = exc
            log.error(
                "transaction %s failed",
                "commit" if error is None else "rollback",
                extra={"reason": str(exc)},
            )

        await self._release(failure)

        if failure is not None:
            if error is not None:
                # rollback failed while handling `error`
                failure.__cause__ = error
            translated = _translate(failure)
            if translated is failure:
                raise failure
            raise translated from failure


__all__ = [
    "ConnectionPool",
    "Database",
    "QueryResult",
    "Transaction",
    "create_asyncpg_pool",
]
