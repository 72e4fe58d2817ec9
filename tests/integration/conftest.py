"""
Async fixtures for integration tests against a real PostgreSQL instance.

Each test gets its own `Database`/`TransactionMachine` on a fresh asyncpg pool and
an empty `account` table.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio

from transaction_machine.config import Settings
from transaction_machine.infrastructure.database import Database
from transaction_machine.machine import TransactionMachine


@pytest_asyncio.fixture
async def database(
    test_settings: Settings, clean_account_table
) -> AsyncGenerator[Database, None]:
    db = Database(test_settings)
    await db.open()
    try:
        yield db
    finally:
        await db.close()


@pytest_asyncio.fixture
async def machine(database: Database) -> AsyncGenerator[TransactionMachine, None]:
    tm = TransactionMachine.init(database.settings, database=database)
    yield tm
