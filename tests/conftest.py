"""
Pytest configuration for the transaction machine.

Provides fixtures for:
- Database connection management (a plain psycopg connection, independent of the
  asyncpg pool under test, used to set up and inspect state)
- Schema initialization from db/init.sql
- Settings override for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import psycopg
import pytest
from psycopg.rows import dict_row

from transaction_machine.config import Settings, build_dsn

INIT_SQL_PATH = Path(__file__).parent.parent / "db" / "init.sql"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "transaction_machine"),
        db_pool_min_size=1,
        db_pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", "5")),
        db_connect_retries=1,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, row_factory=dict_row)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the account schema exists.

    db/init.sql is idempotent, so it is simply applied once per session.
    """
    with db_connection.cursor() as cur:
        cur.execute(INIT_SQL_PATH.read_text())
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_account_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Clean the account table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute('TRUNCATE TABLE "account" RESTART IDENTITY CASCADE;')
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute('TRUNCATE TABLE "account" RESTART IDENTITY CASCADE;')
    db_connection.commit()


@pytest.fixture
def fetch_account_entry(db_connection: psycopg.Connection):
    """
    Read an account row by id through the helper connection, bypassing the pool.
    """

    def _fetch(account_id: Any) -> Optional[Dict[str, Any]]:
        with db_connection.cursor() as cur:
            cur.execute('SELECT * FROM "account" WHERE "id" = %s;', (account_id,))
            row = cur.fetchone()
        db_connection.commit()
        return row

    return _fetch
