"""
Infrastructure package for the transaction machine.

Centralizes database connectivity concerns (pooling, query execution,
transactions). Keep this layer focused on I/O and resource management, decoupled
from the account domain.
"""

from transaction_machine.infrastructure.database import (
    ConnectionPool,
    Database,
    QueryResult,
    Transaction,
    create_asyncpg_pool,
)

__all__ = [
    "ConnectionPool",
    "Database",
    "QueryResult",
    "Transaction",
    "create_asyncpg_pool",
]
