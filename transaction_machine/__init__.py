"""
Transaction Machine - account persistence layer over PostgreSQL.

This package provides:

- A pool-backed connection/transaction manager with commit/rollback and
  connection-discard semantics
- An `Account` entity persisted in a single `account` table
- A discriminator registry of account types sharing that table
- Ordered pre/post hook chains around insert/update, inherited by subtypes
- Job handlers (`create_account`, `get_account`, `update_account`) for an external worker
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from transaction_machine.config import Settings, build_dsn, get_settings
from transaction_machine.domain import (
    Account,
    AccountAttributes,
    AccountRegistry,
    AccountStatus,
    AccountType,
)
from transaction_machine.errors import (
    ConstraintViolation,
    DatabaseConnectionError,
    DuplicateTypeError,
    HookAbortError,
    AttributeValidationError,
    InvalidDataError,
    MissingIdentifierError,
    QueryError,
    StoreError,
    TransactionMachineError,
    TypeResolutionError,
    UnknownJobError,
)
from transaction_machine.infrastructure import Database, QueryResult, Transaction
from transaction_machine.machine import TransactionMachine
from transaction_machine.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "build_dsn",
    "get_settings",
    # Facade
    "TransactionMachine",
    # Domain
    "Account",
    "AccountAttributes",
    "AccountRegistry",
    "AccountStatus",
    "AccountType",
    # Infrastructure
    "Database",
    "QueryResult",
    "Transaction",
    # Errors
    "ConstraintViolation",
    "DatabaseConnectionError",
    "DuplicateTypeError",
    "HookAbortError",
    "AttributeValidationError",
    "InvalidDataError",
    "MissingIdentifierError",
    "QueryError",
    "StoreError",
    "TransactionMachineError",
    "TypeResolutionError",
    "UnknownJobError",
    # Logging
    "configure_logging",
    "get_logger",
]
