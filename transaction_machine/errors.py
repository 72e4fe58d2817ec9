"""
Error taxonomy for the transaction machine.

Every error raised by the core derives from `TransactionMachineError`, which carries
an optional machine-readable `code`. Errors coming from the store are wrapped (the
original exception stays available as `__cause__`) so callers only need to know this
module.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TransactionMachineError(Exception):
    """Base class for all transaction machine failures."""

    code: Optional[str] = None
    # Whether a job runner may try the same job again.
    retryable: bool = False

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Serializable form used at the job boundary."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }


class TypeResolutionError(TransactionMachineError, LookupError):
    """An account type name is not registered."""

    def __init__(self, type_name: Optional[str]) -> None:
        super().__init__(f'unrecognized account type "{type_name}"')
        self.type_name = type_name


class DuplicateTypeError(TransactionMachineError, ValueError):
    """An account type name is already registered."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f'account discriminator "{type_name}" is already defined')
        self.type_name = type_name


class QueryError(TransactionMachineError, ValueError):
    """A lookup or update was called with bad or missing query parameters."""


class MissingIdentifierError(QueryError):
    """An update was attempted on an account without an `id`."""

    def __init__(self, message: str = "unable to update account entry (missing `attributes.id`)") -> None:
        super().__init__(message)


class AttributeValidationError(TransactionMachineError, ValueError):
    """
    Account attributes failed validation before reaching the store.

    `fields` maps each offending attribute (dotted path for nested values) to the
    reason it was rejected.
    """

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.fields: Dict[str, str] = dict(fields or {})

    @classmethod
    def from_pydantic(cls, exc: Any) -> "AttributeValidationError":
        """Build from a pydantic `ValidationError`, one entry per failing field."""
        fields: Dict[str, str] = {}
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
            fields.setdefault(location, error.get("msg", "invalid value"))
        names = ", ".join(sorted(fields))
        return cls(f"invalid account attributes: {names}", fields=fields)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["fields"] = dict(self.fields)
        return payload


class StoreError(TransactionMachineError):
    """
    The store rejected a statement.

    `code` is the PostgreSQL SQLSTATE; `constraint`, `table` and `column` come from
    the server diagnostics when the server reports them.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        constraint: Optional[str] = None,
        table: Optional[str] = None,
        column: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code)
        self.constraint = constraint
        self.table = table
        self.column = column
        self.detail = detail

    @classmethod
    def from_postgres(cls, exc: Any) -> "StoreError":
        """Build from an asyncpg `PostgresError`, keeping its diagnostics verbatim."""
        return cls(
            getattr(exc, "message", None) or str(exc),
            code=getattr(exc, "sqlstate", None),
            constraint=getattr(exc, "constraint_name", None),
            table=getattr(exc, "table_name", None),
            column=getattr(exc, "column_name", None),
            detail=getattr(exc, "detail", None),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(constraint=self.constraint, table=self.table, column=self.column)
        return payload


class ConstraintViolation(StoreError):
    """
    An integrity constraint (NOT NULL, UNIQUE, CHECK, ...) was violated by the store.

    e.g. code "23502" for NOT NULL, "23505" for UNIQUE.
    """


class InvalidDataError(StoreError, ValueError):
    """
    The store refused a value for its column type (SQLSTATE class 22), e.g. a key
    longer than the column allows or an unknown status.
    """


class DatabaseConnectionError(TransactionMachineError, ConnectionError):
    """The pool could not hand out a connection, or a connection broke mid-use."""

    retryable = True


class HookAbortError(TransactionMachineError):
    """A pre/post hook aborted an account operation."""

    retryable = True

    def __init__(self, stage: str, operation: str, hook_name: str, reason: str) -> None:
        super().__init__(f"{stage}-{operation} hook {hook_name!r} aborted: {reason}")
        self.stage = stage
        self.operation = operation
        self.hook_name = hook_name


class UnknownJobError(TransactionMachineError, LookupError):
    """A job name has no registered handler."""

    def __init__(self, job_name: str) -> None:
        super().__init__(f'unrecognized job "{job_name}"')
        self.job_name = job_name


__all__ = [
    "TransactionMachineError",
    "TypeResolutionError",
    "DuplicateTypeError",
    "QueryError",
    "MissingIdentifierError",
    "AttributeValidationError",
    "StoreError",
    "ConstraintViolation",
    "InvalidDataError",
    "DatabaseConnectionError",
    "HookAbortError",
    "UnknownJobError",
]
