"""
Account entity and account types.

An `AccountType` is a tagged variant of the single `account` table: it knows its
discriminator name, its parent type and its hook pipeline, and it is callable to
build `Account` instances. All types persist through the same columns; the `type`
column selects which `AccountType` wraps a row read back from storage.

Example
-------
    Balancer = machine.account("Balancer")
    Balancer.pre("insert", lambda account: setattr(account.attributes, "postpaid", True))

    balancer = Balancer({"key": "root"})
    await balancer.insert()
    balancer.attributes.postpaid  # True
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from transaction_machine.domain.hooks import POST, PRE, Hook, HookPipeline
from transaction_machine.domain.models import (
    ACCOUNT_TABLE,
    SCHEMA_FIELDS,
    AccountAttributes,
    to_db_value,
)
from transaction_machine.errors import (
    AttributeValidationError,
    MissingIdentifierError,
    QueryError,
)
from transaction_machine.utils.logging import get_logger

if TYPE_CHECKING:
    from transaction_machine.domain.registry import AccountRegistry
    from transaction_machine.infrastructure.database import Database

log = get_logger(__name__)

AttributesLike = Union[AccountAttributes, Mapping[str, Any], None]


def _validate(data: Mapping[str, Any]) -> AccountAttributes:
    try:
        return AccountAttributes.model_validate(dict(data))
    except ValidationError as exc:
        raise AttributeValidationError.from_pydantic(exc) from exc


def _coerce_attributes(attributes: AttributesLike) -> AccountAttributes:
    if attributes is None:
        return AccountAttributes()
    if isinstance(attributes, AccountAttributes):
        return attributes.model_copy(deep=True)
    return _validate(attributes)


class AccountType:
    """
    A registered account variant (the base type has `name` None).

    Calling the type builds an account: the parent type initializes the attributes
    first, then this type stamps its own name into `attributes.type`.
    """

    def __init__(
        self,
        name: Optional[str],
        registry: "AccountRegistry",
        parent: Optional["AccountType"] = None,
    ) -> None:
        self.name = name
        self.registry = registry
        self.parent = parent
        self.hooks = HookPipeline(parent.hooks if parent else None)

    def __repr__(self) -> str:
        return f"<AccountType {self.name or 'Account'}>"

    def __call__(self, attributes: AttributesLike = None, **extra: Any) -> "Account":
        return Account(self, attributes, **extra)

    @property
    def database(self) -> "Database":
        return self.registry.database

    def initialize(self, attributes: AccountAttributes) -> None:
        if self.parent is not None:
            self.parent.initialize(attributes)
        if self.name is not None:
            attributes.type = self.name

    def pre(self, operation: str, hook: Hook) -> "AccountType":
        """Append `hook` to this type's pre-`operation` chain."""
        self.hooks.register(PRE, operation, hook)
        return self

    def post(self, operation: str, hook: Hook) -> "AccountType":
        """Append `hook` to this type's post-`operation` chain."""
        self.hooks.register(POST, operation, hook)
        return self

    def discriminator(self, name: str) -> "AccountType":
        """Register a new type derived from this one."""
        return self.registry.discriminator(name, base=self)

    def is_subtype_of(self, other: Union["AccountType", str, None]) -> bool:
        """True if `other` is this type or one of its ancestors."""
        current: Optional[AccountType] = self
        while current is not None:
            if current is other or (isinstance(other, str) and current.name == other):
                return True
            current = current.parent
        return other is None


class Account:
    """
    A single account record bound to its `AccountType`.

    `attributes` is the structured record; after `insert()`/`update()` it is replaced
    wholesale by the row the store returned, so server-side values (id, defaults,
    timestamps) are authoritative.
    """

    def __init__(
        self,
        account_type: AccountType,
        attributes: AttributesLike = None,
        **extra: Any,
    ) -> None:
        """
        Raises `AttributeValidationError` if `attributes` do not fit the schema.
        A given `AccountAttributes` is copied, never shared.
        """
        self.account_type = account_type
        self.attributes = _coerce_attributes(attributes)
        for name, value in extra.items():
            setattr(self.attributes, name, value)
        account_type.initialize(self.attributes)

    def __repr__(self) -> str:
        return f"{self.account_type.name or 'Account'}<#{self.key}>"

    @property
    def id(self) -> Optional[int]:
        return self.attributes.id

    @property
    def key(self) -> Optional[str]:
        return self.attributes.key

    @property
    def type(self) -> Optional[str]:
        return self.attributes.type

    def is_a(self, account_type: Union[AccountType, str, None]) -> bool:
        return self.account_type.is_subtype_of(account_type)

    def _replace(self, row: Optional[Dict[str, Any]]) -> None:
        if row is None:
            raise QueryError(f"account #{self.id} does not exist")
        self.attributes = _validate(row)

    async def insert(self) -> "Account":
        """
        Persist a new account.

        Runs the pre-insert chain, inserts every schema field that has been set
        (unset ones fall back to column defaults), adopts the returned row and runs
        the post-insert chain. A missing or empty `key` is sent as NULL so the store
        reports the NOT NULL violation.
        """
        hooks = self.account_type.hooks
        await hooks.run(PRE, "insert", self)

        if not self.attributes.key:
            self.attributes.key = None

        values = self.attributes.column_values()
        columns = ", ".join(f'"{name}"' for name in values)
        placeholders = ", ".join(f"${position}" for position in range(1, len(values) + 1))
        sql = (
            f'INSERT INTO "{ACCOUNT_TABLE}" ({columns}) '
            f"VALUES ({placeholders}) RETURNING *"
        )

        database = self.account_type.database
        async with database.connection() as connection:
            result = await database.execute(connection, sql, list(values.values()))
        self._replace(result.first())

        log.info("account inserted", extra={"account_id": self.id, "account_type": self.type})
        await hooks.run(POST, "insert", self)
        return self

    async def update(
        self, attributes: Optional[Mapping[str, Any]] = None, **changes: Any
    ) -> "Account":
        """
        Update the given schema fields and stamp `updated_at`.

        Pre/post-update hooks receive the account and the (mutable) change mapping.
        Keys outside the schema are ignored.

        Raises
        ------
        MissingIdentifierError
            If the account has not been inserted (no `id`); nothing is written.
        QueryError
            If no row with this `id` exists.
        StoreError
            If the store rejects a value (`ConstraintViolation`, `InvalidDataError`).
        """
        if not self.id:
            raise MissingIdentifierError()

        pending: Dict[str, Any] = dict(attributes or {})
        pending.update(changes)

        hooks = self.account_type.hooks
        await hooks.run(PRE, "update", self, pending)

        assignments = []
        values = []
        for name in SCHEMA_FIELDS:
            if name in pending:
                values.append(to_db_value(pending[name]))
                assignments.append(f'"{name}" = ${len(values)}')
        assignments.append('"updated_at" = NOW()')
        values.append(self.id)

        sql = (
            f'UPDATE "{ACCOUNT_TABLE}" SET {", ".join(assignments)} '
            f'WHERE "id" = ${len(values)} RETURNING *'
        )

        database = self.account_type.database
        async with database.connection() as connection:
            result = await database.execute(connection, sql, values)
        self._replace(result.first())

        log.info(
            "account updated",
            extra={"account_id": self.id, "fields": [n for n in SCHEMA_FIELDS if n in pending]},
        )
        await hooks.run(POST, "update", self, pending)
        return self

    def to_plain_object(self) -> Dict[str, Any]:
        """
        JSON-compatible mapping of every attribute that is set, schema fields first
        (in schema order) followed by extras.
        """
        return self.attributes.to_plain()


__all__ = ["Account", "AccountType"]
