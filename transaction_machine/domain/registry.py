"""
Discriminator registry: account type name -> `AccountType`.

The registry owns the base type, hands out write-once subtype registrations and
provides the polymorphic entry points `create()` and `get()`, which route through
the type map both when building new accounts and when wrapping rows read back from
the `account` table.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional

from transaction_machine.domain.account import Account, AccountType
from transaction_machine.domain.models import ACCOUNT_TABLE
from transaction_machine.errors import DuplicateTypeError, QueryError, TypeResolutionError
from transaction_machine.utils.logging import get_logger

if TYPE_CHECKING:
    from transaction_machine.infrastructure.database import Database

log = get_logger(__name__)


class AccountRegistry:
    """Open, write-once registry of account types sharing one table."""

    def __init__(self, database: "Database") -> None:
        self.database = database
        self.base = AccountType(None, registry=self)
        self._types: Dict[str, AccountType] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[AccountType]:
        return iter(self._types.values())

    def names(self) -> List[str]:
        return list(self._types)

    def discriminator(self, name: str, base: Optional[AccountType] = None) -> AccountType:
        """
        Register a new account type named `name`, derived from `base` (default: the
        base account type).

        Raises
        ------
        DuplicateTypeError
            If `name` is already registered; the existing type stays usable.
        """
        if not name:
            raise ValueError("account type name must be a non-empty string")
        if name in self._types:
            raise DuplicateTypeError(name)

        parent = base or self.base
        if parent.registry is not self:
            raise ValueError(f"{parent!r} belongs to another registry")

        account_type = AccountType(name, registry=self, parent=parent)
        self._types[name] = account_type
        log.debug(
            "account type registered",
            extra={"account_type": name, "parent": parent.name},
        )
        return account_type

    def account_type(self, name: str) -> AccountType:
        """Return the type registered as `name`, registering it on first use."""
        existing = self._types.get(name)
        if existing is not None:
            return existing
        return self.discriminator(name)

    def resolve(self, name: Optional[str]) -> AccountType:
        """Map a discriminator value to its type; None selects the base type."""
        if name is None:
            return self.base
        try:
            return self._types[name]
        except KeyError:
            raise TypeResolutionError(name) from None

    async def create(self, params: Mapping[str, Any]) -> Account:
        """
        Build an account of the type named by `params["type"]` and insert it.

        Raises
        ------
        TypeResolutionError
            If the type is not registered.
        """
        account_type = self.resolve(params.get("type") or None)
        account = account_type(params)
        await account.insert()
        return account

    async def get(self, query: Mapping[str, Any]) -> Optional[Account]:
        """
        Fetch one account by `key` or, failing that, by `id`.

        Returns None when no row matches.

        Raises
        ------
        QueryError
            If neither `key` nor `id` is given, `key` is not a string or `id` is
            not an integer.
        TypeResolutionError
            If the stored row carries an unregistered type.
        """
        if query.get("key"):
            field, value = "key", query["key"]
            if not isinstance(value, str):
                raise QueryError(f"account key must be a string, got {value!r}")
        elif query.get("id"):
            field = "id"
            try:
                value = int(query["id"])
            except (TypeError, ValueError):
                raise QueryError(f"account id must be an integer, got {query['id']!r}") from None
        else:
            raise QueryError("bad or missing query params")

        sql = f'SELECT * FROM "{ACCOUNT_TABLE}" WHERE "{field}" = $1'
        async with self.database.connection() as connection:
            result = await self.database.execute(connection, sql, [value])

        row = result.first()
        if row is None:
            return None
        return self.resolve(row.get("type"))(row)


__all__ = ["AccountRegistry"]
