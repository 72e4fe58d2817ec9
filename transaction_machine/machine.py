"""
The transaction machine facade.

Composes the connection/transaction manager and the account type registry, and is
the single entry point for callers (job handlers, CLI, application code).

Usage:
    from transaction_machine import TransactionMachine

    async with TransactionMachine.init(settings) as machine:
        Balancer = machine.account("Balancer").pre("insert", force_postpaid)
        balancer = await machine.create({"type": "Balancer", "key": "root"})
        same = await machine.get({"key": "root"})
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from transaction_machine.config import Settings, get_settings
from transaction_machine.domain.account import Account, AccountType
from transaction_machine.domain.registry import AccountRegistry
from transaction_machine.infrastructure.database import Database


class TransactionMachine:
    """Owns the database manager and the account registry."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.database = database or Database(self.settings)
        self.registry = AccountRegistry(self.database)
        # Base account type; callable like a constructor.
        self.Account: AccountType = self.registry.base

    @classmethod
    def init(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "TransactionMachine":
        return cls(settings, **kwargs)

    async def open(self) -> "TransactionMachine":
        await self.database.open()
        return self

    async def close(self) -> None:
        await self.database.close()

    async def __aenter__(self) -> "TransactionMachine":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def account(self, type_name: str) -> AccountType:
        """
        Account type accessor.

        The first call for a name registers a new type derived from the base type;
        later calls return the same `AccountType`, so hooks can be attached in
        several places.
        """
        return self.registry.account_type(type_name)

    def discriminator(self, type_name: str, base: Optional[AccountType] = None) -> AccountType:
        return self.registry.discriminator(type_name, base=base)

    async def create(self, params: Mapping[str, Any]) -> Account:
        return await self.registry.create(params)

    async def get(self, query: Mapping[str, Any]) -> Optional[Account]:
        return await self.registry.get(query)


__all__ = ["TransactionMachine"]
