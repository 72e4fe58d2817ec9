"""
Domain package for the transaction machine.

Exports the account record schema, account types, the hook pipeline and the
discriminator registry. Keep this package free of pool/driver details; it talks to
the store only through `Database.connection()` and `Database.execute()`.
"""

from transaction_machine.domain.account import Account, AccountType
from transaction_machine.domain.hooks import HookPipeline
from transaction_machine.domain.models import AccountAttributes, AccountStatus
from transaction_machine.domain.registry import AccountRegistry

__all__ = [
    "Account",
    "AccountAttributes",
    "AccountRegistry",
    "AccountStatus",
    "AccountType",
    "HookPipeline",
]
