"""
Domain models for the transaction machine.

Defines the account record schema aligned with `db/init.sql`. Every account type
(discriminator) shares this column set; attributes the schema does not know are
kept in the model's extras and never persisted.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

ACCOUNT_TABLE = "account"

# Columns written by INSERT/UPDATE; id and timestamps are always server-assigned.
SCHEMA_FIELDS: Tuple[str, ...] = ("key", "type", "balance", "postpaid", "status")

KEY_MAX_LENGTH = 36
TYPE_MAX_LENGTH = 20


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class AccountAttributes(BaseModel):
    """
    Representation of a single row in the `account` table.

    Only fields explicitly set (by the caller, a hook or a returned row) are
    written on insert, so column defaults apply to the others.
    """

    id: Optional[int] = Field(None, description="Primary key (SERIAL), server-assigned.")
    key: Optional[str] = Field(None, description="External unique key, VARCHAR(36).")
    type: Optional[str] = Field(None, description="Discriminator tag; None is the base type.")
    balance: Decimal = Field(Decimal("0.00"), description="NUMERIC(11,2) balance.")
    postpaid: bool = Field(False, description="Postpaid accounts may go below zero.")
    status: AccountStatus = Field(AccountStatus.ACTIVE, description="Lifecycle status.")
    created_at: Optional[datetime] = Field(None, description="Insert timestamp.")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp.")

    model_config = {
        "extra": "allow",
        "populate_by_name": True,
    }

    @property
    def extras(self) -> Dict[str, Any]:
        """Attributes outside the schema."""
        return dict(self.model_extra or {})

    def to_plain(self) -> Dict[str, Any]:
        """Set schema fields (in schema order) then extras, as JSON-compatible values."""
        included = {name for name in type(self).model_fields if name in self.model_fields_set}
        plain = self.model_dump(mode="json", include=included)
        plain.update(to_jsonable_python(self.extras))
        return plain

    def column_values(self) -> Dict[str, Any]:
        """Schema fields that were explicitly set, in schema order, ready for SQL."""
        return {
            name: to_db_value(getattr(self, name))
            for name in SCHEMA_FIELDS
            if name in self.model_fields_set
        }


def to_db_value(value: Any) -> Any:
    """Unwrap enums for the driver; everything else passes through."""
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = [
    "ACCOUNT_TABLE",
    "SCHEMA_FIELDS",
    "KEY_MAX_LENGTH",
    "TYPE_MAX_LENGTH",
    "AccountStatus",
    "AccountAttributes",
    "to_db_value",
]
