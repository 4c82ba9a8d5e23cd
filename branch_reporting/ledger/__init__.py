"""Ledger access: identity lookups, account balances and subject snapshots."""

from .base import AccountRecord, CustomerRecord, LedgerAccessor, SubjectRecord
from .database import Base, Database
from .sql import SqlLedger

__all__ = [
    "AccountRecord",
    "CustomerRecord",
    "LedgerAccessor",
    "SubjectRecord",
    "Base",
    "Database",
    "SqlLedger",
]
