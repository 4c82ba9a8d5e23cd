"""
Ledger accessor boundary.

The reconciliation engine, commit job and report generator only see the
records and protocol defined here; the SQLAlchemy implementation lives in
sql.py.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional, Protocol


@dataclass(frozen=True)
class CustomerRecord:
    id: int
    cif: str
    name: str


@dataclass(frozen=True)
class AccountRecord:
    id: int
    customer_id: int
    account_number: str
    subject_id: Optional[int]


@dataclass(frozen=True)
class SubjectRecord:
    id: int
    identifier: str  # Staff code (NIP)
    name: str
    role: Optional[str] = None
    org_unit: Optional[str] = None
    account_count: int = 0


class LedgerAccessor(Protocol):
    """Read/write access to accounts, balances and identity lookups."""

    def find_customer(self, cif: str) -> Optional[CustomerRecord]:
        ...

    def find_account(self, customer_id: int, account_number: str) -> Optional[AccountRecord]:
        ...

    def find_subject(self, identifier: str) -> Optional[SubjectRecord]:
        ...

    def get_subject(self, subject_id: int) -> Optional[SubjectRecord]:
        ...

    def account_balance_on_or_before(self, account_id: int, day: date) -> Optional[Decimal]:
        ...

    def apply_balance(
        self,
        account_id: int,
        subject_id: int,
        day: date,
        balance: Decimal,
        available_balance: Decimal,
    ) -> None:
        """Overwrite the account balance for day and refresh the subject snapshot."""
        ...

    def snapshots_on(self, subject_ids: Iterable[int], day: date) -> Dict[int, Decimal]:
        ...

    def snapshots_between(
        self,
        subject_ids: Iterable[int],
        start: date,
        end: date,
    ) -> Dict[int, Dict[date, Decimal]]:
        ...
