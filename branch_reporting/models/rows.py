"""Row records flowing from the upload parser through reconciliation to commit."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List, Dict, Any

from .enums import RejectReason


def _decimal_str(value: Decimal) -> str:
    """Serialize a Decimal without exponent noise (1E+6 -> '1000000')."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


@dataclass
class RawRow:
    """
    One parsed input line, not yet validated.
    Balances are kept as the raw cell value; the engine parses them.
    """
    row_number: int
    cif: str = ""
    client_name: str = ""
    account_number: str = ""
    balance: Any = None
    available_balance: Any = None
    staff_code: Optional[str] = None
    parse_error: Optional[str] = None

    @property
    def duplicate_key(self) -> Optional[tuple]:
        """Key used for last-write-wins resolution within a batch."""
        if self.parse_error or not self.cif or not self.account_number:
            return None
        return (self.cif, self.account_number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "cif": self.cif,
            "client_name": self.client_name,
            "account_number": self.account_number,
            "balance": None if self.balance is None else str(self.balance),
            "available_balance": None if self.available_balance is None else str(self.available_balance),
            "staff_code": self.staff_code,
        }


@dataclass
class ValidatedRow:
    """
    One reconciled line ready for commit.

    previous_balance is the ledger state for the account on or before the
    report date; new_balance is the value reported in the upload. At the API
    boundary the new balances travel as current_balance / available_balance.
    """
    row_number: int
    cif: str
    client_name: str
    account_number: str
    account_id: int
    subject_id: int
    subject_name: str
    previous_balance: Decimal
    new_balance: Decimal
    new_available_balance: Decimal
    warning: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.new_balance != self.previous_balance

    @property
    def delta(self) -> Decimal:
        return self.new_balance - self.previous_balance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "cif": self.cif,
            "client_name": self.client_name,
            "account_number": self.account_number,
            "account_id": self.account_id,
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "previous_balance": _decimal_str(self.previous_balance),
            "current_balance": _decimal_str(self.new_balance),
            "available_balance": _decimal_str(self.new_available_balance),
            "changed": self.changed,
            "warning": self.warning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidatedRow":
        new_balance = Decimal(str(data["current_balance"]))
        available = data.get("available_balance")
        return cls(
            row_number=int(data.get("row_number", 0)),
            cif=str(data["cif"]),
            client_name=str(data.get("client_name", "")),
            account_number=str(data["account_number"]),
            account_id=int(data["account_id"]),
            subject_id=int(data["subject_id"]),
            subject_name=str(data.get("subject_name", "")),
            previous_balance=Decimal(str(data.get("previous_balance", "0"))),
            new_balance=new_balance,
            new_available_balance=new_balance if available is None else Decimal(str(available)),
            warning=data.get("warning"),
        )


@dataclass
class RejectedRow:
    """A raw row that will never be committed, with the reason why."""
    row: RawRow
    reason: RejectReason
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row.row_number,
            "reason": self.reason.value,
            "detail": self.detail,
            "cif": self.row.cif,
            "account_number": self.row.account_number,
            "data": self.row.to_dict(),
        }


@dataclass
class ValidationSummary:
    """Counters for one reconciliation run."""
    total_rows_in_source: int = 0
    valid_rows: int = 0
    rejected_rows: int = 0
    changed_rows: int = 0
    unchanged_rows: int = 0
    subjects_affected: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows_in_source": self.total_rows_in_source,
            "valid_rows": self.valid_rows,
            "rejected_rows": self.rejected_rows,
            "changed_rows": self.changed_rows,
            "unchanged_rows": self.unchanged_rows,
            "subjects_affected": list(self.subjects_affected),
        }


@dataclass
class ValidationOutcome:
    """Result of reconciling one upload."""
    validated: List[ValidatedRow] = field(default_factory=list)
    rejected: List[RejectedRow] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)

    def to_payload(self, report_date) -> Dict[str, Any]:
        """Shape stored on a completed validation job."""
        return {
            "report_date": report_date.isoformat(),
            "valid_rows": [row.to_dict() for row in self.validated],
            "rejected_rows": [row.to_dict() for row in self.rejected],
            "summary": self.summary.to_dict(),
        }
