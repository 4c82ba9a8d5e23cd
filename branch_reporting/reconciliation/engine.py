"""
Reconciliation Engine - turns parsed upload rows into balance deltas.

Pipeline per batch:
1. Duplicate pass over the whole batch (last occurrence wins)
2. Per row: identity, owning subject, previous balance, reported amount
3. Summary aggregation

The engine only reads from the ledger, so running it twice against the same
ledger state gives the same outcome.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ..errors import IdentityLookupError, RowRejection
from ..ingestion.amounts import InvalidAmount, parse_amount
from ..ledger import AccountRecord, CustomerRecord, LedgerAccessor, SubjectRecord
from ..models import (
    RawRow,
    RejectReason,
    RejectedRow,
    ValidatedRow,
    ValidationOutcome,
    ValidationSummary,
)

logger = structlog.get_logger()

ZERO = Decimal("0")


class ReconciliationEngine:
    """
    Reconciles raw rows against the current ledger state.

    Lookups are memoized for the duration of a single reconcile() call so a
    file with many rows for the same customer or subject hits the ledger once.
    """

    def __init__(self, ledger: LedgerAccessor):
        self.ledger = ledger
        self._reset_caches()

    def _reset_caches(self) -> None:
        self._customers: Dict[str, Optional[CustomerRecord]] = {}
        self._accounts: Dict[Tuple[int, str], Optional[AccountRecord]] = {}
        self._subjects_by_id: Dict[int, Optional[SubjectRecord]] = {}
        self._subjects_by_code: Dict[str, Optional[SubjectRecord]] = {}
        self._previous: Dict[int, Decimal] = {}

    def reconcile(self, rows: Iterable[RawRow], report_date: date) -> ValidationOutcome:
        """
        Classify every row as validated or rejected.

        Args:
            rows: Parsed rows in input order
            report_date: Date the uploaded balances refer to

        Returns:
            ValidationOutcome where valid + rejected == total rows
        """
        batch = list(rows)
        self._reset_caches()

        logger.info("Starting reconciliation", rows=len(batch), report_date=report_date.isoformat())

        last_index = self._last_occurrences(batch)
        outcome = ValidationOutcome()

        for index, row in enumerate(batch):
            key = row.duplicate_key
            if key is not None and last_index[key] != index:
                superseded_by = batch[last_index[key]].row_number
                self._reject(
                    outcome, row, RejectReason.DUPLICATE,
                    f"superseded by row {superseded_by} for the same CIF and account",
                )
                continue

            try:
                outcome.validated.append(self._reconcile_row(row, report_date))
            except RowRejection as e:
                self._reject(outcome, row, e.reason, e.detail)

        outcome.summary = self._summarize(batch, outcome)

        logger.info(
            "Reconciliation complete",
            valid=outcome.summary.valid_rows,
            rejected=outcome.summary.rejected_rows,
            changed=outcome.summary.changed_rows,
        )
        return outcome

    @staticmethod
    def _last_occurrences(batch: List[RawRow]) -> Dict[tuple, int]:
        last_index: Dict[tuple, int] = {}
        for index, row in enumerate(batch):
            key = row.duplicate_key
            if key is not None:
                last_index[key] = index
        return last_index

    def _reconcile_row(self, row: RawRow, report_date: date) -> ValidatedRow:
        if row.parse_error:
            raise RowRejection(RejectReason.PARSE_ERROR, row.parse_error)

        # 1. Identity
        customer = self._customer(row.cif)
        if customer is None:
            raise IdentityLookupError(RejectReason.UNKNOWN_CIF, f"CIF {row.cif} is not registered")

        account = self._account(customer.id, row.account_number)
        if account is None:
            raise IdentityLookupError(
                RejectReason.UNKNOWN_ACCOUNT,
                f"account {row.account_number} does not belong to CIF {row.cif}",
            )

        # 2. Owning subject
        subject, warning = self._owning_subject(row, account)

        # 3. Previous balance
        previous_balance = self._previous_balance(account.id, report_date)

        # 4. Reported amounts
        new_balance = self._amount(row.balance, "balance")
        if row.available_balance is None:
            new_available = new_balance
        else:
            new_available = self._amount(row.available_balance, "available balance")

        return ValidatedRow(
            row_number=row.row_number,
            cif=row.cif,
            client_name=customer.name or row.client_name,
            account_number=row.account_number,
            account_id=account.id,
            subject_id=subject.id,
            subject_name=subject.name,
            previous_balance=previous_balance,
            new_balance=new_balance,
            new_available_balance=new_available,
            warning=warning,
        )

    def _owning_subject(
        self,
        row: RawRow,
        account: AccountRecord,
    ) -> Tuple[SubjectRecord, Optional[str]]:
        reported = None
        if row.staff_code:
            reported = self._subject_by_code(row.staff_code)
            if reported is None:
                raise IdentityLookupError(
                    RejectReason.UNKNOWN_SUBJECT,
                    f"staff code {row.staff_code} is not registered",
                )

        owner = self._subject_by_id(account.subject_id) if account.subject_id is not None else None
        if owner is None:
            raise IdentityLookupError(
                RejectReason.UNKNOWN_SUBJECT,
                f"account {account.account_number} has no owning subject",
            )

        warning = None
        if reported is not None and reported.id != owner.id:
            warning = (
                f"Account is owned by {owner.name} ({owner.identifier}) "
                f"but the file lists {reported.name} ({reported.identifier})"
            )
        return owner, warning

    @staticmethod
    def _amount(value, label: str) -> Decimal:
        try:
            amount = parse_amount(value)
        except InvalidAmount as e:
            raise RowRejection(RejectReason.MALFORMED_AMOUNT, f"{label}: {e}") from e
        if amount < 0:
            raise RowRejection(RejectReason.MALFORMED_AMOUNT, f"{label} is negative: {amount}")
        return amount

    # ------------------------------------------------------------------
    # Memoized ledger lookups
    # ------------------------------------------------------------------

    def _customer(self, cif: str) -> Optional[CustomerRecord]:
        if cif not in self._customers:
            self._customers[cif] = self.ledger.find_customer(cif)
        return self._customers[cif]

    def _account(self, customer_id: int, account_number: str) -> Optional[AccountRecord]:
        key = (customer_id, account_number)
        if key not in self._accounts:
            self._accounts[key] = self.ledger.find_account(customer_id, account_number)
        return self._accounts[key]

    def _subject_by_id(self, subject_id: int) -> Optional[SubjectRecord]:
        if subject_id not in self._subjects_by_id:
            self._subjects_by_id[subject_id] = self.ledger.get_subject(subject_id)
        return self._subjects_by_id[subject_id]

    def _subject_by_code(self, identifier: str) -> Optional[SubjectRecord]:
        if identifier not in self._subjects_by_code:
            self._subjects_by_code[identifier] = self.ledger.find_subject(identifier)
        return self._subjects_by_code[identifier]

    def _previous_balance(self, account_id: int, report_date: date) -> Decimal:
        if account_id not in self._previous:
            balance = self.ledger.account_balance_on_or_before(account_id, report_date)
            # No history is a zero balance, not an error
            self._previous[account_id] = ZERO if balance is None else balance
        return self._previous[account_id]

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _reject(outcome: ValidationOutcome, row: RawRow, reason: RejectReason, detail: str) -> None:
        outcome.rejected.append(RejectedRow(row=row, reason=reason, detail=detail))
        logger.debug("Row rejected", row_number=row.row_number, reason=reason.value, detail=detail)

    @staticmethod
    def _summarize(batch: List[RawRow], outcome: ValidationOutcome) -> ValidationSummary:
        changed = sum(1 for row in outcome.validated if row.changed)
        return ValidationSummary(
            total_rows_in_source=len(batch),
            valid_rows=len(outcome.validated),
            rejected_rows=len(outcome.rejected),
            changed_rows=changed,
            unchanged_rows=len(outcome.validated) - changed,
            subjects_affected=sorted({row.subject_id for row in outcome.validated}),
        )
