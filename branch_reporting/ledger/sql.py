"""
SQLAlchemy implementation of the ledger accessor.

Writes follow overwrite-by-(account, date) and overwrite-by-(subject, date)
semantics, so replaying the same commit converges on the same state.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import PersistenceError
from .base import AccountRecord, CustomerRecord, SubjectRecord
from .database import Database
from .orm import (
    Account,
    AccountDailyBalance,
    AccountTransaction,
    Customer,
    DailyBalanceSnapshot,
    Subject,
)

logger = structlog.get_logger()

ZERO = Decimal("0")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class SqlLedger:
    """Ledger accessor backed by a relational store."""

    def __init__(self, database: Database, retry_attempts: int = 3):
        self.database = database
        self.retry_attempts = max(retry_attempts, 1)

    # ------------------------------------------------------------------
    # Identity lookups
    # ------------------------------------------------------------------

    def find_customer(self, cif: str) -> Optional[CustomerRecord]:
        if not cif:
            return None
        with self.database.session_scope() as session:
            customer = session.scalar(select(Customer).where(Customer.cif == cif))
            if customer is None:
                return None
            return CustomerRecord(id=customer.id, cif=customer.cif, name=customer.name)

    def find_account(self, customer_id: int, account_number: str) -> Optional[AccountRecord]:
        if not account_number:
            return None
        with self.database.session_scope() as session:
            account = session.scalar(
                select(Account).where(
                    Account.account_number == account_number,
                    Account.client_id == customer_id,
                )
            )
            if account is None:
                return None
            return AccountRecord(
                id=account.id,
                customer_id=account.client_id,
                account_number=account.account_number,
                subject_id=account.subject_id,
            )

    def find_subject(self, identifier: str) -> Optional[SubjectRecord]:
        if not identifier:
            return None
        with self.database.session_scope() as session:
            subject = session.scalar(select(Subject).where(Subject.nip == identifier))
            return self._subject_record(session, subject) if subject else None

    def get_subject(self, subject_id: int) -> Optional[SubjectRecord]:
        with self.database.session_scope() as session:
            subject = session.get(Subject, subject_id)
            return self._subject_record(session, subject) if subject else None

    @staticmethod
    def _subject_record(session: Session, subject: Subject) -> SubjectRecord:
        account_count = session.scalar(
            select(func.count(Account.id)).where(Account.subject_id == subject.id)
        ) or 0
        return SubjectRecord(
            id=subject.id,
            identifier=subject.nip,
            name=subject.name,
            role=subject.position,
            org_unit=subject.branch.name if subject.branch else None,
            account_count=int(account_count),
        )

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def account_balance_on_or_before(self, account_id: int, day: date) -> Optional[Decimal]:
        with self.database.session_scope() as session:
            row = self._latest_account_balance(session, account_id, day)
            return _to_decimal(row.balance) if row else None

    @staticmethod
    def _latest_account_balance(
        session: Session,
        account_id: int,
        day: Optional[date] = None,
    ) -> Optional[AccountDailyBalance]:
        stmt = select(AccountDailyBalance).where(AccountDailyBalance.account_id == account_id)
        if day is not None:
            stmt = stmt.where(AccountDailyBalance.balance_date <= day)
        stmt = stmt.order_by(AccountDailyBalance.balance_date.desc()).limit(1)
        return session.scalar(stmt)

    def apply_balance(
        self,
        account_id: int,
        subject_id: int,
        day: date,
        balance: Decimal,
        available_balance: Decimal,
    ) -> None:
        """
        Overwrite one account's balance for day and refresh derived state.

        Raises:
            PersistenceError: the write could not be completed
        """
        try:
            self._apply_with_retry(account_id, subject_id, day, balance, available_balance)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            raise PersistenceError(f"Ledger write failed for account {account_id}: {e}") from e

    def _apply_with_retry(self, *args) -> None:
        writer = retry(
            retry=retry_if_exception_type(OperationalError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            reraise=True,
        )(self._apply)
        writer(*args)

    def _apply(
        self,
        account_id: int,
        subject_id: int,
        day: date,
        balance: Decimal,
        available_balance: Decimal,
    ) -> None:
        with self.database.session_scope() as session:
            account = session.get(Account, account_id)
            if account is None:
                raise PersistenceError(f"Account {account_id} no longer exists in the ledger")

            prior = self._latest_account_balance(session, account_id, day)
            previous_balance = _to_decimal(prior.balance) if prior else ZERO

            if prior is not None and prior.balance_date == day:
                prior.balance = balance
                prior.available_balance = available_balance
            else:
                session.add(AccountDailyBalance(
                    account_id=account_id,
                    balance_date=day,
                    balance=balance,
                    available_balance=available_balance,
                ))

            if balance != previous_balance:
                session.add(AccountTransaction(
                    account_id=account_id,
                    amount=balance - previous_balance,
                    previous_balance=previous_balance,
                    new_balance=balance,
                    posted_on=day,
                ))
            session.flush()

            # Account fields mirror the most recent dated balance, so a
            # back-dated upload does not clobber a newer one.
            latest = self._latest_account_balance(session, account_id)
            account.current_balance = latest.balance
            account.available_balance = latest.available_balance
            account.last_balance_date = latest.balance_date

            self._refresh_snapshots(session, subject_id, day)

        logger.debug(
            "Account balance applied",
            account_id=account_id,
            subject_id=subject_id,
            date=day.isoformat(),
            balance=str(balance),
        )

    def _refresh_snapshots(self, session: Session, subject_id: int, day: date) -> None:
        """
        Recompute the subject's snapshot for day and every existing later one.

        A back-dated balance feeds into the on-or-before sums of all later
        dates, so those totals (and their daily changes) move with it.
        """
        account_ids = session.scalars(
            select(Account.id).where(Account.subject_id == subject_id)
        ).all()

        later_days = session.scalars(
            select(DailyBalanceSnapshot.balance_date)
            .where(
                DailyBalanceSnapshot.subject_id == subject_id,
                DailyBalanceSnapshot.balance_date > day,
            )
            .order_by(DailyBalanceSnapshot.balance_date)
        ).all()

        for snapshot_day in [day, *later_days]:
            self._write_snapshot(session, subject_id, snapshot_day, account_ids)
            session.flush()

        if later_days:
            logger.debug("Later snapshots refreshed", subject_id=subject_id, count=len(later_days))

    def _write_snapshot(self, session: Session, subject_id: int, day: date, account_ids) -> None:
        total = ZERO
        for account_id in account_ids:
            row = self._latest_account_balance(session, account_id, day)
            if row is not None:
                total += _to_decimal(row.balance)

        # Change is measured against the previous calendar day only
        previous = self._snapshot(session, subject_id, day - timedelta(days=1))
        daily_change = total - (_to_decimal(previous.total_balance) if previous else ZERO)

        snapshot = self._snapshot(session, subject_id, day)
        if snapshot is None:
            session.add(DailyBalanceSnapshot(
                subject_id=subject_id,
                balance_date=day,
                total_balance=total,
                daily_change=daily_change,
            ))
        else:
            snapshot.total_balance = total
            snapshot.daily_change = daily_change

    @staticmethod
    def _snapshot(session: Session, subject_id: int, day: date) -> Optional[DailyBalanceSnapshot]:
        return session.scalar(
            select(DailyBalanceSnapshot).where(
                DailyBalanceSnapshot.subject_id == subject_id,
                DailyBalanceSnapshot.balance_date == day,
            )
        )

    def snapshots_on(self, subject_ids: Iterable[int], day: date) -> Dict[int, Decimal]:
        ids = list(subject_ids)
        if not ids:
            return {}
        with self.database.session_scope() as session:
            rows = session.scalars(
                select(DailyBalanceSnapshot).where(
                    DailyBalanceSnapshot.subject_id.in_(ids),
                    DailyBalanceSnapshot.balance_date == day,
                )
            ).all()
            return {row.subject_id: _to_decimal(row.total_balance) for row in rows}

    def snapshots_between(
        self,
        subject_ids: Iterable[int],
        start: date,
        end: date,
    ) -> Dict[int, Dict[date, Decimal]]:
        ids = list(subject_ids)
        result: Dict[int, Dict[date, Decimal]] = defaultdict(dict)
        if not ids or start > end:
            return dict(result)
        with self.database.session_scope() as session:
            rows = session.scalars(
                select(DailyBalanceSnapshot).where(
                    DailyBalanceSnapshot.subject_id.in_(ids),
                    DailyBalanceSnapshot.balance_date >= start,
                    DailyBalanceSnapshot.balance_date <= end,
                )
            ).all()
            for row in rows:
                result[row.subject_id][row.balance_date] = _to_decimal(row.total_balance)
        return dict(result)
