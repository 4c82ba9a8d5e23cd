"""ORM tables backing the ledger accessor."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

MONEY = Numeric(19, 4)


class Branch(Base):
    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True)
    name: Mapped[str] = mapped_column(String(120))

    subjects: Mapped[List["Subject"]] = relationship(back_populates="branch")


class Subject(Base):
    """A universal banker whose managed balances are reported on."""

    __tablename__ = "universal_bankers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nip: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    position: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    branch_id: Mapped[Optional[int]] = mapped_column(ForeignKey("branches.id"), nullable=True)

    branch: Mapped[Optional[Branch]] = relationship(back_populates="subjects")
    accounts: Mapped[List["Account"]] = relationship(back_populates="subject")


class Customer(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cif: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))

    accounts: Mapped[List["Account"]] = relationship(back_populates="customer")


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"))
    subject_id: Mapped[Optional[int]] = mapped_column(ForeignKey("universal_bankers.id"), nullable=True)
    account_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    current_balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    available_balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    status: Mapped[str] = mapped_column(String(20), default="active")
    last_balance_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    customer: Mapped[Customer] = relationship(back_populates="accounts")
    subject: Mapped[Optional[Subject]] = relationship(back_populates="accounts")


class AccountDailyBalance(Base):
    """Reported balance of one account for one calendar date."""

    __tablename__ = "account_daily_balances"
    __table_args__ = (UniqueConstraint("account_id", "date", name="uq_account_daily_balance"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    balance_date: Mapped[date] = mapped_column("date", Date)
    balance: Mapped[Decimal] = mapped_column(MONEY)
    available_balance: Mapped[Decimal] = mapped_column(MONEY)


class AccountTransaction(Base):
    __tablename__ = "account_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY)
    previous_balance: Mapped[Decimal] = mapped_column(MONEY)
    new_balance: Mapped[Decimal] = mapped_column(MONEY)
    posted_on: Mapped[date] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DailyBalanceSnapshot(Base):
    """Total managed balance of one subject for one calendar date."""

    __tablename__ = "universal_banker_daily_balances"
    __table_args__ = (UniqueConstraint("subject_id", "date", name="uq_subject_daily_balance"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("universal_bankers.id"), index=True)
    balance_date: Mapped[date] = mapped_column("date", Date)
    total_balance: Mapped[Decimal] = mapped_column(MONEY)
    daily_change: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
