"""
Shared fixtures: isolated settings, a SQLite ledger under tmp_path and a
small seeded branch with two universal bankers.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from branch_reporting.config import Settings
from branch_reporting.ledger import Database, SqlLedger
from branch_reporting.ledger.orm import (
    Account,
    Branch,
    Customer,
    DailyBalanceSnapshot,
    Subject,
)


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def seed_ledger(database: Database) -> SimpleNamespace:
    """One branch, two subjects, two customers with one account each, plus an orphan account."""
    with database.session_scope() as session:
        branch = Branch(code="0101", name="KC Jakarta Sudirman")
        jane = Subject(nip="90001", name="Jane Doe", position=None, branch=branch)
        john = Subject(nip="90002", name="John Roe", position="Senior Banker", branch=branch)
        maju = Customer(cif="123456", name="PT Maju Jaya")
        sari = Customer(cif="654321", name="Sari Wulandari")
        session.add_all([branch, jane, john, maju, sari])
        session.flush()

        first = Account(client_id=maju.id, subject_id=jane.id, account_number="0001")
        second = Account(client_id=sari.id, subject_id=john.id, account_number="0002")
        orphan = Account(client_id=sari.id, subject_id=None, account_number="0003")
        session.add_all([first, second, orphan])
        session.flush()

        return SimpleNamespace(
            branch_id=branch.id,
            jane_id=jane.id,
            john_id=john.id,
            maju_id=maju.id,
            sari_id=sari.id,
            account_0001=first.id,
            account_0002=second.id,
            account_0003=orphan.id,
        )


def add_snapshot(database: Database, subject_id: int, day, total) -> None:
    with database.session_scope() as session:
        session.add(DailyBalanceSnapshot(subject_id=subject_id, balance_date=day, total_balance=Decimal(total)))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
        upload_dir=tmp_path / "uploads",
        reports_dir=tmp_path / "reports",
        janitor_interval_seconds=3600,
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def ledger(database):
    return SqlLedger(database)


@pytest.fixture
def seeded(database):
    return seed_ledger(database)
