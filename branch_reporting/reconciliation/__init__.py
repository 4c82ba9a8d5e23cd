"""Reconciliation of uploaded rows against the ledger."""

from .engine import ReconciliationEngine

__all__ = [
    "ReconciliationEngine",
]
