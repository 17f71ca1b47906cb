"""
ledger — the pure core: records, balance accumulation, debt simplification
and split calculators. Nothing in this package touches a store, Flask or a
database session.
"""

from groupledger.app.ledger.accumulator import accumulate, compute_balances
from groupledger.app.ledger.records import (
    Accumulation,
    ExpenseRecord,
    ExpenseStatus,
    PaymentMethod,
    RejectedRecord,
    SettlementEvent,
    SettlementEventKind,
    SettlementRecord,
    SettlementStatus,
    SimplifiedDebt,
)
from groupledger.app.ledger.simplifier import explain, simplify

__all__ = [
    "Accumulation",
    "ExpenseRecord",
    "ExpenseStatus",
    "PaymentMethod",
    "RejectedRecord",
    "SettlementEvent",
    "SettlementEventKind",
    "SettlementRecord",
    "SettlementStatus",
    "SimplifiedDebt",
    "accumulate",
    "compute_balances",
    "explain",
    "simplify",
]
