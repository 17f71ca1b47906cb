"""
store — persistence collaborators for the ledger engine.

The engine only sees the LedgerStore and MembershipDirectory contracts; the
SQLAlchemy and in-memory adapters are interchangeable behind them.
"""

from groupledger.app.store.base import LedgerStore, MembershipDirectory, ReadCheckWriteStore
from groupledger.app.store.memory import InMemoryLedgerStore, InMemoryMembershipDirectory
from groupledger.app.store.updates import LedgerSnapshot, SnapshotHub, Subscription

__all__ = [
    "InMemoryLedgerStore",
    "InMemoryMembershipDirectory",
    "LedgerSnapshot",
    "LedgerStore",
    "MembershipDirectory",
    "ReadCheckWriteStore",
    "SnapshotHub",
    "Subscription",
]
