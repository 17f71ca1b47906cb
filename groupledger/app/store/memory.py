"""
store/memory.py — In-process store and membership directory.

Used for embedding the engine without a database and as the reference
adapter in unit tests. All mutations hold one re-entrant lock, which makes
the status compare-and-set a true conditional write.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace

from groupledger.app.errors import AppError, DataIntegrityError, ErrorCode, SettlementConflict
from groupledger.app.ledger.records import (
    ExpenseRecord,
    ExpenseStatus,
    SettlementRecord,
    SettlementStatus,
)
from groupledger.app.store.base import LedgerStore, MembershipDirectory
from groupledger.app.store.updates import SnapshotHub


class InMemoryMembershipDirectory(MembershipDirectory):

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._currencies: dict[str, str] = {}
        self._current: dict[str, dict[str, str]] = {}
        self._former: dict[str, dict[str, str]] = {}

    def add_group(self, group_id: str, currency: str = "INR") -> None:
        with self._lock:
            self._currencies[group_id] = currency
            self._current.setdefault(group_id, {})
            self._former.setdefault(group_id, {})

    def add_member(self, group_id: str, member_id: str, display_name: str | None = None) -> None:
        with self._lock:
            if group_id not in self._currencies:
                self.add_group(group_id)
            self._former[group_id].pop(member_id, None)
            self._current[group_id][member_id] = display_name or member_id

    def remove_member(self, group_id: str, member_id: str) -> None:
        with self._lock:
            name = self._current.get(group_id, {}).pop(member_id, None)
            if name is not None:
                self._former[group_id][member_id] = name

    def group_exists(self, group_id: str) -> bool:
        return group_id in self._currencies

    def member_ids(self, group_id: str) -> list[str]:
        with self._lock:
            return list(self._current.get(group_id, {}))

    def display_names(self, group_id: str) -> dict[str, str]:
        with self._lock:
            names = dict(self._former.get(group_id, {}))
            names.update(self._current.get(group_id, {}))
            return names

    def group_currency(self, group_id: str) -> str | None:
        return self._currencies.get(group_id)


class InMemoryLedgerStore(LedgerStore):

    def __init__(
            self,
            hub: SnapshotHub | None = None,
            directory: MembershipDirectory | None = None,
    ) -> None:
        super().__init__(hub=hub, directory=directory)
        self._lock = threading.RLock()
        self._expenses: dict[str, ExpenseRecord] = {}
        self._settlements: dict[str, SettlementRecord] = {}
        self._order: dict[str, int] = {}

    # ── Reads ──────────────────────────────────────────────────────────────

    def list_active_expenses(self, group_id: str) -> list[ExpenseRecord]:
        with self._lock:
            return [
                e for e in self._expenses.values()
                if e.group_id == group_id and e.is_active
            ]

    def list_settlements(
            self,
            group_id: str,
            status: SettlementStatus | None = None,
    ) -> list[SettlementRecord]:
        with self._lock:
            rows = [
                s for s in self._settlements.values()
                if s.group_id == group_id and (status is None or s.status is SettlementStatus(status))
            ]
            return sorted(rows, key=lambda s: self._order[s.id], reverse=True)

    def get_settlement(self, settlement_id: str) -> SettlementRecord | None:
        with self._lock:
            return self._settlements.get(settlement_id)

    # ── Writes ─────────────────────────────────────────────────────────────

    def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        with self._lock:
            if record.id in self._expenses:
                raise DataIntegrityError(
                    ErrorCode.DUPLICATE_RECORD,
                    f"Expense {record.id} already exists.",
                    record_id=record.id,
                )
            self._expenses[record.id] = record
            self._publish_committed(record.group_id)
        return record

    def void_expense(self, expense_id: str) -> ExpenseRecord:
        with self._lock:
            record = self._expenses.get(expense_id)
            if record is None:
                raise AppError(
                    ErrorCode.EXPENSE_NOT_FOUND,
                    f"Expense {expense_id} does not exist.",
                    404,
                )
            voided = replace(record, status=ExpenseStatus.VOIDED)
            self._expenses[expense_id] = voided
            self._publish_committed(record.group_id)
        return voided

    def create_settlement(self, record: SettlementRecord) -> SettlementRecord:
        with self._lock:
            stored = replace(record, id=record.id or uuid.uuid4().hex)
            self._settlements[stored.id] = stored
            self._order[stored.id] = len(self._order)
            self._publish_committed(stored.group_id)
        return stored

    def update_settlement_status(
            self,
            settlement_id: str,
            expected_status: SettlementStatus,
            new_status: SettlementStatus,
            **metadata,
    ) -> SettlementRecord:
        expected = SettlementStatus(expected_status)
        with self._lock:
            current = self._settlements.get(settlement_id)
            if current is None:
                raise AppError(
                    ErrorCode.SETTLEMENT_NOT_FOUND,
                    f"Settlement {settlement_id} does not exist.",
                    404,
                )
            if current.status is not expected:
                raise SettlementConflict(settlement_id, expected.value, current.status.value)

            updated = replace(current, status=SettlementStatus(new_status), **metadata)
            self._settlements[settlement_id] = updated
            self._publish_committed(updated.group_id)
        return updated
