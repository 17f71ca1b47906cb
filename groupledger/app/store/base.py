"""
store/base.py — Collaborator contracts the ledger engine depends on.

LedgerStore          persistence/sync layer for expense and settlement
                     records, plus the live-update subscription.
MembershipDirectory  identity/membership collaborator: which member ids
                     belong to a group, and their display names (for the
                     presentation layer only).

Status transitions go through update_settlement_status(), which has
compare-and-set semantics on the record's status: it applies the change only
if the stored status still equals `expected_status`, and raises
SettlementConflict otherwise. Adapters whose backend supports conditional
writes implement it natively. Backends with unconditional writes only
subclass ReadCheckWriteStore, which re-reads the record immediately before
writing.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import replace

from groupledger.app.errors import AppError, ErrorCode, SettlementConflict
from groupledger.app.ledger.records import (
    ExpenseRecord,
    SettlementRecord,
    SettlementStatus,
)
from groupledger.app.store.updates import SnapshotHub, Subscription

logger = logging.getLogger(__name__)


class MembershipDirectory(abc.ABC):

    @abc.abstractmethod
    def group_exists(self, group_id: str) -> bool:
        ...

    @abc.abstractmethod
    def member_ids(self, group_id: str) -> list[str]:
        """Current members only. Former members are not listed."""

    def is_member(self, group_id: str, member_id: str) -> bool:
        return member_id in self.member_ids(group_id)

    @abc.abstractmethod
    def display_names(self, group_id: str) -> dict[str, str]:
        """Names for current and former members, keyed by member id."""

    def group_currency(self, group_id: str) -> str | None:
        return None


class LedgerStore(abc.ABC):

    def __init__(
            self,
            hub: SnapshotHub | None = None,
            directory: MembershipDirectory | None = None,
    ) -> None:
        self.hub = hub
        # Only used to stamp member ids and currency onto published snapshots.
        self.directory = directory

    # ── Reads ──────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def list_active_expenses(self, group_id: str) -> list[ExpenseRecord]:
        ...

    @abc.abstractmethod
    def list_settlements(
            self,
            group_id: str,
            status: SettlementStatus | None = None,
    ) -> list[SettlementRecord]:
        """Settlements for a group, newest first, optionally by status."""

    def list_confirmed_settlements(self, group_id: str) -> list[SettlementRecord]:
        return self.list_settlements(group_id, SettlementStatus.CONFIRMED)

    @abc.abstractmethod
    def get_settlement(self, settlement_id: str) -> SettlementRecord | None:
        ...

    # ── Writes ─────────────────────────────────────────────────────────────

    @abc.abstractmethod
    def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        ...

    @abc.abstractmethod
    def void_expense(self, expense_id: str) -> ExpenseRecord:
        ...

    @abc.abstractmethod
    def create_settlement(self, record: SettlementRecord) -> SettlementRecord:
        """Persists a new record and returns it with its store-assigned id."""

    @abc.abstractmethod
    def update_settlement_status(
            self,
            settlement_id: str,
            expected_status: SettlementStatus,
            new_status: SettlementStatus,
            **metadata,
    ) -> SettlementRecord:
        """
        Compare-and-set on status. `metadata` holds the other fields stamped
        with the transition (confirmed_at, confirmed_by, verified, notes).

        Raises:
            SettlementConflict -- stored status is not `expected_status`.
        """

    # ── Live updates ───────────────────────────────────────────────────────

    def subscribe(self, group_id: str) -> Subscription:
        """
        Opens a subscription and primes it with the group's current state, so
        a consumer never has to wait for the next write to see balances.
        """
        if self.hub is None:
            self.hub = SnapshotHub()
        subscription = self.hub.subscribe(group_id)
        self._publish(group_id, only=subscription)
        return subscription

    def _publish_committed(self, group_id: str) -> None:
        """
        Publishes after a write has been committed. The write stands either
        way, so a failed snapshot read is logged and not raised.
        """
        try:
            self._publish(group_id)
        except AppError as exc:
            logger.error("Snapshot publish for group %s failed after commit: %r", group_id, exc)

    def _publish(self, group_id: str, only: Subscription | None = None) -> None:
        if self.hub is None:
            return
        if only is None and not self.hub.has_subscribers(group_id):
            return
        member_ids = self.directory.member_ids(group_id) if self.directory else ()
        currency = self.directory.group_currency(group_id) if self.directory else None
        self.hub.publish(
            group_id,
            expenses=self.list_active_expenses(group_id),
            settlements=self.list_confirmed_settlements(group_id),
            member_ids=member_ids,
            currency=currency,
            only=only,
        )


class ReadCheckWriteStore(LedgerStore):
    """
    Base for backends that only offer unconditional single-record writes.
    The status guard is a fresh read right before the write.
    """

    @abc.abstractmethod
    def _write_settlement(self, record: SettlementRecord) -> None:
        ...

    def update_settlement_status(
            self,
            settlement_id: str,
            expected_status: SettlementStatus,
            new_status: SettlementStatus,
            **metadata,
    ) -> SettlementRecord:
        current = self.get_settlement(settlement_id)
        if current is None:
            raise AppError(
                ErrorCode.SETTLEMENT_NOT_FOUND,
                f"Settlement {settlement_id} does not exist.",
                404,
            )
        if current.status is not SettlementStatus(expected_status):
            raise SettlementConflict(settlement_id, SettlementStatus(expected_status).value, current.status.value)

        updated = replace(current, status=new_status, **metadata)
        self._write_settlement(updated)
        self._publish_committed(updated.group_id)
        return updated
