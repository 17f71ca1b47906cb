"""
store/sql.py — SQLAlchemy store adapter and membership directory.

Every write is one atomic unit: the adapter commits it before returning and
only then publishes a snapshot. A failed write is rolled back, so no partial
state is ever visible to other sessions.

Status transitions are conditional writes:

    UPDATE settlements SET status = :new, ...
    WHERE id = :id AND status = :expected

A rowcount other than 1 means another writer got there first; the adapter
re-reads the row and raises SettlementConflict with what it found.

Database errors are translated at this boundary:
  OperationalError / DBAPIError        → StoreError(STORE_UNAVAILABLE), retryable
  "permission denied" from the driver  → StoreError(STORE_PERMISSION_DENIED)
  IntegrityError                       → DataIntegrityError(DUPLICATE_RECORD)
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import (
    AppError,
    DataIntegrityError,
    ErrorCode,
    SettlementConflict,
    StoreError,
)
from groupledger.app.ledger.records import (
    ExpenseRecord,
    ExpenseStatus,
    SettlementRecord,
    SettlementStatus,
)
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.split import Split
from groupledger.app.store.base import LedgerStore, MembershipDirectory
from groupledger.app.store.updates import SnapshotHub

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(session: Session, operation: str):
    """Rolls back and translates SQLAlchemy failures into the error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        session.rollback()
        raise DataIntegrityError(
            ErrorCode.DUPLICATE_RECORD,
            f"{operation} violated a database constraint.",
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        if "permission denied" in str(getattr(exc, "orig", exc)).lower():
            raise StoreError(
                ErrorCode.STORE_PERMISSION_DENIED,
                f"{operation} was refused by the store.",
                http_status=503,
            ) from exc
        logger.warning("Store failure during %s: %s", operation, exc)
        raise StoreError(
            ErrorCode.STORE_UNAVAILABLE,
            f"{operation} failed; the store is unavailable. Try again.",
        ) from exc


# ── Row ↔ record conversion ───────────────────────────────────────────────

def _expense_record(row: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=row.id,
        group_id=row.group_id,
        payer_id=row.payer_id,
        amount=row.amount,
        currency=row.currency,
        splits={s.member_id: s.amount for s in row.splits},
        status=row.status,
        description=row.description,
        created_at=row.created_at,
    )


def _settlement_record(row: Settlement) -> SettlementRecord:
    return SettlementRecord(
        id=row.id,
        group_id=row.group_id,
        from_member_id=row.from_member_id,
        to_member_id=row.to_member_id,
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        requires_step_up_verification=row.requires_step_up_verification,
        verified=row.verified,
        notes=row.notes,
        payment_method=row.payment_method,
        payment_reference=row.payment_reference,
        created_at=row.created_at,
        confirmed_at=row.confirmed_at,
        confirmed_by=row.confirmed_by,
    )


class SqlMembershipDirectory(MembershipDirectory):

    def __init__(self, session: Session) -> None:
        self.session = session

    def group_exists(self, group_id: str) -> bool:
        return self.session.get(Group, group_id) is not None

    def member_ids(self, group_id: str) -> list[str]:
        stmt = select(Membership.member_id).where(
            Membership.group_id == group_id,
            Membership.left_at.is_(None),
        )
        return list(self.session.execute(stmt).scalars().all())

    def is_member(self, group_id: str, member_id: str) -> bool:
        stmt = select(Membership.id).where(
            Membership.group_id == group_id,
            Membership.member_id == member_id,
            Membership.left_at.is_(None),
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def display_names(self, group_id: str) -> dict[str, str]:
        stmt = select(Membership).where(Membership.group_id == group_id)
        return {
            m.member_id: m.display_name or m.member_id
            for m in self.session.execute(stmt).scalars().all()
        }

    def group_currency(self, group_id: str) -> str | None:
        group = self.session.get(Group, group_id)
        return group.currency if group is not None else None


class SqlLedgerStore(LedgerStore):

    def __init__(
            self,
            session: Session,
            hub: SnapshotHub | None = None,
            directory: MembershipDirectory | None = None,
    ) -> None:
        super().__init__(hub=hub, directory=directory)
        self.session = session

    def _publish(self, group_id: str, only=None) -> None:
        with _store_errors(self.session, f"Publishing snapshot for group {group_id}"):
            super()._publish(group_id, only=only)

    # ── Reads ──────────────────────────────────────────────────────────────

    def list_active_expenses(self, group_id: str) -> list[ExpenseRecord]:
        stmt = (
            select(Expense)
            .options(selectinload(Expense.splits))
            .where(
                Expense.group_id == group_id,
                Expense.status == ExpenseStatus.ACTIVE,
            )
        )
        with _store_errors(self.session, "Listing expenses"):
            rows = list(self.session.execute(stmt).scalars().all())

        records = []
        for row in rows:
            try:
                records.append(_expense_record(row))
            except DataIntegrityError as exc:
                # Exclude the corrupt row; the rest of the group still balances.
                logger.error(
                    "Skipping expense %s in group %s: %s (%s)",
                    row.id, group_id, exc.message, exc.code,
                )
        return records

    def list_settlements(
            self,
            group_id: str,
            status: SettlementStatus | None = None,
    ) -> list[SettlementRecord]:
        stmt = select(Settlement).where(Settlement.group_id == group_id)
        if status is not None:
            stmt = stmt.where(Settlement.status == SettlementStatus(status))
        stmt = stmt.order_by(Settlement.created_at.desc(), Settlement.id)

        with _store_errors(self.session, "Listing settlements"):
            rows = list(self.session.execute(stmt).scalars().all())
        return [_settlement_record(row) for row in rows]

    def get_settlement(self, settlement_id: str) -> SettlementRecord | None:
        with _store_errors(self.session, "Reading settlement"):
            row = self.session.get(Settlement, settlement_id)
        return _settlement_record(row) if row is not None else None

    # ── Writes ─────────────────────────────────────────────────────────────

    def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        row = Expense(
            id=record.id,
            group_id=record.group_id,
            payer_id=record.payer_id,
            amount=record.amount,
            currency=record.currency,
            description=record.description,
            status=record.status,
            splits=[
                Split(member_id=member_id, amount=owed)
                for member_id, owed in record.splits.items()
            ],
        )
        if record.created_at is not None:
            row.created_at = record.created_at
        with _store_errors(self.session, f"Recording expense {record.id}"):
            self.session.add(row)
            self.session.commit()
        self._publish_committed(record.group_id)
        return record

    def void_expense(self, expense_id: str) -> ExpenseRecord:
        with _store_errors(self.session, f"Voiding expense {expense_id}"):
            row = self.session.get(Expense, expense_id)
            if row is None:
                raise AppError(
                    ErrorCode.EXPENSE_NOT_FOUND,
                    f"Expense {expense_id} does not exist.",
                    404,
                )
            row.status = ExpenseStatus.VOIDED
            self.session.commit()
            record = _expense_record(row)
        self._publish_committed(record.group_id)
        return record

    def create_settlement(self, record: SettlementRecord) -> SettlementRecord:
        row = Settlement(
            id=record.id or uuid.uuid4().hex,
            group_id=record.group_id,
            from_member_id=record.from_member_id,
            to_member_id=record.to_member_id,
            amount=record.amount,
            currency=record.currency,
            status=record.status,
            requires_step_up_verification=record.requires_step_up_verification,
            verified=record.verified,
            notes=record.notes,
            payment_method=record.payment_method,
            payment_reference=record.payment_reference,
            created_at=record.created_at or datetime.now(timezone.utc),
        )
        with _store_errors(self.session, "Creating settlement"):
            self.session.add(row)
            self.session.commit()
            stored = _settlement_record(row)
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
        stmt = (
            update(Settlement)
            .where(
                Settlement.id == settlement_id,
                Settlement.status == expected,
            )
            .values(status=SettlementStatus(new_status), **metadata)
            .execution_options(synchronize_session=False)
        )

        with _store_errors(self.session, f"Updating settlement {settlement_id}"):
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                current = self.session.get(Settlement, settlement_id)
                if current is None:
                    raise AppError(
                        ErrorCode.SETTLEMENT_NOT_FOUND,
                        f"Settlement {settlement_id} does not exist.",
                        404,
                    )
                raise SettlementConflict(settlement_id, expected.value, current.status.value)
            self.session.commit()
            row = self.session.get(Settlement, settlement_id)
            updated = _settlement_record(row)

        self._publish_committed(updated.group_id)
        return updated
