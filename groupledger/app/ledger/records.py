"""
ledger/records.py — Plain ledger value types.

These are frozen dataclasses, independent of the database schema and of any
store adapter. Amounts are always int minor units (paisa, cents). Member ids
are opaque strings; display names never appear here. They are resolved at
the presentation boundary.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime

from groupledger.app.errors import DataIntegrityError, ErrorCode


_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class ExpenseStatus(str, enum.Enum):
    ACTIVE = "active"
    VOIDED = "voided"


class SettlementStatus(str, enum.Enum):
    PENDING   = "pending"
    CONFIRMED = "confirmed"
    REJECTED  = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not SettlementStatus.PENDING


class PaymentMethod(str, enum.Enum):
    CASH          = "cash"
    UPI           = "upi"
    BANK_TRANSFER = "bank_transfer"
    OTHER         = "other"


# ── Shared validators ─────────────────────────────────────────────────────

def is_minor_units(value) -> bool:
    """True for a real int. bool is rejected even though it subclasses int."""
    return isinstance(value, int) and not isinstance(value, bool)


def check_currency(currency, record_id: str | None = None) -> None:
    if not isinstance(currency, str) or not _CURRENCY_RE.match(currency):
        raise DataIntegrityError(
            ErrorCode.INVALID_CURRENCY,
            f"Currency {currency!r} is not a three-letter ISO-4217 code.",
            record_id=record_id,
            field="currency",
        )


def check_expense(expense) -> None:
    """
    Validates the split invariant of one expense: every owed amount is a
    positive int and the owed amounts sum exactly to the expense total.

    Works on any object exposing id, amount and splits, so the accumulator
    can apply the same check to rows handed over by a store adapter.

    Raises DataIntegrityError carrying the expense id.
    """
    record_id = getattr(expense, "id", None)
    amount = expense.amount

    if not is_minor_units(amount) or amount <= 0:
        raise DataIntegrityError(
            ErrorCode.INVALID_AMOUNT,
            f"Expense {record_id} has invalid amount {amount!r}; "
            f"expected a positive integer of minor units.",
            record_id=record_id,
            field="amount",
        )

    splits = expense.splits
    if not splits:
        raise DataIntegrityError(
            ErrorCode.EMPTY_SPLITS,
            f"Expense {record_id} has no splits.",
            record_id=record_id,
            field="splits",
        )

    for member_id, owed in splits.items():
        if not is_minor_units(owed) or owed <= 0:
            raise DataIntegrityError(
                ErrorCode.INVALID_AMOUNT,
                f"Expense {record_id} has invalid split {owed!r} for member {member_id}.",
                record_id=record_id,
                field="splits",
            )

    total = sum(splits.values())
    if total != amount:
        raise DataIntegrityError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Expense {record_id} splits sum to {total}, expected {amount}.",
            record_id=record_id,
            field="splits",
        )


# ── Records ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExpenseRecord:
    """
    One shared expense. Read-only input to the ledger.

    Construction enforces the split invariant, so a record whose splits do
    not sum to its total never reaches the accumulator through this type.
    """

    id: str
    group_id: str
    payer_id: str
    amount: int
    currency: str
    splits: dict[str, int] = field(hash=False)
    status: ExpenseStatus = ExpenseStatus.ACTIVE
    description: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ExpenseStatus(self.status))
        object.__setattr__(self, "splits", dict(self.splits))
        check_currency(self.currency, record_id=self.id)
        check_expense(self)

    @property
    def is_active(self) -> bool:
        return self.status is ExpenseStatus.ACTIVE


@dataclass(frozen=True)
class SettlementRecord:
    """A proposed or resolved payment from a debtor to a creditor."""

    id: str | None
    group_id: str
    from_member_id: str
    to_member_id: str
    amount: int
    currency: str
    status: SettlementStatus = SettlementStatus.PENDING
    requires_step_up_verification: bool = False
    verified: bool = False
    notes: str | None = None
    payment_method: PaymentMethod | None = None
    payment_reference: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", SettlementStatus(self.status))
        if self.payment_method is not None:
            object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))

        if not is_minor_units(self.amount) or self.amount <= 0:
            raise DataIntegrityError(
                ErrorCode.INVALID_AMOUNT,
                f"Settlement {self.id} has invalid amount {self.amount!r}.",
                record_id=self.id,
                field="amount",
            )
        check_currency(self.currency, record_id=self.id)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class SimplifiedDebt:
    from_member_id: str
    to_member_id: str
    amount: int

    def as_dict(self) -> dict:
        return {
            "from_member_id": self.from_member_id,
            "to_member_id": self.to_member_id,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class RejectedRecord:
    """An input record the accumulator excluded, and why."""

    record_id: str | None
    code: str
    reason: str


@dataclass(frozen=True)
class Accumulation:
    balances: dict[str, int] = field(hash=False)
    rejected: tuple[RejectedRecord, ...] = ()


class SettlementEventKind(str, enum.Enum):
    PROPOSED  = "proposed"
    CONFIRMED = "confirmed"
    REJECTED  = "rejected"


@dataclass(frozen=True)
class SettlementEvent:
    """Structured event handed to the notification collaborator."""

    kind: SettlementEventKind
    settlement: SettlementRecord
    actor_id: str | None = None
