"""
ledger/accumulator.py — Folds expenses and settlements into net balances.

This module is the SINGLE SOURCE OF TRUTH for how balances are computed.
Any change to how balances work must be made here.

Rules:
  - Pure: no store, no Flask, no session. Takes iterables, returns plain data.
  - Only active expenses and confirmed settlements move money.
  - The fold is integer addition, so the result does not depend on the order
    records arrive in.
  - sum(balances.values()) == 0 for every result. A corrupt expense is
    excluded and reported instead of being allowed to break that.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from groupledger.app.errors import DataIntegrityError, ErrorCode
from groupledger.app.ledger.records import (
    Accumulation,
    ExpenseStatus,
    RejectedRecord,
    SettlementStatus,
    check_expense,
    is_minor_units,
)

logger = logging.getLogger(__name__)


def _status(value, enum_cls):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _require_currency(record, ledger_currency: str | None) -> str:
    """
    Returns the ledger currency, adopting the record's when none is fixed yet.
    Raises CURRENCY_MISMATCH when the record is in a different currency.
    """
    record_currency = getattr(record, "currency", None)
    if ledger_currency is None:
        return record_currency
    if record_currency is not None and record_currency != ledger_currency:
        raise DataIntegrityError(
            ErrorCode.CURRENCY_MISMATCH,
            f"Record {getattr(record, 'id', None)} is in {record_currency}, "
            f"but this ledger is in {ledger_currency}.",
            record_id=getattr(record, "id", None),
            field="currency",
        )
    return ledger_currency


def accumulate(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[str] = (),
        currency: str | None = None,
) -> Accumulation:
    """
    Computes {member_id: net_balance} and the list of rejected records.

    Algorithm:
      1. Start every known member at zero.
      2. For each active expense: credit the payer the full amount, debit
         each split member their owed amount.
      3. For each confirmed settlement: credit the payer (their debt
         shrinks) and debit the receiver (their receivable shrinks).

    Args:
        expenses:    ExpenseRecord objects, or anything exposing the same
                     attributes (id, payer_id, amount, currency, splits, status).
        settlements: SettlementRecord objects or equivalents.
        member_ids:  Members that must appear even with a zero balance.
        currency:    Expected ledger currency. When None, the first record
                     considered fixes it.

    Raises:
        DataIntegrityError(CURRENCY_MISMATCH) if records mix currencies.
    """
    balances: dict[str, int] = defaultdict(int)
    rejected: list[RejectedRecord] = []

    # Step 1: every known member appears, even if they never transact.
    for member_id in member_ids:
        balances[member_id] = 0

    ledger_currency = currency

    # Step 2: active expenses.
    for expense in expenses:
        status = _status(expense.status, ExpenseStatus)
        if status is None:
            rejected.append(_reject(
                getattr(expense, "id", None),
                ErrorCode.INVALID_STATUS,
                f"Expense has unknown status {expense.status!r}.",
            ))
            continue
        if status is not ExpenseStatus.ACTIVE:
            continue

        ledger_currency = _require_currency(expense, ledger_currency)

        try:
            check_expense(expense)
        except DataIntegrityError as exc:
            rejected.append(_reject(exc.record_id, exc.code, exc.message))
            continue

        balances[expense.payer_id] += expense.amount
        for member_id, owed in expense.splits.items():
            balances[member_id] -= owed

    # Step 3: confirmed settlements. Pending and rejected never move money.
    for settlement in settlements:
        if _status(settlement.status, SettlementStatus) is not SettlementStatus.CONFIRMED:
            continue

        ledger_currency = _require_currency(settlement, ledger_currency)

        amount = settlement.amount
        if not is_minor_units(amount) or amount <= 0:
            rejected.append(_reject(
                getattr(settlement, "id", None),
                ErrorCode.INVALID_AMOUNT,
                f"Settlement has invalid amount {amount!r}.",
            ))
            continue

        balances[settlement.from_member_id] += amount
        balances[settlement.to_member_id] -= amount

    # Conservation holds by construction; a non-zero sum here is a bug.
    total = sum(balances.values())
    if total != 0:
        raise DataIntegrityError(
            ErrorCode.UNBALANCED_LEDGER,
            f"Balance integrity check failed: sum was {total} (expected 0).",
            http_status=500,
        )

    return Accumulation(balances=dict(balances), rejected=tuple(rejected))


def compute_balances(
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[str] = (),
        currency: str | None = None,
) -> dict[str, int]:
    """
    Canonical balance computation. Returns the BalanceMap only; rejected
    records are logged. Use accumulate() to inspect them.
    """
    return accumulate(expenses, settlements, member_ids, currency).balances


def _reject(record_id: str | None, code: str, reason: str) -> RejectedRecord:
    logger.error("Excluded record %s from balances: %s (%s)", record_id, reason, code)
    return RejectedRecord(record_id=record_id, code=code, reason=reason)
