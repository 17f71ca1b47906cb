"""
ledger/simplifier.py — Greedy debt simplification.

Repeatedly matches the largest debtor with the largest creditor until every
balance reaches zero. For D debtors and C creditors this produces at most
D + C - 1 transfers.

The greedy policy and its tie-break are the contract: when several members
share the largest magnitude, the lexicographically smallest member id goes
first. Globally minimal settlement is NP-hard and is not attempted; changing
the algorithm changes observable output and must be treated as a behaviour
change.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Mapping

from groupledger.app.errors import DataIntegrityError, ErrorCode
from groupledger.app.ledger.records import SimplifiedDebt, is_minor_units

logger = logging.getLogger(__name__)


def _validate_balances(balances: Mapping[str, int]) -> None:
    for member_id, amount in balances.items():
        if not is_minor_units(amount):
            raise DataIntegrityError(
                ErrorCode.INVALID_BALANCE_AMOUNT,
                f"Balance for member {member_id} is {amount!r}; "
                f"expected an integer of minor units.",
                record_id=member_id,
            )

    total = sum(balances.values())
    if total != 0:
        raise DataIntegrityError(
            ErrorCode.UNBALANCED_LEDGER,
            f"Balances sum to {total}; simplification requires a zero-sum map.",
        )


def simplify(balances: Mapping[str, int]) -> list[SimplifiedDebt]:
    """
    Greedy minimum cash flow debt simplification.

    Args:
        balances: {member_id: net_balance}. MUST sum to zero.

    Returns:
        Ordered list of SimplifiedDebt. Empty when every balance is zero.

    Raises:
        DataIntegrityError(UNBALANCED_LEDGER)      -- sum is not zero.
        DataIntegrityError(INVALID_BALANCE_AMOUNT) -- a value is not an int.
    """
    _validate_balances(balances)

    # Max-heaps via negated magnitude; member id breaks ties ascending.
    creditors = [(-amt, uid) for uid, amt in balances.items() if amt > 0]
    debtors = [(amt, uid) for uid, amt in balances.items() if amt < 0]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    logger.debug(
        "Simplifying debts: %d creditors, %d debtors",
        len(creditors),
        len(debtors),
    )

    transfers: list[SimplifiedDebt] = []

    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = min(credit, debt)
        transfers.append(SimplifiedDebt(
            from_member_id=debtor,
            to_member_id=creditor,
            amount=amount,
        ))

        if credit > amount:
            heapq.heappush(creditors, (-(credit - amount), creditor))
        if debt > amount:
            heapq.heappush(debtors, (-(debt - amount), debtor))

    logger.debug("Debt simplification complete: %d transfers", len(transfers))
    return transfers


def apply_transfers(
        balances: Mapping[str, int],
        transfers: list[SimplifiedDebt],
) -> dict[str, int]:
    """Returns the balances left after every transfer is paid."""
    remaining = dict(balances)
    for transfer in transfers:
        remaining[transfer.from_member_id] = remaining.get(transfer.from_member_id, 0) + transfer.amount
        remaining[transfer.to_member_id] = remaining.get(transfer.to_member_id, 0) - transfer.amount
    return remaining


# ── Explanation ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SimplificationStep:
    """
    One step of a simplification walkthrough. `kind` is one of
    "original", "categorise", "transfer" or "result".
    """

    kind: str
    balances: dict[str, int] = field(hash=False)
    transfer: SimplifiedDebt | None = None
    creditors: tuple[str, ...] = ()
    debtors: tuple[str, ...] = ()
    unsimplified_count: int | None = None


def unsimplified_transfer_count(balances: Mapping[str, int]) -> int:
    """Worst case without simplification: every debtor pays every creditor."""
    creditors = sum(1 for amt in balances.values() if amt > 0)
    debtors = sum(1 for amt in balances.values() if amt < 0)
    return creditors * debtors


def explain(balances: Mapping[str, int]) -> list[SimplificationStep]:
    """
    Step-by-step account of how simplify() clears the given balances.

    Member ids only; callers attach display names when rendering.
    """
    transfers = simplify(balances)
    ordered = sorted(balances)

    steps = [
        SimplificationStep(kind="original", balances=dict(balances)),
        SimplificationStep(
            kind="categorise",
            balances=dict(balances),
            creditors=tuple(uid for uid in ordered if balances[uid] > 0),
            debtors=tuple(uid for uid in ordered if balances[uid] < 0),
        ),
    ]

    running = dict(balances)
    for transfer in transfers:
        running = apply_transfers(running, [transfer])
        steps.append(SimplificationStep(
            kind="transfer",
            balances=dict(running),
            transfer=transfer,
        ))

    steps.append(SimplificationStep(
        kind="result",
        balances=running,
        unsimplified_count=unsimplified_transfer_count(balances),
    ))
    return steps
