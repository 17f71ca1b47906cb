"""
ledger/splits.py — Split calculators.

Each calculator turns a total and a participant description into a
{member_id: owed_amount} dict whose values sum exactly to the total. Integer
minor units only: rounding remainders are handed out one unit at a time, so
the split invariant holds without any tolerance.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from groupledger.app.errors import DataIntegrityError, ErrorCode
from groupledger.app.ledger.records import is_minor_units

BASIS_POINTS_TOTAL = 10_000


def _require_total(total: int) -> None:
    if not is_minor_units(total) or total <= 0:
        raise DataIntegrityError(
            ErrorCode.INVALID_AMOUNT,
            f"Split total must be a positive integer of minor units, got {total!r}.",
            field="amount",
        )


def _distribute(total: int, weights: Sequence[tuple[str, int]]) -> dict[str, int]:
    """
    Floors each weighted share of `total`, then hands the leftover units out
    one each to the earliest participants in the given order.
    """
    weight_sum = sum(w for _, w in weights)
    shares = {uid: total * w // weight_sum for uid, w in weights}
    leftover = total - sum(shares.values())
    for uid, _ in weights[:leftover]:
        shares[uid] += 1
    return shares


def equal_split(total: int, member_ids: Sequence[str]) -> dict[str, int]:
    """
    Divides total evenly. The remainder goes one unit each to the first
    participants: 100 over 3 → 34, 33, 33. Members whose share rounds to
    zero are left out.
    """
    _require_total(total)
    if not member_ids:
        raise DataIntegrityError(
            ErrorCode.EMPTY_SPLITS,
            "An equal split needs at least one participant.",
            field="splits",
        )
    if len(set(member_ids)) != len(member_ids):
        raise DataIntegrityError(
            ErrorCode.DUPLICATE_RECORD,
            "The same member appears more than once in an equal split.",
            field="splits",
        )
    shares = _distribute(total, [(uid, 1) for uid in member_ids])
    return {uid: amt for uid, amt in shares.items() if amt > 0}


def exact_split(total: int, amounts: Mapping[str, int]) -> dict[str, int]:
    """Accepts caller-chosen amounts after checking they sum to total."""
    _require_total(total)
    if not amounts:
        raise DataIntegrityError(
            ErrorCode.EMPTY_SPLITS,
            "An exact split needs at least one participant.",
            field="splits",
        )
    for uid, owed in amounts.items():
        if not is_minor_units(owed) or owed <= 0:
            raise DataIntegrityError(
                ErrorCode.INVALID_AMOUNT,
                f"Exact amount for {uid} must be a positive integer of minor units, got {owed!r}.",
                field="splits",
            )
    allocated = sum(amounts.values())
    if allocated != total:
        raise DataIntegrityError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Exact amounts sum to {allocated}, expected {total}.",
            field="splits",
        )
    return dict(amounts)


def share_split(total: int, shares: Mapping[str, int]) -> dict[str, int]:
    """
    Ratio split by integer shares: {"a": 2, "b": 1, "c": 1} gives a half
    to a and a quarter each to b and c.
    """
    _require_total(total)
    if not shares or any(not is_minor_units(s) or s < 0 for s in shares.values()):
        raise DataIntegrityError(
            ErrorCode.INVALID_FIELD,
            "Shares must be non-negative integers.",
            field="splits",
        )
    if sum(shares.values()) == 0:
        raise DataIntegrityError(
            ErrorCode.INVALID_FIELD,
            "Total shares cannot be zero.",
            field="splits",
        )
    result = _distribute(total, [(uid, s) for uid, s in shares.items() if s > 0])
    return {uid: amt for uid, amt in result.items() if amt > 0}


def percentage_split(total: int, basis_points: Mapping[str, int]) -> dict[str, int]:
    """
    Percentage split expressed in basis points (10000 = 100%). Each share
    rounds down; the last participant with a non-zero percentage takes
    whatever is left. Participants at 0% are left out.
    """
    _require_total(total)
    if not basis_points or any(not is_minor_units(b) or b < 0 for b in basis_points.values()):
        raise DataIntegrityError(
            ErrorCode.INVALID_FIELD,
            "Percentages must be non-negative integers of basis points.",
            field="splits",
        )
    if sum(basis_points.values()) != BASIS_POINTS_TOTAL:
        raise DataIntegrityError(
            ErrorCode.INVALID_FIELD,
            f"Percentages must sum to {BASIS_POINTS_TOTAL} basis points.",
            field="splits",
        )

    entries = [(uid, bps) for uid, bps in basis_points.items() if bps > 0]
    result: dict[str, int] = {}
    allocated = 0
    for uid, bps in entries[:-1]:
        result[uid] = total * bps // BASIS_POINTS_TOTAL
        allocated += result[uid]
    last_uid, _ = entries[-1]
    result[last_uid] = total - allocated
    return {uid: amt for uid, amt in result.items() if amt > 0}
