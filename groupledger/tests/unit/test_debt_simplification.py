"""
tests/unit/test_debt_simplification.py — Unit tests for ledger.simplifier.

What this file proves:
  - Two-person debt → single transfer
  - Applying the transfers zeroes every balance (no money created or lost)
  - Confirming those transfers as settlements zeroes the accumulated ledger
  - Output length ≤ debtors + creditors - 1
  - Ties go to the lexicographically smallest member id
  - Same input, same output, regardless of dict insertion order
  - Non-int amounts and non-zero sums are refused
  - explain() walks original → categorise → transfers → result
"""

from __future__ import annotations

import random

import pytest

from groupledger.app.errors import DataIntegrityError, ErrorCode
from groupledger.app.ledger.accumulator import compute_balances
from groupledger.app.ledger.records import (
    ExpenseRecord,
    SettlementRecord,
    SettlementStatus,
    SimplifiedDebt,
)
from groupledger.app.ledger.simplifier import (
    apply_transfers,
    explain,
    simplify,
    unsimplified_transfer_count,
)


# ── Helpers ────────────────────────────────────────────────────────────────

def _assert_settles(balances: dict[str, int], transfers: list[SimplifiedDebt]) -> None:
    remaining = apply_transfers(balances, transfers)
    assert all(v == 0 for v in remaining.values()), remaining
    for t in transfers:
        assert t.amount > 0
        assert balances[t.from_member_id] < 0, "money must flow from debtors"
        assert balances[t.to_member_id] > 0, "money must flow to creditors"


def _random_balances(rng: random.Random, size: int) -> dict[str, int]:
    members = [f"m{i:02d}" for i in range(size)]
    balances = {m: rng.randint(-10_000, 10_000) for m in members[:-1]}
    balances[members[-1]] = -sum(balances.values())
    return balances


# ── Tests ──────────────────────────────────────────────────────────────────

def test_empty_input_returns_empty_list():
    assert simplify({}) == []


def test_all_zero_returns_empty_list():
    assert simplify({"a": 0, "b": 0, "c": 0}) == []


def test_two_person_debt():
    result = simplify({"alice": 5000, "bob": -5000})
    assert result == [SimplifiedDebt("bob", "alice", 5000)]


def test_one_creditor_two_debtors():
    result = simplify({"A": 200, "B": -100, "C": -100})
    assert result == [
        SimplifiedDebt("B", "A", 100),
        SimplifiedDebt("C", "A", 100),
    ]


def test_largest_debtor_pays_largest_creditor_first():
    balances = {"a": 700, "b": 300, "c": -900, "d": -100}
    result = simplify(balances)
    assert result[0] == SimplifiedDebt("c", "a", 700)
    _assert_settles(balances, result)


def test_ties_break_by_ascending_member_id():
    balances = {"zed": 100, "amy": 100, "kim": -100, "bob": -100}
    result = simplify(balances)
    assert result == [
        SimplifiedDebt("bob", "amy", 100),
        SimplifiedDebt("kim", "zed", 100),
    ]


def test_output_is_independent_of_insertion_order():
    balances = {"c": -300, "a": 500, "d": -150, "b": -50}
    reordered = dict(reversed(list(balances.items())))
    assert simplify(balances) == simplify(reordered)


@pytest.mark.parametrize("size", [2, 3, 5, 8, 13])
def test_random_balances_settle_within_bound(size):
    rng = random.Random(size)
    for _ in range(40):
        balances = _random_balances(rng, size)
        result = simplify(balances)
        _assert_settles(balances, result)

        debtors = sum(1 for v in balances.values() if v < 0)
        creditors = sum(1 for v in balances.values() if v > 0)
        if debtors and creditors:
            assert len(result) <= debtors + creditors - 1


def test_confirmed_transfers_zero_the_ledger():
    expenses = [
        ExpenseRecord("e1", "g1", "a", 900, "INR", {"a": 300, "b": 300, "c": 300}),
        ExpenseRecord("e2", "g1", "b", 400, "INR", {"b": 100, "c": 100, "d": 200}),
        ExpenseRecord("e3", "g1", "d", 70, "INR", {"a": 35, "d": 35}),
    ]
    balances = compute_balances(expenses, [], currency="INR")
    transfers = simplify(balances)

    settlements = [
        SettlementRecord(
            id=f"s{i}",
            group_id="g1",
            from_member_id=t.from_member_id,
            to_member_id=t.to_member_id,
            amount=t.amount,
            currency="INR",
            status=SettlementStatus.CONFIRMED,
        )
        for i, t in enumerate(transfers)
    ]
    after = compute_balances(expenses, settlements, currency="INR")

    assert transfers
    assert after == {m: 0 for m in balances}


def test_non_zero_sum_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        simplify({"a": 100, "b": -99})
    assert exc_info.value.code == ErrorCode.UNBALANCED_LEDGER


@pytest.mark.parametrize("bad", [100.0, "100", None, True])
def test_non_integer_amount_raises(bad):
    with pytest.raises(DataIntegrityError) as exc_info:
        simplify({"a": bad, "b": -100})
    assert exc_info.value.code == ErrorCode.INVALID_BALANCE_AMOUNT
    assert exc_info.value.record_id == "a"


def test_input_is_not_mutated():
    balances = {"a": 100, "b": -100}
    simplify(balances)
    assert balances == {"a": 100, "b": -100}


# ── Explanation ────────────────────────────────────────────────────────────

def test_unsimplified_count_is_creditors_times_debtors():
    assert unsimplified_transfer_count({"a": 300, "b": 100, "c": -200, "d": -200}) == 4
    assert unsimplified_transfer_count({}) == 0


def test_explain_step_sequence():
    balances = {"A": -10000, "B": 10000}
    steps = explain(balances)

    assert [s.kind for s in steps] == ["original", "categorise", "transfer", "result"]
    assert steps[0].balances == balances
    assert steps[1].creditors == ("B",)
    assert steps[1].debtors == ("A",)
    assert steps[2].transfer == SimplifiedDebt("A", "B", 10000)
    assert steps[2].balances == {"A": 0, "B": 0}
    assert steps[-1].unsimplified_count == 1


def test_explain_running_balances_reach_zero():
    balances = {"A": 200, "B": -100, "C": -100}
    steps = explain(balances)

    transfer_steps = [s for s in steps if s.kind == "transfer"]
    assert len(transfer_steps) == 2
    assert transfer_steps[0].balances == {"A": 100, "B": 0, "C": -100}
    assert steps[-1].balances == {"A": 0, "B": 0, "C": 0}


def test_explain_settled_group_has_no_transfer_steps():
    steps = explain({"A": 0, "B": 0})
    assert [s.kind for s in steps] == ["original", "categorise", "result"]
    assert steps[-1].unsimplified_count == 0
