"""
tests/unit/test_split_calculators.py — Unit tests for ledger.splits.

Every calculator must return owed amounts that sum exactly to the total, so
its output can go straight into an ExpenseRecord.
"""

from __future__ import annotations

import pytest

from groupledger.app.errors import DataIntegrityError, ErrorCode
from groupledger.app.ledger.records import ExpenseRecord
from groupledger.app.ledger.splits import (
    equal_split,
    exact_split,
    percentage_split,
    share_split,
)


# ── equal_split ────────────────────────────────────────────────────────────

def test_equal_split_even():
    assert equal_split(300, ["a", "b", "c"]) == {"a": 100, "b": 100, "c": 100}


def test_equal_split_remainder_goes_to_first_participants():
    assert equal_split(100, ["a", "b", "c"]) == {"a": 34, "b": 33, "c": 33}
    assert equal_split(1001, ["x", "y", "z"]) == {"x": 334, "y": 334, "z": 333}


def test_equal_split_single_participant():
    assert equal_split(999, ["solo"]) == {"solo": 999}


@pytest.mark.parametrize("total", [1, 7, 100, 12345, 999_999])
@pytest.mark.parametrize("count", [1, 2, 3, 7])
def test_equal_split_sums_to_total(total, count):
    members = [f"m{i}" for i in range(count)]
    result = equal_split(total, members)
    assert sum(result.values()) == total
    assert max(result.values()) - min(result.values()) <= 1


def test_equal_split_no_participants_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        equal_split(100, [])
    assert exc_info.value.code == ErrorCode.EMPTY_SPLITS


def test_equal_split_duplicate_participant_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        equal_split(100, ["a", "a"])
    assert exc_info.value.code == ErrorCode.DUPLICATE_RECORD


@pytest.mark.parametrize("total", [0, -100, 10.0])
def test_invalid_total_raises(total):
    with pytest.raises(DataIntegrityError) as exc_info:
        equal_split(total, ["a"])
    assert exc_info.value.code == ErrorCode.INVALID_AMOUNT


# ── exact_split ────────────────────────────────────────────────────────────

def test_exact_split_accepts_matching_amounts():
    assert exact_split(500, {"a": 120, "b": 380}) == {"a": 120, "b": 380}


def test_exact_split_mismatch_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        exact_split(500, {"a": 120, "b": 300})
    assert exc_info.value.code == ErrorCode.SPLIT_SUM_MISMATCH


@pytest.mark.parametrize("amounts", [
    {"a": 150, "b": -50},
    {"a": 100, "b": 0},
    {"a": 50.0, "b": 50},
])
def test_exact_split_requires_positive_integer_amounts(amounts):
    with pytest.raises(DataIntegrityError) as exc_info:
        exact_split(100, amounts)
    assert exc_info.value.code == ErrorCode.INVALID_AMOUNT


def test_exact_split_empty_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        exact_split(100, {})
    assert exc_info.value.code == ErrorCode.EMPTY_SPLITS


# ── share_split ────────────────────────────────────────────────────────────

def test_share_split_by_ratio():
    assert share_split(1000, {"a": 2, "b": 1, "c": 1}) == {"a": 500, "b": 250, "c": 250}


def test_share_split_rounding_sums_to_total():
    result = share_split(100, {"a": 1, "b": 1, "c": 1})
    assert result == {"a": 34, "b": 33, "c": 33}


def test_share_split_zero_share_member_is_left_out():
    result = share_split(101, {"a": 1, "b": 0, "c": 1})
    assert result == {"a": 51, "c": 50}


def test_share_split_all_zero_raises():
    with pytest.raises(DataIntegrityError):
        share_split(100, {"a": 0, "b": 0})


def test_share_split_negative_share_raises():
    with pytest.raises(DataIntegrityError) as exc_info:
        share_split(100, {"a": 2, "b": -1})
    assert exc_info.value.code == ErrorCode.INVALID_FIELD


# ── percentage_split ───────────────────────────────────────────────────────

def test_percentage_split_basis_points():
    assert percentage_split(10000, {"a": 5000, "b": 3000, "c": 2000}) == {
        "a": 5000, "b": 3000, "c": 2000,
    }


def test_percentage_split_last_participant_takes_remainder():
    result = percentage_split(100, {"a": 3333, "b": 3333, "c": 3334})
    assert result == {"a": 33, "b": 33, "c": 34}
    assert sum(result.values()) == 100


def test_percentage_split_must_total_one_hundred_percent():
    with pytest.raises(DataIntegrityError) as exc_info:
        percentage_split(100, {"a": 5000, "b": 4000})
    assert exc_info.value.code == ErrorCode.INVALID_FIELD


@pytest.mark.parametrize("basis_points", [
    {"a": 15000, "b": -5000},
    {"a": 5000, "b": 5000.0},
    {"a": 10000, "b": True},
    {},
])
def test_percentage_split_rejects_bad_basis_points(basis_points):
    with pytest.raises(DataIntegrityError) as exc_info:
        percentage_split(100, basis_points)
    assert exc_info.value.code == ErrorCode.INVALID_FIELD


def test_percentage_split_remainder_skips_zero_percent_participant():
    result = percentage_split(101, {"a": 5000, "b": 5000, "c": 0})
    assert result == {"a": 50, "b": 51}
    assert sum(result.values()) == 101


def test_calculator_output_builds_a_valid_expense():
    splits = equal_split(1000, ["alice", "bob", "carol"])
    record = ExpenseRecord(
        id="e1",
        group_id="g1",
        payer_id="alice",
        amount=1000,
        currency="INR",
        splits=splits,
    )
    assert sum(record.splits.values()) == record.amount
