"""
Unit tests for balance_service response shaping.

These tests avoid Flask and the database. The manager runs against the
in-memory store; the explanation tests also patch it with a MagicMock where
only the balance map matters.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger.records import ExpenseRecord
from groupledger.app.services import balance_service
from groupledger.app.services.settlement_service import SettlementManager
from groupledger.app.store.memory import InMemoryLedgerStore, InMemoryMembershipDirectory


@pytest.fixture
def directory():
    d = InMemoryMembershipDirectory()
    d.add_group("g1", currency="INR")
    d.add_member("g1", "u-alice", display_name="Alice")
    d.add_member("g1", "u-bob", display_name="Bob")
    d.add_member("g1", "u-carol", display_name="Carol")
    return d


@pytest.fixture
def manager(directory):
    store = InMemoryLedgerStore(directory=directory)
    store.add_expense(ExpenseRecord(
        id="e1",
        group_id="g1",
        payer_id="u-alice",
        amount=30000,
        currency="INR",
        splits={"u-alice": 10000, "u-bob": 10000, "u-carol": 10000},
    ))
    return SettlementManager(store, directory)


# ── format_amount ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("amount, currency, expected", [
    (123456, "INR", "INR 1,234.56"),
    (5, "INR", "INR 0.05"),
    (-10000, "USD", "USD -100.00"),
    (0, None, "0.00"),
])
def test_format_amount(amount, currency, expected):
    assert balance_service.format_amount(amount, currency) == expected


def test_format_amount_zero_exponent():
    assert balance_service.format_amount(1500, "JPY", exponent=0) == "JPY 1,500"


# ── require_member ─────────────────────────────────────────────────────────

def test_require_member_unknown_group(directory):
    with pytest.raises(AppError) as exc_info:
        balance_service.require_member(directory, "nope", "u-alice")
    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND
    assert exc_info.value.http_status == 404


def test_require_member_outsider(directory):
    with pytest.raises(AppError) as exc_info:
        balance_service.require_member(directory, "g1", "u-mallory")
    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403


# ── get_balance_response ───────────────────────────────────────────────────

def test_balance_response_shape(manager, directory):
    payload = balance_service.get_balance_response(manager, directory, "g1", "u-bob")

    assert payload["group_id"] == "g1"
    assert payload["currency"] == "INR"
    assert payload["balances"] == [
        {"member_id": "u-alice", "display_name": "Alice", "balance": 20000},
        {"member_id": "u-bob", "display_name": "Bob", "balance": -10000},
        {"member_id": "u-carol", "display_name": "Carol", "balance": -10000},
    ]
    assert payload["simplified_debts"] == [
        {
            "from_member_id": "u-bob",
            "to_member_id": "u-alice",
            "amount": 10000,
            "from_display_name": "Bob",
            "to_display_name": "Alice",
        },
        {
            "from_member_id": "u-carol",
            "to_member_id": "u-alice",
            "amount": 10000,
            "from_display_name": "Carol",
            "to_display_name": "Alice",
        },
    ]


def test_balance_response_keeps_former_member_name(manager, directory):
    directory.remove_member("g1", "u-carol")
    payload = balance_service.get_balance_response(manager, directory, "g1", "u-alice")

    carol = [b for b in payload["balances"] if b["member_id"] == "u-carol"]
    assert carol == [{"member_id": "u-carol", "display_name": "Carol", "balance": -10000}]


def test_balance_response_requires_membership(manager, directory):
    with pytest.raises(AppError) as exc_info:
        balance_service.get_balance_response(manager, directory, "g1", "u-mallory")
    assert exc_info.value.code == ErrorCode.FORBIDDEN


# ── get_explanation_response ───────────────────────────────────────────────

def test_explanation_titles_and_descriptions(manager, directory):
    payload = balance_service.get_explanation_response(manager, directory, "g1", "u-alice")
    steps = payload["steps"]

    assert [s["title"] for s in steps] == [
        "Original Balances",
        "Categorize Members",
        "Settlement 1",
        "Settlement 2",
        "Result",
    ]
    assert steps[0]["description"] == "Alice: INR 200.00; Bob: INR -100.00; Carol: INR -100.00"
    assert steps[1]["creditors"] == ["u-alice"]
    assert steps[1]["debtors"] == ["u-bob", "u-carol"]
    assert steps[2]["description"] == "Bob pays Alice INR 100.00."
    assert steps[2]["transfer"] == {"from_member_id": "u-bob", "to_member_id": "u-alice", "amount": 10000}
    assert steps[-1]["balances"] == {"u-alice": 0, "u-bob": 0, "u-carol": 0}
    assert steps[-1]["unsimplified_count"] == 2
    assert steps[-1]["description"].startswith("2 payment(s)")


def test_explanation_for_settled_group(directory):
    manager = MagicMock()
    manager.current_balances.return_value = {"u-alice": 0, "u-bob": 0}

    payload = balance_service.get_explanation_response(manager, directory, "g1", "u-alice")

    assert [s["kind"] for s in payload["steps"]] == ["original", "categorise", "result"]
    assert payload["steps"][0]["description"] == "Everyone is settled up."
    assert payload["steps"][1]["description"] == "Owed money: nobody. Owe money: nobody."
