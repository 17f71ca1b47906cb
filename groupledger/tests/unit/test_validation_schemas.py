"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Every schema rejects invalid input with the registered error code
  - Amounts are strict ints: floats and numeric strings are refused
  - ExpenseRecordSchema loads straight into an ExpenseRecord

No database and no Flask application context. Schemas inherit from
marshmallow.Schema directly, which is why they can be used here.
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode
from groupledger.app.ledger.records import ExpenseRecord, ExpenseStatus, PaymentMethod
from groupledger.app.schemas.expense_schema import ExpenseRecordSchema
from groupledger.app.schemas.settlement_schema import (
    ConfirmSettlementSchema,
    ProposeSettlementSchema,
    RejectSettlementSchema,
)


def _messages(schema, payload) -> dict:
    with pytest.raises(ValidationError) as exc_info:
        schema.load(payload)
    return exc_info.value.messages


# ── ProposeSettlementSchema ────────────────────────────────────────────────

class TestProposeSettlementSchema:

    def test_minimal_payload(self):
        data = ProposeSettlementSchema().load({"to_member_id": "alice", "amount": 5000})
        assert data == {
            "to_member_id": "alice",
            "amount": 5000,
            "currency": None,
            "payment_method": None,
            "payment_reference": None,
            "notes": None,
        }

    def test_full_payload(self):
        data = ProposeSettlementSchema().load({
            "to_member_id": "alice",
            "amount": 5000,
            "currency": "INR",
            "payment_method": "bank_transfer",
            "payment_reference": "UTR123",
            "notes": "for dinner",
        })
        assert data["payment_method"] is PaymentMethod.BANK_TRANSFER
        assert data["currency"] == "INR"

    def test_missing_recipient(self):
        messages = _messages(ProposeSettlementSchema(), {"amount": 5000})
        assert "to_member_id" in messages

    @pytest.mark.parametrize("amount", [50.5, "5000", 0, -1])
    def test_invalid_amount(self, amount):
        messages = _messages(ProposeSettlementSchema(), {"to_member_id": "alice", "amount": amount})
        assert "amount" in messages

    def test_non_positive_amount_uses_error_code(self):
        messages = _messages(ProposeSettlementSchema(), {"to_member_id": "alice", "amount": 0})
        assert messages["amount"] == [ErrorCode.INVALID_AMOUNT]

    @pytest.mark.parametrize("currency", ["inr", "RUPEES", "IN"])
    def test_invalid_currency(self, currency):
        messages = _messages(
            ProposeSettlementSchema(),
            {"to_member_id": "alice", "amount": 100, "currency": currency},
        )
        assert messages["currency"] == [ErrorCode.INVALID_CURRENCY]

    def test_unknown_payment_method(self):
        messages = _messages(
            ProposeSettlementSchema(),
            {"to_member_id": "alice", "amount": 100, "payment_method": "cheque"},
        )
        assert messages["payment_method"] == [ErrorCode.INVALID_PAYMENT_METHOD]

    def test_notes_too_long(self):
        messages = _messages(
            ProposeSettlementSchema(),
            {"to_member_id": "alice", "amount": 100, "notes": "x" * 501},
        )
        assert "notes" in messages


# ── Confirm / Reject ───────────────────────────────────────────────────────

class TestTransitionSchemas:

    def test_confirm_defaults_to_unverified(self):
        assert ConfirmSettlementSchema().load({}) == {"verified": False}

    def test_confirm_verified(self):
        assert ConfirmSettlementSchema().load({"verified": True}) == {"verified": True}

    def test_confirm_rejects_non_boolean(self):
        messages = _messages(ConfirmSettlementSchema(), {"verified": "maybe"})
        assert "verified" in messages

    def test_reject_reason_optional(self):
        assert RejectSettlementSchema().load({}) == {"reason": None}
        assert RejectSettlementSchema().load({"reason": "not received"}) == {"reason": "not received"}


# ── ExpenseRecordSchema ────────────────────────────────────────────────────

def _expense_payload(**overrides) -> dict:
    payload = {
        "id": "exp-1",
        "group_id": "g-1",
        "payer_id": "alice",
        "amount": 30000,
        "currency": "INR",
        "splits": {"alice": 10000, "bob": 10000, "carol": 10000},
    }
    payload.update(overrides)
    return payload


class TestExpenseRecordSchema:

    def test_loads_expense_record(self):
        record = ExpenseRecordSchema().load(_expense_payload(description="Dinner"))
        assert isinstance(record, ExpenseRecord)
        assert record.status is ExpenseStatus.ACTIVE
        assert record.splits == {"alice": 10000, "bob": 10000, "carol": 10000}
        assert record.description == "Dinner"

    def test_voided_status(self):
        record = ExpenseRecordSchema().load(_expense_payload(status="voided"))
        assert record.status is ExpenseStatus.VOIDED

    def test_unknown_status(self):
        messages = _messages(ExpenseRecordSchema(), _expense_payload(status="archived"))
        assert messages["status"] == [ErrorCode.INVALID_STATUS]

    def test_split_sum_mismatch(self):
        messages = _messages(
            ExpenseRecordSchema(),
            _expense_payload(splits={"alice": 10000, "bob": 10000}),
        )
        assert messages["splits"] == [ErrorCode.SPLIT_SUM_MISMATCH]

    def test_empty_splits(self):
        messages = _messages(ExpenseRecordSchema(), _expense_payload(splits={}))
        assert messages["splits"] == [ErrorCode.EMPTY_SPLITS]

    def test_zero_owed_amount(self):
        messages = _messages(
            ExpenseRecordSchema(),
            _expense_payload(amount=100, splits={"alice": 100, "bob": 0}),
        )
        assert messages["splits"] == [ErrorCode.INVALID_AMOUNT]

    def test_float_owed_amount(self):
        messages = _messages(
            ExpenseRecordSchema(),
            _expense_payload(amount=100, splits={"alice": 99.5, "bob": 0.5}),
        )
        assert "splits" in messages

    def test_float_total(self):
        messages = _messages(ExpenseRecordSchema(), _expense_payload(amount=300.0))
        assert "amount" in messages

    def test_missing_payer(self):
        payload = _expense_payload()
        del payload["payer_id"]
        messages = _messages(ExpenseRecordSchema(), payload)
        assert "payer_id" in messages
