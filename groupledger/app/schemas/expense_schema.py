"""
schemas/expense_schema.py — Marshmallow schema for externally supplied
expense records (imports, sync payloads).

Validation responsibility:
  - This file:
      - Field types: amounts are strict ints of minor units, never floats
      - Currency shape (three uppercase letters)
      - SPLIT_SUM_MISMATCH when the owed amounts do not add up to the total
  - ledger/records.py:
      - ExpenseRecord re-checks the same invariant on construction, so the
        accumulator never sees a record that bypassed this schema unchecked.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.ledger.records import ExpenseRecord, ExpenseStatus


_CURRENCY = validate.Regexp(r"^[A-Z]{3}$", error=ErrorCode.INVALID_CURRENCY)


def _validate_owed_amounts(splits: dict) -> None:
    if not splits:
        raise ValidationError(ErrorCode.EMPTY_SPLITS)
    for owed in splits.values():
        if owed <= 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT)


class ExpenseRecordSchema(Schema):
    """
    Loads one expense payload into an ExpenseRecord.

    {
      "id": "exp-1", "group_id": "g-1", "payer_id": "alice",
      "amount": 30000, "currency": "INR",
      "splits": {"alice": 10000, "bob": 10000, "carol": 10000}
    }
    """

    id = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    group_id = fields.Str(required=True, validate=validate.Length(min=1, max=64))
    payer_id = fields.Str(required=True, validate=validate.Length(min=1, max=64))

    amount = fields.Int(
        required=True,
        strict=True,   # reject 100.0 and "100"
        validate=validate.Range(min=1, error=ErrorCode.INVALID_AMOUNT),
    )
    currency = fields.Str(required=True, validate=_CURRENCY)

    splits = fields.Dict(
        keys=fields.Str(validate=validate.Length(min=1, max=64)),
        values=fields.Int(strict=True),
        required=True,
        validate=_validate_owed_amounts,
    )

    status = fields.Enum(
        ExpenseStatus,
        by_value=True,
        load_default=ExpenseStatus.ACTIVE,
        error_messages={"unknown": ErrorCode.INVALID_STATUS},
    )
    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))
    created_at = fields.DateTime(load_default=None, allow_none=True)

    @validates_schema
    def validate_split_sum(self, data: dict, **kwargs) -> None:
        amount = data.get("amount")
        splits = data.get("splits")
        if amount is None or not splits:
            return
        if sum(splits.values()) != amount:
            raise ValidationError({"splits": [ErrorCode.SPLIT_SUM_MISMATCH]})

    @post_load
    def make_record(self, data: dict, **kwargs) -> ExpenseRecord:
        return ExpenseRecord(**data)
