"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, positive int amount, currency shape, payment
    method enum, text lengths.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)      — needs the caller's member id from flask.g
      - PAYER_NOT_MEMBER (422)     — needs the membership directory
      - RECIPIENT_NOT_MEMBER (422) — needs the membership directory
      - STEP_UP_VERIFICATION_REQUIRED (422) — needs the stored record

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from groupledger.app.errors import ErrorCode
from groupledger.app.ledger.records import PaymentMethod


class ProposeSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

    The payer is the authenticated member (flask.g.member_id), never the
    request body. Overpayment is allowed; the route adds a warning.
    """

    to_member_id = fields.Str(required=True, validate=validate.Length(min=1, max=64))

    amount = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error=ErrorCode.INVALID_AMOUNT),
    )

    # Falls back to the group's currency in the route when omitted.
    currency = fields.Str(
        load_default=None,
        validate=validate.Regexp(r"^[A-Z]{3}$", error=ErrorCode.INVALID_CURRENCY),
    )

    payment_method = fields.Enum(
        PaymentMethod,
        by_value=True,
        load_default=None,
        allow_none=True,
        error_messages={"unknown": ErrorCode.INVALID_PAYMENT_METHOD},
    )
    payment_reference = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=128))
    notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))


class ConfirmSettlementSchema(Schema):
    """
    POST /groups/:id/settlements/:sid/confirm

    `verified` is the outcome of the client's step-up check (biometric or
    similar). Only meaningful for settlements at or above the threshold.
    """

    verified = fields.Bool(load_default=False)


class RejectSettlementSchema(Schema):
    """POST /groups/:id/settlements/:sid/reject"""

    reason = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=500))
