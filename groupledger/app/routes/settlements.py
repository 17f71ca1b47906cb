"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call the manager, return envelope.
  - No business logic. No DB queries. The store adapter commits each write.

Proposal warnings (OVERPAYMENT, STEP_UP_REQUIRED) are returned in the
envelope alongside a 201: {"data": {...}, "warnings": [{"code": ...}]}.

Endpoints (base url_prefix=/api/v1/groups):
  POST /groups/:id/settlements                 → 201  propose a payment
  GET  /groups/:id/settlements                 → 200  list, newest first
  POST /groups/:id/settlements/:sid/confirm    → 200  confirm (recipient side)
  POST /groups/:id/settlements/:sid/reject     → 200  reject
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger.records import SettlementRecord, SettlementStatus
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.routes.ledger_context import get_directory, get_manager
from groupledger.app.schemas.settlement_schema import (
    ConfirmSettlementSchema,
    ProposeSettlementSchema,
    RejectSettlementSchema,
)
from groupledger.app.services import settlement_service
from groupledger.app.services.balance_service import require_member

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_settlement(s: SettlementRecord) -> dict:
    return {
        "id": s.id,
        "group_id": s.group_id,
        "from_member_id": s.from_member_id,
        "to_member_id": s.to_member_id,
        "amount": s.amount,
        "currency": s.currency,
        "status": s.status.value,
        "requires_step_up_verification": s.requires_step_up_verification,
        "verified": s.verified,
        "notes": s.notes,
        "payment_method": s.payment_method.value if s.payment_method else None,
        "payment_reference": s.payment_reference,
        "created_at": s.created_at.isoformat() if s.created_at else None,
        "confirmed_at": s.confirmed_at.isoformat() if s.confirmed_at else None,
        "confirmed_by": s.confirmed_by,
    }


def _load_in_group(group_id: str, settlement_id: str) -> SettlementRecord:
    record = get_manager().get_settlement(settlement_id)
    if record.group_id != group_id:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist in group {group_id}.",
            404,
        )
    return record


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/<group_id>/settlements", methods=["POST"])
@require_auth
def propose_settlement(group_id: str):
    """
    POST /groups/:id/settlements — Propose a payment from the caller.

    The settlement is recorded `pending` and does not move balances until
    the recipient confirms it.
    """
    data = ProposeSettlementSchema().load(request.get_json(force=True) or {})
    manager = get_manager()
    directory = get_directory()
    require_member(directory, group_id, g.member_id)

    currency = (
        data["currency"]
        or directory.group_currency(group_id)
        or current_app.config["DEFAULT_CURRENCY"]
    )
    balances_before = manager.current_balances(group_id)

    record = manager.propose(
        group_id=group_id,
        from_member_id=g.member_id,
        to_member_id=data["to_member_id"],
        amount=data["amount"],
        currency=currency,
        payment_method=data["payment_method"],
        notes=data["notes"],
        payment_reference=data["payment_reference"],
    )
    warnings = settlement_service.proposal_warnings(record, balances_before)
    return jsonify({"data": _serialize_settlement(record), "warnings": warnings}), 201


@settlements_bp.route("/<group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: str):
    """
    GET /groups/:id/settlements

    Optional query params:
      ?status=pending|confirmed|rejected
      ?member=<id>                       settlements involving that member
      ?member=<id>&counterparty=<id>     settlements between the two
    """
    require_member(get_directory(), group_id, g.member_id)
    manager = get_manager()

    status_param = request.args.get("status")
    status = None
    if status_param is not None:
        try:
            status = SettlementStatus(status_param)
        except ValueError:
            raise AppError(
                ErrorCode.INVALID_STATUS,
                f"'{status_param}' is not a valid status. "
                f"Valid values: {', '.join(s.value for s in SettlementStatus)}.",
                400,
                field="status",
            )

    member = request.args.get("member")
    counterparty = request.args.get("counterparty")
    if counterparty is not None and member is None:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "counterparty requires member.",
            400,
            field="member",
        )

    if member is not None and counterparty is not None:
        settlements = manager.settlements_between(group_id, member, counterparty)
    elif member is not None:
        settlements = [
            s for s in manager.list_settlements(group_id)
            if member in (s.from_member_id, s.to_member_id)
        ]
    else:
        settlements = manager.list_settlements(group_id)

    if status is not None:
        settlements = [s for s in settlements if s.status is status]

    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/<group_id>/settlements/pending", methods=["GET"])
@require_auth
def list_pending_for_caller(group_id: str):
    """GET /groups/:id/settlements/pending — awaiting the caller's confirmation."""
    require_member(get_directory(), group_id, g.member_id)
    settlements = get_manager().pending_for_member(group_id, g.member_id)
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/<group_id>/settlements/<settlement_id>/confirm", methods=["POST"])
@require_auth
def confirm_settlement(group_id: str, settlement_id: str):
    """
    POST /groups/:id/settlements/:sid/confirm

    Body: {"verified": true} once the caller has passed step-up verification.
    """
    data = ConfirmSettlementSchema().load(request.get_json(silent=True) or {})
    require_member(get_directory(), group_id, g.member_id)
    _load_in_group(group_id, settlement_id)

    record = get_manager().confirm(
        settlement_id,
        confirming_member_id=g.member_id,
        verified=data["verified"],
    )
    return jsonify({"data": _serialize_settlement(record), "warnings": []}), 200


@settlements_bp.route("/<group_id>/settlements/<settlement_id>/reject", methods=["POST"])
@require_auth
def reject_settlement(group_id: str, settlement_id: str):
    """POST /groups/:id/settlements/:sid/reject — Body: {"reason": "..."} (optional)."""
    data = RejectSettlementSchema().load(request.get_json(silent=True) or {})
    require_member(get_directory(), group_id, g.member_id)
    _load_in_group(group_id, settlement_id)

    record = get_manager().reject(settlement_id, reason=data["reason"])
    return jsonify({"data": _serialize_settlement(record), "warnings": []}), 200
