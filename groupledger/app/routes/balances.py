"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances              → 200  balances + simplified debts
  GET /groups/:id/balances/explanation  → 200  step-by-step simplification
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.routes.ledger_context import get_directory, get_manager
from groupledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: str):
    """
    GET /groups/:id/balances

    Balances are int minor units: positive is owed, negative owes. Former
    members appear only while their balance is non-zero.
    """
    payload = balance_service.get_balance_response(
        manager=get_manager(),
        directory=get_directory(),
        group_id=group_id,
        caller_id=g.member_id,
    )
    return jsonify({"data": payload, "warnings": []}), 200


@balances_bp.route("/<group_id>/balances/explanation", methods=["GET"])
@require_auth
def get_balance_explanation(group_id: str):
    """GET /groups/:id/balances/explanation"""
    payload = balance_service.get_explanation_response(
        manager=get_manager(),
        directory=get_directory(),
        group_id=group_id,
        caller_id=g.member_id,
    )
    return jsonify({"data": payload, "warnings": []}), 200
