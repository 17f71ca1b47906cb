"""
services/balance_service.py — Balance and simplification responses.

The arithmetic lives in ledger/accumulator.py and ledger/simplifier.py and
is reached through SettlementManager.current_balances(). This module only
shapes results for callers: it attaches display names, formats amounts for
the explanation walkthrough and enforces the caller-is-member rule.

Layer rules:
  - No Flask imports. Receives the manager and directory as arguments.
  - Returns plain dicts and lists; amounts stay int minor units.
"""

from __future__ import annotations

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger.simplifier import SimplificationStep, explain, simplify
from groupledger.app.services.settlement_service import SettlementManager
from groupledger.app.store.base import MembershipDirectory


def require_member(directory: MembershipDirectory, group_id: str, member_id: str) -> None:
    """Raises GROUP_NOT_FOUND (404) or FORBIDDEN (403)."""
    if not directory.group_exists(group_id):
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    if not directory.is_member(group_id, member_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def format_amount(amount: int, currency: str | None, exponent: int = 2) -> str:
    """
    Renders minor units for people: format_amount(123456, "INR") → "INR 1,234.56".
    Integer arithmetic only.
    """
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 10 ** exponent)
    text = f"{sign}{major:,}.{minor:0{exponent}d}" if exponent else f"{sign}{major:,}"
    return f"{currency} {text}" if currency else text


def get_balance_response(
        manager: SettlementManager,
        directory: MembershipDirectory,
        group_id: str,
        caller_id: str,
) -> dict:
    """
    Payload for GET /groups/:id/balances.

    {
      "group_id": "...", "currency": "INR",
      "balances": [{"member_id", "display_name", "balance"}],
      "simplified_debts": [{"from_member_id", "from_display_name",
                            "to_member_id", "to_display_name", "amount"}]
    }
    """
    require_member(directory, group_id, caller_id)

    balances = manager.current_balances(group_id)
    names = directory.display_names(group_id)

    def name(member_id: str) -> str:
        return names.get(member_id, member_id)

    debts = simplify(balances)
    return {
        "group_id": group_id,
        "currency": directory.group_currency(group_id),
        "balances": [
            {
                "member_id": member_id,
                "display_name": name(member_id),
                "balance": balances[member_id],
            }
            for member_id in sorted(balances)
        ],
        "simplified_debts": [
            {
                **debt.as_dict(),
                "from_display_name": name(debt.from_member_id),
                "to_display_name": name(debt.to_member_id),
            }
            for debt in debts
        ],
    }


# ── Explanation ────────────────────────────────────────────────────────────

def _render_step(
        step: SimplificationStep,
        index: int,
        names: dict[str, str],
        currency: str | None,
) -> dict:
    def name(member_id: str) -> str:
        return names.get(member_id, member_id)

    if step.kind == "original":
        title = "Original Balances"
        lines = [
            f"{name(m)}: {format_amount(amt, currency)}"
            for m, amt in sorted(step.balances.items())
            if amt != 0
        ]
        description = "; ".join(lines) if lines else "Everyone is settled up."
    elif step.kind == "categorise":
        title = "Categorize Members"
        creditors = ", ".join(name(m) for m in step.creditors) or "nobody"
        debtors = ", ".join(name(m) for m in step.debtors) or "nobody"
        description = f"Owed money: {creditors}. Owe money: {debtors}."
    elif step.kind == "transfer":
        transfer = step.transfer
        title = f"Settlement {index}"
        description = (
            f"{name(transfer.from_member_id)} pays {name(transfer.to_member_id)} "
            f"{format_amount(transfer.amount, currency)}."
        )
    else:
        title = "Result"
        description = (
            f"{index} payment(s) settle the group, instead of up to "
            f"{step.unsimplified_count} without simplification."
        )

    rendered = {
        "kind": step.kind,
        "title": title,
        "description": description,
        "balances": dict(step.balances),
    }
    if step.transfer is not None:
        rendered["transfer"] = step.transfer.as_dict()
    if step.kind == "categorise":
        rendered["creditors"] = list(step.creditors)
        rendered["debtors"] = list(step.debtors)
    if step.unsimplified_count is not None:
        rendered["unsimplified_count"] = step.unsimplified_count
    return rendered


def get_explanation_response(
        manager: SettlementManager,
        directory: MembershipDirectory,
        group_id: str,
        caller_id: str,
) -> dict:
    """Payload for GET /groups/:id/balances/explanation."""
    require_member(directory, group_id, caller_id)

    balances = manager.current_balances(group_id)
    names = directory.display_names(group_id)
    currency = directory.group_currency(group_id)

    rendered = []
    transfers_seen = 0
    for step in explain(balances):
        if step.kind == "transfer":
            transfers_seen += 1
        rendered.append(_render_step(step, transfers_seen, names, currency))

    return {
        "group_id": group_id,
        "currency": currency,
        "steps": rendered,
    }
