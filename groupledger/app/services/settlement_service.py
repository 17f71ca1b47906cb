"""
services/settlement_service.py — Settlement lifecycle manager.

A settlement is created `pending` and transitions exactly once, to
`confirmed` or `rejected`. Terminal states are immutable:

  confirm on confirmed, same member      → no-op, returns the record
  confirm on confirmed by someone else   → SETTLEMENT_ALREADY_RESOLVED (409)
  confirm on rejected                    → SETTLEMENT_ALREADY_RESOLVED (409)
  reject on rejected                     → no-op, returns the record
  reject on confirmed                    → SETTLEMENT_ALREADY_RESOLVED (409)

Step-up gate:
  A settlement whose amount is at or above the configured threshold is
  stamped requires_step_up_verification=True at creation. confirm() refuses
  it with STEP_UP_VERIFICATION_REQUIRED (422) unless the caller passes
  verified=True. The record stays pending.

Concurrency:
  Every transition is one compare-and-set through
  LedgerStore.update_settlement_status(). When another writer wins the race
  the store raises SettlementConflict; the manager re-reads the record and
  re-evaluates the rules above, up to `max_attempts` times, and then raises
  a retryable ConflictError.

Layer rules:
  - No Flask imports. The manager receives its store, directory and
    settings from the caller.
  - Store failures propagate as StoreError unchanged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from groupledger.app.errors import (
    AppError,
    ConflictError,
    DataIntegrityError,
    ErrorCode,
    PolicyError,
    SettlementConflict,
    WarningCode,
)
from groupledger.app.ledger.accumulator import compute_balances
from groupledger.app.ledger.records import (
    PaymentMethod,
    SettlementEvent,
    SettlementEventKind,
    SettlementRecord,
    SettlementStatus,
    SimplifiedDebt,
    check_currency,
    is_minor_units,
)
from groupledger.app.ledger.simplifier import simplify
from groupledger.app.store.base import LedgerStore, MembershipDirectory

logger = logging.getLogger(__name__)

DEFAULT_STEP_UP_THRESHOLD = 500000
DEFAULT_MAX_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SettlementManager:

    def __init__(
            self,
            store: LedgerStore,
            directory: MembershipDirectory,
            step_up_threshold: int = DEFAULT_STEP_UP_THRESHOLD,
            max_attempts: int = DEFAULT_MAX_ATTEMPTS,
            clock: Callable[[], datetime] | None = None,
            notifier: Callable[[SettlementEvent], None] | None = None,
    ) -> None:
        if not is_minor_units(step_up_threshold) or step_up_threshold <= 0:
            raise ValueError("step_up_threshold must be a positive int of minor units.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

        self.store = store
        self.directory = directory
        self.step_up_threshold = step_up_threshold
        self.max_attempts = max_attempts
        self.clock = clock or _utcnow
        self.notifier = notifier

    # ── Balances ───────────────────────────────────────────────────────────

    def current_balances(self, group_id: str) -> dict[str, int]:
        """
        Net balance per member for the group. Former members are kept only
        while their balance is non-zero.
        """
        self._require_group(group_id)
        current = self.directory.member_ids(group_id)
        balances = compute_balances(
            self.store.list_active_expenses(group_id),
            self.store.list_confirmed_settlements(group_id),
            member_ids=current,
            currency=self.directory.group_currency(group_id),
        )
        current_set = set(current)
        return {
            member_id: amount
            for member_id, amount in balances.items()
            if amount != 0 or member_id in current_set
        }

    def simplified_debts(self, group_id: str) -> list[SimplifiedDebt]:
        return simplify(self.current_balances(group_id))

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def propose(
            self,
            group_id: str,
            from_member_id: str,
            to_member_id: str,
            amount: int,
            currency: str,
            payment_method: PaymentMethod | str | None = None,
            notes: str | None = None,
            payment_reference: str | None = None,
    ) -> SettlementRecord:
        """
        Records a pending payment from `from_member_id` to `to_member_id`.

        Raises:
            AppError(GROUP_NOT_FOUND)          -- unknown group (404)
            DataIntegrityError(INVALID_AMOUNT) -- amount is not a positive int
            DataIntegrityError(CURRENCY_MISMATCH) -- not the group's currency
            PolicyError(SELF_SETTLEMENT)       -- payer and recipient are the same
            PolicyError(PAYER_NOT_MEMBER / RECIPIENT_NOT_MEMBER)
        """
        self._require_group(group_id)

        if not is_minor_units(amount) or amount <= 0:
            raise DataIntegrityError(
                ErrorCode.INVALID_AMOUNT,
                f"Settlement amount must be a positive integer of minor units, got {amount!r}.",
                field="amount",
            )
        check_currency(currency)

        group_currency = self.directory.group_currency(group_id)
        if group_currency is not None and currency != group_currency:
            raise DataIntegrityError(
                ErrorCode.CURRENCY_MISMATCH,
                f"Group {group_id} settles in {group_currency}, not {currency}.",
                field="currency",
            )

        if from_member_id == to_member_id:
            raise PolicyError(
                ErrorCode.SELF_SETTLEMENT,
                "A settlement cannot be made to yourself.",
                field="to_member_id",
            )
        if not self.directory.is_member(group_id, from_member_id):
            raise PolicyError(
                ErrorCode.PAYER_NOT_MEMBER,
                f"Member {from_member_id} is not a member of group {group_id}.",
                field="from_member_id",
            )
        if not self.directory.is_member(group_id, to_member_id):
            raise PolicyError(
                ErrorCode.RECIPIENT_NOT_MEMBER,
                f"Member {to_member_id} is not a member of group {group_id}.",
                field="to_member_id",
            )

        record = SettlementRecord(
            id=None,
            group_id=group_id,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount=amount,
            currency=currency,
            requires_step_up_verification=amount >= self.step_up_threshold,
            notes=notes,
            payment_method=payment_method,
            payment_reference=payment_reference,
            created_at=self.clock(),
        )
        stored = self.store.create_settlement(record)

        logger.info(
            "Settlement %s proposed in group %s: %s -> %s, %d %s (step-up: %s)",
            stored.id, group_id, from_member_id, to_member_id,
            amount, currency, stored.requires_step_up_verification,
        )
        self._notify(SettlementEventKind.PROPOSED, stored, from_member_id)
        return stored

    def confirm(
            self,
            settlement_id: str,
            confirming_member_id: str,
            verified: bool = False,
    ) -> SettlementRecord:
        """
        Moves a pending settlement to confirmed, stamping confirmed_at,
        confirmed_by and verified. See the module docstring for the terminal
        state and step-up rules.
        """
        for attempt in range(1, self.max_attempts + 1):
            current = self._load(settlement_id)

            if current.status is SettlementStatus.CONFIRMED:
                if current.confirmed_by == confirming_member_id:
                    logger.info(
                        "Settlement %s already confirmed by %s; nothing to do",
                        settlement_id, confirming_member_id,
                    )
                    return current
                raise self._already_resolved(current)

            if current.status is SettlementStatus.REJECTED:
                raise self._already_resolved(current)

            if current.requires_step_up_verification and not verified:
                logger.warning(
                    "Settlement %s confirmation by %s refused: step-up verification missing",
                    settlement_id, confirming_member_id,
                )
                raise PolicyError(
                    ErrorCode.STEP_UP_VERIFICATION_REQUIRED,
                    f"Settlements of {self.step_up_threshold} minor units or more "
                    f"need step-up verification before they can be confirmed.",
                    context={"settlement_id": settlement_id, "threshold": self.step_up_threshold},
                )

            try:
                updated = self.store.update_settlement_status(
                    settlement_id,
                    SettlementStatus.PENDING,
                    SettlementStatus.CONFIRMED,
                    confirmed_at=self.clock(),
                    confirmed_by=confirming_member_id,
                    verified=bool(verified),
                )
            except SettlementConflict as exc:
                self._log_conflict(exc, attempt)
                continue

            logger.info(
                "Settlement %s confirmed by %s (verified: %s)",
                settlement_id, confirming_member_id, updated.verified,
            )
            self._notify(SettlementEventKind.CONFIRMED, updated, confirming_member_id)
            return updated

        raise self._conflict_exhausted(settlement_id)

    def reject(self, settlement_id: str, reason: str | None = None) -> SettlementRecord:
        """
        Moves a pending settlement to rejected. `reason`, when given,
        replaces the record's notes.
        """
        for attempt in range(1, self.max_attempts + 1):
            current = self._load(settlement_id)

            if current.status is SettlementStatus.REJECTED:
                logger.info("Settlement %s already rejected; nothing to do", settlement_id)
                return current
            if current.status is SettlementStatus.CONFIRMED:
                raise self._already_resolved(current)

            metadata = {"notes": reason} if reason is not None else {}
            try:
                updated = self.store.update_settlement_status(
                    settlement_id,
                    SettlementStatus.PENDING,
                    SettlementStatus.REJECTED,
                    **metadata,
                )
            except SettlementConflict as exc:
                self._log_conflict(exc, attempt)
                continue

            logger.info("Settlement %s rejected", settlement_id)
            self._notify(SettlementEventKind.REJECTED, updated)
            return updated

        raise self._conflict_exhausted(settlement_id)

    # ── Queries ────────────────────────────────────────────────────────────

    def get_settlement(self, settlement_id: str) -> SettlementRecord:
        return self._load(settlement_id)

    def list_settlements(
            self,
            group_id: str,
            status: SettlementStatus | str | None = None,
    ) -> list[SettlementRecord]:
        self._require_group(group_id)
        return self.store.list_settlements(
            group_id, SettlementStatus(status) if status is not None else None
        )

    def settlements_between(self, group_id: str, member_a: str, member_b: str) -> list[SettlementRecord]:
        """Settlements in either direction between two members."""
        pair = {member_a, member_b}
        return [
            s for s in self.list_settlements(group_id)
            if {s.from_member_id, s.to_member_id} == pair
        ]

    def settlements_by_payer(self, group_id: str, member_id: str) -> list[SettlementRecord]:
        return [s for s in self.list_settlements(group_id) if s.from_member_id == member_id]

    def settlements_by_receiver(self, group_id: str, member_id: str) -> list[SettlementRecord]:
        return [s for s in self.list_settlements(group_id) if s.to_member_id == member_id]

    def pending_for_member(self, group_id: str, member_id: str) -> list[SettlementRecord]:
        """Pending settlements waiting for `member_id`, as recipient, to confirm."""
        return [
            s for s in self.list_settlements(group_id, SettlementStatus.PENDING)
            if s.to_member_id == member_id
        ]

    # ── Private helpers ────────────────────────────────────────────────────

    def _require_group(self, group_id: str) -> None:
        if not self.directory.group_exists(group_id):
            raise AppError(
                ErrorCode.GROUP_NOT_FOUND,
                f"Group {group_id} does not exist.",
                404,
            )

    def _load(self, settlement_id: str) -> SettlementRecord:
        record = self.store.get_settlement(settlement_id)
        if record is None:
            raise AppError(
                ErrorCode.SETTLEMENT_NOT_FOUND,
                f"Settlement {settlement_id} does not exist.",
                404,
            )
        return record

    def _already_resolved(self, record: SettlementRecord) -> PolicyError:
        logger.warning(
            "Settlement %s is already %s; transition refused",
            record.id, record.status.value,
        )
        return PolicyError(
            ErrorCode.SETTLEMENT_ALREADY_RESOLVED,
            f"Settlement {record.id} is already {record.status.value}.",
            http_status=409,
            context={"settlement_id": record.id, "status": record.status.value},
        )

    def _log_conflict(self, exc: SettlementConflict, attempt: int) -> None:
        logger.info(
            "Status conflict on settlement %s (expected %s, found %s); attempt %d of %d",
            exc.settlement_id, exc.expected, exc.actual, attempt, self.max_attempts,
        )

    def _conflict_exhausted(self, settlement_id: str) -> ConflictError:
        logger.warning(
            "Settlement %s still conflicting after %d attempts",
            settlement_id, self.max_attempts,
        )
        return ConflictError(
            f"Settlement {settlement_id} was modified concurrently. Try again.",
            settlement_id=settlement_id,
        )

    def _notify(
            self,
            kind: SettlementEventKind,
            record: SettlementRecord,
            actor_id: str | None = None,
    ) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(SettlementEvent(kind=kind, settlement=record, actor_id=actor_id))
        except Exception:
            # The transition is committed by now.
            logger.exception("Notifier failed for %s event on settlement %s", kind.value, record.id)


# ── Warnings ───────────────────────────────────────────────────────────────

def proposal_warnings(
        record: SettlementRecord,
        balances_before: dict[str, int],
) -> list[dict]:
    """
    Non-blocking warnings for a freshly proposed settlement.

    OVERPAYMENT      -- amount exceeds what the payer currently owes the group
    STEP_UP_REQUIRED -- confirmation will need step-up verification
    """
    warnings: list[dict] = []

    outstanding = max(0, -balances_before.get(record.from_member_id, 0))
    if record.amount > outstanding:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {record.amount} exceeds the outstanding debt of "
                f"{outstanding} for member {record.from_member_id}. "
                f"Recording anyway; pre-payment is valid."
            ),
        })

    if record.requires_step_up_verification:
        warnings.append({
            "code": WarningCode.STEP_UP_REQUIRED,
            "message": "This settlement needs step-up verification before it can be confirmed.",
        })

    return warnings
