"""
models/settlement.py — Settlement table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` is a BigInteger count of minor units, CHECK(amount > 0).
  - CHECK(from_member_id <> to_member_id) backs the SELF_SETTLEMENT rule the
    settlement manager enforces first.
  - `status` moves pending → confirmed or pending → rejected exactly once.
    The store adapter applies transitions with
    UPDATE ... WHERE id = :id AND status = :expected, so two devices
    resolving the same settlement cannot both win.
  - `requires_step_up_verification` is fixed at creation from the configured
    threshold and never recomputed.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db
from groupledger.app.ledger.records import PaymentMethod, SettlementStatus


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "from_member_id <> to_member_id",
            name="ck_settlements_no_self_settlement",
        ),
        Index("idx_settlements_group_status", "group_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # ON DELETE RESTRICT: cannot delete a group that has settlements.
    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    from_member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    to_member_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[SettlementStatus] = mapped_column(
        Enum(
            SettlementStatus,
            name="settlement_status_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SettlementStatus.PENDING,
        server_default=SettlementStatus.PENDING.value,
    )

    requires_step_up_verification: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        Enum(
            PaymentMethod,
            name="payment_method_enum",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.from_member_id} "
            f"to={self.to_member_id} "
            f"amount={self.amount} "
            f"status={self.status.value}>"
        )
