"""
models/membership.py — Membership table definition.

No business logic. No imports from services or routes.

member_id is the opaque id issued by the identity service; there is no users
table here. A member who leaves keeps their row with left_at set, so their
history still resolves to a display name while new simplification runs
ignore them once their balance is zero.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        UniqueConstraint("member_id", "group_id", name="uq_memberships_member_group"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    member_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # ON DELETE RESTRICT: cannot delete a group that has members.
    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Presentation only. The ledger never reads this column.
    display_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # NULL = current member.
    left_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    @property
    def is_current(self) -> bool:
        return self.left_at is None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership id={self.id} "
            f"member_id={self.member_id} "
            f"group_id={self.group_id}>"
        )
