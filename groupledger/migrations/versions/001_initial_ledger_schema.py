"""Initial ledger schema — groups, memberships, expenses, splits, settlements.

Revision: 001_initial_ledger_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  Schema changes go in a NEW migration file.

Amounts are BIGINT minor units throughout. Status and payment-method
columns are VARCHAR(16) with CHECK constraints rather than PostgreSQL enum
types, matching the models' Enum(native_enum=False) columns.

ON DELETE policies:
  memberships.group_id   → RESTRICT
  expenses.group_id      → RESTRICT
  splits.expense_id      → CASCADE   (splits owned by expense)
  settlements.group_id   → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_ledger_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── groups ─────────────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
        sa.CheckConstraint("LENGTH(currency) = 3", name="ck_groups_currency_code"),
    )

    # ── memberships ────────────────────────────────────────────────────────
    # left_at IS NULL = current member.

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column(
            "group_id",
            sa.String(64),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("member_id", "group_id", name="uq_memberships_member_group"),
    )
    op.create_index("ix_memberships_member_id", "memberships", ["member_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])

    # ── expenses ───────────────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column(
            "group_id",
            sa.String(64),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column("payer_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "status IN ('active', 'voided')",
            name="ck_expenses_status",
        ),
    )
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index("idx_expenses_group_status", "expenses", ["group_id", "status"])

    # ── splits ─────────────────────────────────────────────────────────────

    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.String(64),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_splits_expense"),
            nullable=False,
        ),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_splits"),
        sa.UniqueConstraint("expense_id", "member_id", name="uq_splits_expense_member"),
        sa.CheckConstraint("amount > 0", name="ck_splits_amount_positive"),
    )
    op.create_index("ix_splits_expense_id", "splits", ["expense_id"])

    # ── settlements ────────────────────────────────────────────────────────

    op.create_table(
        "settlements",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column(
            "group_id",
            sa.String(64),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_settlements_group"),
            nullable=False,
        ),
        sa.Column("from_member_id", sa.String(64), nullable=False),
        sa.Column("to_member_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "requires_step_up_verification",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "from_member_id <> to_member_id",
            name="ck_settlements_no_self_settlement",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected')",
            name="ck_settlements_status",
        ),
        sa.CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('cash', 'upi', 'bank_transfer', 'other')",
            name="ck_settlements_payment_method",
        ),
    )
    op.create_index("ix_settlements_group_id", "settlements", ["group_id"])
    op.create_index("idx_settlements_group_status", "settlements", ["group_id", "status"])


def downgrade() -> None:
    """Drop in reverse FK order."""
    op.drop_table("settlements")
    op.drop_table("splits")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
