"""Initial schema: payers, billing periods, obligations, credits and payments.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

OBLIGATION_STATUSES = ("UNPAID", "PARTIAL", "PAID", "ADVANCED", "OUTSTANDING", "ADVANCE_APPLIED")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def _obligation_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payer_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("base_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("carried_forward_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("outstanding", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*OBLIGATION_STATUSES, name="obligationstatus"),
            nullable=False,
        ),
        sa.Column("advance_periods_remaining", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    ]


def upgrade() -> None:
    # Create payers table
    op.create_table(
        "payers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payer_type", sa.Enum("TUITION", "STAFF", name="payertype"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("department", sa.String(length=100), nullable=True),
        sa.Column("number_of_children", sa.Integer(), nullable=True),
        sa.Column("fee_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Enum("ACTIVE", "SUSPENDED", name="payerstatus"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_payers_payer_type", "payer_type"),
        sa.Index("idx_payer_type_name", "payer_type", "name", unique=True),
        sa.Index("idx_payer_type_status", "payer_type", "status"),
    )

    # Create billing_periods table (at most one active row)
    op.create_table(
        "billing_periods",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("year", "month", name="uq_billing_period_year_month"),
    )
    op.create_index(
        "uq_billing_period_single_active",
        "billing_periods",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    # Create tuition and salary obligation tables
    op.create_table(
        "obligations",
        *_obligation_columns(),
        sa.ForeignKeyConstraint(["payer_id"], ["payers.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["billing_periods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_obligations_payer_id", "payer_id"),
        sa.Index("ix_obligations_period_id", "period_id"),
        sa.Index("ix_obligations_status", "status"),
        sa.Index("uq_obligation_payer_period", "payer_id", "period_id", unique=True),
        sa.Index("idx_obligation_period_status", "period_id", "status"),
    )
    op.create_table(
        "salary_obligations",
        *_obligation_columns(),
        sa.Column("advance_applied_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["payer_id"], ["payers.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["billing_periods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_salary_obligations_payer_id", "payer_id"),
        sa.Index("ix_salary_obligations_period_id", "period_id"),
        sa.Index("ix_salary_obligations_status", "status"),
        sa.Index("uq_salary_obligation_payer_period", "payer_id", "period_id", unique=True),
        sa.Index("idx_salary_obligation_period_status", "period_id", "status"),
    )

    # Create payments and their line items
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payer_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("kind", sa.Enum("NORMAL", "PARTIAL", "ADVANCE", name="paymentkind"), nullable=False),
        sa.Column("advance_periods", sa.Integer(), nullable=True),
        sa.Column("collected_by", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("notice_text", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payer_id"], ["payers.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["billing_periods.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_payments_payer_id", "payer_id"),
        sa.Index("ix_payments_period_id", "period_id"),
        sa.Index("idx_payment_payer_period", "payer_id", "period_id"),
    )
    op.create_table(
        "payment_line_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column(
            "item_type",
            sa.Enum("BASE_FEE", "CARRIED_FORWARD", "ADVANCE", name="lineitemtype"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("periods_covered", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_payment_line_items_payment_id", "payment_id"),
    )

    # Create advance_credits table (one row per payer)
    op.create_table(
        "advance_credits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payer_id", sa.Integer(), nullable=False),
        sa.Column("amount_per_period", sa.Numeric(12, 2), nullable=False),
        sa.Column("periods_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("periods_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_payment_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payer_id"], ["payers.id"]),
        sa.ForeignKeyConstraint(["last_payment_id"], ["payments.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payer_id"),
    )

    # Create audit_logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("advance_credits")
    op.drop_table("payment_line_items")
    op.drop_table("payments")
    op.drop_table("salary_obligations")
    op.drop_table("obligations")
    op.drop_index("uq_billing_period_single_active", table_name="billing_periods")
    op.drop_table("billing_periods")
    op.drop_table("payers")
