"""create_execution_and_ledger_tables

Revision ID: 3f2a9c1d7e40
Revises:
Create Date: 2026-10-18 09:12:41.318204

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7e40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog, execution and credit ledger tables."""
    op.create_table(
        "sub_categories",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category_slug", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=False),
        sa.Column("period", sa.String(length=255), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sub_categories_slug", "sub_categories", ["slug"], unique=True)
    op.create_index("ix_sub_categories_category_slug", "sub_categories", ["category_slug"])

    op.create_table(
        "executions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "RUNNING", "COMPLETED", "FAILED", "STOPPED", name="executionstatus"
            ),
            nullable=False,
        ),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("stats", sa.JSON(), nullable=True),
        sa.Column("generated_units", sa.JSON(), nullable=True),
        sa.Column("candidate_unit_ids", sa.JSON(), nullable=True),
        sa.Column("unit_errors", sa.JSON(), nullable=True),
        sa.Column("in_flight", sa.JSON(), nullable=True),
        sa.Column("call_counts", sa.JSON(), nullable=True),
        sa.Column("credits_per_unit", sa.Integer(), nullable=False),
        sa.Column("estimated_cost", sa.Float(), nullable=False),
        sa.Column("actual_cost", sa.Float(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error", sa.String(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_executions_organization_id", "executions", ["organization_id"])
    op.create_index("ix_executions_status", "executions", ["status"])
    op.create_index("ix_executions_updated_at", "executions", ["updated_at"])

    op.create_table(
        "styles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sub_category_id", sa.Uuid(), nullable=False),
        sa.Column("approach", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=255), nullable=False),
        sa.Column("price_level", sa.String(length=20), nullable=False),
        sa.Column("content", sa.JSON(), nullable=True),
        sa.Column("room_profiles", sa.JSON(), nullable=True),
        sa.Column("gallery", sa.JSON(), nullable=True),
        sa.Column("execution_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["sub_category_id"], ["sub_categories.id"]),
        sa.ForeignKeyConstraint(["execution_id"], ["executions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_styles_slug", "styles", ["slug"], unique=True)
    op.create_index("ix_styles_sub_category_id", "styles", ["sub_category_id"], unique=True)
    op.create_index("ix_styles_execution_id", "styles", ["execution_id"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=255), nullable=False),
        sa.Column(
            "type",
            sa.Enum("USAGE", "REFUND", "PURCHASE", "BONUS", name="credittransactiontype"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(length=255), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_credit_transactions_amount_positive"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_credit_transactions_organization_id", "credit_transactions", ["organization_id"]
    )
    op.create_index("ix_credit_transactions_type", "credit_transactions", ["type"])
    op.create_index("ix_credit_transactions_reference_id", "credit_transactions", ["reference_id"])
    op.create_index("ix_credit_transactions_created_at", "credit_transactions", ["created_at"])

    # At most one refund per usage reference
    op.create_index(
        "uq_credit_transactions_refund_reference",
        "credit_transactions",
        ["reference_id"],
        unique=True,
        postgresql_where=sa.text("type = 'REFUND'"),
        sqlite_where=sa.text("type = 'REFUND'"),
    )


def downgrade() -> None:
    """Drop catalog, execution and credit ledger tables."""
    op.drop_index("uq_credit_transactions_refund_reference", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_created_at", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_reference_id", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_type", table_name="credit_transactions")
    op.drop_index("ix_credit_transactions_organization_id", table_name="credit_transactions")
    op.drop_table("credit_transactions")

    op.drop_index("ix_styles_execution_id", table_name="styles")
    op.drop_index("ix_styles_sub_category_id", table_name="styles")
    op.drop_index("ix_styles_slug", table_name="styles")
    op.drop_table("styles")

    op.drop_index("ix_executions_updated_at", table_name="executions")
    op.drop_index("ix_executions_status", table_name="executions")
    op.drop_index("ix_executions_organization_id", table_name="executions")
    op.drop_table("executions")

    op.drop_index("ix_sub_categories_category_slug", table_name="sub_categories")
    op.drop_index("ix_sub_categories_slug", table_name="sub_categories")
    op.drop_table("sub_categories")

    sa.Enum(name="credittransactiontype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="executionstatus").drop(op.get_bind(), checkfirst=True)
