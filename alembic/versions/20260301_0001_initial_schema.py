"""initial loyalty star schema

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


transaction_status = postgresql.ENUM("success", "failed", name="transaction_status", create_type=False)


def upgrade() -> None:
    transaction_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "dim_category",
        sa.Column("category_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("category", sa.String(length=500), nullable=False),
    )

    op.create_table(
        "dim_cluster",
        sa.Column("cluster_id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("cluster", sa.String(length=500), nullable=False),
        sa.Column("branch", sa.String(length=500), nullable=False),
        sa.Column("region", sa.String(length=500), nullable=False),
    )
    op.create_index("ix_dim_cluster_branch", "dim_cluster", ["branch"])

    op.create_table(
        "dim_merchant",
        sa.Column("merchant_key", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("keyword_code", sa.String(length=500), nullable=False),
        sa.Column("merchant_name", sa.String(length=500), nullable=False),
        sa.Column("uniq_merchant", sa.String(length=500), nullable=False),
        sa.Column("cluster_id", sa.Integer(), sa.ForeignKey("dim_cluster.cluster_id"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("dim_category.category_id"), nullable=False),
        sa.UniqueConstraint("keyword_code", name="uq_dim_merchant_keyword_code"),
    )
    op.create_index("ix_dim_merchant_category_id", "dim_merchant", ["category_id"])
    op.create_index("ix_dim_merchant_cluster_id", "dim_merchant", ["cluster_id"])

    op.create_table(
        "dim_rule",
        sa.Column("rule_key", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "rule_merchant",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("dim_merchant.merchant_key"),
            nullable=False,
        ),
        sa.Column("point_redeem", sa.Integer(), nullable=False),
        sa.Column("start_period", sa.Date(), nullable=False),
        sa.Column("end_period", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("point_redeem >= 0", name="ck_dim_rule_point_non_negative"),
        sa.CheckConstraint("end_period >= start_period", name="ck_dim_rule_period_valid"),
    )
    op.create_index("ix_dim_rule_merchant_period", "dim_rule", ["rule_merchant", "start_period", "end_period"])
    op.create_index("ix_dim_rule_end_period", "dim_rule", ["end_period"])

    op.create_table(
        "fact_transaction",
        sa.Column("transaction_key", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("transaction_at", sa.DateTime(), nullable=False),
        sa.Column("rule_key", postgresql.UUID(as_uuid=True), sa.ForeignKey("dim_rule.rule_key"), nullable=False),
        sa.Column(
            "merchant_key",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("dim_merchant.merchant_key"),
            nullable=False,
        ),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("point_redeem", sa.Integer(), nullable=False),
        sa.Column("msisdn", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("qty >= 1", name="ck_fact_transaction_qty_valid"),
        sa.CheckConstraint("point_redeem >= 0", name="ck_fact_transaction_point_non_negative"),
    )
    op.create_index(
        "ix_fact_transaction_merchant_status_time",
        "fact_transaction",
        ["merchant_key", "status", "transaction_at"],
    )
    op.create_index("ix_fact_transaction_msisdn", "fact_transaction", ["msisdn"])
    op.create_index("ix_fact_transaction_rule_key", "fact_transaction", ["rule_key"])

    op.create_table(
        "fact_cluster_point",
        sa.Column("point_key", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("month_year", sa.Date(), nullable=False),
        sa.Column("cluster_id", sa.Integer(), sa.ForeignKey("dim_cluster.cluster_id"), nullable=False),
        sa.Column("total_point", sa.BigInteger(), nullable=False),
        sa.Column("point_owner", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_fact_cluster_point_month_cluster", "fact_cluster_point", ["month_year", "cluster_id"])


def downgrade() -> None:
    op.drop_index("ix_fact_cluster_point_month_cluster", table_name="fact_cluster_point")
    op.drop_table("fact_cluster_point")

    op.drop_index("ix_fact_transaction_rule_key", table_name="fact_transaction")
    op.drop_index("ix_fact_transaction_msisdn", table_name="fact_transaction")
    op.drop_index("ix_fact_transaction_merchant_status_time", table_name="fact_transaction")
    op.drop_table("fact_transaction")

    op.drop_index("ix_dim_rule_end_period", table_name="dim_rule")
    op.drop_index("ix_dim_rule_merchant_period", table_name="dim_rule")
    op.drop_table("dim_rule")

    op.drop_index("ix_dim_merchant_cluster_id", table_name="dim_merchant")
    op.drop_index("ix_dim_merchant_category_id", table_name="dim_merchant")
    op.drop_table("dim_merchant")

    op.drop_index("ix_dim_cluster_branch", table_name="dim_cluster")
    op.drop_table("dim_cluster")
    op.drop_table("dim_category")

    transaction_status.drop(op.get_bind(), checkfirst=True)
