"""ORM entities for the loyalty star schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from loyalty_dashboard.db.base import Base


def _utc_now() -> datetime:
    # Timestamp columns hold naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class DimCategory(Base):
    __tablename__ = "dim_category"

    category_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(500), nullable=False)


class DimCluster(Base):
    __tablename__ = "dim_cluster"
    __table_args__ = (Index("ix_dim_cluster_branch", "branch"),)

    cluster_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cluster: Mapped[str] = mapped_column(String(500), nullable=False)
    branch: Mapped[str] = mapped_column(String(500), nullable=False)
    region: Mapped[str] = mapped_column(String(500), nullable=False)


class DimMerchant(Base):
    __tablename__ = "dim_merchant"
    __table_args__ = (
        Index("ix_dim_merchant_category_id", "category_id"),
        Index("ix_dim_merchant_cluster_id", "cluster_id"),
        UniqueConstraint("keyword_code", name="uq_dim_merchant_keyword_code"),
    )

    merchant_key: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    keyword_code: Mapped[str] = mapped_column(String(500), nullable=False)
    merchant_name: Mapped[str] = mapped_column(String(500), nullable=False)
    uniq_merchant: Mapped[str] = mapped_column(String(500), nullable=False)
    cluster_id: Mapped[int] = mapped_column(ForeignKey("dim_cluster.cluster_id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("dim_category.category_id"), nullable=False)


class DimRule(Base):
    __tablename__ = "dim_rule"
    __table_args__ = (
        CheckConstraint("point_redeem >= 0", name="ck_dim_rule_point_non_negative"),
        CheckConstraint("end_period >= start_period", name="ck_dim_rule_period_valid"),
        Index("ix_dim_rule_merchant_period", "rule_merchant", "start_period", "end_period"),
        Index("ix_dim_rule_end_period", "end_period"),
    )

    rule_key: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rule_merchant: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dim_merchant.merchant_key"), nullable=False
    )
    point_redeem: Mapped[int] = mapped_column(Integer, nullable=False)
    start_period: Mapped[date] = mapped_column(Date, nullable=False)
    end_period: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now)


class FactTransaction(Base):
    __tablename__ = "fact_transaction"
    __table_args__ = (
        CheckConstraint("qty >= 1", name="ck_fact_transaction_qty_valid"),
        CheckConstraint("point_redeem >= 0", name="ck_fact_transaction_point_non_negative"),
        Index("ix_fact_transaction_merchant_status_time", "merchant_key", "status", "transaction_at"),
        Index("ix_fact_transaction_msisdn", "msisdn"),
        Index("ix_fact_transaction_rule_key", "rule_key"),
    )

    transaction_key: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Naive UTC timestamp.
    transaction_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rule_key: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("dim_rule.rule_key"), nullable=False)
    merchant_key: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dim_merchant.merchant_key"), nullable=False
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(
            TransactionStatus,
            name="transaction_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    point_redeem: Mapped[int] = mapped_column(Integer, nullable=False)
    msisdn: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now)


class FactClusterPoint(Base):
    __tablename__ = "fact_cluster_point"
    __table_args__ = (Index("ix_fact_cluster_point_month_cluster", "month_year", "cluster_id"),)

    point_key: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    month_year: Mapped[date] = mapped_column(Date, nullable=False)
    cluster_id: Mapped[int] = mapped_column(ForeignKey("dim_cluster.cluster_id"), nullable=False)
    total_point: Mapped[int] = mapped_column(BigInteger, nullable=False)
    point_owner: Mapped[int] = mapped_column(BigInteger, nullable=False)
