"""Row-level persistence for the import and export paths."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from loyalty_dashboard.models import (
    DimCategory,
    DimCluster,
    DimMerchant,
    DimRule,
    FactTransaction,
)


class RecordsRepository:
    """Dimension and fact access used by import and export."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Dimensions ----------
    def get_or_create_category(self, name: str) -> DimCategory:
        category = self.db.scalar(select(DimCategory).where(DimCategory.category == name).limit(1))
        if category is None:
            category = DimCategory(category=name)
            self.db.add(category)
            self.db.flush()
        return category

    def get_or_create_cluster(self, name: str, *, branch: str, region: str) -> DimCluster:
        cluster = self.db.scalar(select(DimCluster).where(DimCluster.cluster == name).limit(1))
        if cluster is None:
            cluster = DimCluster(cluster=name, branch=branch, region=region)
            self.db.add(cluster)
            self.db.flush()
        return cluster

    def get_merchant_by_keyword(self, keyword: str) -> DimMerchant | None:
        return self.db.scalar(select(DimMerchant).where(DimMerchant.keyword_code == keyword))

    def add_merchant(self, merchant: DimMerchant) -> DimMerchant:
        self.db.add(merchant)
        self.db.flush()
        return merchant

    # ---------- Rules ----------
    def find_rule_for_date(self, merchant_key: UUID, on_date: date) -> DimRule | None:
        """Rule covering ``on_date``, else the merchant's most recent rule."""

        covering = self.db.scalar(
            select(DimRule)
            .where(
                DimRule.rule_merchant == merchant_key,
                DimRule.start_period <= on_date,
                DimRule.end_period >= on_date,
            )
            .order_by(DimRule.start_period.desc())
            .limit(1)
        )
        if covering is not None:
            return covering
        return self.db.scalar(
            select(DimRule)
            .where(DimRule.rule_merchant == merchant_key)
            .order_by(DimRule.end_period.desc(), DimRule.created_at.desc())
            .limit(1)
        )

    def add_rule(self, rule: DimRule) -> DimRule:
        self.db.add(rule)
        self.db.flush()
        return rule

    # ---------- Facts ----------
    def add_transaction(self, transaction: FactTransaction) -> FactTransaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    # ---------- Export ----------
    def list_merchant_rows(self) -> list[dict[str, object]]:
        rows = self.db.execute(
            select(
                DimMerchant.merchant_name,
                DimMerchant.keyword_code,
                DimMerchant.uniq_merchant,
                DimCategory.category,
                DimCluster.cluster,
                DimCluster.branch,
                DimCluster.region,
            )
            .join(DimCluster, DimCluster.cluster_id == DimMerchant.cluster_id)
            .join(DimCategory, DimCategory.category_id == DimMerchant.category_id)
            .order_by(DimMerchant.merchant_name.asc(), DimMerchant.keyword_code.asc())
        ).all()
        return [dict(row._mapping) for row in rows]

    def list_transaction_rows(self) -> list[dict[str, object]]:
        rows = self.db.execute(
            select(
                FactTransaction.transaction_at,
                DimMerchant.keyword_code,
                DimMerchant.merchant_name,
                FactTransaction.status,
                FactTransaction.qty,
                FactTransaction.point_redeem,
                FactTransaction.msisdn,
            )
            .join(DimMerchant, DimMerchant.merchant_key == FactTransaction.merchant_key)
            .order_by(FactTransaction.transaction_at.asc(), FactTransaction.msisdn.asc())
        ).all()
        return [
            {
                **row._mapping,
                "status": row.status.value,
            }
            for row in rows
        ]
