"""Operational surface queries: transaction outcomes over the active-rule universe."""

from __future__ import annotations

from datetime import date

from sqlalchemy import and_, func, select

from loyalty_dashboard.models import (
    DimCategory,
    DimCluster,
    DimMerchant,
    FactTransaction,
    TransactionStatus,
)
from loyalty_dashboard.repositories.base import SQLAggregationRepository
from loyalty_dashboard.repositories.query_filters import ScopePredicates
from loyalty_dashboard.repositories.types import (
    CategoryMetricRow,
    ClusterMetricRow,
    DashboardPeriod,
    OperationalRawData,
)
from loyalty_dashboard.services.filters import ScopeFilters


class OperationalRepository(SQLAggregationRepository):
    def get_aggregates(self, period: DashboardPeriod, filters: ScopeFilters) -> OperationalRawData:
        start, end, previous_start, previous_end = self.period_bounds(period)
        success = self.transaction_where(filters, start, end)
        failed = self.transaction_where(filters, start, end, TransactionStatus.FAILED)

        return OperationalRawData(
            success_current=self._count(success),
            failed_current=self._count(failed),
            success_previous=self._count(self.transaction_where(filters, previous_start, previous_end)),
            failed_previous=self._count(
                self.transaction_where(filters, previous_start, previous_end, TransactionStatus.FAILED)
            ),
            daily_success=self._daily(success, func.count()),
            daily_failed=self._daily(failed, func.count()),
            cluster_rows=self._cluster_rows(filters, start, end),
            category_rows=self._category_rows(filters, start, end),
            merchant_activity=self._merchant_activity(filters, start, end),
            merchant_transactions=self._merchant_transactions(filters, start, end),
            expired_rules=self._expired_rules(filters, period.expiry_from, period.expiry_until),
        )

    def _active_universe(self, filters: ScopeFilters, start: date, end: date, *group_columns):
        """Active-rule merchants left-joined to their successful in-period transactions."""

        active_rule = self.active_rule_merchants(filters, start, end)
        in_period = and_(
            FactTransaction.merchant_key == DimMerchant.merchant_key,
            FactTransaction.status == TransactionStatus.SUCCESS,
            *ScopePredicates.timestamp_period(FactTransaction.transaction_at, start, end),
        )
        return (
            select(*group_columns, *self._metric_columns(DimMerchant.merchant_key, DimMerchant.uniq_merchant))
            .select_from(active_rule)
            .join(DimMerchant, DimMerchant.merchant_key == active_rule.c.merchant_key)
            .join(DimCluster, DimCluster.cluster_id == DimMerchant.cluster_id)
            .join(DimCategory, DimCategory.category_id == DimMerchant.category_id)
            .outerjoin(FactTransaction, in_period)
        )

    def _cluster_rows(self, filters: ScopeFilters, start: date, end: date) -> list[ClusterMetricRow]:
        stmt = self._active_universe(filters, start, end, DimCluster.branch, DimCluster.cluster)
        rows = self.db.execute(
            stmt.group_by(DimCluster.branch, DimCluster.cluster).order_by(
                DimCluster.branch.asc(), DimCluster.cluster.asc()
            )
        ).all()
        return [self._cluster_row(row) for row in rows]

    def _category_rows(self, filters: ScopeFilters, start: date, end: date) -> list[CategoryMetricRow]:
        stmt = self._active_universe(filters, start, end, DimCategory.category.label("name"))
        rows = self.db.execute(stmt.group_by(DimCategory.category)).all()
        return [self._category_row(row) for row in rows]
