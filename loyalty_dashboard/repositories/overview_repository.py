"""Overview surface queries: successful transaction volume and value."""

from __future__ import annotations

from datetime import date

from sqlalchemy import distinct, func, select

from loyalty_dashboard.models import DimCategory, DimCluster, DimMerchant, FactClusterPoint, FactTransaction
from loyalty_dashboard.repositories.base import SQLAggregationRepository, _int, _text
from loyalty_dashboard.repositories.query_filters import ScopePredicates, combine
from loyalty_dashboard.repositories.types import (
    CategoryMetricRow,
    ClusterMetricRow,
    DashboardPeriod,
    NamedValue,
    OverviewRawData,
)
from loyalty_dashboard.services.filters import ScopeFilters


class OverviewRepository(SQLAggregationRepository):
    def get_aggregates(self, period: DashboardPeriod, filters: ScopeFilters) -> OverviewRawData:
        start, end, previous_start, previous_end = self.period_bounds(period)
        current = self.transaction_where(filters, start, end)
        previous = self.transaction_where(filters, previous_start, previous_end)
        monthly = self.transaction_where(filters, period.monthly_window_start, end)

        transaction_count = func.count()
        redeemer_count = func.count(distinct(FactTransaction.msisdn))

        return OverviewRawData(
            summary=self._summary(current),
            previous_summary=self._summary(previous),
            customer_points=self._customer_points(filters, start),
            previous_customer_points=self._customer_points(filters, previous_start),
            daily_points=self._daily(current, func.coalesce(func.sum(self.point_value), 0)),
            daily_transactions=self._daily(current, transaction_count),
            daily_redeemers=self._daily(current, redeemer_count),
            monthly_transactions=self._monthly(monthly, transaction_count),
            monthly_redeemers=self._monthly(monthly, redeemer_count),
            category_counts=self._category_counts(current),
            cluster_rows=self._cluster_rows(current),
            category_rows=self._category_rows(current),
            merchant_activity=self._merchant_activity(filters, start, end),
            merchant_transactions=self._merchant_transactions(filters, start, end),
            expired_rules=self._expired_rules(filters, period.expiry_from, period.expiry_until),
        )

    def _customer_points(self, filters: ScopeFilters, month_start: date) -> int:
        clusters = select(DimCluster.cluster_id).where(
            combine(ScopePredicates(filters).branch_in(DimCluster.branch))
        )
        total = self.db.scalar(
            select(func.coalesce(func.sum(FactClusterPoint.total_point), 0)).where(
                FactClusterPoint.month_year == month_start,
                FactClusterPoint.cluster_id.in_(clusters),
            )
        )
        return _int(total)

    def _category_counts(self, where) -> list[NamedValue]:
        count = func.count()
        rows = self.db.execute(
            self.joined_transactions(select(DimCategory.category, count.label("value")))
            .where(where)
            .group_by(DimCategory.category)
            .order_by(count.desc(), DimCategory.category.asc())
        ).all()
        return [NamedValue(name=_text(row.category), value=_int(row.value)) for row in rows]

    def _cluster_rows(self, where) -> list[ClusterMetricRow]:
        rows = self.db.execute(
            self.joined_transactions(
                select(
                    DimCluster.branch,
                    DimCluster.cluster,
                    *self._metric_columns(DimMerchant.merchant_key, DimMerchant.uniq_merchant),
                )
            )
            .where(where)
            .group_by(DimCluster.branch, DimCluster.cluster)
            .order_by(DimCluster.branch.asc(), DimCluster.cluster.asc())
        ).all()
        return [self._cluster_row(row) for row in rows]

    def _category_rows(self, where) -> list[CategoryMetricRow]:
        rows = self.db.execute(
            self.joined_transactions(
                select(
                    DimCategory.category.label("name"),
                    *self._metric_columns(DimMerchant.merchant_key, DimMerchant.uniq_merchant),
                )
            )
            .where(where)
            .group_by(DimCategory.category)
        ).all()
        return [self._category_row(row) for row in rows]
