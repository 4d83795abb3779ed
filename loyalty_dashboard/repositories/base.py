"""Aggregation repository contract and the SQL plumbing shared by both surfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date

from sqlalchemy import Select, distinct, func, or_, select
from sqlalchemy.orm import Session

from loyalty_dashboard.models import (
    DimCategory,
    DimCluster,
    DimMerchant,
    DimRule,
    FactTransaction,
    TransactionStatus,
)
from loyalty_dashboard.repositories.query_filters import ScopePredicates, combine
from loyalty_dashboard.repositories.types import (
    CategoryMetricRow,
    ClusterMetricRow,
    DashboardPeriod,
    ExpiredRuleRow,
    MerchantActivityRow,
    MerchantTransactionRow,
    SummaryRow,
)
from loyalty_dashboard.services.filters import FilterOptions, MerchantOption, ScopeFilters
from loyalty_dashboard.services.months import month_range


def _int(value: object) -> int:
    if value is None:
        return 0
    return int(value)


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _day_key(value: object) -> str:
    # date() yields a string on SQLite and a date on PostgreSQL.
    return str(value)[:10]


class AggregationRepository(ABC):
    """Read-only source of pre-grouped rows for one dashboard surface."""

    @abstractmethod
    def get_filter_options(self, months: Sequence[str] | None = None) -> FilterOptions:
        """Known categories, branches and merchants.

        ``None`` returns the whole dimension universe; a month list restricts
        the options to values seen in successful transactions of those months
        (an empty list means any month).
        """

    @abstractmethod
    def get_month_options(self) -> list[str]:
        """Distinct months with at least one successful transaction, newest first."""

    @abstractmethod
    def get_aggregates(self, period: DashboardPeriod, filters: ScopeFilters):
        """Current and previous period rows for the surface in one call."""


class SQLAggregationRepository(AggregationRepository, ABC):
    """Query helpers over the star schema used by the concrete surfaces."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Expressions ----------
    @property
    def point_value(self):
        return FactTransaction.qty * FactTransaction.point_redeem

    def month_key(self, column):
        if self.db.get_bind().dialect.name == "postgresql":
            return func.to_char(column, "YYYY-MM")
        return func.strftime("%Y-%m", column)

    @staticmethod
    def day_key(column):
        return func.date(column)

    @staticmethod
    def joined_transactions(stmt: Select) -> Select:
        return (
            stmt.select_from(FactTransaction)
            .join(DimMerchant, DimMerchant.merchant_key == FactTransaction.merchant_key)
            .join(DimCluster, DimCluster.cluster_id == DimMerchant.cluster_id)
            .join(DimCategory, DimCategory.category_id == DimMerchant.category_id)
        )

    @staticmethod
    def joined_rules(stmt: Select) -> Select:
        return (
            stmt.select_from(DimRule)
            .join(DimMerchant, DimMerchant.merchant_key == DimRule.rule_merchant)
            .join(DimCluster, DimCluster.cluster_id == DimMerchant.cluster_id)
            .join(DimCategory, DimCategory.category_id == DimMerchant.category_id)
        )

    @staticmethod
    def dimension_predicates(filters: ScopeFilters):
        return ScopePredicates(filters).dimensions(
            category=DimCategory.category,
            branch=DimCluster.branch,
            merchant=DimMerchant.keyword_code,
        )

    def transaction_where(
        self,
        filters: ScopeFilters,
        start: date,
        end: date,
        status: TransactionStatus = TransactionStatus.SUCCESS,
    ):
        return combine(
            [FactTransaction.status == status],
            ScopePredicates.timestamp_period(FactTransaction.transaction_at, start, end),
            self.dimension_predicates(filters),
        )

    def active_rule_merchants(self, filters: ScopeFilters, start: date, end: date):
        """Merchants holding a rule whose validity overlaps ``[start, end)``."""

        stmt = self.joined_rules(
            select(
                DimRule.rule_merchant.label("merchant_key"),
                func.min(DimRule.start_period).label("start_period"),
                func.max(DimRule.end_period).label("end_period"),
                func.max(DimRule.point_redeem).label("point"),
            )
        )
        return (
            stmt.where(
                combine(
                    ScopePredicates.rule_overlaps(DimRule.start_period, DimRule.end_period, start, end),
                    self.dimension_predicates(filters),
                )
            )
            .group_by(DimRule.rule_merchant)
            .subquery("active_rule")
        )

    # ---------- Options ----------
    def get_filter_options(self, months: Sequence[str] | None = None) -> FilterOptions:
        if months is None:
            categories = self.db.scalars(
                select(DimCategory.category).distinct().order_by(DimCategory.category.asc())
            ).all()
            branches = self.db.scalars(
                select(DimCluster.branch).distinct().order_by(DimCluster.branch.asc())
            ).all()
            merchant_rows = self.db.execute(
                select(DimMerchant.keyword_code, DimMerchant.merchant_name).order_by(
                    DimMerchant.merchant_name.asc(), DimMerchant.keyword_code.asc()
                )
            ).all()
        else:
            where = combine([FactTransaction.status == TransactionStatus.SUCCESS], self._months_predicate(months))
            categories = self.db.scalars(
                self.joined_transactions(select(DimCategory.category).distinct())
                .where(where)
                .order_by(DimCategory.category.asc())
            ).all()
            branches = self.db.scalars(
                self.joined_transactions(select(DimCluster.branch).distinct())
                .where(where)
                .order_by(DimCluster.branch.asc())
            ).all()
            merchant_rows = self.db.execute(
                self.joined_transactions(select(DimMerchant.keyword_code, DimMerchant.merchant_name).distinct())
                .where(where)
                .order_by(DimMerchant.merchant_name.asc(), DimMerchant.keyword_code.asc())
            ).all()

        return FilterOptions(
            categories=[_text(value) for value in categories],
            branches=[_text(value) for value in branches],
            merchants=[
                MerchantOption(value=_text(row.keyword_code), label=_text(row.merchant_name))
                for row in merchant_rows
            ],
        )

    @staticmethod
    def _months_predicate(months: Sequence[str]):
        if not months:
            return []
        periods = []
        for month in months:
            selected = month_range(month)
            periods.append(
                combine(ScopePredicates.timestamp_period(FactTransaction.transaction_at, selected.start, selected.end))
            )
        return [or_(*periods)]

    def get_month_options(self) -> list[str]:
        month = self.month_key(FactTransaction.transaction_at)
        rows = self.db.scalars(
            select(month.label("month"))
            .where(FactTransaction.status == TransactionStatus.SUCCESS)
            .group_by(month)
            .order_by(month.desc())
        ).all()
        return [_text(value) for value in rows if value]

    # ---------- Shared aggregates ----------
    def _count(self, where) -> int:
        return _int(self.db.scalar(self.joined_transactions(select(func.count())).where(where)))

    def _summary(self, where) -> SummaryRow:
        row = self.db.execute(
            self.joined_transactions(
                select(
                    func.count().label("total_transaction"),
                    func.coalesce(func.sum(self.point_value), 0).label("total_point"),
                    func.count(distinct(FactTransaction.msisdn)).label("total_redeemer"),
                )
            ).where(where)
        ).one()
        return SummaryRow(
            total_transaction=_int(row.total_transaction),
            total_point=_int(row.total_point),
            total_redeemer=_int(row.total_redeemer),
        )

    def _daily(self, where, measure) -> dict[str, int]:
        day = self.day_key(FactTransaction.transaction_at)
        rows = self.db.execute(
            self.joined_transactions(select(day.label("day"), measure.label("value")))
            .where(where)
            .group_by(day)
            .order_by(day)
        ).all()
        return {_day_key(row.day): _int(row.value) for row in rows if row.day is not None}

    def _monthly(self, where, measure) -> dict[str, int]:
        month = self.month_key(FactTransaction.transaction_at)
        rows = self.db.execute(
            self.joined_transactions(select(month.label("month"), measure.label("value")))
            .where(where)
            .group_by(month)
            .order_by(month)
        ).all()
        return {_text(row.month): _int(row.value) for row in rows if row.month}

    def _merchant_activity(self, filters: ScopeFilters, start: date, end: date) -> list[MerchantActivityRow]:
        active_rule = self.active_rule_merchants(filters, start, end)
        tx = (
            select(
                FactTransaction.merchant_key.label("merchant_key"),
                func.count().label("transaction_count"),
                func.count(distinct(FactTransaction.msisdn)).label("unique_redeemer"),
            )
            .where(
                combine(
                    [FactTransaction.status == TransactionStatus.SUCCESS],
                    ScopePredicates.timestamp_period(FactTransaction.transaction_at, start, end),
                )
            )
            .group_by(FactTransaction.merchant_key)
            .subquery("tx")
        )
        transaction_count = func.coalesce(tx.c.transaction_count, 0)
        rows = self.db.execute(
            select(
                DimMerchant.merchant_key,
                DimMerchant.merchant_name,
                DimMerchant.keyword_code,
                DimMerchant.uniq_merchant,
                DimCategory.category,
                DimCluster.branch,
                DimCluster.cluster,
                active_rule.c.start_period,
                active_rule.c.end_period,
                active_rule.c.point,
                transaction_count.label("transaction_count"),
                tx.c.unique_redeemer,
            )
            .select_from(active_rule)
            .join(DimMerchant, DimMerchant.merchant_key == active_rule.c.merchant_key)
            .join(DimCluster, DimCluster.cluster_id == DimMerchant.cluster_id)
            .join(DimCategory, DimCategory.category_id == DimMerchant.category_id)
            .outerjoin(tx, tx.c.merchant_key == active_rule.c.merchant_key)
            .order_by(transaction_count.desc(), DimMerchant.merchant_name.asc(), DimMerchant.keyword_code.asc())
        ).all()
        return [
            MerchantActivityRow(
                merchant_key=str(row.merchant_key),
                merchant=_text(row.merchant_name),
                keyword=_text(row.keyword_code),
                uniq_merchant=_text(row.uniq_merchant),
                category=_text(row.category),
                branch=_text(row.branch),
                cluster=_text(row.cluster),
                start_period=row.start_period,
                end_period=row.end_period,
                point=_int(row.point),
                transaction_count=_int(row.transaction_count),
                unique_redeemer=_int(row.unique_redeemer),
            )
            for row in rows
        ]

    def _expired_rules(self, filters: ScopeFilters, lower: date, upper: date | None) -> list[ExpiredRuleRow]:
        rows = self.db.execute(
            self.joined_rules(
                select(
                    DimCluster.branch,
                    DimMerchant.merchant_name,
                    DimMerchant.keyword_code,
                    DimCategory.category,
                    DimRule.start_period,
                    DimRule.end_period,
                )
            )
            .where(
                combine(
                    ScopePredicates.date_window(DimRule.end_period, lower, upper),
                    self.dimension_predicates(filters),
                )
            )
            .order_by(DimRule.end_period.asc(), DimCluster.branch.asc(), DimMerchant.merchant_name.asc())
        ).all()
        return [
            ExpiredRuleRow(
                branch=_text(row.branch),
                merchant=_text(row.merchant_name),
                keyword=_text(row.keyword_code),
                category=_text(row.category),
                start_period=row.start_period,
                end_period=row.end_period,
            )
            for row in rows
        ]

    def _merchant_transactions(self, filters: ScopeFilters, start: date, end: date) -> list[MerchantTransactionRow]:
        rows = self.db.execute(
            self.joined_transactions(
                select(
                    DimMerchant.merchant_name,
                    DimMerchant.keyword_code,
                    DimCategory.category,
                    DimCluster.branch,
                    func.count().label("transaction_count"),
                    func.count(distinct(FactTransaction.msisdn)).label("unique_redeemer"),
                )
            )
            .where(self.transaction_where(filters, start, end))
            .group_by(DimMerchant.merchant_name, DimMerchant.keyword_code, DimCategory.category, DimCluster.branch)
        ).all()
        return [
            MerchantTransactionRow(
                merchant=_text(row.merchant_name),
                keyword=_text(row.keyword_code),
                category=_text(row.category),
                branch=_text(row.branch),
                transaction_count=_int(row.transaction_count),
                unique_redeemer=_int(row.unique_redeemer),
            )
            for row in rows
        ]

    # ---------- Metric rows ----------
    def _metric_columns(self, merchant_key, uniq_merchant):
        return (
            func.count(distinct(merchant_key)).label("total_merchant"),
            func.count(distinct(uniq_merchant)).label("unique_merchant"),
            func.coalesce(func.sum(self.point_value), 0).label("total_point"),
            func.count(FactTransaction.transaction_key).label("total_transaction"),
            func.count(distinct(FactTransaction.msisdn)).label("unique_redeemer"),
        )

    @staticmethod
    def _cluster_row(row) -> ClusterMetricRow:
        return ClusterMetricRow(
            branch=_text(row.branch),
            cluster=_text(row.cluster),
            total_merchant=_int(row.total_merchant),
            unique_merchant=_int(row.unique_merchant),
            total_point=_int(row.total_point),
            total_transaction=_int(row.total_transaction),
            unique_redeemer=_int(row.unique_redeemer),
        )

    @staticmethod
    def _category_row(row) -> CategoryMetricRow:
        return CategoryMetricRow(
            name=_text(row.name),
            total_merchant=_int(row.total_merchant),
            unique_merchant=_int(row.unique_merchant),
            total_point=_int(row.total_point),
            total_transaction=_int(row.total_transaction),
            unique_redeemer=_int(row.unique_redeemer),
        )

    @staticmethod
    def period_bounds(period: DashboardPeriod) -> tuple[date, date, date, date]:
        selected = period.range
        return selected.start, selected.end, selected.previous_start, selected.previous_end
