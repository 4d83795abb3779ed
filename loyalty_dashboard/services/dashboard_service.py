"""Dashboard assembly: month and filter resolution, repository fetch, shaping."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TypeVar

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loyalty_dashboard.core.config import Settings, get_settings
from loyalty_dashboard.repositories.base import AggregationRepository
from loyalty_dashboard.repositories.operational_repository import OperationalRepository
from loyalty_dashboard.repositories.overview_repository import OverviewRepository
from loyalty_dashboard.repositories.types import (
    DashboardPeriod,
    ExpiredRuleRow,
    MerchantActivityRow,
    MerchantTransactionRow,
    OperationalRawData,
    OverviewRawData,
)
from loyalty_dashboard.services.filters import (
    FilterOptions,
    FilterSelection,
    RawFilters,
    ScopeFilters,
    normalize_filters,
    parse_multi_param,
    scope_filters,
)
from loyalty_dashboard.services.months import (
    add_months,
    current_month,
    format_month,
    is_month_token,
    month_label,
    month_range,
    month_sequence,
    month_to_date,
    parse_month,
    utc_today,
)
from loyalty_dashboard.services.rollup import (
    ExpiryScope,
    StatusCounts,
    build_branch_hierarchy,
    build_category_table,
    build_daily_series,
    build_monthly_series,
    by_category,
    by_cluster,
    category_breakdown,
    classify_merchants,
    comparison_card,
    expiry_window,
    overall,
    parse_expiry_scope,
    project_status_counts,
    rank_branches_by_status,
    rank_merchants,
    select_expired,
    share_percent,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOAD_FAILED_DETAIL = "Failed to load dashboard data."


@dataclass(frozen=True, slots=True)
class ResolvedRequest:
    """Everything derived from the request before rows are fetched."""

    month: str
    selection: FilterSelection
    scope: ScopeFilters
    period: DashboardPeriod
    expiry_scope: ExpiryScope
    expiry_bounds: tuple[date, date | None]


def resolve_request(
    repo: AggregationRepository,
    month_query: str | Sequence[str] | None,
    raw_filters: RawFilters,
    *,
    settings: Settings,
    today: date,
    expiry_scope: str | None = None,
) -> ResolvedRequest:
    options = repo.get_filter_options()
    available_months = repo.get_month_options()
    requested = RawFilters(
        months=parse_multi_param(month_query) or raw_filters.months,
        categories=raw_filters.categories,
        branches=raw_filters.branches,
        merchants=raw_filters.merchants,
    )
    # Any valid month is served as asked; data months only supply the default.
    selection = normalize_filters(requested, options, available_months, cross_check_months=False, today=today)
    # Several selected months collapse to the most recent one.
    month = parse_month(max(selection.months), today=today)
    selected_range = month_range(month)

    scope_value = parse_expiry_scope(expiry_scope, ExpiryScope(settings.default_expiry_scope))
    bounds = expiry_window(scope_value, selected_range.start, selected_range.end, today)
    period = DashboardPeriod(
        range=selected_range,
        monthly_window_start=add_months(selected_range.start, -(settings.monthly_window - 1)),
        expiry_from=bounds[0],
        expiry_until=bounds[1],
    )
    return ResolvedRequest(
        month=month,
        selection=selection,
        scope=scope_filters(selection, options),
        period=period,
        expiry_scope=scope_value,
        expiry_bounds=bounds,
    )


# ---------- Row serializers ----------
def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _activity_dict(row: MerchantActivityRow) -> dict[str, object]:
    return {
        "branch": row.branch,
        "cluster": row.cluster,
        "category": row.category,
        "merchant": row.merchant,
        "keyword": row.keyword,
        "uniq_merchant": row.uniq_merchant,
        "start_period": _iso(row.start_period),
        "end_period": _iso(row.end_period),
        "point": row.point,
        "transaction_count": row.transaction_count,
        "unique_redeemer": row.unique_redeemer,
    }


def _expired_dict(row: ExpiredRuleRow) -> dict[str, object]:
    return {
        "branch": row.branch,
        "merchant": row.merchant,
        "keyword": row.keyword,
        "category": row.category,
        "start_period": _iso(row.start_period),
        "end_period": _iso(row.end_period),
    }


def _top_merchant_dict(row: MerchantTransactionRow) -> dict[str, object]:
    return {
        "merchant": row.merchant,
        "keyword": row.keyword,
        "category": row.category,
        "branch": row.branch,
        "transaction_count": row.transaction_count,
        "unique_redeemer": row.unique_redeemer,
    }


def _by_branch_then_name(rows: Iterable[MerchantActivityRow]) -> list[MerchantActivityRow]:
    return sorted(rows, key=lambda row: (row.branch, row.merchant, row.keyword))


def _status_summary(counts: StatusCounts) -> dict[str, object]:
    return {
        "total_merchant": counts.total,
        "merchant_active": counts.active,
        "merchant_productive": counts.productive,
        "merchant_not_active": counts.not_active,
        "active_percent": share_percent(counts.active, counts.total),
        "productive_percent": share_percent(counts.productive, counts.total),
    }


def _header(resolved: ResolvedRequest, locale: str) -> dict[str, object]:
    previous_month = format_month(resolved.period.range.previous_start)
    return {
        "month": resolved.month,
        "month_label": month_label(resolved.month, locale),
        "previous_month": previous_month,
        "previous_month_label": month_label(previous_month, locale),
        "filters": resolved.selection.to_dict(),
        "expiry_scope": resolved.expiry_scope.value,
    }


# ---------- Surfaces ----------
def build_overview_dashboard(
    repo: AggregationRepository,
    month_query: str | Sequence[str] | None,
    raw_filters: RawFilters,
    *,
    settings: Settings | None = None,
    today: date | None = None,
    expiry_scope: str | None = None,
) -> dict[str, object]:
    settings = settings or get_settings()
    today = today or utc_today()
    resolved = resolve_request(
        repo, month_query, raw_filters, settings=settings, today=today, expiry_scope=expiry_scope
    )
    raw: OverviewRawData = repo.get_aggregates(resolved.period, resolved.scope)

    threshold = settings.productive_threshold
    month_start = resolved.period.range.start
    activity = raw.merchant_activity
    classification = classify_merchants(activity, threshold)
    overall_counts = project_status_counts(activity, overall, threshold).get("all", StatusCounts())

    daily_points = build_daily_series(month_start, raw.daily_points)
    daily_transactions = build_daily_series(month_start, raw.daily_transactions)
    daily_redeemers = build_daily_series(month_start, raw.daily_redeemers)

    return {
        **_header(resolved, settings.month_label_locale),
        "cards": {
            "customer_points": comparison_card(raw.customer_points, raw.previous_customer_points),
            "transactions": comparison_card(
                raw.summary.total_transaction,
                raw.previous_summary.total_transaction,
                daily_transactions,
            ),
            "burned_points": comparison_card(
                raw.summary.total_point,
                raw.previous_summary.total_point,
                daily_points,
            ),
            "unique_redeemers": comparison_card(
                raw.summary.total_redeemer,
                raw.previous_summary.total_redeemer,
                daily_redeemers,
            ),
        },
        "daily_points": daily_points,
        "daily_transactions": daily_transactions,
        "daily_redeemers": daily_redeemers,
        "monthly_transactions": build_monthly_series(month_start, settings.monthly_window, raw.monthly_transactions),
        "monthly_redeemers": build_monthly_series(month_start, settings.monthly_window, raw.monthly_redeemers),
        "category_breakdown": category_breakdown(raw.category_counts),
        "top_merchants": [
            _top_merchant_dict(row)
            for row in rank_merchants(raw.merchant_transactions, settings.top_merchant_limit)
        ],
        "branch_table": {
            "branches": [
                parent.to_dict()
                for parent in build_branch_hierarchy(
                    raw.cluster_rows,
                    branches=resolved.scope.branches,
                    status_counts=project_status_counts(activity, by_cluster, threshold),
                )
            ]
        },
        "category_table": [
            row.to_dict()
            for row in build_category_table(
                raw.category_rows,
                project_status_counts(activity, by_category, threshold),
            )
        ],
        "merchant_status": {
            **_status_summary(overall_counts),
            "branches": rank_branches_by_status(activity, threshold),
        },
        "not_active_merchants": [_activity_dict(row) for row in _by_branch_then_name(classification.not_active)],
        "productive_merchants": [_activity_dict(row) for row in rank_merchants(classification.productive)],
        "merchant_per_month": [_activity_dict(row) for row in rank_merchants(activity)],
        "expired_merchants": [
            _expired_dict(row) for row in select_expired(raw.expired_rules, resolved.expiry_bounds)
        ],
    }


def build_operational_dashboard(
    repo: AggregationRepository,
    month_query: str | Sequence[str] | None,
    raw_filters: RawFilters,
    *,
    settings: Settings | None = None,
    today: date | None = None,
    expiry_scope: str | None = None,
) -> dict[str, object]:
    settings = settings or get_settings()
    today = today or utc_today()
    resolved = resolve_request(
        repo, month_query, raw_filters, settings=settings, today=today, expiry_scope=expiry_scope
    )
    raw: OperationalRawData = repo.get_aggregates(resolved.period, resolved.scope)

    threshold = settings.productive_threshold
    month_start = resolved.period.range.start
    activity = raw.merchant_activity
    classification = classify_merchants(activity, threshold)
    overall_counts = project_status_counts(activity, overall, threshold).get("all", StatusCounts())
    expired = select_expired(raw.expired_rules, resolved.expiry_bounds)

    return {
        **_header(resolved, settings.month_label_locale),
        "cards": {
            "success": comparison_card(
                raw.success_current,
                raw.success_previous,
                build_daily_series(month_start, raw.daily_success),
            ),
            "failed": comparison_card(
                raw.failed_current,
                raw.failed_previous,
                build_daily_series(month_start, raw.daily_failed),
            ),
        },
        "compact_stats": {
            **_status_summary(overall_counts),
            "merchant_expired": len({row.keyword for row in expired}),
        },
        "top_merchants": [
            _top_merchant_dict(row)
            for row in rank_merchants(raw.merchant_transactions, settings.top_merchant_limit)
        ],
        "merchant_status_rows": [_activity_dict(row) for row in rank_merchants(activity)],
        "merchant_status_by_branch": rank_branches_by_status(activity, threshold),
        "not_active_merchants": [_activity_dict(row) for row in _by_branch_then_name(classification.not_active)],
        "productive_merchants": [_activity_dict(row) for row in rank_merchants(classification.productive)],
        "expired_rules": [_expired_dict(row) for row in expired],
        "category_table": [
            row.to_dict()
            for row in build_category_table(
                raw.category_rows,
                project_status_counts(activity, by_category, threshold),
            )
        ],
        "branch_table": {
            "branches": [
                parent.to_dict()
                for parent in build_branch_hierarchy(
                    raw.cluster_rows,
                    branches=resolved.scope.branches,
                    status_counts=project_status_counts(activity, by_cluster, threshold),
                )
            ]
        },
    }


# ---------- Options ----------
def build_month_options(data_months: Sequence[str], *, today: date, locale: str = "id") -> list[dict[str, str]]:
    """Every month from the current one back to the earliest month with data, newest first."""

    current = month_to_date(current_month(today))
    if not data_months:
        months = [current]
    else:
        upper = max(current, month_to_date(max(data_months)))
        months = list(reversed(month_sequence(month_to_date(min(data_months)), upper)))
    return [{"value": format_month(month), "label": month_label(format_month(month), locale)} for month in months]


def build_filter_options(options: FilterOptions, months: Sequence[str]) -> dict[str, object]:
    return {
        "months": list(months),
        "categories": [{"value": value, "label": value} for value in options.categories],
        "branches": [{"value": value, "label": value} for value in options.branches],
        "merchants": [{"value": option.value, "label": option.label} for option in options.merchants],
    }


class DashboardService:
    """HTTP-facing wrapper turning store failures into one generic error."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.settings = get_settings()

    def _load(self, loader: Callable[[], T], surface: str) -> T:
        try:
            return loader()
        except SQLAlchemyError:
            logger.exception("Failed to load %s dashboard data", surface)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=LOAD_FAILED_DETAIL,
            ) from None

    def overview(
        self,
        *,
        month: list[str] | None,
        raw_filters: RawFilters,
        expiry_scope: str | None = None,
    ) -> dict[str, object]:
        repo = OverviewRepository(self.db)
        payload = self._load(
            lambda: build_overview_dashboard(
                repo, month, raw_filters, settings=self.settings, expiry_scope=expiry_scope
            ),
            "overview",
        )
        logger.info("Built overview dashboard month=%s filters=%s", payload["month"], payload["filters"])
        return payload

    def operational(
        self,
        *,
        month: list[str] | None,
        raw_filters: RawFilters,
        expiry_scope: str | None = None,
    ) -> dict[str, object]:
        repo = OperationalRepository(self.db)
        payload = self._load(
            lambda: build_operational_dashboard(
                repo, month, raw_filters, settings=self.settings, expiry_scope=expiry_scope
            ),
            "operational",
        )
        logger.info("Built operational dashboard month=%s filters=%s", payload["month"], payload["filters"])
        return payload

    def month_options(self, today: date | None = None) -> list[dict[str, str]]:
        repo = OverviewRepository(self.db)
        data_months = self._load(repo.get_month_options, "month options")
        return build_month_options(
            data_months,
            today=today or utc_today(),
            locale=self.settings.month_label_locale,
        )

    def filter_options(self, month: list[str] | None) -> dict[str, object]:
        months = [value for value in parse_multi_param(month) if is_month_token(value)]
        repo = OverviewRepository(self.db)
        options = self._load(lambda: repo.get_filter_options(months), "filter options")
        return build_filter_options(options, months)
