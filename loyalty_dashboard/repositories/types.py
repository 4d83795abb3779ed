"""Raw aggregate rows returned by the aggregation repositories.

Every numeric measure is already coerced to ``int`` (store NULLs become 0), so
the shaping layer never sees ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from loyalty_dashboard.services.months import MonthRange


@dataclass(frozen=True, slots=True)
class DashboardPeriod:
    """Month range plus the derived windows a dashboard query needs."""

    range: MonthRange
    monthly_window_start: date
    expiry_from: date
    expiry_until: date | None


@dataclass(frozen=True, slots=True)
class SummaryRow:
    total_transaction: int = 0
    total_point: int = 0
    total_redeemer: int = 0


@dataclass(frozen=True, slots=True)
class NamedValue:
    name: str
    value: int


@dataclass(frozen=True, slots=True)
class ClusterMetricRow:
    branch: str
    cluster: str
    total_merchant: int = 0
    unique_merchant: int = 0
    total_point: int = 0
    total_transaction: int = 0
    unique_redeemer: int = 0


@dataclass(frozen=True, slots=True)
class CategoryMetricRow:
    name: str
    total_merchant: int = 0
    unique_merchant: int = 0
    total_point: int = 0
    total_transaction: int = 0
    unique_redeemer: int = 0


@dataclass(frozen=True, slots=True)
class MerchantActivityRow:
    """One merchant with a rule active in the period and its in-period activity."""

    merchant_key: str
    merchant: str
    keyword: str
    uniq_merchant: str = ""
    category: str = ""
    branch: str = ""
    cluster: str = ""
    start_period: date | None = None
    end_period: date | None = None
    point: int = 0
    transaction_count: int = 0
    unique_redeemer: int = 0


@dataclass(frozen=True, slots=True)
class ExpiredRuleRow:
    branch: str
    merchant: str
    keyword: str
    category: str
    start_period: date
    end_period: date


@dataclass(frozen=True, slots=True)
class MerchantTransactionRow:
    merchant: str
    keyword: str
    category: str = ""
    branch: str = ""
    transaction_count: int = 0
    unique_redeemer: int = 0


@dataclass(frozen=True, slots=True)
class OverviewRawData:
    summary: SummaryRow
    previous_summary: SummaryRow
    customer_points: int = 0
    previous_customer_points: int = 0
    daily_points: dict[str, int] = field(default_factory=dict)
    daily_transactions: dict[str, int] = field(default_factory=dict)
    daily_redeemers: dict[str, int] = field(default_factory=dict)
    monthly_transactions: dict[str, int] = field(default_factory=dict)
    monthly_redeemers: dict[str, int] = field(default_factory=dict)
    category_counts: list[NamedValue] = field(default_factory=list)
    cluster_rows: list[ClusterMetricRow] = field(default_factory=list)
    category_rows: list[CategoryMetricRow] = field(default_factory=list)
    merchant_activity: list[MerchantActivityRow] = field(default_factory=list)
    merchant_transactions: list[MerchantTransactionRow] = field(default_factory=list)
    expired_rules: list[ExpiredRuleRow] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class OperationalRawData:
    success_current: int = 0
    failed_current: int = 0
    success_previous: int = 0
    failed_previous: int = 0
    daily_success: dict[str, int] = field(default_factory=dict)
    daily_failed: dict[str, int] = field(default_factory=dict)
    cluster_rows: list[ClusterMetricRow] = field(default_factory=list)
    category_rows: list[CategoryMetricRow] = field(default_factory=list)
    merchant_activity: list[MerchantActivityRow] = field(default_factory=list)
    merchant_transactions: list[MerchantTransactionRow] = field(default_factory=list)
    expired_rules: list[ExpiredRuleRow] = field(default_factory=list)
