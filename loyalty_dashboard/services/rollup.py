"""Pure shaping of raw aggregate rows into dashboard tables and series.

Nothing here touches the store: every function takes already-fetched rows and
returns fresh values, so the same input always yields the same output.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol, TypeVar

from loyalty_dashboard.repositories.types import (
    CategoryMetricRow,
    ClusterMetricRow,
    ExpiredRuleRow,
    MerchantActivityRow,
    NamedValue,
)
from loyalty_dashboard.services.months import days_in_month, format_month, trailing_months

PRODUCTIVE_THRESHOLD = 5
TOP_MERCHANT_LIMIT = 5

METRIC_FIELDS: tuple[str, ...] = (
    "total_merchant",
    "unique_merchant",
    "total_point",
    "total_transaction",
    "unique_redeemer",
    "merchant_active",
    "merchant_productive",
)


# ---------- Metric rows ----------
@dataclass(slots=True)
class MetricRow:
    name: str
    total_merchant: int = 0
    unique_merchant: int = 0
    total_point: int = 0
    total_transaction: int = 0
    unique_redeemer: int = 0
    merchant_active: int = 0
    merchant_productive: int = 0
    children: list[MetricRow] | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"name": self.name}
        for field_name in METRIC_FIELDS:
            payload[field_name] = getattr(self, field_name)
        if self.children is not None:
            payload["children"] = [child.to_dict() for child in self.children]
        return payload


@dataclass(slots=True)
class StatusCounts:
    total: int = 0
    active: int = 0
    productive: int = 0
    not_active: int = 0


def sum_metrics(rows: Iterable[MetricRow], name: str) -> MetricRow:
    """Fold every field in ``METRIC_FIELDS`` over ``rows``."""

    totals = dict.fromkeys(METRIC_FIELDS, 0)
    for row in rows:
        for field_name in METRIC_FIELDS:
            totals[field_name] += getattr(row, field_name)
    return MetricRow(name=name, **totals)


def _metric_row(name: str, row: ClusterMetricRow | CategoryMetricRow, counts: StatusCounts | None) -> MetricRow:
    return MetricRow(
        name=name,
        total_merchant=row.total_merchant,
        unique_merchant=row.unique_merchant,
        total_point=row.total_point,
        total_transaction=row.total_transaction,
        unique_redeemer=row.unique_redeemer,
        merchant_active=counts.active if counts else 0,
        merchant_productive=counts.productive if counts else 0,
    )


def build_branch_hierarchy(
    rows: Sequence[ClusterMetricRow],
    *,
    branches: Iterable[str] = (),
    status_counts: Mapping[Hashable, StatusCounts] | None = None,
) -> list[MetricRow]:
    """Group ``(branch, cluster)`` rows into branch parents carrying their clusters.

    Parent totals are always derived from the children. Branches listed in
    ``branches`` without any cluster row come out as zero-valued parents.
    """

    counts_lookup = status_counts or {}
    grouped: dict[str, list[MetricRow]] = {branch: [] for branch in branches}
    for row in rows:
        counts = counts_lookup.get((row.branch, row.cluster))
        grouped.setdefault(row.branch, []).append(_metric_row(row.cluster, row, counts))

    parents: list[MetricRow] = []
    for branch in sorted(grouped):
        children = sorted(grouped[branch], key=lambda child: child.name)
        parent = sum_metrics(children, branch)
        parent.children = children
        parents.append(parent)
    return parents


def build_category_table(
    rows: Sequence[CategoryMetricRow],
    status_counts: Mapping[Hashable, StatusCounts] | None = None,
) -> list[MetricRow]:
    counts_lookup = status_counts or {}
    table = [_metric_row(row.name, row, counts_lookup.get(row.name)) for row in rows]
    table.sort(key=lambda item: (-item.total_transaction, item.name))
    return table


# ---------- Percentages ----------
def share_percent(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return (part / whole) * 100


def percent_change(current: float, previous: float) -> float | None:
    """Relative change in percent; ``None`` when there is no base to compare with."""

    if previous == 0:
        return 0.0 if current == 0 else None
    return ((current - previous) / previous) * 100


def comparison_card(
    current: int,
    previous: int,
    series: list[dict[str, object]] | None = None,
) -> dict[str, object]:
    card: dict[str, object] = {
        "current": current,
        "previous": previous,
        "change_percent": percent_change(current, previous),
    }
    if series is not None:
        card["series"] = series
    return card


def category_breakdown(rows: Sequence[NamedValue]) -> list[dict[str, object]]:
    total = sum(row.value for row in rows)
    return [
        {"name": row.name, "value": row.value, "percent": share_percent(row.value, total)}
        for row in rows
    ]


# ---------- Merchant classification ----------
@dataclass(frozen=True, slots=True)
class MerchantStatus:
    active: bool
    productive: bool
    not_active: bool


@dataclass(slots=True)
class MerchantClassification:
    active: list[MerchantActivityRow] = field(default_factory=list)
    productive: list[MerchantActivityRow] = field(default_factory=list)
    not_active: list[MerchantActivityRow] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.active) + len(self.not_active)


def classify_transaction_count(count: int, threshold: int = PRODUCTIVE_THRESHOLD) -> MerchantStatus:
    return MerchantStatus(
        active=count >= 1,
        productive=count >= threshold,
        not_active=count == 0,
    )


def classify_merchants(
    rows: Iterable[MerchantActivityRow],
    threshold: int = PRODUCTIVE_THRESHOLD,
) -> MerchantClassification:
    classification = MerchantClassification()
    for row in rows:
        status = classify_transaction_count(row.transaction_count, threshold)
        if status.active:
            classification.active.append(row)
        if status.productive:
            classification.productive.append(row)
        if status.not_active:
            classification.not_active.append(row)
    return classification


def project_status_counts(
    rows: Iterable[MerchantActivityRow],
    key: Callable[[MerchantActivityRow], Hashable],
    threshold: int = PRODUCTIVE_THRESHOLD,
) -> dict[Hashable, StatusCounts]:
    """Project one classification pass into any grouping of merchants."""

    counts: dict[Hashable, StatusCounts] = {}
    for row in rows:
        status = classify_transaction_count(row.transaction_count, threshold)
        bucket = counts.setdefault(key(row), StatusCounts())
        bucket.total += 1
        bucket.active += int(status.active)
        bucket.productive += int(status.productive)
        bucket.not_active += int(status.not_active)
    return counts


def by_branch(row: MerchantActivityRow) -> str:
    return row.branch


def by_cluster(row: MerchantActivityRow) -> tuple[str, str]:
    return (row.branch, row.cluster)


def by_category(row: MerchantActivityRow) -> str:
    return row.category


def overall(row: MerchantActivityRow) -> str:
    return "all"


def rank_branches_by_status(
    rows: Iterable[MerchantActivityRow],
    threshold: int = PRODUCTIVE_THRESHOLD,
) -> list[dict[str, object]]:
    counts = project_status_counts(rows, by_branch, threshold)
    ranked = sorted(counts.items(), key=lambda item: (-item[1].active, -item[1].productive, item[0]))
    return [
        {
            "branch": branch,
            "total_merchant": bucket.total,
            "merchant_active": bucket.active,
            "merchant_productive": bucket.productive,
            "merchant_not_active": bucket.not_active,
            "active_percent": share_percent(bucket.active, bucket.total),
        }
        for branch, bucket in ranked
    ]


# ---------- Expiry ----------
class ExpiryScope(str, enum.Enum):
    MONTH = "month"
    UPCOMING = "upcoming"


def parse_expiry_scope(raw: str | None, default: ExpiryScope = ExpiryScope.MONTH) -> ExpiryScope:
    if raw is None:
        return default
    try:
        return ExpiryScope(raw.strip().lower())
    except ValueError:
        return default


def expiry_window(scope: ExpiryScope, start: date, end: date, today: date) -> tuple[date, date | None]:
    """Date window a rule's end falls in to count as expired.

    ``month`` is the selected period ``[start, end)`` cut off at today, so a
    rule still valid today (its end date included) is not yet expired.
    ``upcoming`` is every end date from today on, independent of the selected
    month.
    """

    if scope is ExpiryScope.UPCOMING:
        return today, None
    return start, min(end, today)


def is_expired(end_period: date, window: tuple[date, date | None]) -> bool:
    lower, upper = window
    if end_period < lower:
        return False
    return upper is None or end_period < upper


def select_expired(rows: Iterable[ExpiredRuleRow], window: tuple[date, date | None]) -> list[ExpiredRuleRow]:
    return [row for row in rows if is_expired(row.end_period, window)]


# ---------- Series ----------
def build_daily_series(month_start: date, values: Mapping[str, int]) -> list[dict[str, object]]:
    """One point per calendar day of the month, zero-filled."""

    series: list[dict[str, object]] = []
    for offset in range(days_in_month(month_start)):
        key = (month_start + timedelta(days=offset)).isoformat()
        series.append({"date": key, "value": int(values.get(key, 0))})
    return series


def build_monthly_series(end_month: date, window: int, values: Mapping[str, int]) -> list[dict[str, object]]:
    """``window`` trailing months ending with ``end_month``, zero-filled."""

    return [
        {"month": key, "value": int(values.get(key, 0))}
        for key in (format_month(month) for month in trailing_months(end_month, window))
    ]


# ---------- Ranking ----------
class RankedMerchant(Protocol):
    merchant: str
    keyword: str
    transaction_count: int


RankedT = TypeVar("RankedT", bound=RankedMerchant)


def rank_merchants(rows: Iterable[RankedT], limit: int | None = None) -> list[RankedT]:
    ranked = sorted(rows, key=lambda row: (-row.transaction_count, row.merchant, row.keyword))
    if limit is None:
        return ranked
    return ranked[:limit]
