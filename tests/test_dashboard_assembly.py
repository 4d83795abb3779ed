from __future__ import annotations

from datetime import date

import pytest

from loyalty_dashboard.core.config import Settings
from loyalty_dashboard.repositories.base import AggregationRepository
from loyalty_dashboard.repositories.types import (
    ClusterMetricRow,
    DashboardPeriod,
    ExpiredRuleRow,
    MerchantActivityRow,
    MerchantTransactionRow,
    NamedValue,
    OperationalRawData,
    OverviewRawData,
    SummaryRow,
)
from loyalty_dashboard.services.dashboard_service import (
    build_filter_options,
    build_month_options,
    build_operational_dashboard,
    build_overview_dashboard,
)
from loyalty_dashboard.services.filters import FilterOptions, MerchantOption, RawFilters, ScopeFilters

TODAY = date(2024, 3, 15)
SETTINGS = Settings(_env_file=None)

OPTIONS = FilterOptions(
    categories=["Food", "Retail"],
    branches=["Malang", "Surabaya"],
    merchants=[MerchantOption(value="KOPI1", label="Kopi"), MerchantOption(value="BAJU1", label="Baju")],
)

ACTIVITY = [
    MerchantActivityRow(
        merchant_key="1",
        merchant="Kopi",
        keyword="KOPI1",
        category="Food",
        branch="Surabaya",
        cluster="Cluster A",
        transaction_count=5,
        unique_redeemer=2,
    ),
    MerchantActivityRow(
        merchant_key="2",
        merchant="Baju",
        keyword="BAJU1",
        category="Retail",
        branch="Surabaya",
        cluster="Cluster B",
        transaction_count=2,
        unique_redeemer=1,
    ),
    MerchantActivityRow(
        merchant_key="3",
        merchant="Spa",
        keyword="SPA1",
        category="Retail",
        branch="Malang",
        cluster="Cluster C",
    ),
]

EXPIRED = [
    ExpiredRuleRow("Surabaya", "Baju", "BAJU1", "Retail", date(2024, 3, 1), date(2024, 3, 10)),
    ExpiredRuleRow("Surabaya", "Kopi", "KOPI1", "Food", date(2024, 1, 1), date(2024, 12, 31)),
]


class FakeRepository(AggregationRepository):
    def __init__(self, raw, *, months=("2024-03", "2024-02"), error: Exception | None = None) -> None:
        self.raw = raw
        self.months = list(months)
        self.error = error
        self.calls: list[tuple[DashboardPeriod, ScopeFilters]] = []

    def get_filter_options(self, months=None) -> FilterOptions:
        return OPTIONS

    def get_month_options(self) -> list[str]:
        return self.months

    def get_aggregates(self, period: DashboardPeriod, filters: ScopeFilters):
        self.calls.append((period, filters))
        if self.error is not None:
            raise self.error
        return self.raw


def _overview_raw() -> OverviewRawData:
    return OverviewRawData(
        summary=SummaryRow(total_transaction=7, total_point=130, total_redeemer=3),
        previous_summary=SummaryRow(total_transaction=2, total_point=20, total_redeemer=1),
        customer_points=1000,
        previous_customer_points=800,
        daily_transactions={"2024-03-05": 5, "2024-03-10": 2},
        monthly_transactions={"2024-03": 7, "2024-02": 2},
        category_counts=[NamedValue("Food", 5), NamedValue("Retail", 2)],
        cluster_rows=[
            ClusterMetricRow(branch="Surabaya", cluster="Cluster A", total_merchant=1, total_point=50, total_transaction=5),
            ClusterMetricRow(branch="Surabaya", cluster="Cluster B", total_merchant=1, total_point=80, total_transaction=2),
        ],
        merchant_activity=ACTIVITY,
        merchant_transactions=[
            MerchantTransactionRow(merchant="Baju", keyword="BAJU1", transaction_count=2),
            MerchantTransactionRow(merchant="Kopi", keyword="KOPI1", transaction_count=5),
        ],
        expired_rules=EXPIRED,
    )


def test_overview_cards_and_series() -> None:
    repo = FakeRepository(_overview_raw())

    payload = build_overview_dashboard(repo, "2024-03", RawFilters(), settings=SETTINGS, today=TODAY)

    assert payload["month"] == "2024-03"
    assert payload["month_label"] == "Maret 2024"
    assert payload["previous_month"] == "2024-02"
    assert payload["cards"]["transactions"]["current"] == 7
    assert payload["cards"]["transactions"]["change_percent"] == 250.0
    assert payload["cards"]["customer_points"]["change_percent"] == 25.0
    assert len(payload["daily_transactions"]) == 31
    assert payload["daily_transactions"][4] == {"date": "2024-03-05", "value": 5}
    assert len(payload["monthly_transactions"]) == 12
    assert payload["monthly_transactions"][-2:] == [
        {"month": "2024-02", "value": 2},
        {"month": "2024-03", "value": 7},
    ]


def test_overview_tables_and_status() -> None:
    payload = build_overview_dashboard(
        FakeRepository(_overview_raw()), "2024-03", RawFilters(), settings=SETTINGS, today=TODAY
    )

    surabaya = payload["branch_table"]["branches"][0]
    assert surabaya["name"] == "Surabaya"
    assert surabaya["total_point"] == 130
    assert surabaya["merchant_active"] == 2
    assert surabaya["merchant_productive"] == 1

    status = payload["merchant_status"]
    assert (status["total_merchant"], status["merchant_active"]) == (3, 2)
    assert (status["merchant_productive"], status["merchant_not_active"]) == (1, 1)
    assert [row["keyword"] for row in payload["not_active_merchants"]] == ["SPA1"]
    assert [row["keyword"] for row in payload["productive_merchants"]] == ["KOPI1"]
    assert [row["keyword"] for row in payload["merchant_per_month"]] == ["KOPI1", "BAJU1", "SPA1"]
    assert [row["keyword"] for row in payload["top_merchants"]] == ["KOPI1", "BAJU1"]
    assert [row["keyword"] for row in payload["expired_merchants"]] == ["BAJU1"]
    assert [item["percent"] for item in payload["category_breakdown"]] == pytest.approx([500 / 7, 200 / 7])


def test_scope_and_period_reach_the_repository() -> None:
    repo = FakeRepository(_overview_raw())

    payload = build_overview_dashboard(
        repo,
        ["2024-02", "2024-03"],
        RawFilters(months=["2023-01"], categories=["Food", "all"], branches=["all"]),
        settings=SETTINGS,
        today=TODAY,
    )

    period, scope = repo.calls[0]
    assert payload["month"] == "2024-03"
    assert period.range.start == date(2024, 3, 1)
    assert period.range.end == date(2024, 4, 1)
    assert period.monthly_window_start == date(2023, 4, 1)
    assert scope.categories == ["Food"]
    assert scope.branches == []
    assert payload["filters"]["categories"] == ["Food"]
    assert payload["filters"]["branches"] == ["Malang", "Surabaya"]


def test_month_without_data_is_served_as_requested() -> None:
    repo = FakeRepository(_overview_raw())

    payload = build_overview_dashboard(repo, "2030-01", RawFilters(), settings=SETTINGS, today=TODAY)

    period, _ = repo.calls[0]
    assert payload["month"] == "2030-01"
    assert payload["filters"]["months"] == ["2030-01"]
    assert period.range.start == date(2030, 1, 1)


def test_invalid_month_falls_back_to_latest_data_month() -> None:
    payload = build_overview_dashboard(
        FakeRepository(_overview_raw()), ["2024-13", "9999-12"], RawFilters(), settings=SETTINGS, today=TODAY
    )

    assert payload["month"] == "2024-03"


def test_invalid_month_without_any_data_uses_current_month() -> None:
    payload = build_overview_dashboard(
        FakeRepository(_overview_raw(), months=()),
        "bogus",
        RawFilters(),
        settings=SETTINGS,
        today=date(2025, 6, 10),
    )

    assert payload["month"] == "2025-06"
    assert payload["previous_month"] == "2025-05"


def test_month_expiry_scope_stops_at_today() -> None:
    repo = FakeRepository(_overview_raw())

    build_overview_dashboard(repo, "2024-03", RawFilters(), settings=SETTINGS, today=TODAY)

    period, _ = repo.calls[0]
    assert (period.expiry_from, period.expiry_until) == (date(2024, 3, 1), TODAY)


def test_upcoming_expiry_scope_uses_today() -> None:
    repo = FakeRepository(_overview_raw())

    payload = build_overview_dashboard(
        repo, "2024-03", RawFilters(), settings=SETTINGS, today=TODAY, expiry_scope="upcoming"
    )

    period, _ = repo.calls[0]
    assert payload["expiry_scope"] == "upcoming"
    assert (period.expiry_from, period.expiry_until) == (TODAY, None)
    assert [row["keyword"] for row in payload["expired_merchants"]] == ["KOPI1"]


def test_repository_errors_propagate() -> None:
    repo = FakeRepository(None, error=RuntimeError("store unavailable"))

    with pytest.raises(RuntimeError, match="store unavailable"):
        build_operational_dashboard(repo, "2024-03", RawFilters(), settings=SETTINGS, today=TODAY)


def test_operational_dashboard_shape() -> None:
    raw = OperationalRawData(
        success_current=7,
        failed_current=1,
        success_previous=2,
        failed_previous=0,
        daily_failed={"2024-03-05": 1},
        cluster_rows=[ClusterMetricRow(branch="Malang", cluster="Cluster C", total_merchant=1)],
        merchant_activity=ACTIVITY,
        expired_rules=EXPIRED,
    )

    payload = build_operational_dashboard(
        FakeRepository(raw), "2024-03", RawFilters(), settings=SETTINGS, today=TODAY
    )

    assert payload["cards"]["success"]["change_percent"] == 250.0
    assert payload["cards"]["failed"]["change_percent"] is None
    assert payload["cards"]["failed"]["series"][4]["value"] == 1
    assert payload["compact_stats"]["total_merchant"] == 3
    assert payload["compact_stats"]["merchant_expired"] == 1
    assert payload["merchant_status_by_branch"][0]["branch"] == "Surabaya"
    malang = payload["branch_table"]["branches"][0]
    assert malang["name"] == "Malang"
    assert malang["children"][0]["total_transaction"] == 0


def test_month_options_run_from_current_month_to_earliest_data() -> None:
    options = build_month_options(["2024-01", "2023-11"], today=TODAY)

    assert [option["value"] for option in options] == ["2024-03", "2024-02", "2024-01", "2023-12", "2023-11"]
    assert options[-1]["label"] == "November 2023"


def test_month_options_without_data_is_current_month() -> None:
    assert build_month_options([], today=TODAY, locale="en") == [{"value": "2024-03", "label": "March 2024"}]


def test_filter_options_payload() -> None:
    payload = build_filter_options(OPTIONS, ["2024-03"])

    assert payload["months"] == ["2024-03"]
    assert payload["categories"][0] == {"value": "Food", "label": "Food"}
    assert payload["merchants"][1] == {"value": "BAJU1", "label": "Baju"}
