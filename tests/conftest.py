from __future__ import annotations

from collections.abc import Generator
from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from loyalty_dashboard.db.base import Base
from loyalty_dashboard.db.dependencies import get_db_session
import loyalty_dashboard.models.entities  # noqa: F401
from loyalty_dashboard.main import create_app
from loyalty_dashboard.models.entities import (
    DimCategory,
    DimCluster,
    DimMerchant,
    DimRule,
    FactClusterPoint,
    FactTransaction,
    TransactionStatus,
)

TEST_TABLES = [
    DimCategory.__table__,
    DimCluster.__table__,
    DimMerchant.__table__,
    DimRule.__table__,
    FactTransaction.__table__,
    FactClusterPoint.__table__,
]


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ---------- Seed helpers ----------
def seed_merchant(
    db: Session,
    *,
    keyword: str,
    name: str | None = None,
    category: str = "Food",
    cluster: str = "Cluster A",
    branch: str = "Surabaya",
    region: str = "Jawa Timur",
    uniq_merchant: str | None = None,
) -> DimMerchant:
    category_row = db.scalar(select(DimCategory).where(DimCategory.category == category))
    if category_row is None:
        category_row = DimCategory(category=category)
        db.add(category_row)
        db.flush()

    cluster_row = db.scalar(
        select(DimCluster).where(DimCluster.cluster == cluster, DimCluster.branch == branch)
    )
    if cluster_row is None:
        cluster_row = DimCluster(cluster=cluster, branch=branch, region=region)
        db.add(cluster_row)
        db.flush()

    merchant = DimMerchant(
        keyword_code=keyword,
        merchant_name=name or f"Merchant {keyword}",
        uniq_merchant=uniq_merchant or f"U-{keyword}",
        cluster_id=cluster_row.cluster_id,
        category_id=category_row.category_id,
    )
    db.add(merchant)
    db.commit()
    db.refresh(merchant)
    return merchant


def seed_rule(
    db: Session,
    merchant: DimMerchant,
    *,
    start: date,
    end: date,
    point_redeem: int = 10,
) -> DimRule:
    rule = DimRule(
        rule_merchant=merchant.merchant_key,
        point_redeem=point_redeem,
        start_period=start,
        end_period=end,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def seed_transactions(
    db: Session,
    merchant: DimMerchant,
    rule: DimRule,
    *,
    at: datetime,
    count: int = 1,
    status: TransactionStatus = TransactionStatus.SUCCESS,
    msisdns: list[str] | None = None,
    qty: int = 1,
) -> None:
    for index in range(count):
        msisdn = msisdns[index % len(msisdns)] if msisdns else f"0812000{index:05d}"
        db.add(
            FactTransaction(
                transaction_at=at + timedelta(minutes=index),
                rule_key=rule.rule_key,
                merchant_key=merchant.merchant_key,
                status=status,
                qty=qty,
                point_redeem=rule.point_redeem,
                msisdn=msisdn,
            )
        )
    db.commit()


def seed_cluster_points(db: Session, *, cluster_id: int, month_year: date, total_point: int) -> None:
    db.add(
        FactClusterPoint(
            month_year=month_year,
            cluster_id=cluster_id,
            total_point=total_point,
            point_owner=1,
        )
    )
    db.commit()


def seed_dashboard_data(db: Session) -> dict[str, DimMerchant]:
    """Four merchants around March 2024.

    KOPI1 (Surabaya, Food) is productive in March, BAJU1 (Surabaya, Retail)
    is active and its rule ends on 2024-03-20, SPA1 (Malang, Retail) has an
    active rule but no transactions and OLD1 (Malang, Food) only traded in 2023.
    """

    kopi = seed_merchant(db, keyword="KOPI1", name="Kopi Kenangan", category="Food", cluster="Cluster A")
    baju = seed_merchant(db, keyword="BAJU1", name="Baju Bagus", category="Retail", cluster="Cluster B")
    spa = seed_merchant(db, keyword="SPA1", name="Spa Sehat", category="Retail", cluster="Cluster C", branch="Malang")
    old = seed_merchant(db, keyword="OLD1", name="Old Store", category="Food", cluster="Cluster C", branch="Malang")

    kopi_rule = seed_rule(db, kopi, start=date(2024, 1, 1), end=date(2024, 12, 31), point_redeem=10)
    baju_rule = seed_rule(db, baju, start=date(2024, 3, 1), end=date(2024, 3, 20), point_redeem=20)
    seed_rule(db, spa, start=date(2024, 2, 1), end=date(2024, 6, 30), point_redeem=15)
    old_rule = seed_rule(db, old, start=date(2023, 1, 1), end=date(2023, 12, 31), point_redeem=5)

    seed_transactions(
        db, kopi, kopi_rule, at=datetime(2024, 3, 5, 10, 0), count=5, msisdns=["081111111111", "082222222222"]
    )
    seed_transactions(
        db, kopi, kopi_rule, at=datetime(2024, 3, 6, 8, 0), status=TransactionStatus.FAILED, msisdns=["081111111111"]
    )
    seed_transactions(db, kopi, kopi_rule, at=datetime(2024, 2, 10, 9, 0), count=2, msisdns=["081111111111"])
    seed_transactions(db, baju, baju_rule, at=datetime(2024, 3, 10, 12, 0), count=2, qty=2, msisdns=["083333333333"])
    seed_transactions(db, old, old_rule, at=datetime(2023, 6, 15, 9, 0), msisdns=["084444444444"])

    seed_cluster_points(db, cluster_id=kopi.cluster_id, month_year=date(2024, 3, 1), total_point=1000)
    seed_cluster_points(db, cluster_id=kopi.cluster_id, month_year=date(2024, 2, 1), total_point=800)

    return {"kopi": kopi, "baju": baju, "spa": spa, "old": old}


@pytest.fixture()
def dashboard_data(db_session: Session) -> dict[str, DimMerchant]:
    return seed_dashboard_data(db_session)
