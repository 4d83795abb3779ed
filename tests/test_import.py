from __future__ import annotations

import io
import zipfile
from datetime import date, datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import seed_merchant, seed_rule
from loyalty_dashboard.models import DimCluster, DimMerchant, DimRule, FactTransaction, TransactionStatus

MERCHANT_CSV = (
    "uniq_merchant;merchant_name;keyword;category;cluster;branch;point_redeem;start_period;end_period\n"
    "U-KOPI1;Kopi Kenangan;KOPI1;Food;Cluster A;Surabaya;10;2024-01-01;2024-12-31\n"
    "U-BAD;;BAD1;Food;Cluster A;Surabaya;;;\n"
)

TRANSACTION_CSV = (
    "timestamp,keyword,msisdn,status,quantity\n"
    "2024-03-05T10:00:00,KOPI1,081111111111,success,2\n"
    "Tue Mar 05 2024 18:30:00 GMT+0700 (Western Indonesia Time),KOPI1,082222222222,failed,\n"
)


def _upload(client: TestClient, filename: str, content: bytes):
    return client.post("/api/v1/import", files={"file": (filename, content, "application/octet-stream")})


def _zip(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in entries.items():
            archive.writestr(name, text)
    return buffer.getvalue()


def test_import_merchants_keeps_valid_rows(client: TestClient, db_session: Session) -> None:
    response = _upload(client, "master_merchant.csv", MERCHANT_CSV.encode("utf-8"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["inserted"] == 1
    assert len(payload["errors"]) == 1
    assert payload["errors"][0].startswith("Row 3: merchant_name")
    assert payload["message"] == "Successfully imported data. 1 records processed. 1 error(s) occurred."

    merchant = db_session.scalar(select(DimMerchant).where(DimMerchant.keyword_code == "KOPI1"))
    cluster = db_session.get(DimCluster, merchant.cluster_id)
    rule = db_session.scalar(select(DimRule).where(DimRule.rule_merchant == merchant.merchant_key))
    assert cluster.branch == "Surabaya"
    assert cluster.region == "Jawa Timur"
    assert (rule.point_redeem, rule.start_period, rule.end_period) == (10, date(2024, 1, 1), date(2024, 12, 31))


def test_import_rejects_duplicate_keyword(client: TestClient, dashboard_data) -> None:
    payload = _upload(client, "merchants.csv", MERCHANT_CSV.encode("utf-8")).json()

    assert payload["inserted"] == 0
    assert "Merchant with keyword code 'KOPI1' already exists" in payload["errors"]


def test_import_transactions_uses_covering_rule(client: TestClient, db_session: Session) -> None:
    merchant = seed_merchant(db_session, keyword="KOPI1")
    rule = seed_rule(db_session, merchant, start=date(2024, 1, 1), end=date(2024, 12, 31), point_redeem=10)

    payload = _upload(client, "transactions.csv", TRANSACTION_CSV.encode("utf-8")).json()

    assert payload["inserted"] == 2
    assert payload["errors"] == []
    transactions = db_session.scalars(select(FactTransaction).order_by(FactTransaction.transaction_at)).all()
    assert [tx.rule_key for tx in transactions] == [rule.rule_key, rule.rule_key]
    assert [tx.status for tx in transactions] == [TransactionStatus.SUCCESS, TransactionStatus.FAILED]
    assert transactions[0].qty == 2
    assert transactions[0].point_redeem == 10
    assert transactions[1].transaction_at == datetime(2024, 3, 5, 11, 30)


def test_import_transactions_creates_rule_when_missing(client: TestClient, db_session: Session) -> None:
    merchant = seed_merchant(db_session, keyword="KOPI1")

    payload = _upload(client, "trans_march.csv", TRANSACTION_CSV.encode("utf-8")).json()

    assert payload["inserted"] == 2
    rules = db_session.scalars(select(DimRule).where(DimRule.rule_merchant == merchant.merchant_key)).all()
    assert len(rules) == 1
    assert rules[0].start_period == date(2024, 3, 5)
    assert rules[0].end_period == date(2024, 3, 5) + timedelta(days=365)
    assert rules[0].point_redeem == 0
    assert rules[0].created_at.tzinfo is None
    assert abs(rules[0].created_at - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(minutes=5)


def test_import_transactions_for_unknown_merchant(client: TestClient) -> None:
    payload = _upload(client, "transactions.csv", TRANSACTION_CSV.encode("utf-8")).json()

    assert payload["inserted"] == 0
    assert payload["errors"] == ["Merchant with keyword 'KOPI1' does not exist in the database"] * 2


def test_import_unrecognized_name_detects_content(client: TestClient, db_session: Session) -> None:
    seed_merchant(db_session, keyword="KOPI1")

    payload = _upload(client, "upload.csv", TRANSACTION_CSV.encode("utf-8")).json()

    assert payload["inserted"] == 2
    assert db_session.scalar(select(func.count()).select_from(FactTransaction)) == 2


def test_import_zip_archive(client: TestClient, db_session: Session) -> None:
    content = _zip(
        {
            "merchant.csv": MERCHANT_CSV,
            "transactions.csv": TRANSACTION_CSV,
            "__MACOSX/._merchant.csv": "junk",
            "notes.txt": "ignored",
            "trans_empty.csv": "timestamp,keyword,msisdn,status\n",
        }
    )

    payload = _upload(client, "batch.zip", content).json()

    assert payload["inserted"] == 3
    assert payload["errors"][0].startswith("merchant.csv: Row 3:")
    assert payload["errors"][1] == "trans_empty.csv: CSV must contain headers and at least one data row"
    assert len(payload["errors"]) == 2
    assert db_session.scalar(select(func.count()).select_from(FactTransaction)) == 2


def test_import_rejects_unsupported_extension(client: TestClient) -> None:
    response = _upload(client, "merchants.txt", MERCHANT_CSV.encode("utf-8"))

    assert response.status_code == 400
    assert response.json() == {"detail": "Unsupported file format. Please upload a CSV or ZIP file."}


def test_import_rejects_corrupt_zip(client: TestClient) -> None:
    response = _upload(client, "batch.zip", b"not a zip")

    assert response.status_code == 400
    assert response.json() == {"detail": "Could not read ZIP archive."}


def test_import_rejects_csv_without_required_headers(client: TestClient) -> None:
    response = _upload(client, "merchants.csv", b"name,code\nKopi,KOPI1\n")

    assert response.status_code == 400
    assert response.json() == {"detail": "Missing required header: uniq_merchant, merchant_name, keyword"}
