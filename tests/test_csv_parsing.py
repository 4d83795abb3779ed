from __future__ import annotations

from datetime import date, datetime

import pytest

from loyalty_dashboard.models import TransactionStatus
from loyalty_dashboard.services.csv_parsing import (
    CSVHeaderError,
    parse_merchant_csv,
    parse_timestamp,
    parse_transaction_csv,
    sniff_delimiter,
)


def test_sniff_delimiter() -> None:
    assert sniff_delimiter("uniq_merchant;merchant_name;keyword") == ";"
    assert sniff_delimiter("uniq_merchant,merchant_name,keyword") == ","


def test_parse_timestamp_iso_with_offset_is_converted_to_utc() -> None:
    assert parse_timestamp("2024-03-05T10:00:00+07:00") == datetime(2024, 3, 5, 3, 0, 0)
    assert parse_timestamp("2024-03-05T10:00:00Z") == datetime(2024, 3, 5, 10, 0, 0)
    assert parse_timestamp("2024-03-05 10:00:00") == datetime(2024, 3, 5, 10, 0, 0)


def test_parse_timestamp_browser_date_string() -> None:
    parsed = parse_timestamp("Sun Nov 02 2025 00:24:55 GMT+0700 (Western Indonesia Time)")

    assert parsed == datetime(2025, 11, 1, 17, 24, 55)


def test_parse_timestamp_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_merchant_csv_semicolon_with_defaults_and_rule() -> None:
    text = (
        "\ufeffUniq_Merchant;Merchant_Name;Keyword;Category;Point_Redeem;Start_Period;End_Period\n"
        "U1;Kopi Satu;KOPI1;Food;10;2024-01-01;2024-12-31\n"
        "U2;Baju Satu;BAJU1;;;;\n"
    )

    parsed = parse_merchant_csv(text)

    assert parsed.errors == []
    first, second = parsed.rows
    assert first.keyword == "KOPI1"
    assert first.has_rule
    assert first.start_period == date(2024, 1, 1)
    assert second.category == "General"
    assert second.region == "Jawa Timur"
    assert not second.has_rule


def test_merchant_csv_collects_row_errors() -> None:
    text = (
        "uniq_merchant,merchant_name,keyword,start_period,end_period\n"
        "U1,Kopi Satu,KOPI1,,\n"
        "U2,,BAJU1,,\n"
        "U3,Spa,SPA1,2024-05-01,2024-04-01\n"
    )

    parsed = parse_merchant_csv(text)

    assert [row.keyword for row in parsed.rows] == ["KOPI1"]
    assert len(parsed.errors) == 2
    assert parsed.errors[0].startswith("Row 3: merchant_name")
    assert parsed.errors[1].startswith("Row 4:")


def test_merchant_csv_missing_header_raises() -> None:
    with pytest.raises(CSVHeaderError, match="keyword"):
        parse_merchant_csv("uniq_merchant,merchant_name\nU1,Kopi\n")


def test_csv_without_data_rows_raises() -> None:
    with pytest.raises(CSVHeaderError):
        parse_transaction_csv("timestamp,keyword,msisdn,status\n")
    with pytest.raises(CSVHeaderError):
        parse_transaction_csv("")


def test_transaction_csv_statuses_and_quantity() -> None:
    text = (
        "timestamp,keyword,msisdn,status,quantity\n"
        "2024-03-05T10:00:00,KOPI1,081234567890,success,2\n"
        "2024-03-05T11:00:00,KOPI1,081234567890,FAILED,\n"
        "2024-03-05T12:00:00,KOPI1,081234567890,Fail,1\n"
    )

    parsed = parse_transaction_csv(text)

    assert parsed.errors == []
    assert [row.status for row in parsed.rows] == [
        TransactionStatus.SUCCESS,
        TransactionStatus.FAILED,
        TransactionStatus.FAILED,
    ]
    assert [row.quantity for row in parsed.rows] == [2, 1, 1]


def test_transaction_csv_rejects_bad_msisdn_and_timestamp() -> None:
    text = (
        "timestamp;keyword;msisdn;status\n"
        "2024-03-05T10:00:00;KOPI1;08-123;success\n"
        "not a date;KOPI1;081234567890;success\n"
        "2024-03-05T10:00:00;KOPI1;081234567890;success\n"
    )

    parsed = parse_transaction_csv(text)

    assert len(parsed.rows) == 1
    assert parsed.errors[0].startswith("Row 2: msisdn")
    assert parsed.errors[1].startswith("Row 3: timestamp")
