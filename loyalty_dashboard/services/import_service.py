"""CSV and ZIP ingestion of merchant and transaction records."""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from io import BytesIO
from typing import Literal

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loyalty_dashboard.core.config import get_settings
from loyalty_dashboard.models import DimMerchant, DimRule, FactTransaction
from loyalty_dashboard.repositories.records_repository import RecordsRepository
from loyalty_dashboard.services.csv_parsing import (
    CSVHeaderError,
    MerchantImportRow,
    TransactionImportRow,
    parse_merchant_csv,
    parse_transaction_csv,
)
from loyalty_dashboard.services.months import utc_today

logger = logging.getLogger(__name__)

UNSUPPORTED_FORMAT_DETAIL = "Unsupported file format. Please upload a CSV or ZIP file."

DataKind = Literal["merchant", "transaction"]


class ImportRowError(Exception):
    """A single record could not be stored; the batch continues."""


@dataclass(slots=True)
class ImportSummary:
    inserted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Successfully imported data. {self.inserted} records processed. "
            f"{len(self.errors)} error(s) occurred."
        )

    def merge(self, other: ImportSummary) -> None:
        self.inserted += other.inserted
        self.errors.extend(other.errors)

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "inserted": self.inserted,
            "errors": list(self.errors),
            "message": self.message,
        }


def detect_kind(filename: str) -> DataKind | None:
    name = filename.lower()
    if "master" in name or "merchant" in name:
        return "merchant"
    if "transaction" in name or "trans" in name:
        return "transaction"
    return None


def decode_text(content: bytes) -> str:
    return content.decode("utf-8-sig", errors="replace")


class ImportService:
    """Parses uploads and stores each valid record in its own commit."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = RecordsRepository(db)
        self.settings = get_settings()

    def import_file(self, filename: str | None, content: bytes) -> ImportSummary:
        name = (filename or "").strip()
        lowered = name.lower()
        if lowered.endswith(".zip"):
            entries = self._zip_entries(content)
            in_archive = True
        elif lowered.endswith(".csv"):
            entries = [(name, decode_text(content))]
            in_archive = False
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=UNSUPPORTED_FORMAT_DETAIL)

        summary = ImportSummary()
        for entry_name, text in entries:
            summary.merge(self._import_csv(entry_name, text, in_archive=in_archive))

        logger.info(
            "Imported %s: %d records inserted, %d errors",
            name,
            summary.inserted,
            len(summary.errors),
        )
        return summary

    @staticmethod
    def _zip_entries(content: bytes) -> list[tuple[str, str]]:
        try:
            archive = zipfile.ZipFile(BytesIO(content))
        except zipfile.BadZipFile:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Could not read ZIP archive.",
            ) from None

        entries: list[tuple[str, str]] = []
        with archive:
            for info in archive.infolist():
                if info.is_dir() or not info.filename.lower().endswith(".csv"):
                    continue
                if info.filename.startswith("__MACOSX/"):
                    continue
                entries.append((info.filename, decode_text(archive.read(info))))
        return entries

    def _import_csv(self, name: str, text: str, *, in_archive: bool) -> ImportSummary:
        kind = detect_kind(name)
        prefix = f"{name}: " if in_archive else ""
        try:
            if kind == "merchant":
                summary = self._import_merchants(text)
            elif kind == "transaction":
                summary = self._import_transactions(text)
            else:
                summary = self._import_unknown(name, text)
        except CSVHeaderError as exc:
            if not in_archive:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
            logger.warning("Skipping archive entry %s: %s", name, exc)
            return ImportSummary(errors=[f"{prefix}{exc}"])

        if prefix:
            summary.errors = [f"{prefix}{error}" for error in summary.errors]
        return summary

    def _import_unknown(self, name: str, text: str) -> ImportSummary:
        try:
            return self._import_merchants(text)
        except CSVHeaderError as merchant_error:
            try:
                return self._import_transactions(text)
            except CSVHeaderError as transaction_error:
                raise CSVHeaderError(
                    f"Could not parse {name} as either merchant or transaction data: "
                    f"{merchant_error}, {transaction_error}"
                ) from None

    # ---------- Per-record inserts ----------
    def _store_each(self, rows, store: Callable[[object], None], describe: Callable[[object], str]) -> ImportSummary:
        summary = ImportSummary()
        for row in rows:
            try:
                store(row)
                self.db.commit()
            except ImportRowError as exc:
                self.db.rollback()
                summary.errors.append(str(exc))
                logger.warning("Import row rejected: %s", exc)
                continue
            except SQLAlchemyError:
                self.db.rollback()
                message = f"Failed to insert {describe(row)}."
                summary.errors.append(message)
                logger.warning(message, exc_info=True)
                continue
            summary.inserted += 1
        return summary

    def _import_merchants(self, text: str) -> ImportSummary:
        parsed = parse_merchant_csv(text)
        summary = ImportSummary(errors=list(parsed.errors))
        summary.merge(
            self._store_each(
                parsed.rows,
                self._store_merchant,
                lambda row: f"merchant '{row.merchant_name}'",
            )
        )
        return summary

    def _import_transactions(self, text: str) -> ImportSummary:
        parsed = parse_transaction_csv(text)
        summary = ImportSummary(errors=list(parsed.errors))
        summary.merge(
            self._store_each(
                parsed.rows,
                self._store_transaction,
                lambda row: f"transaction for MSISDN '{row.msisdn}'",
            )
        )
        return summary

    def _store_merchant(self, row: MerchantImportRow) -> None:
        if self.repo.get_merchant_by_keyword(row.keyword) is not None:
            raise ImportRowError(f"Merchant with keyword code '{row.keyword}' already exists")

        category = self.repo.get_or_create_category(row.category)
        cluster = self.repo.get_or_create_cluster(row.cluster, branch=row.branch, region=row.region)
        merchant = self.repo.add_merchant(
            DimMerchant(
                keyword_code=row.keyword,
                merchant_name=row.merchant_name,
                uniq_merchant=row.uniq_merchant,
                cluster_id=cluster.cluster_id,
                category_id=category.category_id,
            )
        )
        if row.has_rule:
            start = row.start_period or utc_today()
            end = row.end_period or start + timedelta(days=self.settings.import_rule_validity_days)
            self.repo.add_rule(
                DimRule(
                    rule_merchant=merchant.merchant_key,
                    point_redeem=row.point_redeem or 0,
                    start_period=start,
                    end_period=max(start, end),
                )
            )

    def _store_transaction(self, row: TransactionImportRow) -> None:
        merchant = self.repo.get_merchant_by_keyword(row.keyword)
        if merchant is None:
            raise ImportRowError(f"Merchant with keyword '{row.keyword}' does not exist in the database")

        transaction_date = row.timestamp.date()
        rule = self.repo.find_rule_for_date(merchant.merchant_key, transaction_date)
        if rule is None:
            rule = self.repo.add_rule(
                DimRule(
                    rule_merchant=merchant.merchant_key,
                    point_redeem=0,
                    start_period=transaction_date,
                    end_period=transaction_date + timedelta(days=self.settings.import_rule_validity_days),
                )
            )

        self.repo.add_transaction(
            FactTransaction(
                transaction_at=row.timestamp,
                rule_key=rule.rule_key,
                merchant_key=merchant.merchant_key,
                status=row.status,
                qty=row.quantity,
                point_redeem=rule.point_redeem,
                msisdn=row.msisdn,
            )
        )
