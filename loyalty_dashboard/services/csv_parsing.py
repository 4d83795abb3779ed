"""CSV parsing and row validation for merchant and transaction uploads."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from loyalty_dashboard.models import TransactionStatus

MERCHANT_REQUIRED_HEADERS = ("uniq_merchant", "merchant_name", "keyword")
MERCHANT_OPTIONAL_HEADERS = (
    "category",
    "cluster",
    "branch",
    "region",
    "point_redeem",
    "start_period",
    "end_period",
)
TRANSACTION_REQUIRED_HEADERS = ("timestamp", "keyword", "msisdn", "status")
TRANSACTION_OPTIONAL_HEADERS = ("quantity",)

# "Sun Nov 02 2025 00:24:55 GMT+0700 (WIB)"
JS_DATE_PATTERN = re.compile(
    r"^\w{3}\s+(?P<month>\w{3})\s+(?P<day>\d{1,2})\s+(?P<year>\d{4})\s+"
    r"(?P<time>\d{2}:\d{2}:\d{2})(?:\s+GMT(?P<offset>[+-]\d{4}))?"
)

RowT = TypeVar("RowT", bound=BaseModel)


class CSVHeaderError(ValueError):
    """The file as a whole cannot be read as the requested kind of data."""


def parse_timestamp(raw: str) -> datetime:
    """Parse ISO-8601 or browser ``Date.toString()`` output into naive UTC."""

    text = raw.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        match = JS_DATE_PATTERN.match(text)
        if match is None:
            raise ValueError(f"Unrecognized timestamp '{raw}'") from None
        parsed = datetime.strptime(
            f"{match['month']} {match['day']} {match['year']} {match['time']}",
            "%b %d %Y %H:%M:%S",
        )
        offset = match["offset"]
        if offset:
            sign = -1 if offset[0] == "-" else 1
            delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[3:5]))
            parsed = parsed.replace(tzinfo=timezone(sign * delta))

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class MerchantImportRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    uniq_merchant: str = Field(min_length=1)
    merchant_name: str = Field(min_length=1)
    keyword: str = Field(min_length=1)
    category: str = "General"
    cluster: str = "General"
    branch: str = "General"
    region: str = "Jawa Timur"
    point_redeem: int | None = Field(default=None, ge=0)
    start_period: date | None = None
    end_period: date | None = None

    @property
    def has_rule(self) -> bool:
        return self.point_redeem is not None or self.start_period is not None or self.end_period is not None

    @model_validator(mode="after")
    def check_period(self) -> MerchantImportRow:
        if self.start_period and self.end_period and self.end_period < self.start_period:
            raise ValueError("end_period must not be before start_period")
        return self


class TransactionImportRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    timestamp: datetime
    keyword: str = Field(min_length=1)
    msisdn: str = Field(pattern=r"^\d{8,20}$")
    status: TransactionStatus
    quantity: int = Field(default=1, ge=1)

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp_value(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: object) -> TransactionStatus:
        if str(value).strip().lower() in {"fail", "failed"}:
            return TransactionStatus.FAILED
        return TransactionStatus.SUCCESS


@dataclass(slots=True)
class ParsedRows(Generic[RowT]):
    rows: list[RowT] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def sniff_delimiter(header_line: str) -> str:
    return ";" if header_line.count(";") >= header_line.count(",") and ";" in header_line else ","


def read_table(text: str) -> tuple[list[str], list[tuple[int, list[str]]]]:
    """Split CSV text into normalized headers and ``(line number, cells)`` records."""

    lines = text.lstrip("\ufeff").strip().splitlines()
    if not lines:
        raise CSVHeaderError("CSV must contain headers and at least one data row")

    reader = csv.reader(io.StringIO("\n".join(lines)), delimiter=sniff_delimiter(lines[0]))
    records = [(index, cells) for index, cells in enumerate(reader, start=1) if any(cell.strip() for cell in cells)]
    if len(records) < 2:
        raise CSVHeaderError("CSV must contain headers and at least one data row")

    headers = [cell.strip().lower() for cell in records[0][1]]
    return headers, records[1:]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return ", ".join(parts)


def _parse(
    text: str,
    model: type[RowT],
    required: tuple[str, ...],
    optional: tuple[str, ...],
) -> ParsedRows[RowT]:
    headers, records = read_table(text)
    missing = [name for name in required if name not in headers]
    if missing:
        raise CSVHeaderError(f"Missing required header: {', '.join(missing)}")

    columns = {name: headers.index(name) for name in (*required, *optional) if name in headers}
    parsed: ParsedRows[RowT] = ParsedRows()
    for line_number, cells in records:
        values = {}
        for name, index in columns.items():
            cell = cells[index].strip() if index < len(cells) else ""
            # Blank optional cells fall back to model defaults.
            if cell or name in required:
                values[name] = cell
        try:
            parsed.rows.append(model.model_validate(values))
        except ValidationError as exc:
            parsed.errors.append(f"Row {line_number}: {_format_validation_error(exc)}")
    return parsed


def parse_merchant_csv(text: str) -> ParsedRows[MerchantImportRow]:
    return _parse(text, MerchantImportRow, MERCHANT_REQUIRED_HEADERS, MERCHANT_OPTIONAL_HEADERS)


def parse_transaction_csv(text: str) -> ParsedRows[TransactionImportRow]:
    return _parse(text, TransactionImportRow, TRANSACTION_REQUIRED_HEADERS, TRANSACTION_OPTIONAL_HEADERS)
