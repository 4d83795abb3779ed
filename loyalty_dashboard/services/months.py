"""Month token helpers shared by dashboards, filters and repositories.

A month token is a ``YYYY-MM`` string. Month boundaries are plain ``date``
values on day 1; timestamps compared against them are naive UTC datetimes.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")

# Leaves room for the previous month and trailing windows on either side.
MIN_YEAR = 1900
MAX_YEAR = 9998

MONTH_NAMES: dict[str, tuple[str, ...]] = {
    "id": (
        "Januari",
        "Februari",
        "Maret",
        "April",
        "Mei",
        "Juni",
        "Juli",
        "Agustus",
        "September",
        "Oktober",
        "November",
        "Desember",
    ),
    "en": tuple(calendar.month_name[index] for index in range(1, 13)),
}


@dataclass(frozen=True, slots=True)
class MonthRange:
    start: date
    end: date
    previous_start: date
    previous_end: date


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def is_month_token(value: str | None) -> bool:
    if not value or not MONTH_PATTERN.match(value):
        return False
    return MIN_YEAR <= int(value[:4]) <= MAX_YEAR and 1 <= int(value[5:7]) <= 12


def current_month(today: date | None = None) -> str:
    return format_month(today or utc_today())


def parse_month(raw: str | None, *, today: date | None = None) -> str:
    """Return ``raw`` when it is a valid month token, else the current UTC month."""

    if raw is not None:
        raw = raw.strip()
    if is_month_token(raw):
        return raw
    return current_month(today)


def month_to_date(month: str) -> date:
    year, month_index = (int(part) for part in month.split("-"))
    return date(year, month_index, 1)


def add_months(value: date, offset: int) -> date:
    """Shift a date by whole months, landing on the first day of the target month."""

    index = value.year * 12 + (value.month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def format_month(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_label(month: str, locale: str = "id") -> str:
    start = month_to_date(month)
    names = MONTH_NAMES.get(locale, MONTH_NAMES["en"])
    return f"{names[start.month - 1]} {start.year}"


def month_range(month: str) -> MonthRange:
    start = month_to_date(month)
    return MonthRange(
        start=start,
        end=add_months(start, 1),
        previous_start=add_months(start, -1),
        previous_end=start,
    )


def days_in_month(month_start: date) -> int:
    return calendar.monthrange(month_start.year, month_start.month)[1]


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = date(start_month.year, start_month.month, 1)
    end = date(end_month.year, end_month.month, 1)
    months: list[date] = []
    while current <= end:
        months.append(current)
        current = add_months(current, 1)
    return months


def trailing_months(end_month: date, count: int) -> list[date]:
    """``count`` month starts ending with (and including) ``end_month``."""

    if count <= 0:
        return []
    return month_sequence(add_months(end_month, -(count - 1)), end_month)


def to_timestamp(value: date) -> datetime:
    return datetime.combine(value, time.min)
