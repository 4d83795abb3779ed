"""Normalization of multi-value dashboard filter parameters."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from loyalty_dashboard.services.months import current_month, is_month_token

ALL_TOKEN = "all"


@dataclass(frozen=True, slots=True)
class MerchantOption:
    value: str
    label: str


@dataclass(frozen=True, slots=True)
class FilterOptions:
    categories: list[str] = field(default_factory=list)
    branches: list[str] = field(default_factory=list)
    merchants: list[MerchantOption] = field(default_factory=list)

    @property
    def merchant_values(self) -> list[str]:
        return [option.value for option in self.merchants]


@dataclass(frozen=True, slots=True)
class RawFilters:
    """Filter parameters exactly as received, before validation."""

    months: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    branches: list[str] = field(default_factory=list)
    merchants: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FilterSelection:
    months: list[str]
    categories: list[str]
    branches: list[str]
    merchants: list[str]

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "months": list(self.months),
            "categories": list(self.categories),
            "branches": list(self.branches),
            "merchants": list(self.merchants),
        }


@dataclass(frozen=True, slots=True)
class ScopeFilters:
    """Repository-level restrictions; an empty list means no predicate."""

    categories: list[str] = field(default_factory=list)
    branches: list[str] = field(default_factory=list)
    merchants: list[str] = field(default_factory=list)


def parse_multi_param(values: Iterable[str] | str | None) -> list[str]:
    """Split repeated and comma-joined values, dropping blanks, ``all`` and duplicates."""

    if values is None:
        return []
    if isinstance(values, str):
        values = [values]

    seen: set[str] = set()
    parsed: list[str] = []
    for value in values:
        if value is None:
            continue
        for item in str(value).split(","):
            token = item.strip()
            if not token or token.lower() == ALL_TOKEN or token in seen:
                continue
            seen.add(token)
            parsed.append(token)
    return parsed


def normalize_dimension(values: Iterable[str] | str | None, known: Sequence[str]) -> list[str]:
    """Keep only known values; fall back to the full known set when nothing survives."""

    known_set = set(known)
    selected = [value for value in parse_multi_param(values) if value in known_set]
    if not selected:
        return list(dict.fromkeys(known))
    return selected


def normalize_months(
    values: Iterable[str] | str | None,
    available: Sequence[str] | None = None,
    *,
    today: date | None = None,
    cross_check: bool = True,
) -> list[str]:
    """Validate month tokens, optionally against the months that have data.

    ``available`` is expected newest first. With ``cross_check`` only tokens
    found in ``available`` survive. Without any surviving token the most
    recent available month is used, or the current UTC month when the store
    holds no data at all.
    """

    months = [value for value in parse_multi_param(values) if is_month_token(value)]
    if available is not None and cross_check:
        available_set = set(available)
        months = [value for value in months if value in available_set]
    if months:
        return months
    if available:
        return [available[0]]
    return [current_month(today)]


def normalize_filters(
    raw: RawFilters,
    options: FilterOptions,
    available_months: Sequence[str] | None = None,
    *,
    cross_check_months: bool = True,
    today: date | None = None,
) -> FilterSelection:
    return FilterSelection(
        months=normalize_months(
            raw.months,
            available_months,
            today=today,
            cross_check=cross_check_months,
        ),
        categories=normalize_dimension(raw.categories, options.categories),
        branches=normalize_dimension(raw.branches, options.branches),
        merchants=normalize_dimension(raw.merchants, options.merchant_values),
    )


def _restriction(selected: Sequence[str], known: Sequence[str]) -> list[str]:
    if set(selected) >= set(known):
        return []
    return list(selected)


def scope_filters(selection: FilterSelection, options: FilterOptions) -> ScopeFilters:
    return ScopeFilters(
        categories=_restriction(selection.categories, options.categories),
        branches=_restriction(selection.branches, options.branches),
        merchants=_restriction(selection.merchants, options.merchant_values),
    )
