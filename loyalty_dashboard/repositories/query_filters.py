"""Composable optional predicates for dashboard queries."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import and_, true
from sqlalchemy.sql.elements import ColumnElement

from loyalty_dashboard.services.filters import ScopeFilters
from loyalty_dashboard.services.months import to_timestamp


class ScopePredicates:
    """Named predicates built from normalized filters.

    Each method returns a list of conditions; an absent filter contributes an
    empty list, so it never narrows the query.
    """

    def __init__(self, filters: ScopeFilters) -> None:
        self.filters = filters

    def category_in(self, column) -> list[ColumnElement[bool]]:
        if not self.filters.categories:
            return []
        return [column.in_(self.filters.categories)]

    def branch_in(self, column) -> list[ColumnElement[bool]]:
        if not self.filters.branches:
            return []
        return [column.in_(self.filters.branches)]

    def merchant_in(self, column) -> list[ColumnElement[bool]]:
        if not self.filters.merchants:
            return []
        return [column.in_(self.filters.merchants)]

    def dimensions(self, *, category, branch, merchant) -> list[ColumnElement[bool]]:
        return [
            *self.category_in(category),
            *self.branch_in(branch),
            *self.merchant_in(merchant),
        ]

    @staticmethod
    def timestamp_period(column, start: date, end: date) -> list[ColumnElement[bool]]:
        return [column >= to_timestamp(start), column < to_timestamp(end)]

    @staticmethod
    def rule_overlaps(start_column, end_column, start: date, end: date) -> list[ColumnElement[bool]]:
        # Rule validity is inclusive on both ends; the period is [start, end).
        return [start_column < end, end_column >= start]

    @staticmethod
    def date_window(column, lower: date, upper: date | None) -> list[ColumnElement[bool]]:
        conditions = [column >= lower]
        if upper is not None:
            conditions.append(column < upper)
        return conditions


def combine(*groups: Iterable[ColumnElement[bool]]) -> ColumnElement[bool]:
    conditions = [condition for group in groups for condition in group]
    if not conditions:
        return true()
    return and_(*conditions)
