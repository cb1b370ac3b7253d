"""
Transaction Query Execution

DESIGN DECISION: Filtering and sorting run in Python over loaded
Transaction models, not in storage. Storage only supports equality
filters; date ranges, amount bands, text search and multi-key sorts are
done here so every backend behaves identically.

The executor is pure: it never reads or writes storage itself.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional

from bookkeeper.models.categories import IRSCategory
from bookkeeper.models.query import (
    QueryResult,
    SortField,
    TransactionFilter,
    TransactionSort,
)
from bookkeeper.models.transaction import Transaction


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


GROUP_KEYS: dict[str, Callable[[Transaction], str]] = {
    "category": lambda t: t.category or IRSCategory.UNCATEGORIZED.value,
    "payee": lambda t: t.payee or t.vendor_name or "Unassigned",
    "month": lambda t: t.date.strftime("%Y-%m"),
    "company": lambda t: t.company_name or "Unassigned",
}


class TransactionQueryExecutor:
    """
    Applies a TransactionFilter and TransactionSort to transactions.

    GUARANTEES:
    - total_count is the number of matches before pagination
    - None values always sort last, whatever the direction
    """

    def execute(
        self,
        records: list[Transaction],
        filters: Optional[TransactionFilter] = None,
        sort: Optional[TransactionSort] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> QueryResult:
        filters = filters or TransactionFilter()
        sort = sort or TransactionSort()

        try:
            matched = [t for t in records if self.matches(t, filters)]
            ordered = self.sort(matched, sort)
        except (TypeError, ValueError) as e:
            return QueryResult(
                success=False,
                error_message=str(e),
                query_description=f"Query failed: {e}",
            )

        page = ordered[offset:]
        if limit is not None:
            page = page[:limit]

        return QueryResult(
            success=True,
            total_count=len(matched),
            result_count=len(page),
            results=page,
            query_description=self.describe(filters),
        )

    def matches(self, txn: Transaction, f: TransactionFilter) -> bool:
        if f.date_from and txn.date < f.date_from:
            return False
        if f.date_to and txn.date > f.date_to:
            return False
        if f.type and txn.type != f.type:
            return False
        if f.category and txn.category != _label(f.category):
            return False
        if f.categories:
            wanted = {_label(c) for c in f.categories}
            if txn.category not in wanted:
                return False

        for field in (
            "payee_id", "vendor_id", "company_id", "income_source_id",
            "csv_import_id", "statement_id", "payment_method",
        ):
            expected = getattr(f, field)
            if expected is not None and getattr(txn, field) != expected:
                return False

        if f.needs_review is not None and txn.needs_review != f.needs_review:
            return False
        if f.min_amount is not None and txn.absolute_amount < f.min_amount:
            return False
        if f.max_amount is not None and txn.absolute_amount > f.max_amount:
            return False
        if f.search:
            term = f.search.lower()
            haystack = " ".join(
                v for v in (txn.description, txn.payee, txn.vendor_name, txn.notes) if v
            ).lower()
            if term not in haystack:
                return False
        if f.uncategorized_only and txn.category not in (
            None, IRSCategory.UNCATEGORIZED.value
        ):
            return False
        if f.unassigned_payee_only and (txn.payee_id or txn.vendor_id):
            return False
        if not f.include_split_children and txn.parent_transaction_id is not None:
            return False
        return True

    def sort(self, records: list[Transaction], sort: TransactionSort) -> list[Transaction]:
        key = _sort_key(sort.field)
        present = [t for t in records if key(t) is not None]
        missing = [t for t in records if key(t) is None]
        present.sort(key=key, reverse=sort.descending)
        return present + missing

    def group_totals(self, records: list[Transaction], key: str) -> dict[str, Decimal]:
        """Sum signed amounts by category, payee, month or company."""
        if key not in GROUP_KEYS:
            raise QueryExecutionError(f"Cannot group by {key}")
        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for txn in records:
            totals[GROUP_KEYS[key](txn)] += txn.amount
        return dict(totals)

    def describe(self, f: TransactionFilter) -> str:
        parts = ["Transactions"]
        if f.type:
            parts.append(f"type: {f.type.value}")
        if f.category:
            parts.append(f"category: {_label(f.category)}")
        if f.search:
            parts.append(f"matching '{f.search}'")
        date_range = _date_range_str(f.date_from, f.date_to)
        if date_range:
            parts.append(date_range)
        return " | ".join(parts)


def _label(category: str) -> str:
    member = IRSCategory.__members__.get(category)
    return member.value if member else category


def _sort_key(field: SortField) -> Callable[[Transaction], Any]:
    if field == SortField.AMOUNT:
        return lambda t: t.amount
    if field == SortField.DESCRIPTION:
        return lambda t: t.description.lower()
    if field == SortField.CATEGORY:
        return lambda t: t.category.lower() if t.category else None
    if field == SortField.PAYEE:
        return lambda t: (t.payee or t.vendor_name or "").lower() or None
    if field == SortField.CREATED_AT:
        return lambda t: t.created_at
    return lambda t: t.date


def _date_range_str(date_from: Optional[date], date_to: Optional[date]) -> str:
    if date_from and date_to:
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
    if date_from:
        return f"from {date_from.strftime('%d %b %Y')}"
    if date_to:
        return f"until {date_to.strftime('%d %b %Y')}"
    return ""
