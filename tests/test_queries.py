"""Tests for transaction filtering, sorting and grouping."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from bookkeeper.models.categories import IRSCategory, TransactionType
from bookkeeper.models.query import SortField, TransactionFilter, TransactionSort
from bookkeeper.queries import QueryExecutionError, TransactionQueryExecutor

from tests.test_reports import make


@pytest.fixture
def executor():
    return TransactionQueryExecutor()


@pytest.fixture
def ledger():
    return {
        "invoice": make("Invoice 101", "1000.00", date(2024, 1, 5), "GROSS_RECEIPTS", payee="Acme"),
        "fuel": make("SHELL OIL 57444", "-45.20", date(2024, 1, 10), "CAR_TRUCK_EXPENSES", needs_review=True),
        "lumber": make("HOME DEPOT", "-310.00", date(2024, 2, 2), "SUPPLIES", notes="Lumber for deck"),
        "mystery": make("POS 4412", "-12.00", date(2024, 2, 20)),
        "part": make(
            "HOME DEPOT (part 2)", "-100.00", date(2024, 2, 2), "SUPPLIES",
            parent_transaction_id=uuid4(),
        ),
    }


def run(executor, ledger, **kwargs):
    names = {id(t): name for name, t in ledger.items()}
    result = executor.execute(list(ledger.values()), **kwargs)
    assert result.success
    return [names[id(t)] for t in result.results], result


class TestFiltering:
    """Tests for TransactionFilter handling."""

    def test_no_filter_returns_everything_newest_first(self, executor, ledger):
        """Test the default sort is date descending."""
        names, result = run(executor, ledger)
        assert result.total_count == 5
        assert names[0] == "mystery"
        assert names[-1] == "invoice"

    def test_date_range(self, executor, ledger):
        """Test both ends of a date range are inclusive."""
        names, result = run(
            executor, ledger,
            filters=TransactionFilter(date_from=date(2024, 1, 5), date_to=date(2024, 1, 31)),
        )
        assert names == ["fuel", "invoice"]
        assert result.query_description == "Transactions | from 05 Jan 2024 to 31 Jan 2024"

    def test_category_by_key_or_label(self, executor, ledger):
        """Test a category filter accepts the key or the label."""
        by_key, _ = run(executor, ledger, filters=TransactionFilter(category="SUPPLIES"))
        by_label, _ = run(executor, ledger, filters=TransactionFilter(category=IRSCategory.SUPPLIES.value))
        assert sorted(by_key) == ["lumber", "part"]
        assert sorted(by_label) == sorted(by_key)

    def test_exclude_split_children(self, executor, ledger):
        """Test split parts can be hidden."""
        names, _ = run(
            executor, ledger,
            filters=TransactionFilter(category="SUPPLIES", include_split_children=False),
        )
        assert names == ["lumber"]

    def test_amount_band_uses_absolute_value(self, executor, ledger):
        """Test min and max amounts ignore the sign."""
        names, _ = run(
            executor, ledger,
            filters=TransactionFilter(min_amount=Decimal("40"), max_amount=Decimal("400")),
        )
        assert sorted(names) == ["fuel", "lumber", "part"]

    def test_search_covers_notes(self, executor, ledger):
        """Test text search is case-insensitive and includes notes."""
        names, result = run(executor, ledger, filters=TransactionFilter(search="lumber"))
        assert names == ["lumber"]
        assert "matching 'lumber'" in result.query_description

    def test_flags(self, executor, ledger):
        """Test the review and uncategorized switches."""
        review, _ = run(executor, ledger, filters=TransactionFilter(needs_review=True))
        uncategorized, _ = run(executor, ledger, filters=TransactionFilter(uncategorized_only=True))
        income, result = run(executor, ledger, filters=TransactionFilter(type=TransactionType.INCOME))

        assert review == ["fuel"]
        assert uncategorized == ["mystery"]
        assert income == ["invoice"]
        assert result.query_description == "Transactions | type: income"

    def test_inverted_range_is_rejected(self):
        """Test a filter cannot end before it starts."""
        with pytest.raises(ValidationError):
            TransactionFilter(date_from=date(2024, 2, 1), date_to=date(2024, 1, 1))


class TestSortingAndPaging:
    """Tests for sorting and pagination."""

    def test_sort_by_amount(self, executor, ledger):
        """Test amounts sort by signed value."""
        names, _ = run(executor, ledger, sort=TransactionSort(field=SortField.AMOUNT, descending=False))
        assert names == ["lumber", "part", "fuel", "mystery", "invoice"]

    def test_missing_values_sort_last(self, executor, ledger):
        """Test uncategorized rows stay at the end in either direction."""
        for descending in (True, False):
            names, _ = run(
                executor, ledger,
                sort=TransactionSort(field=SortField.CATEGORY, descending=descending),
            )
            assert names[-1] == "mystery"

    def test_pagination_keeps_total(self, executor, ledger):
        """Test total_count counts matches before the page is cut."""
        names, result = run(executor, ledger, limit=2, offset=1)
        assert result.total_count == 5
        assert result.result_count == 2
        assert len(names) == 2


class TestGrouping:
    """Tests for group_totals."""

    def test_totals_by_month(self, executor, ledger):
        """Test signed amounts are summed per month."""
        totals = executor.group_totals(list(ledger.values()), "month")
        assert totals == {"2024-01": Decimal("954.80"), "2024-02": Decimal("-422.00")}

    def test_totals_by_category(self, executor, ledger):
        """Test uncategorized rows are grouped under Uncategorized."""
        totals = executor.group_totals(list(ledger.values()), "category")
        assert totals[IRSCategory.UNCATEGORIZED.value] == Decimal("-12.00")
        assert totals[IRSCategory.SUPPLIES.value] == Decimal("-410.00")

    def test_unknown_group(self, executor, ledger):
        """Test grouping by an unsupported key fails."""
        with pytest.raises(QueryExecutionError):
            executor.group_totals(list(ledger.values()), "weekday")
