"""Period summaries: month-by-month totals and the category breakdown."""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from bookkeeper.models.entities import Payee
from bookkeeper.models.reports import (
    CategoryBreakdown,
    CategoryLine,
    MonthBucket,
    MonthlySummary,
    ReportType,
)
from bookkeeper.models.transaction import Transaction
from bookkeeper.reports.base import ZERO, BaseReportGenerator


class MonthlySummaryReport(BaseReportGenerator):
    """Income and expenses bucketed by calendar month."""

    report_type = ReportType.MONTHLY_SUMMARY

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> MonthlySummary:
        buckets: dict[str, MonthBucket] = {}
        income_categories: dict[str, Decimal] = defaultdict(lambda: ZERO)
        expense_categories: dict[str, Decimal] = defaultdict(lambda: ZERO)

        for txn in self.filter_by_date_range(transactions, start, end):
            if self.is_transfer(txn):
                continue
            key = f"{txn.date.year:04d}-{txn.date.month:02d}"
            bucket = buckets.get(key)
            if bucket is None:
                bucket = MonthBucket(
                    month=key,
                    label=date(txn.date.year, txn.date.month, 1).strftime("%B %Y"),
                )
                buckets[key] = bucket

            amount = txn.absolute_amount
            category = self.category_of(txn)
            if self.is_income(txn):
                bucket.income += amount
                bucket.income_categories[category] = bucket.income_categories.get(category, ZERO) + amount
                income_categories[category] += amount
            else:
                bucket.expenses += amount
                bucket.expense_categories[category] = bucket.expense_categories.get(category, ZERO) + amount
                expense_categories[category] += amount
            bucket.net = bucket.income - bucket.expenses
            bucket.count += 1

        months = [buckets[key] for key in sorted(buckets)]
        total_income = sum((m.income for m in months), ZERO)
        total_expenses = sum((m.expenses for m in months), ZERO)

        return MonthlySummary(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            months=months,
            total_income=self.money(total_income),
            total_expenses=self.money(total_expenses),
            net_income=self.money(total_income - total_expenses),
            total_transactions=sum(m.count for m in months),
            income_categories=self.sorted_amounts(income_categories),
            expense_categories=self.sorted_amounts(expense_categories),
        )


class CategoryBreakdownReport(BaseReportGenerator):
    """
    Per-category totals, split by income, expense and transfer.

    Percentages are of the total for the same type, so income lines sum to
    100 and expense lines sum to 100 (give or take rounding).
    """

    report_type = ReportType.CATEGORY_BREAKDOWN

    def _kind(self, txn: Transaction) -> str:
        if self.is_income(txn):
            return "income"
        if self.is_transfer(txn):
            return "transfer"
        return "expense"

    def _lines(self, kind: str, totals: dict[str, Decimal], counts: dict[str, int]) -> list[CategoryLine]:
        type_total = sum(totals.values(), ZERO)
        lines = []
        for category, total in totals.items():
            percent = (total / type_total * 100).quantize(Decimal("0.01")) if type_total else ZERO
            lines.append(CategoryLine(
                category=category,
                type=kind,
                total=self.money(total),
                count=counts[category],
                percent=percent,
            ))
        lines.sort(key=lambda line: line.total, reverse=True)
        return lines

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> CategoryBreakdown:
        totals: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

        for txn in self.filter_by_date_range(transactions, start, end):
            kind = self._kind(txn)
            category = self.category_of(txn)
            totals[kind][category] += txn.absolute_amount
            counts[kind][category] += 1

        income = self._lines("income", totals["income"], counts["income"])
        expenses = self._lines("expense", totals["expense"], counts["expense"])
        transfers = self._lines("transfer", totals["transfer"], counts["transfer"])

        return CategoryBreakdown(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            income=income,
            expenses=expenses,
            transfers=transfers,
            total_income=sum((line.total for line in income), ZERO),
            total_expenses=sum((line.total for line in expenses), ZERO),
            total_transfers=sum((line.total for line in transfers), ZERO),
        )
