"""
Base Report Generator

DESIGN DECISION: Generators are pure functions of the transactions (and
payees) handed to them. Loading, company scoping and rendering happen in
ReportService, so every generator can be tested with plain lists.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

import structlog

from bookkeeper.models.categories import IRSCategory, TransactionType, is_income_category
from bookkeeper.models.entities import Payee
from bookkeeper.models.reports import Report, ReportType, format_currency
from bookkeeper.models.transaction import Transaction


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


class BaseReportGenerator(ABC):
    """Shared helpers for report generators."""

    report_type: ReportType

    @staticmethod
    def parse_date(value: Any) -> Optional[date]:
        """Accept date, datetime or ISO strings. Anything else is None."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            logger.warning("report_date_unparseable", value=str(value))
            return None

    @staticmethod
    def is_income(txn: Transaction) -> bool:
        return txn.type == TransactionType.INCOME or is_income_category(txn.category)

    @staticmethod
    def is_transfer(txn: Transaction) -> bool:
        return txn.type == TransactionType.TRANSFER and not is_income_category(txn.category)

    @classmethod
    def is_expense(cls, txn: Transaction) -> bool:
        return not cls.is_income(txn) and not cls.is_transfer(txn)

    @staticmethod
    def category_of(txn: Transaction) -> str:
        return txn.category or IRSCategory.UNCATEGORIZED.value

    @classmethod
    def filter_by_date_range(
        cls,
        transactions: Iterable[Transaction],
        start: Any = None,
        end: Any = None,
    ) -> list[Transaction]:
        """Inclusive on both ends. Missing bounds are open."""
        start_date = cls.parse_date(start)
        end_date = cls.parse_date(end)
        return [
            txn for txn in transactions
            if (start_date is None or txn.date >= start_date)
            and (end_date is None or txn.date <= end_date)
        ]

    @staticmethod
    def format_currency(amount: Decimal) -> str:
        return format_currency(amount)

    @staticmethod
    def money(amount: Decimal) -> Decimal:
        return Decimal(amount).quantize(CENT)

    @classmethod
    def tax_year(cls, start: Any = None, end: Any = None) -> int:
        for value in (start, end):
            parsed = cls.parse_date(value)
            if parsed:
                return parsed.year
        return date.today().year

    @staticmethod
    def sorted_amounts(amounts: dict[str, Decimal]) -> dict[str, Decimal]:
        """Largest first."""
        return dict(sorted(amounts.items(), key=lambda item: item[1], reverse=True))

    @abstractmethod
    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> Report:
        """Build the report model for the given transactions."""
