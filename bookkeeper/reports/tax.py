"""
Schedule C tax summary.

Deductible expenses are grouped by the Schedule C line their category
reports on. Owner and personal categories are never deductible. Contract
Labor (line 11) and wages (line 26) are broken down by payee because they
drive 1099-NEC and W-2 filing.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Any, NamedTuple, Optional, Sequence

from bookkeeper.models.categories import PERSONAL_CATEGORIES, IRSCategory
from bookkeeper.models.entities import Payee
from bookkeeper.models.reports import (
    LaborPayee,
    LaborPayments,
    ReportType,
    ScheduleCCategory,
    ScheduleCLine,
    SpecialReporting,
    TaxSummary,
)
from bookkeeper.models.transaction import Transaction
from bookkeeper.reports.base import ZERO, BaseReportGenerator
from bookkeeper.reports.payees import FORM_1099_THRESHOLD


class LineInfo(NamedTuple):
    line: str
    description: str
    special_form: Optional[str] = None


C = IRSCategory

SCHEDULE_C_LINES: dict[str, LineInfo] = {
    C.ADVERTISING.value: LineInfo("8", "Advertising"),
    C.CAR_TRUCK_EXPENSES.value: LineInfo("9", "Car and truck expenses", "Part IV or Form 4562 vehicle information"),
    C.COMMISSIONS_FEES.value: LineInfo("10", "Commissions and fees"),
    C.CONTRACT_LABOR.value: LineInfo("11", "Contract labor", "Form 1099-NEC for payees paid $600 or more"),
    C.DEPLETION.value: LineInfo("12", "Depletion"),
    C.DEPRECIATION.value: LineInfo("13", "Depreciation and section 179", "Form 4562"),
    C.EMPLOYEE_BENEFIT_PROGRAMS.value: LineInfo("14", "Employee benefit programs"),
    C.HEALTH_INSURANCE.value: LineInfo("14", "Employee benefit programs"),
    C.INSURANCE_OTHER.value: LineInfo("15", "Insurance (other than health)"),
    C.WORKER_COMPENSATION.value: LineInfo("15", "Insurance (other than health)"),
    C.INTEREST_MORTGAGE.value: LineInfo("16a", "Mortgage interest", "Form 1098"),
    C.INTEREST_OTHER.value: LineInfo("16b", "Other interest"),
    C.LEGAL_PROFESSIONAL.value: LineInfo("17", "Legal and professional services"),
    C.OFFICE_EXPENSES.value: LineInfo("18", "Office expense"),
    C.PENSION_PROFIT_SHARING.value: LineInfo("19", "Pension and profit-sharing plans", "Form 5500"),
    C.RETIREMENT_CONTRIBUTIONS.value: LineInfo("19", "Pension and profit-sharing plans"),
    C.RENT_LEASE_VEHICLES.value: LineInfo("20a", "Rent or lease: vehicles, machinery, equipment"),
    C.RENT_LEASE_OTHER.value: LineInfo("20b", "Rent or lease: other business property"),
    C.REPAIRS_MAINTENANCE.value: LineInfo("21", "Repairs and maintenance"),
    C.SUPPLIES.value: LineInfo("22", "Supplies"),
    C.TAXES_LICENSES.value: LineInfo("23", "Taxes and licenses"),
    C.PAYROLL_TAXES.value: LineInfo("23", "Taxes and licenses", "Form 941"),
    C.TRAVEL.value: LineInfo("24a", "Travel"),
    C.MEALS_ENTERTAINMENT.value: LineInfo("24b", "Deductible meals", "Generally limited to 50%"),
    C.UTILITIES.value: LineInfo("25", "Utilities"),
    C.WAGES.value: LineInfo("26", "Wages (less employment credits)", "Form W-2 for every employee"),
    C.EMPLOYEE_WAGES.value: LineInfo("26", "Wages (less employment credits)", "Form W-2 for every employee"),
    C.OTHER_EXPENSES.value: LineInfo("27a", "Other expenses"),
    C.SOFTWARE_SUBSCRIPTIONS.value: LineInfo("27a", "Other expenses"),
    C.WEB_HOSTING.value: LineInfo("27a", "Other expenses"),
    C.BANK_FEES.value: LineInfo("27a", "Other expenses"),
    C.TRAINING_EDUCATION.value: LineInfo("27a", "Other expenses"),
    C.DUES_MEMBERSHIPS.value: LineInfo("27a", "Other expenses"),
    C.TOOLS_EQUIPMENT.value: LineInfo("27a", "Other expenses"),
    C.OTHER_COSTS.value: LineInfo("27a", "Other expenses"),
    C.COST_OF_GOODS_SOLD.value: LineInfo("4", "Cost of goods sold (Part III)"),
    C.MATERIALS_SUPPLIES.value: LineInfo("4", "Cost of goods sold (Part III)"),
}

WAGE_CATEGORIES = frozenset({C.WAGES.value, C.EMPLOYEE_WAGES.value})


def _line_sort_key(line: str) -> tuple[int, str]:
    digits = "".join(ch for ch in line if ch.isdigit())
    return (int(digits) if digits else 999, line)


class TaxSummaryReport(BaseReportGenerator):
    """Expenses mapped onto Schedule C lines for one tax year."""

    report_type = ReportType.TAX_SUMMARY

    def __init__(self, threshold: Decimal = FORM_1099_THRESHOLD):
        self.threshold = Decimal(threshold)

    @staticmethod
    def is_deductible(txn: Transaction) -> bool:
        return txn.category in SCHEDULE_C_LINES and txn.category not in PERSONAL_CATEGORIES

    def _labor(
        self,
        transactions: list[Transaction],
        line: str,
        description: str,
        note: str,
        requires_form,
    ) -> LaborPayments:
        by_payee: dict[str, LaborPayee] = {}
        for txn in transactions:
            name = txn.payee or txn.vendor_name or "Unknown"
            entry = by_payee.setdefault(name, LaborPayee(payee=name))
            entry.amount += txn.absolute_amount
            entry.transaction_count += 1
        payees = sorted(by_payee.values(), key=lambda p: p.amount, reverse=True)
        for entry in payees:
            entry.requires_form = requires_form(entry)
        return LaborPayments(
            line=line,
            line_description=description,
            total=sum((p.amount for p in payees), ZERO),
            payees=payees,
            note=note,
        )

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> TaxSummary:
        in_range = self.filter_by_date_range(transactions, start, end)
        deductible = [t for t in in_range if self.is_expense(t) and self.is_deductible(t)]
        total_income = sum((t.absolute_amount for t in in_range if self.is_income(t)), ZERO)

        amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[str, int] = defaultdict(int)
        quarterly = {"Q1": ZERO, "Q2": ZERO, "Q3": ZERO, "Q4": ZERO}
        for txn in deductible:
            amounts[txn.category] += txn.absolute_amount
            counts[txn.category] += 1
            quarterly[f"Q{(txn.date.month - 1) // 3 + 1}"] += txn.absolute_amount

        lines: dict[str, ScheduleCLine] = {}
        special: list[SpecialReporting] = []
        for category, amount in amounts.items():
            info = SCHEDULE_C_LINES[category]
            lines.setdefault(info.line, ScheduleCLine(line=info.line)).categories.append(ScheduleCCategory(
                category=category,
                line=info.line,
                description=info.description,
                amount=self.money(amount),
                transaction_count=counts[category],
                special_form=info.special_form,
            ))
            if info.special_form:
                special.append(SpecialReporting(
                    category=category,
                    line=info.line,
                    amount=self.money(amount),
                    requirement=info.special_form,
                ))
        schedule_c = [lines[key] for key in sorted(lines, key=_line_sort_key)]
        for line in schedule_c:
            line.categories.sort(key=lambda c: c.amount, reverse=True)
        special.sort(key=lambda s: _line_sort_key(s.line))

        contractors = self._labor(
            [t for t in deductible if t.category == C.CONTRACT_LABOR.value],
            "11",
            "Contract Labor",
            f"Issue Form 1099-NEC for payments of {self.format_currency(self.threshold)} or more",
            lambda p: p.amount >= self.threshold,
        )
        wages = self._labor(
            [t for t in deductible if t.category in WAGE_CATEGORIES],
            "26",
            "Wages (Less Employment Credits)",
            "Issue Form W-2 for every employee",
            lambda p: True,
        )

        return TaxSummary(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            tax_year=self.tax_year(start, end),
            total_deductible_expenses=self.money(sum((t.absolute_amount for t in deductible), ZERO)),
            total_income=self.money(total_income),
            total_transactions=len(deductible),
            quarterly=quarterly,
            schedule_c=schedule_c,
            contractors=contractors,
            wages=wages,
            special_reporting=special,
        )
