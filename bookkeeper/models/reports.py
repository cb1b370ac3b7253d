"""
Report Models

Each generator returns one of these. Besides the data, every report can
describe itself as key figures and tables, which is all the PDF and CSV
renderers need to know about it.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from bookkeeper.models.base import utc_now


ZERO = Decimal("0")


def format_currency(amount: Decimal) -> str:
    amount = Decimal(amount).quantize(Decimal("0.01"))
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def _date(value: Optional[dt.date]) -> str:
    return value.isoformat() if value else ""


class ReportType(str, Enum):
    MONTHLY_SUMMARY = "monthly_summary"
    CATEGORY_BREAKDOWN = "category_breakdown"
    PAYEE_YTD = "payee_ytd"
    VENDOR_PAYMENTS = "vendor_payments"
    FORM_1099 = "form_1099"
    TAX_SUMMARY = "tax_summary"


class ReportTable(BaseModel):
    title: str
    columns: list[str]
    rows: list[list[str]] = Field(default_factory=list)


class Report(BaseModel):
    """Fields shared by every report."""

    report_type: ReportType
    title: str
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    company_id: Optional[UUID] = None
    generated_at: dt.datetime = Field(default_factory=utc_now)

    @property
    def period_label(self) -> str:
        if self.period_start and self.period_end:
            return f"{self.period_start.isoformat()} to {self.period_end.isoformat()}"
        if self.period_start:
            return f"From {self.period_start.isoformat()}"
        if self.period_end:
            return f"Through {self.period_end.isoformat()}"
        return "All dates"

    @property
    def record_count(self) -> int:
        return 0

    def key_figures(self) -> list[tuple[str, str]]:
        return []

    def tables(self) -> list[ReportTable]:
        return []


# =============================================================================
# MONTHLY SUMMARY
# =============================================================================

class MonthBucket(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    label: str
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO
    count: int = 0
    income_categories: dict[str, Decimal] = Field(default_factory=dict)
    expense_categories: dict[str, Decimal] = Field(default_factory=dict)


class MonthlySummary(Report):
    report_type: ReportType = ReportType.MONTHLY_SUMMARY
    title: str = "Monthly Summary"
    months: list[MonthBucket] = Field(default_factory=list)
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_income: Decimal = ZERO
    total_transactions: int = 0
    income_categories: dict[str, Decimal] = Field(default_factory=dict)
    expense_categories: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def record_count(self) -> int:
        return self.total_transactions

    def key_figures(self) -> list[tuple[str, str]]:
        return [
            ("Total Income", format_currency(self.total_income)),
            ("Total Expenses", format_currency(self.total_expenses)),
            ("Net Income", format_currency(self.net_income)),
            ("Transactions", str(self.total_transactions)),
        ]

    def tables(self) -> list[ReportTable]:
        months = ReportTable(
            title="By Month",
            columns=["Month", "Income", "Expenses", "Net", "Count"],
            rows=[
                [m.label, format_currency(m.income), format_currency(m.expenses),
                 format_currency(m.net), str(m.count)]
                for m in self.months
            ],
        )
        expenses = ReportTable(
            title="Expenses by Category",
            columns=["Category", "Amount"],
            rows=[[c, format_currency(a)] for c, a in self.expense_categories.items()],
        )
        income = ReportTable(
            title="Income by Category",
            columns=["Category", "Amount"],
            rows=[[c, format_currency(a)] for c, a in self.income_categories.items()],
        )
        return [months, income, expenses]


# =============================================================================
# CATEGORY BREAKDOWN
# =============================================================================

class CategoryLine(BaseModel):
    category: str
    type: str = Field(..., description="income, expense or transfer")
    total: Decimal = ZERO
    count: int = 0
    percent: Decimal = Field(default=ZERO, description="Share of the total for its type")


class CategoryBreakdown(Report):
    report_type: ReportType = ReportType.CATEGORY_BREAKDOWN
    title: str = "Category Breakdown"
    income: list[CategoryLine] = Field(default_factory=list)
    expenses: list[CategoryLine] = Field(default_factory=list)
    transfers: list[CategoryLine] = Field(default_factory=list)
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_transfers: Decimal = ZERO

    @property
    def record_count(self) -> int:
        return sum(line.count for line in self.income + self.expenses + self.transfers)

    def key_figures(self) -> list[tuple[str, str]]:
        return [
            ("Total Income", format_currency(self.total_income)),
            ("Total Expenses", format_currency(self.total_expenses)),
            ("Net", format_currency(self.total_income - self.total_expenses)),
        ]

    def tables(self) -> list[ReportTable]:
        columns = ["Category", "Amount", "Count", "Percent"]
        return [
            ReportTable(
                title=title,
                columns=columns,
                rows=[
                    [line.category, format_currency(line.total), str(line.count), f"{line.percent}%"]
                    for line in lines
                ],
            )
            for title, lines in (
                ("Income", self.income),
                ("Expenses", self.expenses),
                ("Transfers", self.transfers),
            )
            if lines
        ]


# =============================================================================
# PAYEES AND VENDORS
# =============================================================================

class PayeeStatus(str, Enum):
    OK = "ok"
    APPROACHING_THRESHOLD = "approaching_threshold"
    REQUIRES_1099 = "requires_1099"
    MISSING_TAX_ID = "missing_tax_id"


class PayeeYTDLine(BaseModel):
    payee_id: Optional[UUID] = None
    payee_name: str
    payee_type: str = "unknown"
    is_contractor: bool = False
    tax_id: Optional[str] = None
    ytd_total: Decimal = ZERO
    transaction_count: int = 0
    first_payment_date: Optional[dt.date] = None
    last_payment_date: Optional[dt.date] = None
    last_payment_amount: Optional[Decimal] = None
    monthly: dict[str, Decimal] = Field(default_factory=dict)
    quarterly: dict[str, Decimal] = Field(default_factory=dict)
    status: PayeeStatus = PayeeStatus.OK
    status_message: str = ""


class PayeeYTD(Report):
    report_type: ReportType = ReportType.PAYEE_YTD
    title: str = "Payee Year-to-Date"
    tax_year: int
    threshold: Decimal
    warning_threshold: Decimal
    payees: list[PayeeYTDLine] = Field(default_factory=list)
    total_paid: Decimal = ZERO
    contractor_total: Decimal = ZERO
    requiring_1099_count: int = 0
    approaching_1099_count: int = 0
    missing_tax_id_count: int = 0

    @property
    def record_count(self) -> int:
        return len(self.payees)

    def key_figures(self) -> list[tuple[str, str]]:
        return [
            ("Tax Year", str(self.tax_year)),
            ("Total Paid", format_currency(self.total_paid)),
            ("Paid to Contractors", format_currency(self.contractor_total)),
            ("Requiring 1099", str(self.requiring_1099_count)),
            ("Approaching Threshold", str(self.approaching_1099_count)),
            ("Missing Tax ID", str(self.missing_tax_id_count)),
        ]

    def tables(self) -> list[ReportTable]:
        return [ReportTable(
            title="Payees",
            columns=["Payee", "Type", "YTD Total", "Count", "Last Payment", "Status"],
            rows=[
                [p.payee_name, p.payee_type, format_currency(p.ytd_total),
                 str(p.transaction_count), _date(p.last_payment_date), p.status_message or p.status.value]
                for p in self.payees
            ],
        )]


class VendorPaymentLine(BaseModel):
    date: dt.date
    description: str
    amount: Decimal
    category: Optional[str] = None
    payment_method: Optional[str] = None
    check_number: Optional[str] = None


class VendorPayments(BaseModel):
    vendor_id: Optional[UUID] = None
    vendor_name: str
    total_paid: Decimal = ZERO
    transaction_count: int = 0
    primary_category: Optional[str] = None
    average_payment: Decimal = ZERO
    first_payment_date: Optional[dt.date] = None
    last_payment_date: Optional[dt.date] = None
    categories: dict[str, Decimal] = Field(default_factory=dict)
    payment_methods: dict[str, Decimal] = Field(default_factory=dict)
    transactions: list[VendorPaymentLine] = Field(default_factory=list)


class VendorPaymentSummary(Report):
    report_type: ReportType = ReportType.VENDOR_PAYMENTS
    title: str = "Vendor Payments"
    vendors: list[VendorPayments] = Field(default_factory=list)
    total_payments: Decimal = ZERO
    total_transactions: int = 0

    @property
    def record_count(self) -> int:
        return self.total_transactions

    def key_figures(self) -> list[tuple[str, str]]:
        figures = [
            ("Vendors", str(len(self.vendors))),
            ("Total Payments", format_currency(self.total_payments)),
            ("Transactions", str(self.total_transactions)),
        ]
        if self.vendors:
            figures.append(("Top Vendor", self.vendors[0].vendor_name))
        return figures

    def tables(self) -> list[ReportTable]:
        summary = ReportTable(
            title="Vendors",
            columns=["Vendor", "Total Paid", "Count", "Average", "Primary Category"],
            rows=[
                [v.vendor_name, format_currency(v.total_paid), str(v.transaction_count),
                 format_currency(v.average_payment), v.primary_category or ""]
                for v in self.vendors
            ],
        )
        detail = ReportTable(
            title="Payments",
            columns=["Vendor", "Date", "Description", "Amount", "Category"],
            rows=[
                [v.vendor_name, _date(t.date), t.description, format_currency(t.amount), t.category or ""]
                for v in self.vendors
                for t in v.transactions
            ],
        )
        return [summary, detail]


class Form1099Recipient(BaseModel):
    payee_id: Optional[UUID] = None
    payee_name: str
    business_name: Optional[str] = None
    tax_id: Optional[str] = None
    total_paid: Decimal = ZERO
    transaction_count: int = 0
    categories: list[str] = Field(default_factory=list)
    meets_threshold: bool = False
    missing_tax_id: bool = False


class Form1099Summary(Report):
    report_type: ReportType = ReportType.FORM_1099
    title: str = "Form 1099-NEC Summary"
    tax_year: int
    threshold: Decimal
    over_threshold: list[Form1099Recipient] = Field(default_factory=list)
    under_threshold: list[Form1099Recipient] = Field(default_factory=list)
    total_contractor_payments: Decimal = ZERO

    @property
    def total_recipients(self) -> int:
        return len(self.over_threshold)

    @property
    def total_payees(self) -> int:
        return len(self.over_threshold) + len(self.under_threshold)

    @property
    def missing_tax_id_count(self) -> int:
        return sum(1 for r in self.over_threshold if r.missing_tax_id)

    @property
    def record_count(self) -> int:
        return self.total_payees

    def key_figures(self) -> list[tuple[str, str]]:
        return [
            ("1099-NEC Threshold", format_currency(self.threshold)),
            ("Recipients Requiring 1099", str(self.total_recipients)),
            ("Total Contractor Payments", format_currency(self.total_contractor_payments)),
            ("Payees Missing Tax ID", str(self.missing_tax_id_count)),
        ]

    def tables(self) -> list[ReportTable]:
        columns = ["Payee", "Tax ID", "Count", "Total Paid"]

        def rows(recipients: list[Form1099Recipient]) -> list[list[str]]:
            return [
                [r.payee_name, "MISSING" if r.missing_tax_id else (r.tax_id or ""),
                 str(r.transaction_count), format_currency(r.total_paid)]
                for r in recipients
            ]

        return [
            ReportTable(title="Recipients Requiring 1099-NEC", columns=columns, rows=rows(self.over_threshold)),
            ReportTable(title="Under Threshold", columns=columns, rows=rows(self.under_threshold)),
        ]


# =============================================================================
# TAX SUMMARY
# =============================================================================

class ScheduleCCategory(BaseModel):
    category: str
    line: str
    description: str = ""
    amount: Decimal = ZERO
    transaction_count: int = 0
    special_form: Optional[str] = None


class ScheduleCLine(BaseModel):
    line: str
    categories: list[ScheduleCCategory] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((c.amount for c in self.categories), ZERO)


class LaborPayee(BaseModel):
    payee: str
    amount: Decimal = ZERO
    transaction_count: int = 0
    requires_form: bool = False


class LaborPayments(BaseModel):
    line: str
    line_description: str
    total: Decimal = ZERO
    payees: list[LaborPayee] = Field(default_factory=list)
    note: str = ""


class SpecialReporting(BaseModel):
    category: str
    line: str
    amount: Decimal
    requirement: str


class TaxSummary(Report):
    report_type: ReportType = ReportType.TAX_SUMMARY
    title: str = "Schedule C Tax Summary"
    tax_year: int
    total_deductible_expenses: Decimal = ZERO
    total_income: Decimal = ZERO
    total_transactions: int = 0
    quarterly: dict[str, Decimal] = Field(default_factory=dict)
    schedule_c: list[ScheduleCLine] = Field(default_factory=list)
    contractors: LaborPayments
    wages: LaborPayments
    special_reporting: list[SpecialReporting] = Field(default_factory=list)

    @property
    def contractors_requiring_1099(self) -> int:
        return sum(1 for p in self.contractors.payees if p.requires_form)

    @property
    def record_count(self) -> int:
        return self.total_transactions

    def key_figures(self) -> list[tuple[str, str]]:
        figures = [
            ("Gross Receipts", format_currency(self.total_income)),
            ("Total Deductible Expenses", format_currency(self.total_deductible_expenses)),
            ("Deductible Transactions", str(self.total_transactions)),
            ("Contractor Payments (Line 11)", format_currency(self.contractors.total)),
            ("Wage Payments (Line 26)", format_currency(self.wages.total)),
            ("Contractors Requiring 1099-NEC", str(self.contractors_requiring_1099)),
        ]
        figures.extend((quarter, format_currency(amount)) for quarter, amount in self.quarterly.items())
        return figures

    def tables(self) -> list[ReportTable]:
        tables = [ReportTable(
            title="Schedule C Expenses by Line",
            columns=["Line", "Category", "Amount", "Count"],
            rows=[
                [line.line, c.category, format_currency(c.amount), str(c.transaction_count)]
                for line in self.schedule_c
                for c in line.categories
            ],
        )]
        for labor in (self.contractors, self.wages):
            if labor.payees:
                tables.append(ReportTable(
                    title=f"Line {labor.line}: {labor.line_description}",
                    columns=["Payee", "Amount", "Count"],
                    rows=[[p.payee, format_currency(p.amount), str(p.transaction_count)] for p in labor.payees],
                ))
        if self.special_reporting:
            tables.append(ReportTable(
                title="Special Reporting Requirements",
                columns=["Category", "Line", "Amount", "Requirement"],
                rows=[
                    [s.category, s.line, format_currency(s.amount), s.requirement]
                    for s in self.special_reporting
                ],
            ))
        return tables
