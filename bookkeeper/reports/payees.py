"""
Payee reports: year-to-date totals, vendor payment history and the
Form 1099-NEC summary.

All three only look at expense transactions. Payments are grouped by the
linked payee/vendor id when there is one, falling back to the free-text
name and finally to the description.
"""

from collections import Counter, defaultdict
from decimal import Decimal
from typing import Any, Optional, Sequence

from bookkeeper.models.categories import IRSCategory
from bookkeeper.models.entities import Payee, PayeeType
from bookkeeper.models.reports import (
    Form1099Recipient,
    Form1099Summary,
    PayeeStatus,
    PayeeYTD,
    PayeeYTDLine,
    ReportType,
    VendorPaymentLine,
    VendorPayments,
    VendorPaymentSummary,
)
from bookkeeper.models.transaction import Transaction
from bookkeeper.reports.base import ZERO, BaseReportGenerator


FORM_1099_THRESHOLD = Decimal("600")
FORM_1099_WARNING = Decimal("500")


def _payee_lookup(payees: Sequence[Payee]) -> dict[str, Payee]:
    return {str(p.id): p for p in payees}


class _PayeeReportMixin:
    @staticmethod
    def payee_record(txn: Transaction, lookup: dict[str, Payee]) -> Optional[Payee]:
        return lookup.get(str(txn.payee_id)) if txn.payee_id else None

    @staticmethod
    def is_contractor(txn: Transaction, payee: Optional[Payee]) -> bool:
        return (
            txn.is_contractor_payment
            or (payee is not None and payee.type == PayeeType.CONTRACTOR)
            or txn.category == IRSCategory.CONTRACT_LABOR.value
        )


# =============================================================================
# PAYEE YEAR-TO-DATE
# =============================================================================

class PayeeYTDReport(_PayeeReportMixin, BaseReportGenerator):
    """YTD totals per payee with 1099 threshold warnings."""

    report_type = ReportType.PAYEE_YTD

    def __init__(
        self,
        threshold: Decimal = FORM_1099_THRESHOLD,
        warning_threshold: Decimal = FORM_1099_WARNING,
    ):
        self.threshold = Decimal(threshold)
        self.warning_threshold = Decimal(warning_threshold)

    def _status(self, line: PayeeYTDLine) -> tuple[PayeeStatus, str]:
        if not line.is_contractor:
            return PayeeStatus.OK, ""
        if line.ytd_total >= self.threshold:
            if not line.tax_id:
                return PayeeStatus.MISSING_TAX_ID, "Requires 1099 but missing Tax ID"
            return PayeeStatus.REQUIRES_1099, f"Requires 1099-NEC (paid {self.format_currency(line.ytd_total)})"
        if line.ytd_total >= self.warning_threshold:
            remaining = self.format_currency(self.threshold - line.ytd_total)
            return PayeeStatus.APPROACHING_THRESHOLD, f"Approaching 1099 threshold ({remaining} remaining)"
        return PayeeStatus.OK, ""

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> PayeeYTD:
        tax_year = self.tax_year(start, end)
        lookup = _payee_lookup(payees)
        lines: dict[str, PayeeYTDLine] = {}

        for txn in sorted(transactions, key=lambda t: t.date):
            if txn.date.year != tax_year or not self.is_expense(txn):
                continue
            record = self.payee_record(txn, lookup)
            key = str(txn.payee_id) if txn.payee_id else (txn.payee or txn.description)
            line = lines.get(key)
            if line is None:
                line = PayeeYTDLine(
                    payee_id=txn.payee_id,
                    payee_name=record.name if record else (txn.payee or txn.description),
                    payee_type=record.type.value if record else (
                        PayeeType.CONTRACTOR.value if txn.is_contractor_payment else "unknown"
                    ),
                    tax_id=record.tax_id if record else None,
                    quarterly={"Q1": ZERO, "Q2": ZERO, "Q3": ZERO, "Q4": ZERO},
                )
                lines[key] = line

            amount = txn.absolute_amount
            line.is_contractor = line.is_contractor or self.is_contractor(txn, record)
            line.ytd_total += amount
            line.transaction_count += 1
            month = f"{txn.date.year:04d}-{txn.date.month:02d}"
            line.monthly[month] = line.monthly.get(month, ZERO) + amount
            line.quarterly[f"Q{(txn.date.month - 1) // 3 + 1}"] += amount
            if line.first_payment_date is None:
                line.first_payment_date = txn.date
            line.last_payment_date = txn.date
            line.last_payment_amount = amount

        payee_lines = sorted(lines.values(), key=lambda line: line.ytd_total, reverse=True)
        for line in payee_lines:
            line.status, line.status_message = self._status(line)

        contractors = [line for line in payee_lines if line.is_contractor]
        return PayeeYTD(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            tax_year=tax_year,
            threshold=self.threshold,
            warning_threshold=self.warning_threshold,
            payees=payee_lines,
            total_paid=sum((line.ytd_total for line in payee_lines), ZERO),
            contractor_total=sum((line.ytd_total for line in contractors), ZERO),
            requiring_1099_count=sum(1 for line in contractors if line.ytd_total >= self.threshold),
            approaching_1099_count=sum(
                1 for line in contractors
                if line.status == PayeeStatus.APPROACHING_THRESHOLD
            ),
            missing_tax_id_count=sum(1 for line in contractors if line.status == PayeeStatus.MISSING_TAX_ID),
        )


# =============================================================================
# VENDOR PAYMENTS
# =============================================================================

class VendorPaymentReport(BaseReportGenerator):
    """Every payment grouped by vendor, largest vendor first."""

    report_type = ReportType.VENDOR_PAYMENTS

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> VendorPaymentSummary:
        vendors: dict[str, VendorPayments] = {}
        category_totals: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        method_totals: dict[str, Counter] = defaultdict(Counter)

        in_range = self.filter_by_date_range(transactions, start, end)
        for txn in sorted(in_range, key=lambda t: t.date):
            if not self.is_expense(txn):
                continue
            name = txn.vendor_name or txn.payee or txn.description
            key = str(txn.vendor_id) if txn.vendor_id else name
            vendor = vendors.get(key)
            if vendor is None:
                vendor = VendorPayments(vendor_id=txn.vendor_id, vendor_name=name)
                vendors[key] = vendor

            amount = txn.absolute_amount
            category = self.category_of(txn)
            method = txn.payment_method.value if txn.payment_method else "other"
            vendor.total_paid += amount
            vendor.transaction_count += 1
            category_totals[key][category] += amount
            method_totals[key][method] += amount
            if vendor.first_payment_date is None:
                vendor.first_payment_date = txn.date
            vendor.last_payment_date = txn.date
            vendor.transactions.append(VendorPaymentLine(
                date=txn.date,
                description=txn.description,
                amount=amount,
                category=txn.category,
                payment_method=txn.payment_method.value if txn.payment_method else None,
                check_number=txn.check_number,
            ))

        for key, vendor in vendors.items():
            vendor.categories = self.sorted_amounts(category_totals[key])
            vendor.payment_methods = self.sorted_amounts(dict(method_totals[key]))
            vendor.primary_category = next(iter(vendor.categories), None)
            vendor.average_payment = self.money(vendor.total_paid / vendor.transaction_count)

        ordered = sorted(vendors.values(), key=lambda v: v.total_paid, reverse=True)
        return VendorPaymentSummary(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            vendors=ordered,
            total_payments=sum((v.total_paid for v in ordered), ZERO),
            total_transactions=sum(v.transaction_count for v in ordered),
        )


# =============================================================================
# FORM 1099-NEC
# =============================================================================

class Form1099Report(_PayeeReportMixin, BaseReportGenerator):
    """
    Contractor payments that need a 1099-NEC.

    A payment counts when the transaction is flagged as a contractor
    payment, its payee is a contractor, or it is categorized as Contract
    Labor. Recipients at or over the threshold without a tax id are
    flagged.
    """

    report_type = ReportType.FORM_1099

    def __init__(self, threshold: Decimal = FORM_1099_THRESHOLD):
        self.threshold = Decimal(threshold)

    def generate_data(
        self,
        transactions: Sequence[Transaction],
        payees: Sequence[Payee] = (),
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> Form1099Summary:
        lookup = _payee_lookup(payees)
        recipients: dict[str, Form1099Recipient] = {}

        for txn in self.filter_by_date_range(transactions, start, end):
            if not self.is_expense(txn):
                continue
            record = self.payee_record(txn, lookup)
            if not self.is_contractor(txn, record):
                continue

            key = str(txn.payee_id) if txn.payee_id else (txn.payee or "Unknown Payee")
            recipient = recipients.get(key)
            if recipient is None:
                recipient = Form1099Recipient(
                    payee_id=txn.payee_id,
                    payee_name=record.name if record else (txn.payee or "Unknown"),
                    business_name=record.business_name if record else None,
                    tax_id=record.tax_id if record else None,
                )
                recipients[key] = recipient
            recipient.total_paid += txn.absolute_amount
            recipient.transaction_count += 1
            category = self.category_of(txn)
            if category not in recipient.categories:
                recipient.categories.append(category)

        over: list[Form1099Recipient] = []
        under: list[Form1099Recipient] = []
        for recipient in recipients.values():
            recipient.meets_threshold = recipient.total_paid >= self.threshold
            recipient.missing_tax_id = recipient.meets_threshold and not recipient.tax_id
            (over if recipient.meets_threshold else under).append(recipient)
        over.sort(key=lambda r: r.total_paid, reverse=True)
        under.sort(key=lambda r: r.total_paid, reverse=True)

        return Form1099Summary(
            period_start=self.parse_date(start),
            period_end=self.parse_date(end),
            company_id=company_id,
            tax_year=self.tax_year(start, end),
            threshold=self.threshold,
            over_threshold=over,
            under_threshold=under,
            total_contractor_payments=sum((r.total_paid for r in recipients.values()), ZERO),
        )
