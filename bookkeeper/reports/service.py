"""
Report service.

Loads a user's transactions (optionally for one company), runs the
requested generator and renders the result.
"""

from decimal import Decimal
from typing import Any, NamedTuple, Optional

import structlog

from bookkeeper.audit.logger import AuditLogger
from bookkeeper.models.reports import Report, ReportType
from bookkeeper.reports.base import BaseReportGenerator
from bookkeeper.reports.payees import (
    FORM_1099_THRESHOLD,
    Form1099Report,
    PayeeYTDReport,
    VendorPaymentReport,
)
from bookkeeper.reports.render import render_csv, render_pdf, report_file_name
from bookkeeper.reports.summary import CategoryBreakdownReport, MonthlySummaryReport
from bookkeeper.reports.tax import TaxSummaryReport
from bookkeeper.services.base import ServiceValidationError, parse_uuid
from bookkeeper.services.payees import PayeeService
from bookkeeper.services.transactions import TransactionService


logger = structlog.get_logger(__name__)

FORMATS = {
    "json": "application/json",
    "pdf": "application/pdf",
    "csv": "text/csv",
}


class RenderedReport(NamedTuple):
    report: Report
    content: bytes
    file_name: str
    media_type: str


class ReportService:
    """Generates reports from stored transactions."""

    def __init__(
        self,
        transactions: TransactionService,
        payees: Optional[PayeeService] = None,
        audit_logger: Optional[AuditLogger] = None,
        form_1099_threshold: Decimal = FORM_1099_THRESHOLD,
    ):
        self._transactions = transactions
        self._payees = payees
        self._audit_logger = audit_logger
        threshold = Decimal(str(form_1099_threshold))
        self._generators: dict[ReportType, BaseReportGenerator] = {
            ReportType.MONTHLY_SUMMARY: MonthlySummaryReport(),
            ReportType.CATEGORY_BREAKDOWN: CategoryBreakdownReport(),
            ReportType.PAYEE_YTD: PayeeYTDReport(threshold=threshold),
            ReportType.VENDOR_PAYMENTS: VendorPaymentReport(),
            ReportType.FORM_1099: Form1099Report(threshold=threshold),
            ReportType.TAX_SUMMARY: TaxSummaryReport(threshold=threshold),
        }

    def generator(self, report_type: Any) -> BaseReportGenerator:
        try:
            return self._generators[ReportType(report_type)]
        except ValueError:
            raise ServiceValidationError(f"Unknown report type: {report_type}")

    async def build(
        self,
        user_id: str,
        report_type: Any,
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
    ) -> Report:
        """Run a generator without rendering."""
        generator = self.generator(report_type)
        filters = {"company_id": str(parse_uuid(company_id, "company ID"))} if company_id else {}
        transactions = await self._transactions.load_all(user_id, **filters)
        payees = await self._payees.list(user_id) if self._payees else []
        return generator.generate_data(
            transactions,
            payees=payees,
            start=start,
            end=end,
            company_id=parse_uuid(company_id, "company ID") if company_id else None,
        )

    async def generate(
        self,
        user_id: str,
        report_type: Any,
        start: Any = None,
        end: Any = None,
        company_id: Any = None,
        fmt: str = "pdf",
    ) -> RenderedReport:
        fmt = (fmt or "pdf").lower()
        if fmt not in FORMATS:
            raise ServiceValidationError(f"Unsupported report format: {fmt}")

        report = await self.build(user_id, report_type, start, end, company_id)
        if fmt == "pdf":
            content = render_pdf(report)
        elif fmt == "csv":
            content = render_csv(report)
        else:
            content = report.model_dump_json().encode("utf-8")

        logger.info(
            "report_generated",
            user_id=user_id,
            report_type=report.report_type.value,
            fmt=fmt,
            records=report.record_count,
            size=len(content),
        )
        if self._audit_logger:
            await self._audit_logger.log_report_generated(
                user_id=user_id,
                report_type=report.report_type.value,
                fmt=fmt,
                record_count=report.record_count,
            )
        return RenderedReport(
            report=report,
            content=content,
            file_name=report_file_name(report, fmt),
            media_type=FORMATS[fmt],
        )
