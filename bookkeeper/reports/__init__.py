"""Report generators, renderers and the report service."""

from bookkeeper.reports.base import BaseReportGenerator
from bookkeeper.reports.payees import Form1099Report, PayeeYTDReport, VendorPaymentReport
from bookkeeper.reports.render import render_csv, render_pdf
from bookkeeper.reports.service import RenderedReport, ReportService
from bookkeeper.reports.summary import CategoryBreakdownReport, MonthlySummaryReport
from bookkeeper.reports.tax import SCHEDULE_C_LINES, TaxSummaryReport

__all__ = [
    "BaseReportGenerator",
    "CategoryBreakdownReport",
    "Form1099Report",
    "MonthlySummaryReport",
    "PayeeYTDReport",
    "RenderedReport",
    "ReportService",
    "SCHEDULE_C_LINES",
    "TaxSummaryReport",
    "VendorPaymentReport",
    "render_csv",
    "render_pdf",
]
