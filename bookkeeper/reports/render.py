"""
Report rendering.

PDFs are drawn with fpdf2, CSVs are written through pandas. Both work off
Report.key_figures() and Report.tables(), so new report types render
without touching this module.
"""

from datetime import datetime, timezone
from typing import Any

import pandas as pd
from fpdf import FPDF
from fpdf.enums import XPos, YPos

from bookkeeper.models.reports import Report, ReportTable


_REPLACEMENTS = {
    "—": "-",
    "–": "-",
    "•": "*",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "≥": ">=",
}


def clean_text(value: Any) -> str:
    """Core PDF fonts are latin-1 only."""
    if value is None:
        return ""
    text = str(value)
    for char, replacement in _REPLACEMENTS.items():
        text = text.replace(char, replacement)
    return text.encode("latin-1", errors="replace").decode("latin-1")


class ReportPDF(FPDF):
    """A4 report with a title header and page-numbered footer."""

    FONT = "Helvetica"

    def __init__(self, report: Report):
        super().__init__(format="A4")
        self.report = report
        self.set_auto_page_break(auto=True, margin=15)
        self.set_title(clean_text(report.title))

    def header(self):
        self.set_font(self.FONT, style="B", size=16)
        self.cell(0, 10, clean_text(self.report.title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_font(self.FONT, size=10)
        self.cell(0, 6, clean_text(f"Period: {self.report.period_label}"), align="C",
                  new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.line(self.l_margin, self.get_y() + 2, self.w - self.r_margin, self.get_y() + 2)
        self.ln(6)

    def footer(self):
        self.set_y(-12)
        self.set_font(self.FONT, style="I", size=8)
        generated = self.report.generated_at.strftime("%Y-%m-%d %H:%M UTC")
        self.cell(0, 8, clean_text(f"Generated {generated}    Page {self.page_no()}"), align="C")

    def add_key_figures(self, figures: list[tuple[str, str]]):
        if not figures:
            return
        self.set_font(self.FONT, style="B", size=12)
        self.cell(0, 8, "Summary", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        label_width = self.epw * 0.6
        for label, value in figures:
            self.set_font(self.FONT, size=10)
            self.cell(label_width, 6, clean_text(label))
            self.set_font(self.FONT, style="B", size=10)
            self.cell(0, 6, clean_text(value), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(4)

    def _fit(self, text: str, width: float) -> str:
        while text and self.get_string_width(text) > width - 2:
            text = text[:-1]
        return text

    def add_table(self, table: ReportTable):
        self.set_font(self.FONT, style="B", size=12)
        self.cell(0, 8, clean_text(table.title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        if not table.rows:
            self.set_font(self.FONT, style="I", size=10)
            self.cell(0, 6, "No data for this period.", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            self.ln(4)
            return

        width = self.epw / len(table.columns)
        self.set_font(self.FONT, style="B", size=9)
        self.set_fill_color(230, 230, 230)
        for column in table.columns:
            self.cell(width, 7, self._fit(clean_text(column), width), border=1, fill=True)
        self.ln()

        self.set_font(self.FONT, size=9)
        for row in table.rows:
            for value in row:
                self.cell(width, 6, self._fit(clean_text(value), width), border=1)
            self.ln()
        self.ln(4)


def render_pdf(report: Report) -> bytes:
    pdf = ReportPDF(report)
    pdf.add_page()
    pdf.add_key_figures(report.key_figures())
    for table in report.tables():
        pdf.add_table(table)
    return bytes(pdf.output())


def render_csv(report: Report) -> bytes:
    """
    One CSV with a Section column. The key figures come first, then each
    table in order.
    """
    frames = []
    figures = report.key_figures()
    if figures:
        frame = pd.DataFrame(figures, columns=["Metric", "Value"])
        frame.insert(0, "Section", "Summary")
        frames.append(frame)
    for table in report.tables():
        frame = pd.DataFrame(table.rows, columns=table.columns)
        frame.insert(0, "Section", table.title)
        frames.append(frame)

    if not frames:
        return b""
    combined = pd.concat(frames, ignore_index=True)
    return combined.to_csv(index=False).encode("utf-8")


def report_file_name(report: Report, fmt: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{report.report_type.value}-{stamp}.{fmt}"
