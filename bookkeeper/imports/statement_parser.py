"""
Chase Statement Parser

Turns the text of a Chase business checking statement into
ParsedTransaction objects.

Statement text comes out of pdfplumber one printed line at a time, but
the layout differs per section:

    DEPOSITS AND ADDITIONS        01/05 Remote Online Deposit 1 $1,250.00
    CHECKS PAID                   533 ^ 01/03 01/03 400.00
    ATM & DEBIT CARD WITHDRAWALS  01/02 Card Purchase 12/29 Shell Oil 5744 Miami FL Card 1819 $38.80
    ELECTRONIC WITHDRAWALS        01/11 Orig CO Name:Home Depot Orig ID:1234 ... $389.20

so each section gets its own line parser, with a generic
"MM/DD description amount" parser as the fallback.

DESIGN DECISION: Amount sanity bounds are deliberately tight. A
mis-split line that glues a reference number onto an amount produces
an absurd value, and dropping it (counted in skipped_lines) is better
than importing it.
"""

import datetime as dt
import io
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

import pdfplumber
import structlog

from bookkeeper.models.categories import (
    IRSCategory,
    PaymentMethod,
    TransactionSource,
    TransactionType,
)
from bookkeeper.models.imports import (
    AccountInfo,
    ParsedTransaction,
    StatementParseResult,
    StatementSummary,
)


logger = structlog.get_logger(__name__)


class StatementParseError(ValueError):
    """The PDF could not be read or held no usable text."""
    pass


def extract_text(pdf_bytes: bytes) -> str:
    """Extract the text of every page, joined by newlines."""
    try:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise StatementParseError(f"Could not read PDF: {e}")

    text = "\n".join(pages).strip()
    if not text:
        raise StatementParseError("PDF contains no extractable text")
    return text


# =============================================================================
# PATTERNS
# =============================================================================

DEPOSITS = "deposits"
CHECKS = "checks"
CARD = "card"
ELECTRONIC = "electronic"
FEES = "fees"

# (section, header, closing total line)
SECTIONS = [
    (DEPOSITS, "DEPOSITS AND ADDITIONS", "Total Deposits and Additions"),
    (CHECKS, "CHECKS PAID", "Total Checks Paid"),
    (CARD, "ATM & DEBIT CARD WITHDRAWALS", "Total ATM & Debit Card Withdrawals"),
    (ELECTRONIC, "ELECTRONIC WITHDRAWALS", "Total Electronic Withdrawals"),
    (FEES, "FEES", "Total Fees"),
]

ACCOUNT_NUMBER = re.compile(r"Account\s+Number[:\s]+(\d+)", re.IGNORECASE)
PERIOD_NUMERIC = re.compile(
    r"Statement\s+Period[:\s]+(\d{1,2}/\d{1,2}/\d{2,4})\s*-\s*(\d{1,2}/\d{1,2}/\d{2,4})",
    re.IGNORECASE,
)
PERIOD_THROUGH = re.compile(
    r"(\w+\s+\d{1,2},\s+\d{4})\s*through\s*(\w+\s+\d{1,2},\s+\d{4})",
    re.IGNORECASE,
)
BEGINNING_BALANCE = re.compile(r"Beginning\s+Balance\s*\$?([\d,]+\.\d{2})", re.IGNORECASE)
ENDING_BALANCE = re.compile(r"Ending\s+Balance\s*\$?([\d,]+\.\d{2})", re.IGNORECASE)

COMPANY_PATTERNS = [
    re.compile(
        r"^([A-Z\s]+(?:INC|LLC|CORP|CORPORATION|COMPANY|CO|LTD|LIMITED|"
        r"CONSTRUCTION|ENTERPRISES|SERVICES|GROUP)\.?),?\s*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^([A-Z\s]+(?:&|AND)\s+[A-Z\s]+(?:INC|LLC|CORP|CONSTRUCTION)\.?),?\s*$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^([A-Z][A-Za-z\s]+(?:CONSTRUCTION|CONTRACTING|BUILDER|BUILDERS|COMPANY)\.?),?\s*$",
        re.IGNORECASE,
    ),
]
COMPANY_SKIP_WORDS = ("Chase", "Statement", "Account", "Period", "Balance", "Page")
COMPANY_HEADER_LINES = 20

DATE_PREFIX = re.compile(r"^(\d{1,2}/\d{1,2})")
DEPOSIT_AMOUNT_DOLLAR = re.compile(r"\s*\$(\d{1,3}(?:,\d{3})*\.?\d{0,2})\s*$")
DEPOSIT_AMOUNT_PLAIN = [
    re.compile(r"\s*(\d{1,3}(?:,\d{3})*\.?\d{0,2})\s*$"),
    re.compile(r"(\d{3,5}\.\d{2})$"),
]
GROUPED_AMOUNT = re.compile(r"^\d{1,3}(?:,\d{3})*\.?\d{0,2}$")
PLAIN_AMOUNT = re.compile(r"^\d{3,4}\.\d{2}$")

CHECK_LINE = re.compile(
    r"(\d+)\s*[^\d\s]?[\^]?\s*(\d{2}/\d{2})(?:\s*(\d{2}/\d{2}))?\s*\$?([\d,]+\.\d{2})"
)
CARD_LINE = re.compile(
    r"^(\d{2}/\d{2})\s*Card Purchase(?:\s+With Pin)?\s*(?:\d{2}/\d{2}\s+)?"
    r"(.+?)\s+[A-Z]{2}\s+Card\s+\d{4}\s*\$?([\d,]+\.\d{2})$"
)
ELECTRONIC_LINE = re.compile(r"(\d{2}/\d{2})\s*Orig CO Name:(.+?)(?:Orig|$)")
LINE_AMOUNT = re.compile(r"\$?([\d,]+\.\d{2})")
LONE_AMOUNT = re.compile(r"^\$?([\d,]+\.\d{2})$")
TRANSACTION_LINE = re.compile(
    r"^([0-9]{1,2}[/\-][0-9]{1,2})\s+(.+?)\s+(\(?[-$]?[\d,]+\.?\d{2}\)?)\s*$"
)

MAX_DEPOSIT = Decimal("50000")
MAX_CHECK = Decimal("100000")
MAX_CARD = Decimal("50000")

KEYWORD_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.3


def _money(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", "").replace("$", "")).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_merchant_name(raw: str) -> str:
    """
    Strip the noise Chase appends to card purchase merchants.

    'Chevron 0202648 Plantation' -> 'Chevron'
    """
    name = re.sub(r"\s+\d{7,}\s+", " ", " " + raw + " ").strip()
    name = re.sub(r"\s+\d{4,6}\s+\w+$", "", name)
    words = name.split()
    if len(words) > 1:
        # Trailing word is the city
        name = " ".join(words[:-1])
    name = _collapse(name)
    return name if len(name) >= 2 else "Card Purchase"


class ChaseStatementParser:
    """Parser for Chase business checking statements."""

    bank_name = "Chase"

    def parse(self, text: str, year: Optional[int] = None) -> StatementParseResult:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        account_info = self.extract_account_info(lines)

        if year is None:
            if account_info.statement_period_end:
                year = account_info.statement_period_end.year
            else:
                year = dt.date.today().year

        transactions: list[ParsedTransaction] = []
        skipped = 0
        section: Optional[str] = None
        closing: Optional[str] = None
        saw_section = False

        for index, line in enumerate(lines):
            opened = self._section_for(line)
            if opened:
                section, closing = opened
                saw_section = True
                continue
            if section and closing and line.startswith(closing):
                section, closing = None, None
                continue
            if section is None:
                continue

            next_line = lines[index + 1] if index + 1 < len(lines) else ""
            txn = self._parse_section_line(section, line, next_line, year)
            if txn is not None:
                transactions.append(txn)
            elif DATE_PREFIX.match(line) or CHECK_LINE.match(line):
                skipped += 1

        if not saw_section:
            # Unrecognised layout: try every line as "MM/DD description amount"
            for line in lines:
                txn = self._parse_generic(line, year, section=None)
                if txn is not None:
                    transactions.append(txn)

        for position, txn in enumerate(transactions):
            txn.row_index = position

        logger.info(
            "statement_parsed",
            transactions=len(transactions),
            skipped_lines=skipped,
            account_number=account_info.account_number,
        )

        return StatementParseResult(
            account_info=account_info,
            transactions=transactions,
            summary=self.summarize(transactions),
            skipped_lines=skipped,
        )

    # =========================================================================
    # ACCOUNT INFO
    # =========================================================================

    def extract_account_info(self, lines: list[str]) -> AccountInfo:
        text = "\n".join(lines)
        info = AccountInfo(bank_name=self.bank_name)

        match = ACCOUNT_NUMBER.search(text)
        if match:
            info.account_number = match.group(1)

        match = PERIOD_NUMERIC.search(text)
        if match:
            info.statement_period_start = _parse_full_date(match.group(1))
            info.statement_period_end = _parse_full_date(match.group(2))
        else:
            match = PERIOD_THROUGH.search(text)
            if match:
                info.statement_period_start = _parse_long_date(match.group(1))
                info.statement_period_end = _parse_long_date(match.group(2))

        match = BEGINNING_BALANCE.search(text)
        if match:
            info.beginning_balance = _money(match.group(1))
        match = ENDING_BALANCE.search(text)
        if match:
            info.ending_balance = _money(match.group(1))

        info.company_name = self.extract_company_name(lines)
        return info

    def extract_company_name(self, lines: list[str]) -> Optional[str]:
        for line in lines[:COMPANY_HEADER_LINES]:
            if any(word.lower() in line.lower() for word in COMPANY_SKIP_WORDS):
                continue
            for pattern in COMPANY_PATTERNS:
                match = pattern.match(line)
                if match:
                    return _collapse(match.group(1)).rstrip(",")
        return None

    # =========================================================================
    # LINE PARSERS
    # =========================================================================

    def _section_for(self, line: str) -> Optional[tuple[str, str]]:
        upper = line.upper()
        for key, header, closing in SECTIONS:
            if upper == header:
                return key, closing
            # "DEPOSITS AND ADDITIONS (continued)"; summary rows carry counts
            if upper.startswith(header + " ") and not re.search(r"\d", upper):
                return key, closing
        return None

    def _parse_section_line(
        self,
        section: str,
        line: str,
        next_line: str,
        year: int,
    ) -> Optional[ParsedTransaction]:
        if section == DEPOSITS:
            return self._parse_deposit(line, year)
        if section == CHECKS:
            return self._parse_check(line, year)
        if section == CARD:
            return self._parse_card(line, year) or self._parse_generic(line, year, section)
        if section == ELECTRONIC:
            return (
                self._parse_electronic(line, next_line, year)
                or self._parse_generic(line, year, section)
            )
        return self._parse_generic(line, year, section)

    def _parse_deposit(self, line: str, year: int) -> Optional[ParsedTransaction]:
        if "DATE" in line or "Total" in line:
            return None
        date_match = DATE_PREFIX.match(line)
        if not date_match:
            return None
        rest = line[date_match.end():]

        dollar = True
        amount_match = DEPOSIT_AMOUNT_DOLLAR.search(rest)
        if not amount_match:
            dollar = False
            for pattern in DEPOSIT_AMOUNT_PLAIN:
                amount_match = pattern.search(rest)
                if amount_match:
                    break
        if not amount_match:
            return None

        raw = amount_match.group(1)
        if raw.startswith(",") or raw.endswith(","):
            return None

        description = rest[:amount_match.start()]
        if not dollar and raw.startswith("1") and ("," in raw or len(raw) >= 6):
            remainder = raw[1:]
            if GROUPED_AMOUNT.match(remainder) or PLAIN_AMOUNT.match(remainder):
                # A trailing "1" from the description was glued onto the amount
                description = description + "1"
                raw = remainder
        if "." not in raw:
            raw = raw + ".00"

        amount = _money(raw)
        if amount is None or not (Decimal("1") <= amount <= MAX_DEPOSIT):
            return None

        description = _collapse(description)
        return self._build(
            date_match.group(1), description or "Deposit", amount, year,
            TransactionType.INCOME, _deposit_method(description),
        )

    def _parse_check(self, line: str, year: int) -> Optional[ParsedTransaction]:
        match = CHECK_LINE.search(line)
        if not match:
            return None
        number, issued, paid, raw_amount = match.groups()
        amount = _money(raw_amount)
        if amount is None or not (Decimal("0") < amount <= MAX_CHECK):
            return None
        txn = self._build(
            paid or issued, f"CHECK #{number}", -amount, year,
            TransactionType.EXPENSE, PaymentMethod.CHECK,
        )
        if txn is not None:
            txn.check_number = number
        return txn

    def _parse_card(self, line: str, year: int) -> Optional[ParsedTransaction]:
        match = CARD_LINE.match(line)
        if not match:
            return None
        amount = _money(match.group(3))
        if amount is None or amount > MAX_CARD:
            return None
        return self._build(
            match.group(1), clean_merchant_name(match.group(2)), -amount, year,
            TransactionType.EXPENSE, PaymentMethod.DEBIT_CARD,
        )

    def _parse_electronic(
        self,
        line: str,
        next_line: str,
        year: int,
    ) -> Optional[ParsedTransaction]:
        match = ELECTRONIC_LINE.search(line)
        if not match:
            return None
        company = re.sub(r"\s+ID:.*$", "", match.group(2)).strip()

        amount_match = LINE_AMOUNT.search(line[match.end(1):])
        if not amount_match:
            amount_match = LONE_AMOUNT.match(next_line)
        if not amount_match:
            return None
        amount = _money(amount_match.group(1))
        if amount is None or amount <= 0:
            return None
        return self._build(
            match.group(1), f"Electronic Payment: {_collapse(company)}", -amount, year,
            TransactionType.EXPENSE, PaymentMethod.BANK_TRANSFER,
        )

    def _parse_generic(
        self,
        line: str,
        year: int,
        section: Optional[str],
    ) -> Optional[ParsedTransaction]:
        match = TRANSACTION_LINE.match(line)
        if not match:
            return None
        date_text, description, raw = match.groups()

        negative = raw.startswith("-") or (raw.startswith("(") and raw.endswith(")"))
        amount = _money(raw.strip("()-"))
        if amount is None or amount == 0:
            return None

        if section == DEPOSITS:
            negative = False
        elif section in (CHECKS, CARD, ELECTRONIC, FEES):
            negative = True

        if negative:
            return self._build(
                date_text, _collapse(description), -amount, year,
                TransactionType.EXPENSE, PaymentMethod.OTHER,
            )
        return self._build(
            date_text, _collapse(description), amount, year,
            TransactionType.INCOME, PaymentMethod.OTHER,
        )

    # =========================================================================
    # RESULT BUILDING
    # =========================================================================

    def _build(
        self,
        date_text: str,
        description: str,
        amount: Decimal,
        year: int,
        txn_type: TransactionType,
        payment_method: PaymentMethod,
    ) -> Optional[ParsedTransaction]:
        txn_date = _parse_short_date(date_text, year)
        if txn_date is None:
            return None
        category, confidence = classify_by_keyword(description, txn_type)
        return ParsedTransaction(
            date=txn_date,
            description=description,
            amount=amount,
            type=txn_type,
            payment_method=payment_method,
            category=category,
            bank_name=self.bank_name,
            source=TransactionSource.PDF_IMPORT,
            classification_confidence=confidence,
            needs_review=category is None,
        )

    @staticmethod
    def summarize(transactions: list[ParsedTransaction]) -> StatementSummary:
        income = sum((t.amount for t in transactions if t.amount > 0), Decimal("0"))
        expenses = sum((-t.amount for t in transactions if t.amount < 0), Decimal("0"))
        return StatementSummary(
            total_transactions=len(transactions),
            total_income=income,
            total_expenses=expenses,
            net_income=income - expenses,
            needs_review=sum(1 for t in transactions if t.needs_review),
        )


def classify_by_keyword(
    description: str,
    txn_type: TransactionType,
) -> tuple[Optional[str], float]:
    """
    First-pass category from statement wording.

    Returns (category label or None, confidence).
    """
    upper = description.upper()
    if txn_type == TransactionType.INCOME and "DEPOSIT" in upper:
        return IRSCategory.GROSS_RECEIPTS.value, KEYWORD_CONFIDENCE
    if re.search(r"\bFEES?\b", upper):
        return IRSCategory.BANK_FEES.value, KEYWORD_CONFIDENCE
    return None, FALLBACK_CONFIDENCE


def _deposit_method(description: str) -> PaymentMethod:
    upper = description.upper()
    if "ZELLE" in upper:
        return PaymentMethod.ZELLE
    if "DEPOSIT" in upper:
        return PaymentMethod.CHECK_DEPOSIT
    return PaymentMethod.BANK_TRANSFER


def _parse_short_date(text: str, year: int) -> Optional[dt.date]:
    month, day = re.split(r"[/\-]", text)[:2]
    try:
        return dt.date(year, int(month), int(day))
    except ValueError:
        return None


def _parse_full_date(text: str) -> Optional[dt.date]:
    for fmt in ("%m/%d/%Y", "%m/%d/%y"):
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_long_date(text: str) -> Optional[dt.date]:
    for fmt in ("%B %d, %Y", "%b %d, %Y"):
        try:
            return dt.datetime.strptime(_collapse(text), fmt).date()
        except ValueError:
            continue
    return None
