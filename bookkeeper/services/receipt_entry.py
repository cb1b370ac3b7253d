"""
Pasted Receipt Parser

Turns a block of pasted text (typically copied from a spreadsheet) into
ReceiptEntry objects, one per line:

    45.99   1/15/24   Home Depot
    1/16/2024   -$145.24   Refund Lowes
    2024-01-17  3,122.53

Amount and date may come in either order; any remaining words become the
vendor. Lines that cannot be read are reported with their line number
rather than dropped silently.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from bookkeeper.models.receipt import (
    PasteLineError,
    PasteParseResult,
    PasteStats,
    ReceiptEntry,
)


AMOUNT_PATTERNS = [
    re.compile(r"^-?\$?[\d,]+(?:\.\d{1,2})?$"),
    re.compile(r"^-?[\d,]+(?:\.\d{1,2})?\$?$"),
]
SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

NO_DATA = "No data found in pasted text"
TOO_SHORT = "Need at least amount and date"
INVALID_AMOUNT = "Invalid amount format"
INVALID_DATE = "Invalid date format (use M/D/YY or YYYY-MM-DD)"


def looks_like_amount(token: str) -> bool:
    return any(p.match(token.strip()) for p in AMOUNT_PATTERNS)


def looks_like_date(token: str) -> bool:
    token = token.strip()
    return bool(SLASH_DATE.match(token) or ISO_DATE.match(token))


def parse_amount(token: str) -> Optional[str]:
    """
    Normalize an amount token to a plain numeric string.

    '-$145.24' -> '-145.24', '3,122.53' -> '3122.53', '500.00' -> '500'
    """
    cleaned = token.replace("$", "").replace(",", "").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def parse_date(token: str) -> Optional[str]:
    """Parse M/D/YY, M/D/YYYY or YYYY-MM-DD to an ISO date string."""
    token = token.strip()
    match = SLASH_DATE.match(token)
    if match:
        month, day, year = match.groups()
        if len(year) == 2:
            year = f"20{year}" if int(year) < 50 else f"19{year}"
        elif len(year) == 3:
            return None
    else:
        match = ISO_DATE.match(token)
        if not match:
            return None
        year, month, day = match.groups()

    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def _missing_message(found_amount: bool, found_date: bool) -> str:
    if not found_amount and not found_date:
        return "Could not find amount and date"
    if not found_amount:
        return "Could not find amount"
    return "Could not find date"


def parse_pasted_data(
    text: str,
    default_category: str = "",
    default_vendor: str = "",
) -> PasteParseResult:
    lines = [line.strip() for line in (text or "").split("\n") if line.strip()]
    if not lines:
        return PasteParseResult(
            errors=[PasteLineError(line=0, text="", error=NO_DATA)],
            stats=PasteStats(),
        )

    entries: list[ReceiptEntry] = []
    errors: list[PasteLineError] = []

    for line_number, line in enumerate(lines, start=1):
        parts = re.split(r"[\t\s]+", line)
        parts = [p for p in parts if p]
        if len(parts) < 2:
            errors.append(PasteLineError(line=line_number, text=line, error=TOO_SHORT))
            continue

        vendor = default_vendor
        first, second = parts[0], parts[1]

        if looks_like_amount(first) and looks_like_date(second):
            amount, parsed_date = parse_amount(first), parse_date(second)
            rest = parts[2:]
        elif looks_like_date(first) and looks_like_amount(second):
            parsed_date, amount = parse_date(first), parse_amount(second)
            rest = parts[2:]
        else:
            amount_index = date_index = None
            for index, token in enumerate(parts):
                if amount_index is None and looks_like_amount(token):
                    amount_index = index
                elif date_index is None and looks_like_date(token):
                    date_index = index
            if amount_index is None or date_index is None:
                errors.append(PasteLineError(
                    line=line_number,
                    text=line,
                    error=_missing_message(amount_index is not None, date_index is not None),
                ))
                continue
            amount = parse_amount(parts[amount_index])
            parsed_date = parse_date(parts[date_index])
            rest = [p for i, p in enumerate(parts) if i not in (amount_index, date_index)]

        if rest:
            vendor = " ".join(rest)

        if amount is None:
            errors.append(PasteLineError(line=line_number, text=line, error=INVALID_AMOUNT))
            continue
        if parsed_date is None:
            errors.append(PasteLineError(line=line_number, text=line, error=INVALID_DATE))
            continue

        entries.append(ReceiptEntry(
            amount=amount,
            date=parsed_date,
            category=default_category,
            vendor=vendor,
        ))

    return PasteParseResult(
        entries=entries,
        errors=errors,
        stats=PasteStats(total=len(lines), parsed=len(entries), failed=len(errors)),
    )
