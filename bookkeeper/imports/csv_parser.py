"""
Bank CSV Parser

Reads bank export CSVs into ParsedTransaction objects.

Each supported bank is described by a BankFormat: how to recognise its
header row, which columns hold which field, the date formats it writes,
and whether amounts are signed in one column or split into debit/credit
columns. Formats are tried in declaration order, so more specific
formats must come before permissive ones.

When no format matches, rows are handed back raw with
requires_mapping=True so the user can pick columns by hand.
"""

import io
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, NamedTuple, Optional, Union

import pandas as pd
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookkeeper.models.categories import PaymentMethod, TransactionSource, TransactionType
from bookkeeper.models.imports import CSVParseResult, ParsedTransaction, RowError


logger = structlog.get_logger(__name__)

SIGNED = "signed"
SPLIT = "split"

# Tried after a format's own date formats
FALLBACK_DATE_FORMATS = [
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%d/%m/%Y",
    "%m/%d/%y",
]

# User-facing date format names accepted by custom mappings
DATE_FORMAT_ALIASES = {
    "MM/DD/YYYY": "%m/%d/%Y",
    "M/D/YYYY": "%m/%d/%Y",
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM-DD-YYYY": "%m-%d-%Y",
    "DD/MM/YYYY": "%d/%m/%Y",
    "MM/DD/YY": "%m/%d/%y",
}

CURRENCY_CHARS = "$£€¥, "


class ColumnMapping(BaseModel):
    """Candidate column names per field. The first non-empty column wins."""
    model_config = ConfigDict(str_strip_whitespace=True)

    date: list[str] = Field(default_factory=list)
    description: list[str] = Field(default_factory=list)
    amount: list[str] = Field(default_factory=list)
    debit: list[str] = Field(default_factory=list)
    credit: list[str] = Field(default_factory=list)
    check_number: list[str] = Field(default_factory=list)
    type: list[str] = Field(default_factory=list)
    reference_number: list[str] = Field(default_factory=list)
    category: list[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def listify(cls, v: Any) -> list[str]:
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return [v]
        return list(v)

    @property
    def is_split(self) -> bool:
        return bool(self.debit) and bool(self.credit)


class BankFormat(BaseModel):
    key: str
    name: str
    detect: Callable[[list[str]], bool]
    mapping: ColumnMapping
    date_formats: list[str] = Field(default_factory=lambda: ["%m/%d/%Y"])
    amount_style: str = SIGNED


def _has(headers: list[str], *names: str) -> bool:
    return all(name in headers for name in names)


BANK_FORMATS: list[BankFormat] = [
    BankFormat(
        key="chase",
        name="Chase",
        detect=lambda h: _has(h, "Posting Date", "Description"),
        mapping=ColumnMapping(
            date=["Posting Date", "Transaction Date"],
            description=["Description"],
            amount=["Amount"],
            check_number=["Check or Slip #"],
            type=["Type"],
        ),
        date_formats=["%m/%d/%Y"],
    ),
    BankFormat(
        key="bank_of_america",
        name="Bank of America",
        detect=lambda h: _has(h, "Date", "Description", "Amount") and "Running Bal." in h,
        mapping=ColumnMapping(
            date=["Date", "Posted Date"],
            description=["Description", "Payee"],
            amount=["Amount"],
            reference_number=["Reference Number"],
        ),
    ),
    BankFormat(
        key="capital_one",
        name="Capital One",
        detect=lambda h: _has(h, "Transaction Date", "Debit", "Credit"),
        mapping=ColumnMapping(
            date=["Transaction Date", "Posted Date"],
            description=["Description", "Transaction Description"],
            debit=["Debit"],
            credit=["Credit"],
            category=["Category"],
        ),
        date_formats=["%Y-%m-%d", "%m/%d/%Y"],
        amount_style=SPLIT,
    ),
    BankFormat(
        key="discover",
        name="Discover",
        detect=lambda h: _has(h, "Trans. Date", "Amount"),
        mapping=ColumnMapping(
            date=["Trans. Date", "Post Date"],
            description=["Description"],
            amount=["Amount"],
            category=["Category"],
        ),
    ),
    BankFormat(
        key="us_bank",
        name="U.S. Bank",
        detect=lambda h: _has(h, "Date", "Name", "Amount"),
        mapping=ColumnMapping(
            date=["Date"],
            description=["Name", "Memo"],
            amount=["Amount"],
            type=["Transaction"],
        ),
    ),
    BankFormat(
        key="pnc",
        name="PNC",
        detect=lambda h: _has(h, "Date", "Description", "Withdrawals"),
        mapping=ColumnMapping(
            date=["Date"],
            description=["Description"],
            debit=["Withdrawals"],
            credit=["Deposits"],
            check_number=["Check Number"],
        ),
        amount_style=SPLIT,
    ),
    BankFormat(
        key="citi",
        name="Citi",
        detect=lambda h: _has(h, "Date", "Description") and ("Debit" in h or "Credit" in h),
        mapping=ColumnMapping(
            date=["Date"],
            description=["Description"],
            debit=["Debit"],
            credit=["Credit"],
        ),
        amount_style=SPLIT,
    ),
    BankFormat(
        key="amex",
        name="American Express",
        detect=lambda h: _has(h, "Date", "Description", "Amount") and "Reference" in h,
        mapping=ColumnMapping(
            date=["Date"],
            description=["Description"],
            amount=["Amount"],
            reference_number=["Reference"],
            category=["Category"],
        ),
        date_formats=["%m/%d/%Y", "%m/%d/%y"],
    ),
    BankFormat(
        key="wells_fargo",
        name="Wells Fargo",
        detect=lambda h: any("Wells Fargo" in x for x in h) or _has(h, "Date", "Amount"),
        mapping=ColumnMapping(
            date=["Date"],
            description=["Description"],
            amount=["Amount"],
            check_number=["Check Number"],
        ),
    ),
]

BANK_FORMATS_BY_KEY = {fmt.key: fmt for fmt in BANK_FORMATS}


class CSVParseError(ValueError):
    """A row value could not be interpreted."""
    pass


# =============================================================================
# READING
# =============================================================================

class CSVTable(NamedTuple):
    headers: list[str]
    rows: list[dict[str, str]]
    lines: list[int]
    bad_lines: list[RowError]


# First-cell marker for rows the reader could not split into the header's columns
BAD_ROW_MARKER = "__bad_row__:"


def _read_rows(data: Union[bytes, str]) -> CSVTable:
    """
    Read CSV bytes into a CSVTable with every value as a stripped string.

    Row numbers in lines and bad_lines are file line numbers (header is
    line 1). Rows with more fields than the header are reported in
    bad_lines instead of being read; blank rows are dropped.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        width = len(pd.read_csv(io.BytesIO(data), nrows=0, encoding="utf-8-sig").columns)
    except pd.errors.EmptyDataError:
        return CSVTable([], [], [], [])

    bad_fields: list[list[str]] = []

    def keep_bad_line(fields: list[str]) -> list[str]:
        if not any(f.strip() for f in fields[width:]):
            # Trailing delimiters only
            return fields[:width]
        bad_fields.append(fields)
        return [f"{BAD_ROW_MARKER}{len(bad_fields) - 1}"] + [""] * (width - 1)

    frame = pd.read_csv(
        io.BytesIO(data),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        encoding="utf-8-sig",
        index_col=False,
        engine="python",
        on_bad_lines=keep_bad_line,
    )
    columns = [str(c).strip() for c in frame.columns]
    frame.columns = columns
    frame = frame.fillna("").apply(lambda col: col.str.strip())

    table = CSVTable([c for c in columns if not c.startswith("Unnamed:")], [], [], [])
    for position, values in enumerate(frame.itertuples(index=False, name=None)):
        line = position + 2
        first = values[0] if values else ""
        if first.startswith(BAD_ROW_MARKER):
            fields = bad_fields[int(first[len(BAD_ROW_MARKER):])]
            table.bad_lines.append(RowError(
                row=line,
                message=f"Expected {width} columns but found {len(fields)}: {','.join(fields)}",
            ))
            continue
        row = {c: v for c, v in zip(columns, values) if not c.startswith("Unnamed:")}
        if any(row.values()):
            table.rows.append(row)
            table.lines.append(line)
    return table


def get_csv_headers(data: Union[bytes, str]) -> list[str]:
    return _read_rows(data).headers


def detect_bank_format(headers: list[str]) -> Optional[BankFormat]:
    for fmt in BANK_FORMATS:
        if fmt.detect(headers):
            return fmt
    return None


def get_supported_banks() -> list[dict[str, str]]:
    return [{"key": fmt.key, "name": fmt.name} for fmt in BANK_FORMATS]


# =============================================================================
# VALUE PARSING
# =============================================================================

def clean_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a bank amount string.

    Handles currency symbols, thousands separators, accounting-style
    parentheses and DR/CR suffixes. Returns None if unparseable.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    negative = False
    upper = text.upper()
    if upper.endswith("DR"):
        negative = True
        text = text[:-2]
    elif upper.endswith("CR"):
        text = text[:-2]
    text = text.strip()
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    for char in CURRENCY_CHARS:
        text = text.replace(char, "")
    if not text:
        return None

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    if negative:
        amount = -abs(amount)
    return amount.quantize(Decimal("0.01"))


def parse_amount(
    debit_or_amount: Optional[str],
    credit: Optional[str] = None,
    style: str = SIGNED,
) -> Decimal:
    """
    Resolve the signed amount of a row.

    Split style: a debit becomes negative, a credit positive, neither 0.

    Raises:
        CSVParseError: If the value can't be parsed
    """
    if style == SPLIT:
        if debit_or_amount:
            debit = clean_amount(debit_or_amount)
            if debit is None:
                raise CSVParseError(f"Invalid amount: {debit_or_amount}")
            if debit != 0:
                return -abs(debit)
        if credit:
            value = clean_amount(credit)
            if value is None:
                raise CSVParseError(f"Invalid amount: {credit}")
            return abs(value)
        return Decimal("0.00")

    amount = clean_amount(debit_or_amount)
    if amount is None:
        raise CSVParseError(f"Invalid amount: {debit_or_amount or '(empty)'}")
    return amount


def parse_transaction_date(value: str, formats: Optional[list[str]] = None) -> date:
    """
    Parse a date using the given formats, then common US/ISO formats,
    then a lenient pandas parse.

    Raises:
        CSVParseError: If no format matches
    """
    text = (value or "").strip()
    if not text:
        raise CSVParseError("Invalid date: (empty)")

    for fmt in list(formats or []) + FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        raise CSVParseError(f"Invalid date: {text}")
    return parsed.date()


def map_bank_type_to_payment_method(bank_type: Optional[str]) -> PaymentMethod:
    """Map a bank's transaction type column to a payment method."""
    t = (bank_type or "").upper()
    if not t:
        return PaymentMethod.OTHER
    if "CHECK_DEPOSIT" in t or "DSLIP" in t:
        return PaymentMethod.CHECK_DEPOSIT
    if "CHECK" in t or "CHK" in t:
        return PaymentMethod.CHECK
    if "DEBIT" in t or "POS" in t or "POINT_OF_SALE" in t:
        return PaymentMethod.DEBIT_CARD
    if "CREDIT_CARD" in t or "VISA" in t or "MASTERCARD" in t:
        return PaymentMethod.CREDIT_CARD
    if any(k in t for k in ("ACH", "TRANSFER", "WIRE", "EFT")):
        return PaymentMethod.BANK_TRANSFER
    if "ATM" in t:
        return PaymentMethod.CASH
    if "ZELLE" in t:
        return PaymentMethod.ZELLE
    if "PAYPAL" in t:
        return PaymentMethod.PAYPAL
    if "VENMO" in t:
        return PaymentMethod.VENMO
    return PaymentMethod.OTHER


def find_column_value(row: dict[str, str], candidates: list[str]) -> Optional[str]:
    """First non-empty value among candidate columns."""
    for column in candidates:
        value = row.get(column)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


def validate_mapping(mapping: Union[ColumnMapping, dict]) -> tuple[bool, list[str]]:
    """
    A usable mapping needs date, description, and either an amount
    column or both debit and credit columns.
    """
    if isinstance(mapping, dict):
        mapping = ColumnMapping.model_validate(mapping)
    missing = []
    if not mapping.date:
        missing.append("date")
    if not mapping.description:
        missing.append("description")
    if not mapping.amount and not mapping.is_split:
        missing.append("amount (or debit and credit)")
    return not missing, missing


# =============================================================================
# ROW NORMALIZATION
# =============================================================================

def normalize_transaction(
    row: dict[str, str],
    fmt: BankFormat,
    row_index: int,
) -> ParsedTransaction:
    """
    Convert one CSV row into a ParsedTransaction.

    Raises:
        CSVParseError: On a missing description, bad date or bad amount
    """
    mapping = fmt.mapping

    raw_date = find_column_value(row, mapping.date)
    txn_date = parse_transaction_date(raw_date or "", fmt.date_formats)

    description = find_column_value(row, mapping.description)
    if not description:
        raise CSVParseError("Missing description")

    if fmt.amount_style == SPLIT:
        amount = parse_amount(
            find_column_value(row, mapping.debit),
            find_column_value(row, mapping.credit),
            SPLIT,
        )
    else:
        amount = parse_amount(find_column_value(row, mapping.amount))

    bank_type = find_column_value(row, mapping.type)
    check_number = find_column_value(row, mapping.check_number)
    if bank_type and ("DEPOSIT" in bank_type.upper() or "DSLIP" in bank_type.upper()):
        check_number = None

    payment_method = map_bank_type_to_payment_method(bank_type)
    if payment_method == PaymentMethod.OTHER and check_number:
        payment_method = PaymentMethod.CHECK

    return ParsedTransaction(
        date=txn_date,
        description=description,
        amount=amount,
        type=TransactionType.INCOME if amount >= 0 else TransactionType.EXPENSE,
        payment_method=payment_method,
        check_number=check_number,
        reference_number=find_column_value(row, mapping.reference_number),
        category=find_column_value(row, mapping.category),
        original_type=bank_type,
        bank_name=fmt.name,
        source=TransactionSource.CSV_IMPORT,
        row_index=row_index,
    )


def _custom_format(
    custom_mapping: Union[ColumnMapping, dict],
    date_format: Optional[str],
) -> BankFormat:
    mapping = (
        custom_mapping if isinstance(custom_mapping, ColumnMapping)
        else ColumnMapping.model_validate(custom_mapping)
    )
    formats = []
    if date_format:
        formats.append(DATE_FORMAT_ALIASES.get(date_format.upper(), date_format))
    return BankFormat(
        key="custom",
        name="Custom",
        detect=lambda h: False,
        mapping=mapping,
        date_formats=formats,
        amount_style=SPLIT if mapping.is_split else SIGNED,
    )


def parse_csv(
    data: Union[bytes, str],
    bank_format: str = "auto",
    custom_mapping: Optional[Union[ColumnMapping, dict]] = None,
    date_format: Optional[str] = None,
) -> CSVParseResult:
    """
    Parse a bank CSV export.

    Args:
        data: Raw file contents
        bank_format: "auto" to detect, "custom" to use custom_mapping,
                     or a key from BANK_FORMATS
        custom_mapping: Column mapping when bank_format is "custom"
        date_format: Date format for custom mappings ("MM/DD/YYYY" or strptime)
    """
    table = _read_rows(data)
    headers, rows = table.headers, table.rows
    total_rows = len(rows) + len(table.bad_lines)
    if not headers or not total_rows:
        return CSVParseResult(
            success=False,
            headers=headers,
            errors=[RowError(message="CSV file is empty or has no data rows")],
        )

    fmt: Optional[BankFormat] = None
    if bank_format == "custom":
        if custom_mapping:
            valid, missing = validate_mapping(custom_mapping)
            if not valid:
                return CSVParseResult(
                    success=False,
                    headers=headers,
                    sample_rows=rows[:5],
                    total_rows=total_rows,
                    errors=[RowError(message=f"Mapping is missing: {', '.join(missing)}")],
                    requires_mapping=True,
                )
            fmt = _custom_format(custom_mapping, date_format)
    elif bank_format == "auto":
        fmt = detect_bank_format(headers)
    else:
        fmt = BANK_FORMATS_BY_KEY.get(bank_format)
        if fmt is None:
            return CSVParseResult(
                success=False,
                headers=headers,
                errors=[RowError(message=f"Unknown bank format: {bank_format}")],
            )

    if fmt is None:
        logger.info("csv_requires_mapping", headers=headers)
        return CSVParseResult(
            success=True,
            headers=headers,
            sample_rows=rows[:5],
            raw_rows=rows,
            total_rows=total_rows,
            errors=list(table.bad_lines),
            requires_mapping=True,
        )

    transactions: list[ParsedTransaction] = []
    errors: list[RowError] = list(table.bad_lines)
    for index, (row, line) in enumerate(zip(rows, table.lines)):
        try:
            transactions.append(normalize_transaction(row, fmt, index))
        except CSVParseError as e:
            errors.append(RowError(row=line, message=str(e)))
    errors.sort(key=lambda e: e.row or 0)

    if errors:
        logger.warning("csv_row_errors", bank=fmt.key, error_count=len(errors))

    return CSVParseResult(
        success=bool(transactions) or not errors,
        transactions=transactions,
        detected_bank=fmt.key,
        detected_bank_name=fmt.name,
        headers=headers,
        sample_rows=rows[:5],
        total_rows=total_rows,
        parsed_count=len(transactions),
        errors=errors,
    )
