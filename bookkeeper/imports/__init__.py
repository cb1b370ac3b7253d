"""Bank file import: CSV exports and PDF statements."""

from bookkeeper.imports.csv_imports import CSVImportService
from bookkeeper.imports.csv_parser import (
    BANK_FORMATS,
    BankFormat,
    ColumnMapping,
    CSVParseError,
    detect_bank_format,
    get_csv_headers,
    get_supported_banks,
    parse_csv,
)
from bookkeeper.imports.statement_parser import (
    ChaseStatementParser,
    StatementParseError,
    extract_text,
)
from bookkeeper.imports.statements import StatementService

__all__ = [
    "BANK_FORMATS",
    "BankFormat",
    "ColumnMapping",
    "CSVParseError",
    "CSVImportService",
    "ChaseStatementParser",
    "StatementParseError",
    "StatementService",
    "detect_bank_format",
    "extract_text",
    "get_csv_headers",
    "get_supported_banks",
    "parse_csv",
]
