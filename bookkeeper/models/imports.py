"""
Import Models

Records describing a CSV import or a PDF statement upload, and the
intermediate parse results produced before anything is stored.

DESIGN DECISION: Parsers never write to storage. They return
ParsedTransaction objects; the import flow validates, de-duplicates and
classifies them before they become Transaction records.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bookkeeper.models.base import Record
from bookkeeper.models.categories import (
    ClassificationSource,
    PaymentMethod,
    TransactionSource,
    TransactionType,
)


# =============================================================================
# PARSE RESULTS
# =============================================================================

class ParsedTransaction(BaseModel):
    """A transaction read from a file, not yet stored."""
    model_config = ConfigDict(str_strip_whitespace=True)

    date: dt.date
    description: str
    amount: Decimal
    type: TransactionType
    payment_method: PaymentMethod = PaymentMethod.OTHER
    check_number: Optional[str] = None
    reference_number: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    vendor_name: Optional[str] = None
    original_type: Optional[str] = None
    bank_name: Optional[str] = None
    source: TransactionSource = TransactionSource.CSV_IMPORT
    row_index: Optional[int] = None
    classification_source: Optional[ClassificationSource] = None
    classification_confidence: Optional[float] = None
    needs_review: bool = False


class RowError(BaseModel):
    """A row that could not be parsed. Row numbers are 1-based and count the header."""

    row: Optional[int] = None
    message: str


class CSVParseResult(BaseModel):
    success: bool
    transactions: list[ParsedTransaction] = Field(default_factory=list)
    detected_bank: Optional[str] = None
    detected_bank_name: str = "Unknown"
    headers: list[str] = Field(default_factory=list)
    sample_rows: list[dict[str, str]] = Field(default_factory=list)
    raw_rows: list[dict[str, str]] = Field(
        default_factory=list,
        description="Unmapped rows, filled only when requires_mapping is set"
    )
    total_rows: int = 0
    parsed_count: int = 0
    errors: list[RowError] = Field(default_factory=list)
    requires_mapping: bool = False


class AccountInfo(BaseModel):
    """Header information read from a bank statement."""

    account_number: Optional[str] = None
    statement_period_start: Optional[dt.date] = None
    statement_period_end: Optional[dt.date] = None
    beginning_balance: Optional[Decimal] = None
    ending_balance: Optional[Decimal] = None
    company_name: Optional[str] = None
    bank_name: str = "Chase"


class StatementSummary(BaseModel):
    total_transactions: int = 0
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_income: Decimal = Decimal("0")
    needs_review: int = 0


class StatementParseResult(BaseModel):
    account_info: AccountInfo = Field(default_factory=AccountInfo)
    transactions: list[ParsedTransaction] = Field(default_factory=list)
    summary: StatementSummary = Field(default_factory=StatementSummary)
    skipped_lines: int = 0


# =============================================================================
# STORED IMPORT RECORDS
# =============================================================================

class ImportStatus(str, Enum):
    COMPLETED = "completed"
    DELETED = "deleted"


class CSVImport(Record):
    """One CSV file imported by a user."""

    file_name: str
    original_name: Optional[str] = None
    file_size: int = 0
    bank_name: Optional[str] = None
    bank_format: Optional[str] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    transaction_count: int = 0
    duplicate_count: int = 0
    error_count: int = 0
    date_range_start: Optional[dt.date] = None
    date_range_end: Optional[dt.date] = None
    status: ImportStatus = ImportStatus.COMPLETED
    metadata: dict[str, Any] = Field(default_factory=dict)


class UploadStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StatementUpload(Record):
    """One PDF bank statement and the state of its processing job."""

    file_name: str
    file_size: int = 0
    bank_name: Optional[str] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    status: UploadStatus = UploadStatus.UPLOADED
    progress: int = Field(default=0, ge=0, le=100)
    transaction_count: int = 0
    account_info: Optional[AccountInfo] = None
    error_message: Optional[str] = None


class ImportResult(BaseModel):
    """What an end-to-end import produced."""

    import_record: Optional[CSVImport] = None
    statement: Optional[StatementUpload] = None
    saved_count: int = 0
    duplicate_count: int = 0
    errors: list[RowError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    classification_stats: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found while validating an imported row."""

    row: Optional[int] = None
    field: str
    issue_type: str = Field(
        ...,
        description="missing, invalid_value, future_date, duplicate, ..."
    )
    message: str
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Outcome of validating a batch of parsed rows.

    Rows with errors are dropped from the import; warnings are reported
    but the row is still imported.
    """

    is_valid: bool
    schema_passed: bool
    semantic_passed: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    valid_rows: list[ParsedTransaction] = Field(default_factory=list)
    duplicate_rows: list[ParsedTransaction] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]
