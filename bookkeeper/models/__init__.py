"""
Data Models Package

This package contains all Pydantic models used by Bookkeeper.
All data flowing through the system must conform to these schemas.
"""

from bookkeeper.models.api import ApiErrorDetail, ApiResponse
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from bookkeeper.models.base import Address, Record
from bookkeeper.models.categories import (
    ClassificationSource,
    IRSCategory,
    PaymentMethod,
    TransactionSource,
    TransactionType,
    category_label,
    is_income_category,
)
from bookkeeper.models.check import Check, CheckStats, CheckStatus, CheckType
from bookkeeper.models.classification import (
    AmountDirection,
    BatchClassificationStats,
    ClassificationResult,
    ClassificationRule,
    GlobalRuleSettings,
    PatternType,
    RuleSource,
    RuleStats,
)
from bookkeeper.models.entities import Company, IncomeSource, Payee, PayeeType
from bookkeeper.models.imports import (
    AccountInfo,
    CSVImport,
    CSVParseResult,
    ImportResult,
    ImportStatus,
    ParsedTransaction,
    RowError,
    StatementParseResult,
    StatementSummary,
    StatementUpload,
    UploadStatus,
    ValidationIssue,
    ValidationResult,
)
from bookkeeper.models.inventory import (
    AdjustmentType,
    InventoryItem,
    InventoryTransaction,
)
from bookkeeper.models.query import (
    QueryResult,
    SortField,
    TransactionFilter,
    TransactionSort,
)
from bookkeeper.models.reports import (
    CategoryBreakdown,
    Form1099Summary,
    MonthlySummary,
    PayeeYTD,
    Report,
    ReportTable,
    ReportType,
    TaxSummary,
    VendorPaymentSummary,
)
from bookkeeper.models.receipt import (
    PasteLineError,
    PasteParseResult,
    PasteStats,
    Receipt,
    ReceiptEntry,
    ReceiptSource,
    ReceiptStats,
    ScannedReceipt,
)
from bookkeeper.models.transaction import (
    BulkUpdate,
    BulkUpdateResult,
    SplitPart,
    SplitResult,
    Transaction,
    TransactionCreate,
)

__all__ = [
    # API
    "ApiErrorDetail",
    "ApiResponse",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Base
    "Address",
    "Record",
    # Categories
    "ClassificationSource",
    "IRSCategory",
    "PaymentMethod",
    "TransactionSource",
    "TransactionType",
    "category_label",
    "is_income_category",
    # Checks
    "Check",
    "CheckStats",
    "CheckStatus",
    "CheckType",
    # Classification
    "AmountDirection",
    "BatchClassificationStats",
    "ClassificationResult",
    "ClassificationRule",
    "GlobalRuleSettings",
    "PatternType",
    "RuleSource",
    "RuleStats",
    # Entities
    "Company",
    "IncomeSource",
    "Payee",
    "PayeeType",
    # Imports
    "AccountInfo",
    "CSVImport",
    "CSVParseResult",
    "ImportResult",
    "ImportStatus",
    "ParsedTransaction",
    "RowError",
    "StatementParseResult",
    "StatementSummary",
    "StatementUpload",
    "UploadStatus",
    "ValidationIssue",
    "ValidationResult",
    # Inventory
    "AdjustmentType",
    "InventoryItem",
    "InventoryTransaction",
    # Query
    "QueryResult",
    "SortField",
    "TransactionFilter",
    "TransactionSort",
    # Reports
    "CategoryBreakdown",
    "Form1099Summary",
    "MonthlySummary",
    "PayeeYTD",
    "Report",
    "ReportTable",
    "ReportType",
    "TaxSummary",
    "VendorPaymentSummary",
    # Receipts
    "PasteLineError",
    "PasteParseResult",
    "PasteStats",
    "Receipt",
    "ReceiptEntry",
    "ReceiptSource",
    "ReceiptStats",
    "ScannedReceipt",
    # Transactions
    "BulkUpdate",
    "BulkUpdateResult",
    "SplitPart",
    "SplitResult",
    "Transaction",
    "TransactionCreate",
]
