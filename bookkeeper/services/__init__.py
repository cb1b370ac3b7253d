"""Domain services: CRUD and business rules over the record store."""

from bookkeeper.services.base import InvalidIdError, ServiceValidationError, parse_uuid
from bookkeeper.services.checks import CheckService
from bookkeeper.services.companies import CompanyService
from bookkeeper.services.income_sources import IncomeSourceService
from bookkeeper.services.inventory import InventoryService
from bookkeeper.services.payees import PayeeService
from bookkeeper.services.receipt_entry import parse_pasted_data
from bookkeeper.services.receipt_scanner import MindeeReceiptScanner, ReceiptScanError
from bookkeeper.services.receipts import ReceiptService
from bookkeeper.services.splits import SplitService, validate_split_parts
from bookkeeper.services.transactions import TransactionService, duplicate_key

__all__ = [
    "ServiceValidationError",
    "InvalidIdError",
    "parse_uuid",
    "CheckService",
    "CompanyService",
    "IncomeSourceService",
    "InventoryService",
    "PayeeService",
    "ReceiptService",
    "SplitService",
    "TransactionService",
    "MindeeReceiptScanner",
    "ReceiptScanError",
    "parse_pasted_data",
    "validate_split_parts",
    "duplicate_key",
]
