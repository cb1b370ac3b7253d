"""Storage services package."""

from bookkeeper.storage.factory import create_storage
from bookkeeper.storage.interface import (
    ALL_TABLES,
    CHECKS,
    CLASSIFICATION_RULES,
    COMPANIES,
    CSV_IMPORTS,
    GLOBAL_RULE_SETTINGS,
    INCOME_SOURCES,
    INVENTORY_ITEMS,
    INVENTORY_TRANSACTIONS,
    PAYEES,
    RECEIPTS,
    STATEMENT_UPLOADS,
    TRANSACTIONS,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    deserialize_record,
    serialize_record,
)
from bookkeeper.storage.memory import InMemoryAuditStorage, InMemoryRecordStorage

__all__ = [
    "ALL_TABLES",
    "CHECKS",
    "CLASSIFICATION_RULES",
    "COMPANIES",
    "CSV_IMPORTS",
    "GLOBAL_RULE_SETTINGS",
    "INCOME_SOURCES",
    "INVENTORY_ITEMS",
    "INVENTORY_TRANSACTIONS",
    "PAYEES",
    "RECEIPTS",
    "STATEMENT_UPLOADS",
    "TRANSACTIONS",
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "NotFoundError",
    "RecordStorageInterface",
    "StorageError",
    "create_storage",
    "deserialize_record",
    "serialize_record",
]
