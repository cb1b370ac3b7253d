"""
Abstract Storage Interface

DESIGN DECISION: Storage is a small table-oriented interface over
JSON-compatible dicts. This allows us to:
1. Run against Supabase (Postgres) in production
2. Keep Google Sheets as a zero-setup backend users can open directly
3. Use in-memory storage for testing
4. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Filters are equality only; anything richer happens in Python in the
service or query layer.
"""

import datetime as dt
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from bookkeeper.models.audit import AuditEvent


# Table names shared by every backend
TRANSACTIONS = "transactions"
COMPANIES = "companies"
PAYEES = "payees"
INCOME_SOURCES = "income_sources"
INVENTORY_ITEMS = "inventory_items"
INVENTORY_TRANSACTIONS = "inventory_transactions"
RECEIPTS = "receipts"
CHECKS = "checks"
CSV_IMPORTS = "csv_imports"
STATEMENT_UPLOADS = "statement_uploads"
CLASSIFICATION_RULES = "classification_rules"
GLOBAL_RULE_SETTINGS = "global_rule_settings"

ALL_TABLES = (
    TRANSACTIONS,
    COMPANIES,
    PAYEES,
    INCOME_SOURCES,
    INVENTORY_ITEMS,
    INVENTORY_TRANSACTIONS,
    RECEIPTS,
    CHECKS,
    CSV_IMPORTS,
    STATEMENT_UPLOADS,
    CLASSIFICATION_RULES,
    GLOBAL_RULE_SETTINGS,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordStorageInterface(ABC):
    """
    Abstract interface for record storage.

    Records are dicts with a string "id" key. Any storage implementation
    (Supabase, Google Sheets, in-memory) must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a record.

        Returns:
            The stored record

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        """Fetch one record by id, or None."""
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Merge changes into an existing record.

        Returns:
            The record after the update

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a record. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """
        List records matching all equality filters.

        A filter value of None matches records where the column is null.
        """
        pass

    @abstractmethod
    async def update_where(
        self,
        table: str,
        filters: dict[str, Any],
        changes: dict[str, Any],
    ) -> int:
        """Apply changes to every matching record. Returns the count."""
        pass

    @abstractmethod
    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        """Delete every matching record. Returns the count."""
        pass

    async def count(self, table: str, filters: Optional[dict[str, Any]] = None) -> int:
        return len(await self.select(table, filters))


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event to the log."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, oldest first."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, oldest first."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


# =============================================================================
# RECORD CONVERSION
# =============================================================================

def to_storage_value(value: Any) -> Any:
    """Convert a Python value to its JSON-compatible stored form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_storage_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_storage_value(v) for k, v in value.items()}
    return value


def to_storage_filters(filters: Optional[dict[str, Any]]) -> dict[str, Any]:
    return {k: to_storage_value(v) for k, v in (filters or {}).items()}


def serialize_record(model: BaseModel) -> dict[str, Any]:
    """Model -> stored dict."""
    return model.model_dump(mode="json")


def deserialize_record(model_cls: type[ModelT], row: dict[str, Any]) -> ModelT:
    """Stored dict -> model. Unknown columns are ignored."""
    return model_cls.model_validate(row)


def matches_filters(record: dict[str, Any], filters: dict[str, Any]) -> bool:
    """Equality match used by backends that filter in Python."""
    for key, expected in filters.items():
        actual = record.get(key)
        if expected is None:
            if actual not in (None, ""):
                return False
        elif actual != expected:
            return False
    return True


def sort_value(value: Any) -> tuple:
    """
    Sort key for stored values.

    None sorts last, numeric strings sort as numbers, ISO dates sort
    lexically.
    """
    if value is None or value == "":
        return (2, "")
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, Decimal(str(value)))
    if isinstance(value, str):
        try:
            number = Decimal(value)
        except InvalidOperation:
            return (1, value.lower())
        if not number.is_finite():
            return (1, value.lower())
        return (0, number)
    return (1, str(value))


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
