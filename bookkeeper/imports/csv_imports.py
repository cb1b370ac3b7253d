"""
CSV Import Records

Every CSV import is kept as a CSVImport record so the user can see what
was imported, when, and undo it. Transactions point back at their import
through csv_import_id.
"""

from datetime import date
from typing import Any, Optional

import structlog

from bookkeeper.models.imports import CSVImport, ImportStatus
from bookkeeper.models.transaction import Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError, clamp
from bookkeeper.storage.interface import CSV_IMPORTS, TRANSACTIONS, deserialize_record


logger = structlog.get_logger(__name__)

SORTABLE_FIELDS = {"created_at", "file_name", "transaction_count", "bank_name"}
UPDATABLE_FIELDS = {"file_name", "bank_name", "company_id", "company_name", "metadata"}


class CSVImportService(BaseService[CSVImport]):
    table = CSV_IMPORTS
    model = CSVImport
    entity_type = "import"

    async def create_import(
        self,
        user_id: str,
        file_name: str,
        transactions: list[Any],
        file_size: int = 0,
        bank_name: Optional[str] = None,
        bank_format: Optional[str] = None,
        company_id: Optional[Any] = None,
        company_name: Optional[str] = None,
        duplicate_count: int = 0,
        error_count: int = 0,
        metadata: Optional[dict[str, Any]] = None,
    ) -> CSVImport:
        """Record a completed import. transactions are the rows that will be saved."""
        dates: list[date] = [t.date for t in transactions]
        record = CSVImport(
            user_id=user_id,
            file_name=file_name,
            original_name=file_name,
            file_size=file_size,
            bank_name=bank_name,
            bank_format=bank_format,
            company_id=company_id,
            company_name=company_name,
            transaction_count=len(transactions),
            duplicate_count=duplicate_count,
            error_count=error_count,
            date_range_start=min(dates) if dates else None,
            date_range_end=max(dates) if dates else None,
            status=ImportStatus.COMPLETED,
            metadata=metadata or {},
        )
        return await self._insert(record)

    async def get_import(self, user_id: str, import_id: Any) -> CSVImport:
        return await self.get(user_id, import_id)

    async def list_imports(
        self,
        user_id: str,
        status: str = ImportStatus.COMPLETED.value,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Imports with their live linked_transaction_count.

        status="all" disables the status filter.
        """
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "created_at"
        filters: dict[str, Any] = {}
        if status != "all":
            filters["status"] = ImportStatus(status)

        imports = await self._select(
            user_id,
            order_by=sort_by,
            descending=descending,
            limit=clamp(limit, 1, 100),
            offset=max(offset, 0),
            **filters,
        )

        results = []
        for record in imports:
            linked = await self._storage.count(
                TRANSACTIONS,
                {"user_id": user_id, "csv_import_id": str(record.id)},
            )
            results.append({**record.model_dump(), "linked_transaction_count": linked})
        return results

    async def get_transactions_for_import(
        self,
        user_id: str,
        import_id: Any,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        record = await self.get(user_id, import_id)
        rows = await self._storage.select(
            TRANSACTIONS,
            filters={"user_id": user_id, "csv_import_id": str(record.id)},
            order_by="date",
            descending=True,
            limit=clamp(limit, 1, 500),
            offset=max(offset, 0),
        )
        return [deserialize_record(Transaction, row) for row in rows]

    async def update_import(self, user_id: str, import_id: Any, **fields: Any) -> CSVImport:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ServiceValidationError(
                f"No valid fields to update. Allowed: {', '.join(sorted(UPDATABLE_FIELDS))}"
            )
        return await self._apply(user_id, import_id, changes)

    async def delete_import(
        self,
        user_id: str,
        import_id: Any,
        delete_transactions: bool = False,
        delete_import_record: bool = True,
    ) -> dict[str, int]:
        """
        Remove an import.

        Linked transactions are deleted with delete_transactions, otherwise
        they are kept and unlinked. Without delete_import_record the record
        stays behind with status "deleted".
        """
        record = await self.get(user_id, import_id)
        link = {"user_id": user_id, "csv_import_id": str(record.id)}

        deleted = unlinked = 0
        if delete_transactions:
            deleted = await self._storage.delete_where(TRANSACTIONS, link)
        else:
            unlinked = await self._storage.update_where(TRANSACTIONS, link, {"csv_import_id": None})

        if delete_import_record:
            await self._storage.delete(CSV_IMPORTS, str(record.id))
        else:
            await self._apply(user_id, record.id, {"status": ImportStatus.DELETED})

        logger.info(
            "csv_import_deleted",
            import_id=str(record.id),
            transactions_deleted=deleted,
            transactions_unlinked=unlinked,
        )
        if self._audit_logger:
            await self._audit_logger.log_csv_import_deleted(
                user_id=user_id,
                import_id=record.id,
                transactions_deleted=deleted,
                transactions_unlinked=unlinked,
            )
        return {
            "transactions_deleted": deleted,
            "transactions_unlinked": unlinked,
            "import_deleted": int(delete_import_record),
        }

    async def delete_transactions_by_import(self, user_id: str, import_id: Any) -> int:
        """Delete an import's transactions but keep the import record."""
        record = await self.get(user_id, import_id)
        deleted = await self._storage.delete_where(
            TRANSACTIONS,
            {"user_id": user_id, "csv_import_id": str(record.id)},
        )
        await self._apply(user_id, record.id, {"transaction_count": 0})
        return deleted
