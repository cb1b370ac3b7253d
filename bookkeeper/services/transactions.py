"""
Transaction Service

CRUD, Bulk Edit and counterparty assignment for transactions.

DESIGN DECISION: Bulk operations are applied record by record, not with
one storage-level update. Each record is ownership-checked and counted
individually, so the caller gets an exact updated/failed tally and one
bad id never aborts the rest of the batch.
"""

import re
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from bookkeeper.models.categories import (
    IRSCategory,
    PaymentMethod,
    TransactionType,
    category_label,
    is_income_category,
)
from bookkeeper.models.entities import Company, IncomeSource, Payee, PayeeType
from bookkeeper.models.imports import ParsedTransaction
from bookkeeper.models.query import QueryResult, TransactionFilter, TransactionSort
from bookkeeper.models.transaction import (
    BulkUpdate,
    BulkUpdateResult,
    Transaction,
    TransactionCreate,
)
from bookkeeper.queries import TransactionQueryExecutor
from bookkeeper.services.base import BaseService, ServiceValidationError, parse_uuid
from bookkeeper.storage.interface import (
    COMPANIES,
    INCOME_SOURCES,
    PAYEES,
    TRANSACTIONS,
    NotFoundError,
    StorageError,
    deserialize_record,
    serialize_record,
)


logger = structlog.get_logger(__name__)

# Fields a caller may change through update()
UPDATABLE_FIELDS = set(TransactionCreate.model_fields) - {"source"}


def normalize_description(description: str) -> str:
    """Uppercase, strip punctuation and collapse whitespace for duplicate checks."""
    cleaned = re.sub(r"[^A-Z0-9 ]", " ", (description or "").upper())
    return re.sub(r"\s+", " ", cleaned).strip()


def duplicate_key(txn_date: Any, amount: Any, description: str) -> tuple[str, str, str]:
    """The (date, amount, normalized description) identity of a transaction."""
    if isinstance(txn_date, date):
        txn_date = txn_date.isoformat()
    amount = Decimal(str(amount)).quantize(Decimal("0.01"))
    return str(txn_date), str(amount), normalize_description(description)


def infer_type(amount: Decimal, category: Optional[str] = None) -> TransactionType:
    if is_income_category(category):
        return TransactionType.INCOME
    return TransactionType.INCOME if amount > 0 else TransactionType.EXPENSE


class TransactionService(BaseService[Transaction]):
    table = TRANSACTIONS
    model = Transaction
    entity_type = "transaction"

    def __init__(self, storage, audit_logger=None, executor: Optional[TransactionQueryExecutor] = None):
        super().__init__(storage, audit_logger)
        self._executor = executor or TransactionQueryExecutor()

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(
        self,
        user_id: str,
        data: Union[TransactionCreate, dict[str, Any]],
    ) -> Transaction:
        if isinstance(data, dict):
            try:
                data = TransactionCreate.model_validate(data)
            except ValidationError as e:
                raise ServiceValidationError(str(e))

        fields = data.model_dump(exclude_none=True)
        fields["type"] = data.type or infer_type(data.amount, category_label(data.category))
        txn = Transaction(user_id=user_id, **fields)
        saved = await self._insert(txn)

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                user_id=user_id,
                transaction_id=saved.id,
                description=saved.description,
                amount=str(saved.amount),
            )
        return saved

    async def create_many(
        self,
        user_id: str,
        parsed: Iterable[ParsedTransaction],
        **links: Any,
    ) -> list[Transaction]:
        """
        Store parsed rows from an import.

        links are applied to every row (csv_import_id, statement_id,
        company_id, company_name).
        """
        saved = []
        for row in parsed:
            fields = row.model_dump(exclude={"row_index", "original_type"}, exclude_none=True)
            fields.update({k: v for k, v in links.items() if v is not None})
            if row.category:
                fields["category"] = category_label(row.category)
            txn = Transaction(user_id=user_id, **fields)
            saved.append(await self._insert(txn))
        return saved

    async def update(self, user_id: str, transaction_id: Any, changes: dict[str, Any]) -> Transaction:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ServiceValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ServiceValidationError("No fields to update")

        current = await self.get(user_id, transaction_id)
        merged = current.model_dump()
        merged.update(changes)
        try:
            validated = Transaction.model_validate(merged)
        except ValidationError as e:
            raise ServiceValidationError(str(e))

        stored_changes = {
            key: value for key, value in serialize_record(validated).items()
            if key in changes
        }
        updated = await self._apply(user_id, current.id, stored_changes)

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                user_id=user_id,
                transaction_id=updated.id,
                fields=sorted(changes),
            )
        return updated

    async def delete(self, user_id: str, transaction_id: Any) -> bool:
        """Delete a transaction and, if it was split, its parts."""
        txn = await self.get(user_id, transaction_id)
        if txn.is_split:
            await self._storage.delete_where(
                TRANSACTIONS,
                {"user_id": user_id, "parent_transaction_id": str(txn.id)},
            )
        deleted = await self._storage.delete(TRANSACTIONS, str(txn.id))

        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_deleted(user_id, txn.id)
        return deleted

    async def load_all(self, user_id: str, **filters: Any) -> list[Transaction]:
        """Every transaction of a user matching equality filters."""
        return await self._select(user_id, **filters)

    # =========================================================================
    # BULK EDIT
    # =========================================================================

    async def bulk_update(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        update: Union[BulkUpdate, dict[str, Any]],
    ) -> BulkUpdateResult:
        """Apply one payload to every selected transaction."""
        if isinstance(update, dict):
            try:
                update = BulkUpdate.model_validate(update)
            except ValidationError as e:
                raise ServiceValidationError(str(e))

        changes = update.changes()
        if not changes:
            raise ServiceValidationError("No fields to update")

        result = await self._apply_to_many(user_id, transaction_ids, changes)

        if self._audit_logger:
            await self._audit_logger.log_bulk_update(
                user_id=user_id,
                entity_type="transaction",
                fields=sorted(changes),
                updated=result.updated,
                failed=result.failed,
            )
        return result

    async def _apply_to_many(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        changes: dict[str, Any],
    ) -> BulkUpdateResult:
        ids = list(transaction_ids)
        result = BulkUpdateResult(requested=len(ids))
        for transaction_id in ids:
            try:
                await self._apply(user_id, transaction_id, changes)
                result.updated += 1
            except (NotFoundError, ServiceValidationError) as e:
                result.failed += 1
                result.errors.append(f"{transaction_id}: {e}")
            except StorageError as e:
                logger.warning("bulk_update_failed", transaction_id=str(transaction_id), error=str(e))
                result.failed += 1
                result.errors.append(f"{transaction_id}: {e}")
        return result

    # =========================================================================
    # ASSIGNMENT
    # =========================================================================

    async def _owned(self, table: str, model: type, user_id: str, record_id: Any, label: str):
        record_id = parse_uuid(record_id, f"{label} ID")
        row = await self._storage.get(table, str(record_id))
        if row is None or row.get("user_id") != user_id:
            raise NotFoundError(f"{label.capitalize()} not found: {record_id}")
        return deserialize_record(model, row)

    async def _payee_changes(self, user_id: str, payee_id: Optional[Any]) -> dict[str, Any]:
        if payee_id is None:
            return {"payee_id": None, "payee": None}
        payee: Payee = await self._owned(PAYEES, Payee, user_id, payee_id, "payee")
        changes = {"payee_id": payee.id, "payee": payee.name}
        if payee.type == PayeeType.CONTRACTOR:
            changes["is_contractor_payment"] = True
        return changes

    async def _vendor_changes(self, user_id: str, vendor_id: Optional[Any]) -> dict[str, Any]:
        if vendor_id is None:
            return {"vendor_id": None, "vendor_name": None}
        vendor: Payee = await self._owned(PAYEES, Payee, user_id, vendor_id, "vendor")
        return {"vendor_id": vendor.id, "vendor_name": vendor.business_name or vendor.name}

    async def _income_source_changes(self, user_id: str, source_id: Optional[Any]) -> dict[str, Any]:
        if source_id is None:
            return {"income_source_id": None, "income_source": None}
        source: IncomeSource = await self._owned(
            INCOME_SOURCES, IncomeSource, user_id, source_id, "income source"
        )
        return {"income_source_id": source.id, "income_source": source.name}

    async def _company_changes(self, user_id: str, company_id: Optional[Any]) -> dict[str, Any]:
        if company_id is None:
            return {"company_id": None, "company_name": None}
        company: Company = await self._owned(COMPANIES, Company, user_id, company_id, "company")
        return {"company_id": company.id, "company_name": company.name}

    async def assign_payee(self, user_id: str, transaction_id: Any, payee_id: Optional[Any]) -> Transaction:
        """Assign (or with None, clear) the payee of one transaction."""
        changes = await self._payee_changes(user_id, payee_id)
        return await self._apply(user_id, transaction_id, changes)

    async def bulk_assign_payee(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        payee_id: Optional[Any],
    ) -> BulkUpdateResult:
        changes = await self._payee_changes(user_id, payee_id)
        return await self._bulk_assign(user_id, transaction_ids, changes)

    async def assign_vendor(self, user_id: str, transaction_id: Any, vendor_id: Optional[Any]) -> Transaction:
        changes = await self._vendor_changes(user_id, vendor_id)
        return await self._apply(user_id, transaction_id, changes)

    async def bulk_assign_vendor(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        vendor_id: Optional[Any],
    ) -> BulkUpdateResult:
        changes = await self._vendor_changes(user_id, vendor_id)
        return await self._bulk_assign(user_id, transaction_ids, changes)

    async def assign_income_source(
        self,
        user_id: str,
        transaction_id: Any,
        income_source_id: Optional[Any],
    ) -> Transaction:
        changes = await self._income_source_changes(user_id, income_source_id)
        return await self._apply(user_id, transaction_id, changes)

    async def bulk_assign_income_source(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        income_source_id: Optional[Any],
    ) -> BulkUpdateResult:
        changes = await self._income_source_changes(user_id, income_source_id)
        return await self._bulk_assign(user_id, transaction_ids, changes)

    async def assign_company(self, user_id: str, transaction_id: Any, company_id: Optional[Any]) -> Transaction:
        changes = await self._company_changes(user_id, company_id)
        return await self._apply(user_id, transaction_id, changes)

    async def bulk_assign_company(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        company_id: Optional[Any],
    ) -> BulkUpdateResult:
        changes = await self._company_changes(user_id, company_id)
        return await self._bulk_assign(user_id, transaction_ids, changes)

    async def _bulk_assign(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        changes: dict[str, Any],
    ) -> BulkUpdateResult:
        result = await self._apply_to_many(user_id, transaction_ids, changes)
        if self._audit_logger:
            await self._audit_logger.log_bulk_update(
                user_id=user_id,
                entity_type="transaction",
                fields=sorted(changes),
                updated=result.updated,
                failed=result.failed,
            )
        return result

    async def get_transactions_without_payees(
        self,
        user_id: str,
        payment_method: Optional[str] = PaymentMethod.CHECK.value,
    ) -> list[Transaction]:
        """Transactions with neither a payee nor a vendor, newest first."""
        filters: dict[str, Any] = {"payee_id": None, "vendor_id": None}
        if payment_method:
            filters["payment_method"] = PaymentMethod(payment_method)
        records = await self._select(user_id, **filters)
        return sorted(records, key=lambda t: (t.date, t.created_at), reverse=True)

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    async def get_summary(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        company_id: Optional[Any] = None,
    ) -> dict[str, Any]:
        """Income, expenses, net and per-category totals for a period."""
        filters = {"company_id": str(parse_uuid(company_id, "company ID"))} if company_id else {}
        records = [
            t for t in await self._select(user_id, **filters)
            if (start is None or t.date >= start) and (end is None or t.date <= end)
        ]

        income = Decimal("0")
        expenses = Decimal("0")
        by_category: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for txn in records:
            if txn.type == TransactionType.TRANSFER:
                continue
            if txn.is_income:
                income += txn.absolute_amount
            else:
                expenses += txn.absolute_amount
            by_category[txn.category or IRSCategory.UNCATEGORIZED.value] += txn.absolute_amount

        return {
            "income": income,
            "expenses": expenses,
            "net": income - expenses,
            "count": len(records),
            "by_category": dict(by_category),
        }

    async def find_duplicates(
        self,
        user_id: str,
        candidates: Iterable[Union[ParsedTransaction, Transaction]],
    ) -> list[Union[ParsedTransaction, Transaction]]:
        """Candidates that already exist as stored transactions."""
        existing = {
            duplicate_key(t.date, t.amount, t.description)
            for t in await self._select(user_id)
        }
        return [
            c for c in candidates
            if duplicate_key(c.date, c.amount, c.description) in existing
        ]

    async def list(
        self,
        user_id: str,
        filters: Optional[TransactionFilter] = None,
        sort: Optional[TransactionSort] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> QueryResult:
        records = await self._select(user_id)
        return self._executor.execute(records, filters, sort, limit, offset)
