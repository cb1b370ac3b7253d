"""
Receipt Service

Receipts are proof of purchase. A receipt can be linked to several
transactions and a transaction can carry several receipts; the links
live on the receipt as transaction_ids.

Bulk entry (pasted text, see receipt_entry) can also create the matching
expense transaction for each receipt in one go.
"""

from collections import Counter
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from bookkeeper.models.categories import TransactionSource, TransactionType, category_label
from bookkeeper.models.receipt import Receipt, ReceiptEntry, ReceiptSource, ReceiptStats
from bookkeeper.models.transaction import BulkUpdateResult, Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.services.links import TransactionLinksMixin
from bookkeeper.storage.interface import RECEIPTS, TRANSACTIONS, NotFoundError, StorageError


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
UPDATABLE_FIELDS = {"vendor", "amount", "date", "category", "notes", "image_url", "company_id"}
SORT_FIELDS = {"date", "amount", "vendor", "category", "created_at"}


def _amount(value: Any) -> Decimal:
    try:
        amount = abs(Decimal(str(value).replace(",", "").replace("$", "")))
    except (InvalidOperation, ValueError):
        raise ServiceValidationError(f"Invalid amount: {value}")
    if amount == 0:
        raise ServiceValidationError("Amount must not be zero")
    return amount.quantize(CENT)


class ReceiptService(TransactionLinksMixin, BaseService[Receipt]):
    table = RECEIPTS
    model = Receipt
    entity_type = "receipt"

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(
        self,
        user_id: str,
        amount: Any,
        receipt_date: Union[date, str],
        vendor: Optional[str] = None,
        category: Optional[str] = None,
        source: ReceiptSource = ReceiptSource.MANUAL,
        **fields: Any,
    ) -> Receipt:
        try:
            receipt = Receipt(
                user_id=user_id,
                amount=_amount(amount),
                date=receipt_date,
                vendor=vendor or None,
                category=category_label(category) if category else None,
                source=source,
                **{k: v for k, v in fields.items() if k in UPDATABLE_FIELDS | {"transaction_ids"}},
            )
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        saved = await self._insert(receipt)

        if self._audit_logger:
            await self._audit_logger.log_receipt_created(
                user_id=user_id,
                receipt_id=saved.id,
                vendor=saved.vendor,
                amount=str(saved.amount),
            )
        return saved

    async def update(self, user_id: str, receipt_id: Any, **fields: Any) -> Receipt:
        changes = self._validated_changes(fields)
        return await self._apply(user_id, receipt_id, changes)

    def _validated_changes(self, fields: dict[str, Any]) -> dict[str, Any]:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ServiceValidationError("No valid fields to update")
        if "amount" in changes:
            changes["amount"] = _amount(changes["amount"])
        if changes.get("category"):
            changes["category"] = category_label(changes["category"])
        return changes

    async def delete(self, user_id: str, receipt_id: Any) -> bool:
        return await self._remove(user_id, receipt_id)

    # =========================================================================
    # BULK
    # =========================================================================

    async def bulk_create(
        self,
        user_id: str,
        entries: Iterable[Union[ReceiptEntry, dict[str, Any]]],
        create_transactions: bool = True,
        company_id: Optional[Any] = None,
    ) -> dict[str, Any]:
        """
        Store receipts entered in bulk.

        With create_transactions, each receipt also gets an expense
        transaction (source=receipt) and is linked to it.
        """
        receipts: list[Receipt] = []
        transactions: list[Transaction] = []
        errors: list[dict[str, Any]] = []

        for index, raw in enumerate(entries):
            try:
                entry = raw if isinstance(raw, ReceiptEntry) else ReceiptEntry.model_validate(raw)
                amount = _amount(entry.amount)
                receipt = await self.create(
                    user_id,
                    amount=amount,
                    receipt_date=entry.date,
                    vendor=entry.vendor,
                    category=entry.category,
                    source=ReceiptSource.BULK,
                    company_id=company_id,
                )
            except (ServiceValidationError, ValidationError, StorageError) as e:
                errors.append({"index": index, "error": str(e)})
                continue

            if create_transactions:
                txn: Optional[Transaction] = None
                try:
                    txn = await self._create_expense_for(receipt, amount)
                    receipt = await self._apply(user_id, receipt.id, {"transaction_ids": [txn.id]})
                except (ServiceValidationError, ValidationError, StorageError) as e:
                    # Undo both writes for this entry
                    if txn is not None:
                        await self._storage.delete(TRANSACTIONS, str(txn.id))
                    await self._storage.delete(RECEIPTS, str(receipt.id))
                    logger.error("receipt_bulk_entry_rolled_back", receipt_id=str(receipt.id), error=str(e))
                    errors.append({"index": index, "error": str(e)})
                    continue
                transactions.append(txn)
            receipts.append(receipt)

        logger.info(
            "receipts_bulk_created",
            created=len(receipts),
            transactions=len(transactions),
            failed=len(errors),
        )
        return {"receipts": receipts, "transactions": transactions, "errors": errors}

    async def _create_expense_for(self, receipt: Receipt, amount: Decimal) -> Transaction:
        txn = Transaction(
            user_id=receipt.user_id,
            date=receipt.date,
            description=receipt.vendor or "Receipt",
            amount=-amount,
            type=TransactionType.EXPENSE,
            category=receipt.category,
            vendor_name=receipt.vendor,
            company_id=receipt.company_id,
            source=TransactionSource.RECEIPT,
            needs_review=not receipt.category,
        )
        await self._storage.insert(TRANSACTIONS, txn.model_dump(mode="json"))
        return txn

    async def batch_update(
        self,
        user_id: str,
        receipt_ids: Iterable[Any],
        updates: dict[str, Any],
    ) -> BulkUpdateResult:
        """Apply the same changes to several receipts (Bulk Edit)."""
        changes = self._validated_changes(updates)
        ids = list(receipt_ids)
        result = BulkUpdateResult(requested=len(ids))
        for receipt_id in ids:
            try:
                await self._apply(user_id, receipt_id, changes)
                result.updated += 1
            except (NotFoundError, ServiceValidationError, StorageError) as e:
                result.failed += 1
                result.errors.append(f"{receipt_id}: {e}")

        if self._audit_logger:
            await self._audit_logger.log_receipts_batch_updated(
                user_id=user_id,
                count=result.updated,
                fields=sorted(changes),
            )
        return result

    async def batch_delete(self, user_id: str, receipt_ids: Iterable[Any]) -> BulkUpdateResult:
        ids = list(receipt_ids)
        result = BulkUpdateResult(requested=len(ids))
        for receipt_id in ids:
            try:
                if await self._remove(user_id, receipt_id):
                    result.updated += 1
            except (NotFoundError, ServiceValidationError, StorageError) as e:
                result.failed += 1
                result.errors.append(f"{receipt_id}: {e}")
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_stats(self, user_id: str) -> ReceiptStats:
        receipts = await self._select(user_id)
        linked = sum(1 for r in receipts if r.is_linked)
        return ReceiptStats(
            total_count=len(receipts),
            total_amount=sum((r.amount for r in receipts), Decimal("0")),
            linked_count=linked,
            unlinked_count=len(receipts) - linked,
            by_category=dict(Counter(r.category or "Uncategorized" for r in receipts)),
        )

    async def list(
        self,
        user_id: str,
        vendor: Optional[str] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        has_transaction: Optional[bool] = None,
        sort_by: str = "date",
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Receipt]:
        receipts = await self._select(user_id)

        if vendor:
            term = vendor.strip().lower()
            receipts = [r for r in receipts if term in (r.vendor or "").lower()]
        if category:
            receipts = [r for r in receipts if r.category == category_label(category)]
        if date_from:
            receipts = [r for r in receipts if r.date >= date_from]
        if date_to:
            receipts = [r for r in receipts if r.date <= date_to]
        if has_transaction is not None:
            receipts = [r for r in receipts if r.is_linked == has_transaction]

        if sort_by not in SORT_FIELDS:
            sort_by = "date"
        present = [r for r in receipts if getattr(r, sort_by) is not None]
        missing = [r for r in receipts if getattr(r, sort_by) is None]
        present.sort(key=lambda r: getattr(r, sort_by), reverse=descending)
        receipts = present + missing

        receipts = receipts[offset:]
        return receipts[:limit] if limit is not None else receipts
