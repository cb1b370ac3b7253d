"""
Split Transactions

Splitting divides one transaction across several categories. Each part
becomes a child transaction pointing at the parent through
parent_transaction_id; the parent keeps whatever was not allocated (the
remainder) so the family always sums to the original amount.

DESIGN DECISION: Storage has no multi-row transactions, so a split is
written children-first and compensated by hand. If anything after the
first child fails, every child already written is deleted again before
the error propagates. The parent is only touched last.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

import structlog

from bookkeeper.models.categories import ClassificationSource, TransactionSource, TransactionType
from bookkeeper.models.transaction import SplitPart, SplitResult, Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.storage.interface import TRANSACTIONS, StorageError


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
SPLIT_TOLERANCE = CENT


def _coerce_part(part: Union[SplitPart, dict[str, Any]]) -> SplitPart:
    if isinstance(part, SplitPart):
        return part
    return SplitPart.model_validate(part)


def validate_split_parts(
    original: Transaction,
    parts: list[Union[SplitPart, dict[str, Any]]],
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Check split parts against the original transaction.

    Returns (original absolute amount, split total, remainder).
    """
    if original is None:
        raise ServiceValidationError("Original transaction is required")
    if not parts:
        raise ServiceValidationError("At least one split part is required")

    original_amount = abs(original.amount)
    total = Decimal("0")
    for index, raw in enumerate(parts, start=1):
        try:
            part = _coerce_part(raw)
        except (ValueError, InvalidOperation):
            raise ServiceValidationError(f"Split part {index}: Amount must be a positive number")
        if part.amount is None or part.amount <= 0:
            raise ServiceValidationError(f"Split part {index}: Amount must be a positive number")
        if not part.category:
            raise ServiceValidationError(f"Split part {index}: Category is required")
        total += part.amount

    if total > original_amount + SPLIT_TOLERANCE:
        raise ServiceValidationError(
            f"Total split amount (${total:.2f}) exceeds original amount (${original_amount:.2f})"
        )

    remainder = max(original_amount - total, Decimal("0")).quantize(CENT)
    return original_amount, total, remainder


class SplitService(BaseService[Transaction]):
    table = TRANSACTIONS
    model = Transaction
    entity_type = "transaction"

    async def split_transaction(
        self,
        user_id: str,
        transaction_id: Any,
        parts: list[Union[SplitPart, dict[str, Any]]],
    ) -> SplitResult:
        original = await self.get(user_id, transaction_id)
        if original.is_split:
            raise ServiceValidationError("Transaction has already been split. Unsplit first to modify.")
        if original.parent_transaction_id:
            raise ServiceValidationError("Cannot split a split part")

        original_amount, split_total, remainder = validate_split_parts(original, parts)
        negative = original.amount < 0
        children: list[Transaction] = []

        try:
            for index, raw in enumerate(parts, start=1):
                part = _coerce_part(raw)
                amount = part.amount.quantize(CENT)
                child = Transaction(
                    user_id=user_id,
                    date=original.date,
                    description=part.description or original.description,
                    amount=-amount if negative else amount,
                    type=original.type,
                    category=part.category,
                    subcategory=part.subcategory,
                    payment_method=original.payment_method,
                    check_number=original.check_number,
                    reference_number=original.reference_number,
                    payee=part.payee or original.payee,
                    payee_id=original.payee_id,
                    vendor_id=original.vendor_id,
                    vendor_name=original.vendor_name,
                    income_source_id=original.income_source_id,
                    income_source=original.income_source,
                    company_id=original.company_id,
                    company_name=original.company_name,
                    csv_import_id=original.csv_import_id,
                    statement_id=original.statement_id,
                    bank_name=original.bank_name,
                    source=TransactionSource.SPLIT,
                    classification_source=ClassificationSource.SPLIT,
                    classification_confidence=1.0,
                    is_contractor_payment=original.is_contractor_payment,
                    tags=list(original.tags),
                    notes=part.notes or f"Split from: {original.description}",
                    parent_transaction_id=original.id,
                    split_index=index,
                    original_amount=original_amount,
                    original_description=original.original_description or original.description,
                )
                children.append(await self._insert(child))

            split_note = f"[Split on {date.today().isoformat()}]"
            updated = await self._apply(user_id, original.id, {
                "amount": -remainder if negative else remainder,
                "is_split": True,
                "original_amount": original_amount,
                "split_index": 0,
                "notes": f"{original.notes}\n{split_note}" if original.notes else split_note,
            })
        except (StorageError, ServiceValidationError):
            for child in children:
                await self._storage.delete(TRANSACTIONS, str(child.id))
            logger.error("split_rolled_back", transaction_id=str(original.id), parts_removed=len(children))
            raise

        logger.info("transaction_split", transaction_id=str(original.id), parts=len(children))
        if self._audit_logger:
            await self._audit_logger.log_transaction_split(
                user_id=user_id,
                transaction_id=original.id,
                split_count=len(children),
                remainder=str(remainder),
            )

        return SplitResult(
            original=updated,
            parts=children,
            original_amount=original_amount,
            remainder_amount=remainder,
            split_count=len(children),
            split_total=split_total.quantize(CENT),
        )

    async def unsplit_transaction(self, user_id: str, transaction_id: Any) -> Transaction:
        """Restore the original amount and delete the parts."""
        parent = await self.get(user_id, transaction_id)
        if not parent.is_split:
            raise ServiceValidationError("Transaction is not split")

        children = await self._select(user_id, parent_transaction_id=str(parent.id))
        original_amount = parent.original_amount
        if original_amount is None:
            original_amount = abs(parent.amount) + sum((abs(c.amount) for c in children), Decimal("0"))
        negative = parent.amount < 0 or (
            parent.amount == 0 and parent.type != TransactionType.INCOME
        )

        restored = await self._apply(user_id, parent.id, {
            "amount": -original_amount if negative else original_amount,
            "is_split": False,
            "original_amount": None,
            "split_index": None,
        })
        removed = await self._storage.delete_where(
            TRANSACTIONS,
            {"user_id": user_id, "parent_transaction_id": str(parent.id)},
        )

        logger.info("transaction_unsplit", transaction_id=str(parent.id), parts_removed=removed)
        if self._audit_logger:
            await self._audit_logger.log_transaction_unsplit(
                user_id=user_id,
                transaction_id=parent.id,
                removed_parts=removed,
            )
        return restored

    async def get_split_parts(self, user_id: str, transaction_id: Any) -> dict[str, Any]:
        """The parent plus its parts ordered by split_index."""
        parent = await self.get(user_id, transaction_id)
        parts = await self._select(user_id, parent_transaction_id=str(parent.id))
        parts.sort(key=lambda t: t.split_index or 0)
        return {
            "original": parent,
            "parts": parts,
            "total_parts": len(parts) + 1,
        }

    async def bulk_split(
        self,
        user_id: str,
        splits: Iterable[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Split several transactions.

        Each entry is {"transaction_id": ..., "parts": [...]}. Failures are
        collected per entry and never stop the batch.
        """
        splits = list(splits)
        if not splits:
            raise ServiceValidationError("No splits provided")

        results = []
        success_count = 0
        for entry in splits:
            transaction_id = entry.get("transaction_id")
            try:
                result = await self.split_transaction(user_id, transaction_id, entry.get("parts") or [])
                results.append({"transaction_id": str(transaction_id), "success": True, "result": result})
                success_count += 1
            except (ServiceValidationError, StorageError) as e:
                results.append({"transaction_id": str(transaction_id), "success": False, "error": str(e)})

        return {
            "success": success_count == len(splits),
            "message": f"Completed {success_count} of {len(splits)} splits",
            "success_count": success_count,
            "error_count": len(splits) - success_count,
            "results": results,
        }
