"""
Check Service

Checks written to payees and checks deposited. A check can create its
own transaction (deposits positive, payments negative, payment_method
check) or be made from transactions already imported from a statement.

Check payee assignment finds check payments with no payee and assigns
one to the checks and to every transaction they are linked to.
"""

from collections import Counter
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from bookkeeper.models.categories import PaymentMethod, TransactionSource, category_label
from bookkeeper.models.check import Check, CheckStats, CheckStatus, CheckType
from bookkeeper.models.entities import PayeeType
from bookkeeper.models.transaction import BulkUpdateResult, Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.services.links import TransactionLinksMixin
from bookkeeper.services.payees import PayeeService
from bookkeeper.services.transactions import TransactionService
from bookkeeper.storage.interface import CHECKS, TRANSACTIONS, NotFoundError, StorageError


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
UPDATABLE_FIELDS = {
    "check_number", "amount", "date", "type", "status", "cleared_date",
    "payee", "vendor_name", "is_contractor_payment",
    "bank_name", "account_number", "routing_number",
    "memo", "notes", "category", "company_id", "image_url",
}
BATCH_FIELDS = {"status", "category", "company_id", "notes", "memo"}


def _amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).replace(",", "").replace("$", ""))
    except (InvalidOperation, ValueError):
        raise ServiceValidationError(f"Invalid amount: {value}")
    if amount < 0:
        raise ServiceValidationError("Check amount cannot be negative")
    return amount.quantize(CENT)


def _last_four(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    digits = "".join(c for c in str(value) if c.isdigit())
    return digits[-4:] or None


def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
    if "amount" in fields:
        fields["amount"] = _amount(fields["amount"])
    if fields.get("category"):
        fields["category"] = category_label(fields["category"])
    if "account_number" in fields:
        fields["account_number"] = _last_four(fields["account_number"])
    return fields


def transaction_description(check: Check) -> str:
    return check.memo or f"Check #{check.check_number or 'N/A'} - {check.payee or 'Unknown'}"


class CheckService(TransactionLinksMixin, BaseService[Check]):
    table = CHECKS
    model = Check
    entity_type = "check"

    def __init__(
        self,
        storage,
        audit_logger=None,
        transactions: Optional[TransactionService] = None,
        payees: Optional[PayeeService] = None,
    ):
        super().__init__(storage, audit_logger)
        self._transactions = transactions or TransactionService(storage, audit_logger)
        self._payees = payees or PayeeService(storage, audit_logger)

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(
        self,
        user_id: str,
        amount: Any = None,
        check_date: Optional[Union[date, str]] = None,
        payee: Optional[str] = None,
        check_type: Union[CheckType, str] = CheckType.EXPENSE,
        create_transaction: bool = False,
        **fields: Any,
    ) -> Check:
        """
        Store a check, optionally creating its transaction.

        The transaction needs an amount and a date. If storing the check
        fails after the transaction was written, the transaction is
        removed again.
        """
        extra = _normalize({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS | {"payee_id", "vendor_id"}})
        try:
            check = Check(
                user_id=user_id,
                amount=_amount(amount),
                date=check_date,
                payee=payee or None,
                type=check_type,
                **extra,
            )
        except ValidationError as e:
            raise ServiceValidationError(str(e))

        txn: Optional[Transaction] = None
        if create_transaction:
            if check.amount is None or check.date is None:
                raise ServiceValidationError("A check needs an amount and a date to create a transaction")
            txn = await self._create_transaction_for(check)
            check.transaction_ids = [txn.id]

        try:
            saved = await self._insert(check)
        except StorageError:
            if txn is not None:
                await self._storage.delete(TRANSACTIONS, str(txn.id))
            raise

        logger.info("check_created", check_id=str(saved.id), transaction_created=txn is not None)
        if self._audit_logger:
            await self._audit_logger.log_check_created(
                user_id=user_id,
                check_id=saved.id,
                check_number=saved.check_number,
                payee=saved.payee,
                amount=str(saved.amount) if saved.amount is not None else None,
            )
        return saved

    async def _create_transaction_for(self, check: Check) -> Transaction:
        return await self._transactions.create(
            check.user_id,
            {
                "date": check.date,
                "description": transaction_description(check),
                "amount": check.signed_amount,
                "category": check.category,
                "payment_method": PaymentMethod.CHECK,
                "check_number": check.check_number,
                "payee": check.payee,
                "payee_id": check.payee_id,
                "vendor_id": check.vendor_id,
                "vendor_name": check.vendor_name,
                "company_id": check.company_id,
                "bank_name": check.bank_name,
                "is_contractor_payment": check.is_contractor_payment,
                "source": TransactionSource.CHECK,
                "needs_review": not check.category,
                "notes": check.notes,
            },
        )

    async def update(self, user_id: str, check_id: Any, **fields: Any) -> Check:
        changes = _normalize({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
        if not changes:
            raise ServiceValidationError("No valid fields to update")
        return await self._apply(user_id, check_id, changes)

    async def mark_cleared(self, user_id: str, check_id: Any, cleared_date: Optional[date] = None) -> Check:
        return await self._apply(
            user_id,
            check_id,
            {"status": CheckStatus.CLEARED, "cleared_date": cleared_date or date.today()},
        )

    async def delete(self, user_id: str, check_id: Any) -> bool:
        """Delete a check. Linked transactions are kept."""
        return await self._remove(user_id, check_id)

    # =========================================================================
    # BULK
    # =========================================================================

    async def bulk_create(self, user_id: str, entries: Iterable[dict[str, Any]]) -> dict[str, Any]:
        results: list[dict[str, Any]] = []
        for index, entry in enumerate(entries):
            entry = dict(entry)
            try:
                check = await self.create(
                    user_id,
                    amount=entry.pop("amount", None),
                    check_date=entry.pop("date", None),
                    payee=entry.pop("payee", None),
                    check_type=entry.pop("type", CheckType.EXPENSE),
                    create_transaction=bool(entry.pop("create_transaction", False)),
                    **entry,
                )
                results.append({"index": index, "success": True, "check": check})
            except (ServiceValidationError, StorageError) as e:
                results.append({"index": index, "success": False, "error": str(e)})

        success_count = sum(1 for r in results if r["success"])
        logger.info("checks_bulk_created", created=success_count, failed=len(results) - success_count)
        return {
            "results": results,
            "success_count": success_count,
            "fail_count": len(results) - success_count,
        }

    async def bulk_create_from_transactions(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
    ) -> dict[str, Any]:
        """
        Make one check per existing transaction and link them.

        Used for check payments that arrived through a statement or CSV
        import. No new transactions are created.
        """
        checks: list[Check] = []
        errors: list[dict[str, Any]] = []
        for transaction_id in transaction_ids:
            try:
                txn = await self._transactions.get(user_id, transaction_id)
                check = Check(
                    user_id=user_id,
                    amount=abs(txn.amount),
                    date=txn.date,
                    type=CheckType.INCOME if txn.amount >= 0 else CheckType.EXPENSE,
                    status=CheckStatus.CLEARED,
                    cleared_date=txn.date,
                    check_number=txn.check_number,
                    payee=txn.payee,
                    payee_id=txn.payee_id,
                    vendor_id=txn.vendor_id,
                    vendor_name=txn.vendor_name,
                    is_contractor_payment=txn.is_contractor_payment,
                    bank_name=txn.bank_name,
                    memo=txn.description[:500],
                    notes=f"From transaction: {txn.description}"[:1000],
                    category=txn.category,
                    company_id=txn.company_id,
                    transaction_ids=[txn.id],
                )
                checks.append(await self._insert(check))
            except (NotFoundError, ServiceValidationError, ValidationError, StorageError) as e:
                errors.append({"transaction_id": str(transaction_id), "error": str(e)})

        logger.info("checks_created_from_transactions", created=len(checks), failed=len(errors))
        return {"checks": checks, "errors": errors}

    async def batch_update(
        self,
        user_id: str,
        check_ids: Iterable[Any],
        updates: dict[str, Any],
    ) -> BulkUpdateResult:
        changes = _normalize({k: v for k, v in updates.items() if k in BATCH_FIELDS})
        if not changes:
            raise ServiceValidationError(f"Only these fields can be batch updated: {', '.join(sorted(BATCH_FIELDS))}")
        ids = list(check_ids)
        result = BulkUpdateResult(requested=len(ids))
        for check_id in ids:
            try:
                await self._apply(user_id, check_id, changes)
                result.updated += 1
            except (NotFoundError, ServiceValidationError, StorageError) as e:
                result.failed += 1
                result.errors.append(f"{check_id}: {e}")
        return result

    async def batch_delete(self, user_id: str, check_ids: Iterable[Any]) -> BulkUpdateResult:
        ids = list(check_ids)
        result = BulkUpdateResult(requested=len(ids))
        for check_id in ids:
            try:
                if await self._remove(user_id, check_id):
                    result.updated += 1
            except (NotFoundError, ServiceValidationError, StorageError) as e:
                result.failed += 1
                result.errors.append(f"{check_id}: {e}")
        return result

    # =========================================================================
    # PAYEE ASSIGNMENT
    # =========================================================================

    async def get_transactions_without_payees(self, user_id: str) -> list[Transaction]:
        """Check payments (payment_method=check) with no payee or vendor."""
        return await self._transactions.get_transactions_without_payees(user_id, PaymentMethod.CHECK.value)

    async def list_without_payee(self, user_id: str) -> list[Check]:
        checks = await self._select(user_id, payee_id=None, vendor_id=None)
        return sorted(checks, key=lambda c: c.created_at, reverse=True)

    async def assign_payee(self, user_id: str, check_ids: Iterable[Any], payee_id: Any) -> BulkUpdateResult:
        """Assign a payee to checks and to the transactions they are linked to."""
        payee = await self._payees.get(user_id, payee_id)
        changes: dict[str, Any] = {"payee_id": payee.id, "payee": payee.name}
        if payee.type == PayeeType.CONTRACTOR:
            changes["is_contractor_payment"] = True

        ids = list(check_ids)
        result = BulkUpdateResult(requested=len(ids))
        linked: list[str] = []
        for check_id in ids:
            try:
                check = await self._apply(user_id, check_id, changes)
            except (NotFoundError, ServiceValidationError, StorageError) as e:
                result.failed += 1
                result.errors.append(f"{check_id}: {e}")
                continue
            result.updated += 1
            linked.extend(str(t) for t in check.transaction_ids if str(t) not in linked)

        if linked:
            outcome = await self._transactions.bulk_assign_payee(user_id, linked, payee.id)
            result.errors.extend(outcome.errors)
        logger.info(
            "check_payee_assigned",
            payee_id=str(payee.id),
            checks=result.updated,
            transactions=len(linked),
        )
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list(
        self,
        user_id: str,
        check_type: Optional[Union[CheckType, str]] = None,
        status: Optional[Union[CheckStatus, str]] = None,
        company_id: Optional[Any] = None,
        payee: Optional[str] = None,
        check_number: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        has_image: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Check]:
        """Checks matching every given filter, newest first, undated last."""
        checks = await self._select(user_id)

        if check_type:
            checks = [c for c in checks if c.type == CheckType(check_type)]
        if status:
            checks = [c for c in checks if c.status == CheckStatus(status)]
        if company_id:
            checks = [c for c in checks if str(c.company_id) == str(company_id)]
        if payee:
            term = payee.strip().lower()
            checks = [c for c in checks if term in (c.payee or "").lower()]
        if check_number:
            checks = [c for c in checks if check_number.strip() in (c.check_number or "")]
        if date_from:
            checks = [c for c in checks if c.date and c.date >= date_from]
        if date_to:
            checks = [c for c in checks if c.date and c.date <= date_to]
        if min_amount is not None:
            checks = [c for c in checks if c.amount is not None and c.amount >= min_amount]
        if max_amount is not None:
            checks = [c for c in checks if c.amount is not None and c.amount <= max_amount]
        if has_image is not None:
            checks = [c for c in checks if bool(c.image_url) == has_image]

        dated = sorted((c for c in checks if c.date), key=lambda c: c.date, reverse=True)
        checks = dated + [c for c in checks if not c.date]
        checks = checks[offset:]
        return checks[:limit] if limit is not None else checks

    async def get_stats(self, user_id: str) -> CheckStats:
        checks = await self._select(user_id)
        return CheckStats(
            total_count=len(checks),
            with_images=sum(1 for c in checks if c.image_url),
            linked_count=sum(1 for c in checks if c.is_linked),
            by_type=dict(Counter(c.type.value for c in checks)),
            by_status=dict(Counter(c.status.value for c in checks)),
            total_income=sum((c.amount or Decimal("0") for c in checks if c.type == CheckType.INCOME), Decimal("0")),
            total_expense=sum((c.amount or Decimal("0") for c in checks if c.type == CheckType.EXPENSE), Decimal("0")),
        )
