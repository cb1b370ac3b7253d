"""
Payee Service

Vendors, contractors and employees. Contractors are the ones that matter
at tax time: ytd_paid drives the 1099-NEC threshold check.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from bookkeeper.models.categories import TransactionType
from bookkeeper.models.entities import Payee, PayeeType
from bookkeeper.models.transaction import Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError, parse_uuid
from bookkeeper.storage.interface import PAYEES, TRANSACTIONS, deserialize_record


logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = set(Payee.model_fields) - {"id", "user_id", "created_at", "updated_at"}


class PayeeService(BaseService[Payee]):
    table = PAYEES
    model = Payee
    entity_type = "payee"

    async def create(self, user_id: str, name: str, **fields: Any) -> Payee:
        if not name or not name.strip():
            raise ServiceValidationError("Payee name is required")
        try:
            payee = Payee(user_id=user_id, name=name, **fields)
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        return await self._insert(payee)

    async def update(self, user_id: str, payee_id: Any, **fields: Any) -> Payee:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ServiceValidationError("No valid fields to update")

        current = await self.get(user_id, payee_id)
        try:
            Payee.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        return await self._apply(user_id, current.id, changes)

    async def delete(self, user_id: str, payee_id: Any) -> bool:
        return await self._remove(user_id, payee_id)

    async def search(self, user_id: str, term: str) -> list[Payee]:
        """Case-insensitive match on name, business name or email."""
        term = (term or "").strip().lower()
        payees = await self._select(user_id)
        if not term:
            return payees
        return [
            p for p in payees
            if term in p.name.lower()
            or term in (p.business_name or "").lower()
            or term in (p.email or "").lower()
        ]

    async def get_by_type(self, user_id: str, payee_type: PayeeType) -> list[Payee]:
        payees = await self._select(user_id, type=PayeeType(payee_type))
        return sorted(payees, key=lambda p: p.name.lower())

    async def get_vendors(self, user_id: str) -> list[Payee]:
        return await self.get_by_type(user_id, PayeeType.VENDOR)

    async def get_contractors(self, user_id: str) -> list[Payee]:
        return await self.get_by_type(user_id, PayeeType.CONTRACTOR)

    async def get_employees(self, user_id: str) -> list[Payee]:
        return await self.get_by_type(user_id, PayeeType.EMPLOYEE)

    async def update_payee_stats(
        self,
        user_id: str,
        payee_id: Any,
        year: Optional[int] = None,
    ) -> Payee:
        """
        Recompute year-to-date totals from the payee's transactions.

        ytd_paid is the sum of absolute expense amounts dated in the year;
        last payment is the most recent of those.
        """
        payee = await self.get(user_id, payee_id)
        year = year or date.today().year

        rows = await self._storage.select(
            TRANSACTIONS,
            filters={"user_id": user_id, "payee_id": str(payee.id)},
        )
        payments = [
            t for t in (deserialize_record(Transaction, row) for row in rows)
            if t.date.year == year and t.type != TransactionType.INCOME
        ]

        ytd = sum((t.absolute_amount for t in payments), Decimal("0"))
        latest = max(payments, key=lambda t: t.date) if payments else None

        return await self._apply(user_id, payee.id, {
            "ytd_paid": ytd,
            "last_payment_date": latest.date if latest else None,
            "last_payment_amount": latest.absolute_amount if latest else None,
        })

    async def list(
        self,
        user_id: str,
        payee_type: Optional[PayeeType] = None,
        company_id: Optional[Any] = None,
        is_active: Optional[bool] = None,
    ) -> list[Payee]:
        filters: dict[str, Any] = {}
        if payee_type:
            filters["type"] = PayeeType(payee_type)
        if company_id:
            filters["company_id"] = str(parse_uuid(company_id, "company ID"))
        if is_active is not None:
            filters["is_active"] = is_active
        payees = await self._select(user_id, **filters)
        return sorted(payees, key=lambda p: p.name.lower())
