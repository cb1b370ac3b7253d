"""Income Source Service"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from bookkeeper.models.entities import IncomeSource
from bookkeeper.models.transaction import Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.storage.interface import INCOME_SOURCES, TRANSACTIONS, deserialize_record


UNASSIGNED = "Unassigned"
UPDATABLE_FIELDS = {"name", "description", "company_id", "default_category", "contact_email", "is_active"}


class IncomeSourceService(BaseService[IncomeSource]):
    table = INCOME_SOURCES
    model = IncomeSource
    entity_type = "income source"

    async def create(self, user_id: str, name: str, **fields: Any) -> IncomeSource:
        if not name or not name.strip():
            raise ServiceValidationError("Income source name is required")
        try:
            source = IncomeSource(user_id=user_id, name=name, **fields)
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        return await self._insert(source)

    async def update(self, user_id: str, source_id: Any, **fields: Any) -> IncomeSource:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ServiceValidationError("No valid fields to update")
        return await self._apply(user_id, source_id, changes)

    async def delete(self, user_id: str, source_id: Any) -> bool:
        """Delete a source; its transactions keep their amounts but lose the link."""
        source = await self.get(user_id, source_id)
        await self._storage.update_where(
            TRANSACTIONS,
            {"user_id": user_id, "income_source_id": str(source.id)},
            {"income_source_id": None, "income_source": None},
        )
        return await self._storage.delete(INCOME_SOURCES, str(source.id))

    async def get_income_summary(
        self,
        user_id: str,
        year: Optional[int] = None,
    ) -> dict[str, dict[str, Any]]:
        """Income totals per source for a year. Unlinked income is grouped as "Unassigned"."""
        year = year or date.today().year
        rows = await self._storage.select(TRANSACTIONS, filters={"user_id": user_id})

        summary: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"total": Decimal("0"), "count": 0}
        )
        for txn in (deserialize_record(Transaction, row) for row in rows):
            if txn.date.year != year or not txn.is_income:
                continue
            bucket = summary[txn.income_source or UNASSIGNED]
            bucket["total"] += txn.absolute_amount
            bucket["count"] += 1
        return dict(summary)

    async def list(self, user_id: str, include_inactive: bool = True) -> list[IncomeSource]:
        sources = await self._select(user_id)
        if not include_inactive:
            sources = [s for s in sources if s.is_active]
        return sorted(sources, key=lambda s: s.name.lower())
