"""
Company Service

Companies are the businesses a user keeps books for. Deleting is a soft
delete (is_active=False) and is refused while transactions still point
at the company, so historic reports never lose their owner.
"""

from typing import Any, Optional

import structlog

from bookkeeper.models.base import utc_now
from bookkeeper.models.entities import Company
from bookkeeper.models.imports import AccountInfo
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.storage.interface import COMPANIES, TRANSACTIONS


logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = {
    "name", "legal_name", "tax_id", "business_type", "address",
    "phone", "email", "is_active",
}


class CompanyService(BaseService[Company]):
    table = COMPANIES
    model = Company
    entity_type = "company"

    async def create(self, user_id: str, name: str, **fields: Any) -> Company:
        """Create a company. The user's first company becomes the default."""
        if not name or not name.strip():
            raise ServiceValidationError("Company name is required")

        wants_default = bool(fields.pop("is_default", False))
        existing = await self._select(user_id, is_active=True)
        company = Company(
            user_id=user_id,
            name=name,
            is_default=not existing or wants_default,
            **fields,
        )
        if company.is_default and existing:
            await self._clear_default(user_id)

        saved = await self._insert(company)
        logger.info("company_created", company_id=str(saved.id), is_default=saved.is_default)
        return saved

    async def list(self, user_id: str, include_inactive: bool = False) -> list[Company]:
        """Default company first, then alphabetical."""
        companies = await self._select(user_id)
        if not include_inactive:
            companies = [c for c in companies if c.is_active]
        return sorted(companies, key=lambda c: (not c.is_default, c.name.lower()))

    async def update(self, user_id: str, company_id: Any, **fields: Any) -> Company:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ServiceValidationError("No valid fields to update")
        if "name" in changes and not str(changes["name"] or "").strip():
            raise ServiceValidationError("Company name is required")
        return await self._apply(user_id, company_id, changes)

    async def get_default(self, user_id: str) -> Optional[Company]:
        defaults = await self._select(user_id, is_default=True, is_active=True)
        return defaults[0] if defaults else None

    async def set_default(self, user_id: str, company_id: Any) -> Company:
        company = await self.get(user_id, company_id)
        if not company.is_active:
            raise ServiceValidationError("Cannot make an archived company the default")
        await self._clear_default(user_id)
        return await self._apply(user_id, company.id, {"is_default": True})

    async def _clear_default(self, user_id: str) -> None:
        await self._storage.update_where(
            COMPANIES,
            {"user_id": user_id, "is_default": True},
            {"is_default": False, "updated_at": utc_now().isoformat()},
        )

    async def delete(self, user_id: str, company_id: Any) -> Company:
        """Archive a company that no transaction references."""
        company = await self.get(user_id, company_id)
        in_use = await self._storage.count(
            TRANSACTIONS,
            {"user_id": user_id, "company_id": str(company.id)},
        )
        if in_use:
            raise ServiceValidationError(
                "Cannot delete company with existing transactions. "
                "Move or delete its transactions first."
            )
        return await self._apply(user_id, company.id, {
            "is_active": False,
            "is_default": False,
            "deleted_at": utc_now(),
        })

    async def find_by_name(self, user_id: str, name: str) -> Optional[Company]:
        """
        Look a company up by the name printed on a statement.

        Exact (case-insensitive) match on name or legal name wins;
        otherwise either name containing the other.
        """
        wanted = (name or "").strip().lower()
        if not wanted:
            return None
        companies = await self.list(user_id)

        for company in companies:
            names = {company.name.lower(), (company.legal_name or "").lower()}
            if wanted in names:
                return company

        for company in companies:
            for candidate in (company.name.lower(), (company.legal_name or "").lower()):
                if candidate and (candidate in wanted or wanted in candidate):
                    return company
        return None

    async def find_or_create_from_statement(
        self,
        user_id: str,
        info: AccountInfo,
    ) -> Optional[Company]:
        """Resolve the company a parsed statement belongs to."""
        if not info.company_name:
            return await self.get_default(user_id)

        company = await self.find_by_name(user_id, info.company_name)
        if company:
            return company
        return await self.create(user_id, info.company_name, source="pdf_import")
