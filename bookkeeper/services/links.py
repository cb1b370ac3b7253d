"""
Transaction links for documents (receipts, checks).

A document holds the ids of the transactions it supports in
transaction_ids. The mixin expects the host service to provide get and
_apply from BaseService.
"""

from typing import Any, Iterable

from bookkeeper.models.transaction import BulkUpdateResult
from bookkeeper.services.base import ServiceValidationError, parse_uuid
from bookkeeper.storage.interface import TRANSACTIONS, NotFoundError


class TransactionLinksMixin:

    async def _check_transaction(self, user_id: str, transaction_id: Any) -> str:
        transaction_id = str(parse_uuid(transaction_id, "transaction ID"))
        row = await self._storage.get(TRANSACTIONS, transaction_id)
        if row is None or row.get("user_id") != user_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction_id

    async def _set_links(self, user_id: str, document_id: Any, links: list[str]):
        return await self._apply(user_id, document_id, {"transaction_ids": links})

    async def attach_to_transaction(self, user_id: str, document_id: Any, transaction_id: Any):
        """Link a document to exactly one transaction, replacing other links."""
        document = await self.get(user_id, document_id)
        link = await self._check_transaction(user_id, transaction_id)
        return await self._set_links(user_id, document.id, [link])

    async def detach_from_transaction(self, user_id: str, document_id: Any):
        document = await self.get(user_id, document_id)
        return await self._set_links(user_id, document.id, [])

    async def add_transaction_link(self, user_id: str, document_id: Any, transaction_id: Any):
        document = await self.get(user_id, document_id)
        link = await self._check_transaction(user_id, transaction_id)
        links = [str(t) for t in document.transaction_ids]
        if link not in links:
            links.append(link)
        return await self._set_links(user_id, document.id, links)

    async def remove_transaction_link(self, user_id: str, document_id: Any, transaction_id: Any):
        document = await self.get(user_id, document_id)
        target = str(parse_uuid(transaction_id, "transaction ID"))
        links = [str(t) for t in document.transaction_ids if str(t) != target]
        return await self._set_links(user_id, document.id, links)

    async def link_to_multiple_transactions(
        self,
        user_id: str,
        document_id: Any,
        transaction_ids: Iterable[Any],
    ):
        document = await self.get(user_id, document_id)
        links = [str(t) for t in document.transaction_ids]
        for transaction_id in transaction_ids:
            link = await self._check_transaction(user_id, transaction_id)
            if link not in links:
                links.append(link)
        return await self._set_links(user_id, document.id, links)

    async def bulk_link_to_transaction(
        self,
        user_id: str,
        document_ids: Iterable[Any],
        transaction_id: Any,
    ) -> BulkUpdateResult:
        """Add the same transaction link to several documents."""
        await self._check_transaction(user_id, transaction_id)
        ids = list(document_ids)
        result = BulkUpdateResult(requested=len(ids))
        for document_id in ids:
            try:
                await self.add_transaction_link(user_id, document_id, transaction_id)
                result.updated += 1
            except (NotFoundError, ServiceValidationError) as e:
                result.failed += 1
                result.errors.append(f"{document_id}: {e}")
        return result

    async def bulk_unlink(self, user_id: str, document_ids: Iterable[Any]) -> BulkUpdateResult:
        ids = list(document_ids)
        result = BulkUpdateResult(requested=len(ids))
        for document_id in ids:
            try:
                await self.detach_from_transaction(user_id, document_id)
                result.updated += 1
            except (NotFoundError, ServiceValidationError) as e:
                result.failed += 1
                result.errors.append(f"{document_id}: {e}")
        return result
