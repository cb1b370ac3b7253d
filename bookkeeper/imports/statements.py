"""
Statement Uploads

Tracks a PDF bank statement from upload to stored transactions:

    uploaded -> processing -> completed
                          \-> failed (error_message set)

DESIGN DECISION: A failed job keeps its StatementUpload record with the
error message so the UI can show why, and the exception is re-raised so
the caller (the flow or the API layer) decides how to surface it.
"""

from typing import Any, Optional

import structlog

from bookkeeper.imports.statement_parser import ChaseStatementParser, extract_text
from bookkeeper.models.imports import StatementParseResult, StatementUpload, UploadStatus
from bookkeeper.models.transaction import Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError
from bookkeeper.services.companies import CompanyService
from bookkeeper.services.transactions import TransactionService
from bookkeeper.storage.interface import STATEMENT_UPLOADS, TRANSACTIONS


logger = structlog.get_logger(__name__)


class StatementService(BaseService[StatementUpload]):
    table = STATEMENT_UPLOADS
    model = StatementUpload
    entity_type = "statement"

    def __init__(
        self,
        storage,
        audit_logger=None,
        companies: Optional[CompanyService] = None,
        transactions: Optional[TransactionService] = None,
        parser: Optional[ChaseStatementParser] = None,
    ):
        super().__init__(storage, audit_logger)
        self._companies = companies or CompanyService(storage, audit_logger)
        self._transactions = transactions or TransactionService(storage, audit_logger)
        self._parser = parser or ChaseStatementParser()

    async def create_upload(
        self,
        user_id: str,
        file_name: str,
        file_size: int = 0,
        company_id: Optional[Any] = None,
    ) -> StatementUpload:
        if not file_name:
            raise ServiceValidationError("File name is required")
        upload = StatementUpload(
            user_id=user_id,
            file_name=file_name,
            file_size=file_size,
            company_id=company_id,
            status=UploadStatus.UPLOADED,
        )
        return await self._insert(upload)

    async def process_upload(
        self,
        user_id: str,
        upload_id: Any,
        pdf_bytes: bytes,
        company_id: Optional[Any] = None,
        correlation_id=None,
    ) -> tuple[StatementUpload, StatementParseResult, list[Transaction]]:
        """Extract, parse and store a statement's transactions."""
        upload = await self.get(user_id, upload_id)
        await self._apply(user_id, upload.id, {"status": UploadStatus.PROCESSING, "progress": 10})

        try:
            text = extract_text(pdf_bytes)
            parsed = self._parser.parse(text)
            await self._apply(user_id, upload.id, {"progress": 50})

            if company_id or upload.company_id:
                company = await self._companies.get(user_id, company_id or upload.company_id)
            else:
                company = await self._companies.find_or_create_from_statement(
                    user_id, parsed.account_info
                )

            saved = await self._transactions.create_many(
                user_id,
                parsed.transactions,
                statement_id=upload.id,
                company_id=company.id if company else None,
                company_name=company.name if company else None,
            )

            completed = await self._apply(user_id, upload.id, {
                "status": UploadStatus.COMPLETED,
                "progress": 100,
                "bank_name": parsed.account_info.bank_name,
                "company_id": company.id if company else None,
                "company_name": company.name if company else None,
                "transaction_count": len(saved),
                "account_info": parsed.account_info,
                "error_message": None,
            })
        except Exception as e:
            await self._apply(user_id, upload.id, {
                "status": UploadStatus.FAILED,
                "error_message": str(e),
            })
            logger.error("statement_processing_failed", upload_id=str(upload.id), error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_statement_failed(
                    user_id=user_id,
                    upload_id=upload.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        logger.info("statement_processed", upload_id=str(upload.id), transactions=len(saved))
        if self._audit_logger:
            await self._audit_logger.log_statement_processed(
                user_id=user_id,
                upload_id=upload.id,
                file_name=upload.file_name,
                transaction_count=len(saved),
                correlation_id=correlation_id,
            )
        return completed, parsed, saved

    async def get_status(self, user_id: str, upload_id: Any) -> dict[str, Any]:
        upload = await self.get(user_id, upload_id)
        return {
            "id": str(upload.id),
            "status": upload.status.value,
            "progress": upload.progress,
            "transaction_count": upload.transaction_count,
            "error_message": upload.error_message,
        }

    async def list_uploads(self, user_id: str) -> list[StatementUpload]:
        return await self._select(user_id, order_by="created_at", descending=True)

    async def rename_upload(self, user_id: str, upload_id: Any, file_name: str) -> StatementUpload:
        if not file_name or not file_name.strip():
            raise ServiceValidationError("File name is required")
        return await self._apply(user_id, upload_id, {"file_name": file_name.strip()})

    async def update_upload_company(
        self,
        user_id: str,
        upload_id: Any,
        company_id: Any,
    ) -> StatementUpload:
        """Move a statement, and every transaction from it, to another company."""
        upload = await self.get(user_id, upload_id)
        company = await self._companies.get(user_id, company_id)
        moved = await self._storage.update_where(
            TRANSACTIONS,
            {"user_id": user_id, "statement_id": str(upload.id)},
            {"company_id": str(company.id), "company_name": company.name},
        )
        logger.info("statement_company_changed", upload_id=str(upload.id), transactions=moved)
        return await self._apply(user_id, upload.id, {
            "company_id": company.id,
            "company_name": company.name,
        })

    async def delete_upload(
        self,
        user_id: str,
        upload_id: Any,
        delete_transactions: bool = False,
    ) -> dict[str, int]:
        upload = await self.get(user_id, upload_id)
        link = {"user_id": user_id, "statement_id": str(upload.id)}
        if delete_transactions:
            deleted = await self._storage.delete_where(TRANSACTIONS, link)
            unlinked = 0
        else:
            deleted = 0
            unlinked = await self._storage.update_where(TRANSACTIONS, link, {"statement_id": None})
        await self._storage.delete(STATEMENT_UPLOADS, str(upload.id))
        return {"transactions_deleted": deleted, "transactions_unlinked": unlinked}
