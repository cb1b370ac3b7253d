"""
Audit Logger

DESIGN DECISION: Every change to the books leaves an audit event. The
accountant can trace a number back to the import or edit that produced
it, and bulk edits that touch hundreds of rows stay explainable.

Events are written to the structured log first and then to the audit
store. A failing audit store never fails the operation being audited.
Related events share a correlation id (one per import, one per bulk
edit).
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bookkeeper.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog output through the stdlib root logger at the right level."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Writes audit events to the structured log and, when one is given, to
    an AuditStorageInterface.

    Services receive an AuditLogger (or None) in their constructor and
    call the typed log_* helpers below.
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger("bookkeeper.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when the audit store rejected or failed the
        write; with no store configured the event is logged and True is
        returned.
        """
        fields = event.to_log_dict()
        level = {
            AuditSeverity.CRITICAL: "error",
            AuditSeverity.ERROR: "error",
            AuditSeverity.WARNING: "warning",
            AuditSeverity.DEBUG: "debug",
        }.get(event.severity, "info")
        getattr(self._logger, level)("audit_event", **fields)

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: UUID,
        description: str,
        amount: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            description=description,
            amount=amount,
        ))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: UUID,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            fields=fields,
        ))

    async def log_transaction_deleted(self, user_id: str, transaction_id: UUID) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(user_id, transaction_id))

    async def log_bulk_update(
        self,
        user_id: str,
        entity_type: str,
        fields: list[str],
        updated: int,
        failed: int,
    ) -> None:
        """Log a bulk edit across many records."""
        await self.log(AuditEventBuilder.bulk_update_applied(
            user_id=user_id,
            entity_type=entity_type,
            fields=fields,
            updated=updated,
            failed=failed,
        ))

    async def log_transaction_split(
        self,
        user_id: str,
        transaction_id: UUID,
        split_count: int,
        remainder: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_split(
            user_id=user_id,
            transaction_id=transaction_id,
            split_count=split_count,
            remainder=remainder,
        ))

    async def log_transaction_unsplit(
        self,
        user_id: str,
        transaction_id: UUID,
        removed_parts: int,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_unsplit(
            user_id=user_id,
            transaction_id=transaction_id,
            removed_parts=removed_parts,
        ))

    async def log_csv_import(
        self,
        user_id: str,
        import_id: UUID,
        file_name: str,
        saved: int,
        duplicates: int,
        errors: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a completed CSV import."""
        await self.log(AuditEventBuilder.csv_import_completed(
            user_id=user_id,
            import_id=import_id,
            file_name=file_name,
            saved=saved,
            duplicates=duplicates,
            errors=errors,
            correlation_id=correlation_id,
        ))

    async def log_csv_import_deleted(
        self,
        user_id: str,
        import_id: UUID,
        transactions_deleted: int,
        transactions_unlinked: int,
    ) -> None:
        await self.log(AuditEventBuilder.csv_import_deleted(
            user_id=user_id,
            import_id=import_id,
            transactions_deleted=transactions_deleted,
            transactions_unlinked=transactions_unlinked,
        ))

    async def log_statement_processed(
        self,
        user_id: str,
        upload_id: UUID,
        file_name: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.statement_processed(
            user_id=user_id,
            upload_id=upload_id,
            file_name=file_name,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_statement_failed(
        self,
        user_id: str,
        upload_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.statement_failed(
            user_id=user_id,
            upload_id=upload_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_classification(
        self,
        user_id: str,
        stats: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.classification_applied(
            user_id=user_id,
            stats=stats,
            correlation_id=correlation_id,
        ))

    async def log_rule_created(
        self,
        user_id: str,
        rule_id: UUID,
        pattern: str,
        category: str,
    ) -> None:
        await self.log(AuditEventBuilder.rule_created(user_id, rule_id, pattern, category))

    async def log_rule_deleted(self, user_id: str, rule_id: UUID) -> None:
        await self.log(AuditEventBuilder.rule_deleted(user_id, rule_id))

    async def log_stock_adjusted(
        self,
        user_id: str,
        item_id: UUID,
        adjustment_type: str,
        quantity: str,
        quantity_after: str,
    ) -> None:
        await self.log(AuditEventBuilder.stock_adjusted(
            user_id=user_id,
            item_id=item_id,
            adjustment_type=adjustment_type,
            quantity=quantity,
            quantity_after=quantity_after,
        ))

    async def log_receipt_created(
        self,
        user_id: str,
        receipt_id: UUID,
        vendor: Optional[str],
        amount: str,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_created(user_id, receipt_id, vendor, amount))

    async def log_receipts_batch_updated(
        self,
        user_id: str,
        count: int,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.receipts_batch_updated(user_id, count, fields))

    async def log_check_created(
        self,
        user_id: str,
        check_id: UUID,
        check_number: Optional[str],
        payee: Optional[str],
        amount: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.check_created(user_id, check_id, check_number, payee, amount))

    async def log_report_generated(
        self,
        user_id: str,
        report_type: str,
        fmt: str,
        record_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.report_generated(
            user_id=user_id,
            report_type=report_type,
            fmt=fmt,
            record_count=record_count,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """One id per user action; pass it to every service call the action makes."""
    return uuid4()
