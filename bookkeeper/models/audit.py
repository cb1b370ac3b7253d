"""
Audit Models for Bookkeeper

Every change to the books is recorded as an audit event so that an
accountant can later answer "who changed this category, and when".

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from bookkeeper.models.base import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BULK_UPDATE_APPLIED = "bulk_update_applied"
    TRANSACTION_SPLIT = "transaction_split"
    TRANSACTION_UNSPLIT = "transaction_unsplit"

    # Imports
    CSV_IMPORT_COMPLETED = "csv_import_completed"
    CSV_IMPORT_DELETED = "csv_import_deleted"
    STATEMENT_PROCESSED = "statement_processed"
    STATEMENT_FAILED = "statement_failed"

    # Classification
    CLASSIFICATION_APPLIED = "classification_applied"
    RULE_CREATED = "rule_created"
    RULE_DELETED = "rule_deleted"

    # Inventory and receipts
    STOCK_ADJUSTED = "stock_adjusted"
    RECEIPT_CREATED = "receipt_created"
    RECEIPTS_BATCH_UPDATED = "receipts_batch_updated"
    CHECK_CREATED = "check_created"

    # Reports
    REPORT_GENERATED = "report_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """One row of the audit trail. Build these through AuditEventBuilder."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now, description="UTC")

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = Field(default=None, description="Owner of the books the event touched")
    entity_type: Optional[str] = Field(default=None, description="'transaction', 'csv_import', 'receipt', ...")
    entity_id: Optional[UUID] = None

    # Shared by every event raised while handling one upload or one click
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500, description="Shown as-is in the audit log view")
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(default=False, description="False for background processing")

    def to_log_dict(self) -> dict:
        """Flatten to JSON-friendly values for structlog and sheet rows."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Factory methods, one per event type, so callers never assemble
    descriptions or severities by hand:

        await audit.log(AuditEventBuilder.rule_created(user_id, rule.id, rule.pattern, rule.category))
    """

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: UUID,
        description: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction created: {description[:80]} ({amount})",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(user_id: str, transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def bulk_update_applied(
        user_id: str,
        entity_type: str,
        fields: list[str],
        updated: int,
        failed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BULK_UPDATE_APPLIED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            user_id=user_id,
            entity_type=entity_type,
            description=f"Bulk edit of {updated} {entity_type} record(s): {', '.join(fields)}",
            details={"fields": fields, "updated": updated, "failed": failed},
            is_user_action=True,
        )

    @staticmethod
    def transaction_split(
        user_id: str,
        transaction_id: UUID,
        split_count: int,
        remainder: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SPLIT,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction split into {split_count} part(s), remainder {remainder}",
            details={"split_count": split_count, "remainder": remainder},
            is_user_action=True,
        )

    @staticmethod
    def transaction_unsplit(
        user_id: str,
        transaction_id: UUID,
        removed_parts: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UNSPLIT,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Split undone, {removed_parts} part(s) removed",
            details={"removed_parts": removed_parts},
            is_user_action=True,
        )

    @staticmethod
    def csv_import_completed(
        user_id: str,
        import_id: UUID,
        file_name: str,
        saved: int,
        duplicates: int,
        errors: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            user_id=user_id,
            entity_type="csv_import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"CSV imported: {file_name} ({saved} saved, {duplicates} duplicates)",
            details={
                "file_name": file_name,
                "saved": saved,
                "duplicates": duplicates,
                "errors": errors,
            },
            is_user_action=True,
        )

    @staticmethod
    def csv_import_deleted(
        user_id: str,
        import_id: UUID,
        transactions_deleted: int,
        transactions_unlinked: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_DELETED,
            user_id=user_id,
            entity_type="csv_import",
            entity_id=import_id,
            description="CSV import deleted",
            details={
                "transactions_deleted": transactions_deleted,
                "transactions_unlinked": transactions_unlinked,
            },
            is_user_action=True,
        )

    @staticmethod
    def statement_processed(
        user_id: str,
        upload_id: UUID,
        file_name: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_PROCESSED,
            user_id=user_id,
            entity_type="statement",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description=f"Statement processed: {file_name} ({transaction_count} transactions)",
            details={"file_name": file_name, "transaction_count": transaction_count},
        )

    @staticmethod
    def statement_failed(
        user_id: str,
        upload_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="statement",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description="Statement processing failed",
            error_message=error_message,
        )

    @staticmethod
    def classification_applied(
        user_id: str,
        stats: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLASSIFICATION_APPLIED,
            severity=AuditSeverity.WARNING if stats.get("ai_error") else AuditSeverity.INFO,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=(
                f"Classified {stats.get('total', 0) - stats.get('unclassified', 0)}"
                f" of {stats.get('total', 0)} transactions"
            ),
            details=stats,
        )

    @staticmethod
    def rule_created(
        user_id: str,
        rule_id: UUID,
        pattern: str,
        category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_CREATED,
            user_id=user_id,
            entity_type="classification_rule",
            entity_id=rule_id,
            description=f"Rule saved: {pattern} -> {category}",
            details={"pattern": pattern, "category": category},
            is_user_action=True,
        )

    @staticmethod
    def rule_deleted(user_id: str, rule_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_DELETED,
            user_id=user_id,
            entity_type="classification_rule",
            entity_id=rule_id,
            description="Rule deleted",
            is_user_action=True,
        )

    @staticmethod
    def stock_adjusted(
        user_id: str,
        item_id: UUID,
        adjustment_type: str,
        quantity: str,
        quantity_after: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_ADJUSTED,
            user_id=user_id,
            entity_type="inventory_item",
            entity_id=item_id,
            description=f"Stock {adjustment_type}: {quantity} (now {quantity_after})",
            details={
                "type": adjustment_type,
                "quantity": quantity,
                "quantity_after": quantity_after,
            },
            is_user_action=True,
        )

    @staticmethod
    def receipt_created(
        user_id: str,
        receipt_id: UUID,
        vendor: Optional[str],
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_CREATED,
            user_id=user_id,
            entity_type="receipt",
            entity_id=receipt_id,
            description=f"Receipt created: {vendor or 'Unknown Vendor'} ({amount})",
            details={"vendor": vendor, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def receipts_batch_updated(
        user_id: str,
        count: int,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPTS_BATCH_UPDATED,
            user_id=user_id,
            entity_type="receipt",
            description=f"{count} receipt(s) updated: {', '.join(fields)}",
            details={"count": count, "fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def check_created(
        user_id: str,
        check_id: UUID,
        check_number: Optional[str],
        payee: Optional[str],
        amount: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHECK_CREATED,
            user_id=user_id,
            entity_type="check",
            entity_id=check_id,
            description=f"Check #{check_number or 'N/A'} created: {payee or 'Unknown'}",
            details={"check_number": check_number, "payee": payee, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def report_generated(
        user_id: str,
        report_type: str,
        fmt: str,
        record_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            user_id=user_id,
            entity_type="report",
            description=f"Report generated: {report_type} ({fmt})",
            details={
                "report_type": report_type,
                "format": fmt,
                "record_count": record_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
