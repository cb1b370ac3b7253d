"""
Main Orchestrator for Bookkeeper

This module ties the services together and defines the end-to-end flows:
1. CSV import (file -> parse -> validate -> dedupe -> classify -> save)
2. PDF statement import (file -> extract -> parse -> save -> classify)

DESIGN DECISION: The flows enforce the boundaries:
- Nothing is parsed before the upload passes the size and type checks
- Rows with validation errors are never saved
- Duplicates of stored transactions are skipped unless asked otherwise
- Every completed import is audited
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from bookkeeper.agents import GeminiClassifierAgent
from bookkeeper.audit import AuditLogger, create_correlation_id
from bookkeeper.classification import ClassificationService, seed_global_rules
from bookkeeper.config import AppSettings, Settings, get_settings
from bookkeeper.imports import CSVImportService, StatementService, parse_csv
from bookkeeper.imports.csv_parser import ColumnMapping
from bookkeeper.models.imports import CSVParseResult, ImportResult, ParsedTransaction, RowError
from bookkeeper.reports import ReportService
from bookkeeper.services import (
    CheckService,
    CompanyService,
    IncomeSourceService,
    InventoryService,
    MindeeReceiptScanner,
    PayeeService,
    ReceiptService,
    ServiceValidationError,
    SplitService,
    TransactionService,
)
from bookkeeper.storage.factory import create_storage
from bookkeeper.storage.interface import AuditStorageInterface, RecordStorageInterface
from bookkeeper.storage.memory import InMemoryAuditStorage, InMemoryRecordStorage
from bookkeeper.validation import ImportValidator


logger = structlog.get_logger(__name__)


def check_upload(
    file_name: str,
    data: bytes,
    allowed_extensions: set[str],
    settings: AppSettings,
) -> None:
    """
    Reject files that are empty, too large or of the wrong type.

    Raises:
        ServiceValidationError: describing the first failed check
    """
    if not data:
        raise ServiceValidationError("File is empty")
    if len(data) > settings.max_upload_size_bytes:
        raise ServiceValidationError(
            f"File is too large ({len(data) / (1024 * 1024):.1f} MB). "
            f"Maximum size is {settings.max_upload_size_mb} MB"
        )
    extension = Path(file_name or "").suffix.lower()
    supported = allowed_extensions & set(settings.supported_extensions_list)
    if extension not in supported:
        raise ServiceValidationError(
            f"Unsupported file type '{extension or file_name}'. Expected: {', '.join(sorted(supported))}"
        )


class ImportFlow:
    """
    Orchestrates the CSV import flow.

    Flow:
    1. Check   -> size limit and .csv extension
    2. Parse   -> bank format detection or custom column mapping
    3. Validate -> two-stage validation, duplicate detection
    4. Classify -> layered classifier for rows without a category
    5. Save    -> CSVImport record plus linked transactions
    6. Audit
    """

    ALLOWED_EXTENSIONS = {".csv"}

    def __init__(
        self,
        csv_imports: CSVImportService,
        transactions: TransactionService,
        classification: Optional[ClassificationService] = None,
        validator: Optional[ImportValidator] = None,
        companies: Optional[CompanyService] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._csv_imports = csv_imports
        self._transactions = transactions
        self._classification = classification
        self._settings = settings or get_settings().app
        self._validator = validator or ImportValidator(transactions, self._settings)
        self._companies = companies
        self._audit_logger = audit_logger

    def preview_csv(
        self,
        file_name: str,
        data: bytes,
        bank_format: str = "auto",
        custom_mapping: Optional[Union[ColumnMapping, dict]] = None,
        date_format: Optional[str] = None,
    ) -> CSVParseResult:
        """Parse without saving. requires_mapping tells the caller to ask for columns."""
        check_upload(file_name, data, self.ALLOWED_EXTENSIONS, self._settings)
        return parse_csv(data, bank_format=bank_format, custom_mapping=custom_mapping, date_format=date_format)

    async def _classify_rows(
        self,
        user_id: str,
        rows: list[ParsedTransaction],
        use_ai: bool,
    ) -> tuple[list[ParsedTransaction], dict[str, Any]]:
        pending = [i for i, row in enumerate(rows) if not row.category]
        if not pending or self._classification is None:
            return rows, {}

        results, stats = await self._classification.classify_batch(
            user_id, [rows[i] for i in pending], use_ai=use_ai
        )
        classified = list(rows)
        for i, result in zip(pending, results):
            if result.is_classified:
                classified[i] = rows[i].model_copy(update={
                    "category": result.category,
                    "subcategory": result.subcategory,
                    "vendor_name": rows[i].vendor_name or result.vendor_name,
                    "classification_source": result.source,
                    "classification_confidence": result.confidence,
                    "needs_review": result.needs_review,
                })
            else:
                classified[i] = rows[i].model_copy(update={
                    "classification_source": result.source,
                    "needs_review": True,
                })
        return classified, stats.model_dump()

    async def import_csv(
        self,
        user_id: str,
        file_name: str,
        data: bytes,
        bank_format: str = "auto",
        custom_mapping: Optional[Union[ColumnMapping, dict]] = None,
        company_id: Optional[Any] = None,
        skip_duplicates: bool = True,
        classify: bool = True,
        use_ai: bool = False,
        date_format: Optional[str] = None,
        correlation_id=None,
    ) -> ImportResult:
        """
        Import a bank CSV end to end.

        Returns an ImportResult. import_record is None when nothing was
        saved (parse failure, missing mapping or no new rows).
        """
        correlation_id = correlation_id or create_correlation_id()
        parsed = self.preview_csv(file_name, data, bank_format, custom_mapping, date_format)

        if not parsed.success:
            return ImportResult(errors=parsed.errors)
        if parsed.requires_mapping:
            return ImportResult(
                errors=parsed.errors,
                warnings=["Bank format not recognized. Map the CSV columns and try again."],
            )

        validation = await self._validator.validate(
            user_id,
            parsed.transactions,
            check_duplicates=True,
            skip_duplicates=skip_duplicates,
        )
        errors = list(parsed.errors) + [
            RowError(row=issue.row, message=issue.message) for issue in validation.errors
        ]
        warnings = [
            f"Row {issue.row}: {issue.message}" if issue.row else issue.message
            for issue in validation.warnings
        ]
        rows = validation.valid_rows

        if not rows:
            logger.info("csv_import_nothing_to_save", user_id=user_id, file_name=file_name)
            return ImportResult(
                duplicate_count=len(validation.duplicate_rows),
                errors=errors,
                warnings=warnings or ["No new transactions to import"],
            )

        stats: dict[str, Any] = {}
        if classify:
            rows, stats = await self._classify_rows(user_id, rows, use_ai)

        company_name = None
        if company_id and self._companies:
            company = await self._companies.get(user_id, company_id)
            company_id, company_name = company.id, company.name

        record = await self._csv_imports.create_import(
            user_id,
            file_name,
            rows,
            file_size=len(data),
            bank_name=parsed.detected_bank_name,
            bank_format=parsed.detected_bank,
            company_id=company_id,
            company_name=company_name,
            duplicate_count=len(validation.duplicate_rows),
            error_count=len(errors),
            metadata={"classification": stats} if stats else None,
        )
        saved = await self._transactions.create_many(
            user_id,
            rows,
            csv_import_id=record.id,
            company_id=company_id,
            company_name=company_name,
        )

        logger.info(
            "csv_import_completed",
            user_id=user_id,
            import_id=str(record.id),
            saved=len(saved),
            duplicates=len(validation.duplicate_rows),
            errors=len(errors),
        )
        if self._audit_logger:
            await self._audit_logger.log_csv_import(
                user_id=user_id,
                import_id=record.id,
                file_name=file_name,
                saved=len(saved),
                duplicates=len(validation.duplicate_rows),
                errors=len(errors),
                correlation_id=correlation_id,
            )

        return ImportResult(
            import_record=record,
            saved_count=len(saved),
            duplicate_count=len(validation.duplicate_rows),
            errors=errors,
            warnings=warnings,
            classification_stats=stats,
        )


class StatementFlow:
    """
    Orchestrates the PDF statement flow.

    The statement service does the extraction, parsing and saving and
    tracks progress on the upload record; this flow adds the upload
    checks and classifies what was saved.
    """

    ALLOWED_EXTENSIONS = {".pdf"}

    def __init__(
        self,
        statements: StatementService,
        classification: Optional[ClassificationService] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._statements = statements
        self._classification = classification
        self._settings = settings or get_settings().app

    async def upload_and_process(
        self,
        user_id: str,
        file_name: str,
        pdf_bytes: bytes,
        company_id: Optional[Any] = None,
        classify: bool = True,
        use_ai: bool = False,
        correlation_id=None,
    ) -> ImportResult:
        correlation_id = correlation_id or create_correlation_id()
        check_upload(file_name, pdf_bytes, self.ALLOWED_EXTENSIONS, self._settings)

        upload = await self._statements.create_upload(
            user_id, file_name, file_size=len(pdf_bytes), company_id=company_id
        )
        statement, parsed, saved = await self._statements.process_upload(
            user_id, upload.id, pdf_bytes, company_id=company_id, correlation_id=correlation_id
        )

        stats: dict[str, Any] = {}
        if classify and saved and self._classification:
            batch = await self._classification.apply_classification(
                user_id,
                [txn.id for txn in saved],
                use_ai=use_ai,
                correlation_id=correlation_id,
            )
            stats = batch.model_dump()

        warnings = []
        if parsed.skipped_lines:
            warnings.append(f"{parsed.skipped_lines} lines could not be read as transactions")
        return ImportResult(
            statement=statement,
            saved_count=len(saved),
            warnings=warnings,
            classification_stats=stats,
        )


# =============================================================================
# FACTORY
# =============================================================================

@dataclass
class AppComponents:
    """Everything the UI needs, wired to one storage backend."""

    storage: RecordStorageInterface
    audit_storage: AuditStorageInterface
    audit_logger: AuditLogger
    transactions: TransactionService
    splits: SplitService
    companies: CompanyService
    payees: PayeeService
    income_sources: IncomeSourceService
    inventory: InventoryService
    receipts: ReceiptService
    checks: CheckService
    receipt_scanner: MindeeReceiptScanner
    csv_imports: CSVImportService
    statements: StatementService
    classification: ClassificationService
    reports: ReportService
    import_flow: ImportFlow
    statement_flow: StatementFlow
    ai_enabled: bool = False

    async def seed(self) -> int:
        """Insert the shared global rules into an empty store."""
        return await seed_global_rules(self.storage)


def _gemini_agent(settings: Settings) -> Optional[GeminiClassifierAgent]:
    try:
        gemini = settings.gemini
    except ValueError as e:
        logger.info("gemini_not_configured", error=str(e))
        return None
    return GeminiClassifierAgent(settings=gemini)


def create_app_components(
    settings: Optional[Settings] = None,
    ai_agent: Optional[GeminiClassifierAgent] = None,
    receipt_scanner: Optional[MindeeReceiptScanner] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Falls back to in-memory storage when the configured backend cannot be
    initialized, so the app still starts without credentials.
    """
    settings = settings or get_settings()
    try:
        storage, audit_storage = create_storage(settings)
    except Exception as e:
        logger.warning(
            "storage_unavailable_using_memory",
            backend=settings.app.storage_backend,
            error=str(e),
        )
        storage, audit_storage = InMemoryRecordStorage(), InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    ai_agent = ai_agent or _gemini_agent(settings)

    transactions = TransactionService(storage, audit_logger)
    companies = CompanyService(storage, audit_logger)
    payees = PayeeService(storage, audit_logger)
    csv_imports = CSVImportService(storage, audit_logger)
    classification = ClassificationService(
        storage,
        audit_logger,
        ai_agent=ai_agent,
        transactions=transactions,
        review_threshold=settings.app.manual_review_threshold,
    )
    statements = StatementService(storage, audit_logger, companies=companies, transactions=transactions)

    return AppComponents(
        storage=storage,
        audit_storage=audit_storage,
        audit_logger=audit_logger,
        transactions=transactions,
        splits=SplitService(storage, audit_logger),
        companies=companies,
        payees=payees,
        income_sources=IncomeSourceService(storage, audit_logger),
        inventory=InventoryService(storage, audit_logger),
        receipts=ReceiptService(storage, audit_logger),
        checks=CheckService(storage, audit_logger, transactions=transactions, payees=payees),
        receipt_scanner=receipt_scanner or MindeeReceiptScanner(),
        csv_imports=csv_imports,
        statements=statements,
        classification=classification,
        reports=ReportService(
            transactions,
            payees=payees,
            audit_logger=audit_logger,
            form_1099_threshold=settings.app.form_1099_threshold,
        ),
        import_flow=ImportFlow(
            csv_imports,
            transactions,
            classification=classification,
            companies=companies,
            audit_logger=audit_logger,
            settings=settings.app,
        ),
        statement_flow=StatementFlow(statements, classification=classification, settings=settings.app),
        ai_enabled=ai_agent is not None,
    )
