"""Tests for the import flows and the component factory."""

import pytest

from bookkeeper.config import AppSettings, Settings
from bookkeeper.imports import CSVImportService, StatementParseError, StatementService
from bookkeeper.models.audit import AuditEventType
from bookkeeper.models.imports import UploadStatus
from bookkeeper.orchestrator import ImportFlow, StatementFlow, check_upload, create_app_components
from bookkeeper.services import ServiceValidationError
from bookkeeper.storage import InMemoryRecordStorage

from tests.conftest import USER
from tests.test_statement_parser import STATEMENT_TEXT


CHASE_CSV = (
    b"Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #\n"
    b"DEBIT,01/03/2024,SHELL OIL 57444,-45.20,DEBIT_CARD,1000.00,\n"
    b"CREDIT,01/04/2024,ACME CORP PAYROLL,1250.00,ACH_CREDIT,2250.00,\n"
    b"DEBIT,01/05/2024,CHECK 1042,-300.00,CHECK_PAID,1950.00,1042\n"
)


@pytest.fixture
def app_settings():
    return AppSettings(max_upload_size_mb=1)


@pytest.fixture
def csv_imports(storage, audit_logger):
    return CSVImportService(storage, audit_logger)


@pytest.fixture
def import_flow(csv_imports, transactions, classification, companies, audit_logger, app_settings):
    return ImportFlow(
        csv_imports,
        transactions,
        classification=classification,
        companies=companies,
        audit_logger=audit_logger,
        settings=app_settings,
    )


@pytest.fixture
def statement_flow(storage, audit_logger, companies, transactions, classification, app_settings):
    statements = StatementService(storage, audit_logger, companies=companies, transactions=transactions)
    return StatementFlow(statements, classification=classification, settings=app_settings)


class TestUploadChecks:
    """Tests for the checks every upload passes before parsing."""

    def test_accepts_supported_file(self, app_settings):
        """Test a small CSV passes."""
        check_upload("jan.CSV", b"a,b\n", {".csv"}, app_settings)

    def test_rejects_empty_file(self, app_settings):
        """Test empty uploads are rejected."""
        with pytest.raises(ServiceValidationError, match="File is empty"):
            check_upload("jan.csv", b"", {".csv"}, app_settings)

    def test_rejects_large_file(self, app_settings):
        """Test files over the size limit are rejected."""
        with pytest.raises(ServiceValidationError, match="too large"):
            check_upload("jan.csv", b"x" * (1024 * 1024 + 1), {".csv"}, app_settings)

    def test_rejects_wrong_extension(self, app_settings):
        """Test only the flow's own file types are accepted."""
        with pytest.raises(ServiceValidationError, match="Unsupported file type"):
            check_upload("jan.pdf", b"%PDF", {".csv"}, app_settings)


class TestImportFlow:
    """Tests for the CSV import flow."""

    @pytest.mark.asyncio
    async def test_import_saves_rows(self, import_flow, transactions, audit_storage):
        """Test a bank export is parsed, recorded and saved."""
        result = await import_flow.import_csv(USER, "jan.csv", CHASE_CSV)

        assert result.saved_count == 3
        assert result.errors == []
        record = result.import_record
        assert record.bank_format == "chase"
        assert record.transaction_count == 3

        saved = await transactions.load_all(USER, csv_import_id=str(record.id))
        assert len(saved) == 3
        assert audit_storage.events[-1].event_type == AuditEventType.CSV_IMPORT_COMPLETED

    @pytest.mark.asyncio
    async def test_reimport_skips_duplicates(self, import_flow, transactions):
        """Test importing the same file twice saves nothing the second time."""
        await import_flow.import_csv(USER, "jan.csv", CHASE_CSV)
        again = await import_flow.import_csv(USER, "jan-copy.csv", CHASE_CSV)

        assert again.import_record is None
        assert again.saved_count == 0
        assert again.duplicate_count == 3
        assert len(await transactions.load_all(USER)) == 3

    @pytest.mark.asyncio
    async def test_import_into_company(self, import_flow, companies, transactions):
        """Test rows are linked to the chosen company."""
        company = await companies.create(USER, "Acme Builders")
        result = await import_flow.import_csv(USER, "jan.csv", CHASE_CSV, company_id=company.id)

        assert result.import_record.company_name == "Acme Builders"
        saved = await transactions.load_all(USER, company_id=str(company.id))
        assert len(saved) == 3

    @pytest.mark.asyncio
    async def test_unknown_layout_asks_for_mapping(self, import_flow, transactions):
        """Test an unrecognised CSV saves nothing and asks for a mapping."""
        result = await import_flow.import_csv(USER, "odd.csv", b"When,What,How Much\n03/04/2024,Coffee,-4.50\n")

        assert result.saved_count == 0
        assert "Map the CSV columns" in result.warnings[0]
        assert await transactions.load_all(USER) == []

    @pytest.mark.asyncio
    async def test_custom_mapping(self, import_flow):
        """Test a custom mapping imports an unrecognised CSV."""
        result = await import_flow.import_csv(
            USER,
            "odd.csv",
            b"When,What,How Much\n03/04/2024,Coffee,-4.50\n",
            bank_format="custom",
            custom_mapping={"date": "When", "description": "What", "amount": "How Much"},
            classify=False,
        )
        assert result.saved_count == 1
        assert result.classification_stats == {}

    @pytest.mark.asyncio
    async def test_wrong_file_type(self, import_flow):
        """Test non-CSV uploads are rejected before parsing."""
        with pytest.raises(ServiceValidationError):
            await import_flow.import_csv(USER, "jan.xlsx", CHASE_CSV)


class TestStatementFlow:
    """Tests for the PDF statement flow."""

    @pytest.mark.asyncio
    async def test_statement_is_processed(self, statement_flow, monkeypatch, companies, audit_storage):
        """Test a statement is parsed, saved under its company and classified."""
        monkeypatch.setattr("bookkeeper.imports.statements.extract_text", lambda data: STATEMENT_TEXT)

        result = await statement_flow.upload_and_process(USER, "jan.pdf", b"%PDF-1.4")

        assert result.saved_count == 6
        assert result.statement.status == UploadStatus.COMPLETED
        assert result.statement.progress == 100
        assert result.statement.company_name == "ACME CONSTRUCTION LLC"
        assert result.warnings == ["1 lines could not be read as transactions"]
        assert result.classification_stats
        assert (await companies.find_by_name(USER, "Acme Construction LLC")) is not None
        event_types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.STATEMENT_PROCESSED in event_types

    @pytest.mark.asyncio
    async def test_failed_statement_is_recorded(self, statement_flow, storage, audit_storage):
        """Test an unreadable PDF marks the upload failed and re-raises."""
        with pytest.raises(StatementParseError):
            await statement_flow.upload_and_process(USER, "broken.pdf", b"not a pdf")

        statements = StatementService(storage)
        upload = (await statements.list_uploads(USER))[0]
        assert upload.status == UploadStatus.FAILED
        assert upload.error_message
        assert audit_storage.events[-1].event_type == AuditEventType.STATEMENT_FAILED

    @pytest.mark.asyncio
    async def test_rejects_non_pdf(self, statement_flow):
        """Test only PDFs are accepted."""
        with pytest.raises(ServiceValidationError):
            await statement_flow.upload_and_process(USER, "jan.csv", b"a,b\n")


class TestComponents:
    """Tests for create_app_components."""

    def test_memory_backend(self, monkeypatch):
        """Test the default wiring uses in-memory storage."""
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        components = create_app_components(Settings())

        assert isinstance(components.storage, InMemoryRecordStorage)
        assert components.ai_enabled is False
        assert components.import_flow is not None
        assert components.statement_flow is not None

    def test_unavailable_backend_falls_back_to_memory(self, monkeypatch):
        """Test a misconfigured backend still yields working components."""
        monkeypatch.setenv("STORAGE_BACKEND", "supabase")
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        components = create_app_components(Settings())
        assert isinstance(components.storage, InMemoryRecordStorage)

    @pytest.mark.asyncio
    async def test_seed_global_rules(self, monkeypatch):
        """Test seeding inserts the shared rules once."""
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        components = create_app_components(Settings())
        assert await components.seed() > 0
        assert await components.seed() == 0
