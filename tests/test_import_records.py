"""Tests for CSV import records and statement upload management."""

from datetime import date

import pytest

from bookkeeper.imports import CSVImportService, StatementService
from bookkeeper.models.imports import ImportStatus
from bookkeeper.services import ServiceValidationError
from bookkeeper.storage import NotFoundError

from tests.conftest import USER, parsed


@pytest.fixture
def csv_imports(storage, audit_logger):
    return CSVImportService(storage, audit_logger)


@pytest.fixture
def statements(storage, audit_logger, companies, transactions):
    return StatementService(storage, audit_logger, companies=companies, transactions=transactions)


async def imported(csv_imports, transactions, file_name="jan.csv", rows=None):
    rows = rows or [
        parsed("SHELL OIL", "-45.20", date(2024, 1, 3)),
        parsed("ACME PAYROLL", "1250.00", date(2024, 1, 4)),
    ]
    record = await csv_imports.create_import(USER, file_name, rows, bank_name="Chase")
    await transactions.create_many(USER, rows, csv_import_id=record.id)
    return record


class TestListImports:
    """Tests for list_imports."""

    @pytest.mark.asyncio
    async def test_counts_linked_transactions(self, csv_imports, transactions):
        """Test each import reports how many transactions still point at it."""
        record = await imported(csv_imports, transactions)
        listed = await csv_imports.list_imports(USER)
        assert [row["id"] for row in listed] == [record.id]
        assert listed[0]["linked_transaction_count"] == 2
        assert listed[0]["date_range_start"] == date(2024, 1, 3)

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, csv_imports, transactions):
        """Test a limit below one still returns a row and a huge limit returns everything."""
        for name in ("a.csv", "b.csv", "c.csv"):
            await imported(csv_imports, transactions, file_name=name)
        assert len(await csv_imports.list_imports(USER, limit=0)) == 1
        assert len(await csv_imports.list_imports(USER, limit=1000)) == 3

    @pytest.mark.asyncio
    async def test_sort_field_falls_back_to_created_at(self, csv_imports, transactions):
        """Test an unknown sort field is ignored instead of failing."""
        for name in ("b.csv", "a.csv"):
            await imported(csv_imports, transactions, file_name=name)
        by_name = await csv_imports.list_imports(USER, sort_by="file_name", descending=False)
        fallback = await csv_imports.list_imports(USER, sort_by="password")
        assert [row["file_name"] for row in by_name] == ["a.csv", "b.csv"]
        assert sorted(row["file_name"] for row in fallback) == ["a.csv", "b.csv"]

    @pytest.mark.asyncio
    async def test_status_all_includes_deleted(self, csv_imports, transactions):
        """Test deleted records are hidden unless status="all" or "deleted" is asked for."""
        kept = await imported(csv_imports, transactions, file_name="kept.csv")
        gone = await imported(csv_imports, transactions, file_name="gone.csv")
        await csv_imports.delete_import(USER, gone.id, delete_import_record=False)

        assert [row["id"] for row in await csv_imports.list_imports(USER)] == [kept.id]
        assert len(await csv_imports.list_imports(USER, status="all")) == 2
        deleted = await csv_imports.list_imports(USER, status="deleted")
        assert [row["id"] for row in deleted] == [gone.id]


class TestImportTransactions:
    """Tests for reading and removing an import's transactions."""

    @pytest.mark.asyncio
    async def test_transactions_for_import_newest_first(self, csv_imports, transactions):
        """Test only this import's rows are returned, newest first."""
        record = await imported(csv_imports, transactions)
        await imported(csv_imports, transactions, file_name="feb.csv", rows=[
            parsed("OTHER", "-1.00", date(2024, 2, 1)),
        ])

        rows = await csv_imports.get_transactions_for_import(USER, record.id)
        assert [t.description for t in rows] == ["ACME PAYROLL", "SHELL OIL"]
        assert len(await csv_imports.get_transactions_for_import(USER, record.id, limit=0)) == 1

    @pytest.mark.asyncio
    async def test_delete_transactions_keeps_record(self, csv_imports, transactions):
        """Test the import record survives with a zero count."""
        record = await imported(csv_imports, transactions)
        assert await csv_imports.delete_transactions_by_import(USER, record.id) == 2
        assert await transactions.load_all(USER) == []
        assert (await csv_imports.get_import(USER, record.id)).transaction_count == 0


class TestDeleteImport:
    """Tests for the three ways of deleting an import."""

    @pytest.mark.asyncio
    async def test_default_unlinks_transactions(self, csv_imports, transactions, audit_storage):
        """Test transactions are kept without their import link."""
        record = await imported(csv_imports, transactions)
        outcome = await csv_imports.delete_import(USER, record.id)

        assert outcome == {"transactions_deleted": 0, "transactions_unlinked": 2, "import_deleted": 1}
        assert all(t.csv_import_id is None for t in await transactions.load_all(USER))
        with pytest.raises(NotFoundError):
            await csv_imports.get_import(USER, record.id)

    @pytest.mark.asyncio
    async def test_cascade_deletes_transactions(self, csv_imports, transactions):
        """Test delete_transactions removes the rows too."""
        record = await imported(csv_imports, transactions)
        outcome = await csv_imports.delete_import(USER, record.id, delete_transactions=True)
        assert outcome["transactions_deleted"] == 2
        assert await transactions.load_all(USER) == []

    @pytest.mark.asyncio
    async def test_record_can_be_kept_as_deleted(self, csv_imports, transactions):
        """Test the record stays with status deleted when asked to."""
        record = await imported(csv_imports, transactions)
        outcome = await csv_imports.delete_import(USER, record.id, delete_import_record=False)
        assert outcome["import_deleted"] == 0
        assert (await csv_imports.get_import(USER, record.id)).status == ImportStatus.DELETED


class TestUpdateImport:
    """Tests for update_import."""

    @pytest.mark.asyncio
    async def test_rename(self, csv_imports, transactions):
        """Test an allowed field is written."""
        record = await imported(csv_imports, transactions)
        renamed = await csv_imports.update_import(USER, record.id, file_name="January.csv")
        assert renamed.file_name == "January.csv"

    @pytest.mark.asyncio
    async def test_rejects_bad_company_id(self, csv_imports, transactions):
        """Test a malformed company id is refused and the list still loads."""
        record = await imported(csv_imports, transactions)
        with pytest.raises(ServiceValidationError, match="company_id"):
            await csv_imports.update_import(USER, record.id, company_id="not-a-uuid")
        assert len(await csv_imports.list_imports(USER)) == 1

    @pytest.mark.asyncio
    async def test_rejects_unknown_fields(self, csv_imports, transactions):
        """Test only the listed fields may change."""
        record = await imported(csv_imports, transactions)
        with pytest.raises(ServiceValidationError, match="Allowed"):
            await csv_imports.update_import(USER, record.id, status="deleted")


class TestStatementUploads:
    """Tests for renaming, moving and deleting statement uploads."""

    @pytest.mark.asyncio
    async def test_rename_upload(self, statements):
        """Test names are trimmed and blank names refused."""
        upload = await statements.create_upload(USER, "stmt.pdf", file_size=10)
        renamed = await statements.rename_upload(USER, upload.id, "  January statement.pdf ")
        assert renamed.file_name == "January statement.pdf"
        with pytest.raises(ServiceValidationError):
            await statements.rename_upload(USER, upload.id, "   ")

    @pytest.mark.asyncio
    async def test_update_company_moves_transactions(self, statements, companies, transactions):
        """Test every transaction from the statement follows it to the new company."""
        upload = await statements.create_upload(USER, "stmt.pdf")
        await transactions.create_many(USER, [parsed("SHELL", "-10.00")], statement_id=upload.id)
        company = await companies.create(USER, "Acme LLC")

        moved = await statements.update_upload_company(USER, upload.id, company.id)

        assert moved.company_name == "Acme LLC"
        txn = (await transactions.load_all(USER))[0]
        assert txn.company_id == company.id
        assert txn.company_name == "Acme LLC"

    @pytest.mark.asyncio
    async def test_update_company_requires_owned_company(self, statements):
        """Test an unknown company is reported as not found."""
        upload = await statements.create_upload(USER, "stmt.pdf")
        with pytest.raises(NotFoundError):
            await statements.update_upload_company(USER, upload.id, "3f2b9c4e-8d7a-4b1e-9c3d-2a1b0c9d8e7f")

    @pytest.mark.asyncio
    async def test_delete_upload_unlinks_or_deletes(self, statements, transactions):
        """Test transactions are kept unlinked by default and removed on request."""
        kept = await statements.create_upload(USER, "kept.pdf")
        await transactions.create_many(USER, [parsed("A", "-1.00")], statement_id=kept.id)
        assert await statements.delete_upload(USER, kept.id) == {
            "transactions_deleted": 0,
            "transactions_unlinked": 1,
        }
        assert (await transactions.load_all(USER))[0].statement_id is None

        removed = await statements.create_upload(USER, "removed.pdf")
        await transactions.create_many(USER, [parsed("B", "-2.00")], statement_id=removed.id)
        outcome = await statements.delete_upload(USER, removed.id, delete_transactions=True)
        assert outcome["transactions_deleted"] == 1
        assert [t.description for t in await transactions.load_all(USER)] == ["A"]
        assert await statements.list_uploads(USER) == []
