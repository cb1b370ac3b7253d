"""Tests for the in-memory storage backend and stored-value conversion."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeper.models.audit import AuditEvent, AuditEventType
from bookkeeper.models.categories import TransactionType
from bookkeeper.storage import DuplicateError, NotFoundError, StorageError
from bookkeeper.storage.interface import matches_filters, sort_value, to_storage_value


def row(**fields):
    return {"id": str(uuid4()), "user_id": "u", **fields}


class TestStoredValues:
    """Tests for conversion to JSON-compatible values."""

    def test_to_storage_value_converts_python_types(self):
        """Test enums, UUIDs, dates and decimals become strings."""
        record_id = uuid4()
        stored = to_storage_value({
            "id": record_id,
            "type": TransactionType.EXPENSE,
            "date": date(2024, 3, 1),
            "amount": Decimal("-12.50"),
            "tags": [TransactionType.INCOME],
        })
        assert stored == {
            "id": str(record_id),
            "type": "expense",
            "date": "2024-03-01",
            "amount": "-12.50",
            "tags": ["income"],
        }

    def test_none_filter_matches_null_and_empty(self):
        """Test that a None filter matches missing, None and empty values."""
        assert matches_filters({"payee_id": None}, {"payee_id": None})
        assert matches_filters({"payee_id": ""}, {"payee_id": None})
        assert matches_filters({}, {"payee_id": None})
        assert not matches_filters({"payee_id": "abc"}, {"payee_id": None})

    def test_sort_value_orders_numbers_numerically(self):
        """Test numeric strings sort as numbers and blanks sort last."""
        values = ["100", "9", None, "20.5"]
        assert sorted(values, key=sort_value) == ["9", "20.5", "100", None]


class TestInMemoryRecordStorage:
    """Tests for InMemoryRecordStorage."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, storage):
        """Test a record round-trips through insert and get."""
        record = row(name="Acme")
        await storage.insert("companies", record)
        assert await storage.get("companies", record["id"]) == record

    @pytest.mark.asyncio
    async def test_insert_requires_id(self, storage):
        """Test insert without an id is rejected."""
        with pytest.raises(StorageError):
            await storage.insert("companies", {"name": "No id"})

    @pytest.mark.asyncio
    async def test_insert_duplicate_id_fails(self, storage):
        """Test inserting the same id twice raises DuplicateError."""
        record = row(name="Acme")
        await storage.insert("companies", record)
        with pytest.raises(DuplicateError):
            await storage.insert("companies", record)

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, storage):
        """Test that mutating a returned row doesn't change stored state."""
        record = row(name="Acme")
        await storage.insert("companies", record)
        fetched = await storage.get("companies", record["id"])
        fetched["name"] = "Changed"
        assert (await storage.get("companies", record["id"]))["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_update_missing_record(self, storage):
        """Test updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await storage.update("companies", str(uuid4()), {"name": "x"})

    @pytest.mark.asyncio
    async def test_select_filters_orders_and_paginates(self, storage):
        """Test select with equality filters, ordering, limit and offset."""
        for amount in ("30", "5", "100"):
            await storage.insert("transactions", row(amount=amount, kind="a"))
        await storage.insert("transactions", row(amount="1", kind="b"))

        rows = await storage.select("transactions", filters={"kind": "a"}, order_by="amount")
        assert [r["amount"] for r in rows] == ["5", "30", "100"]

        page = await storage.select(
            "transactions", filters={"kind": "a"}, order_by="amount", descending=True, limit=1, offset=1,
        )
        assert [r["amount"] for r in page] == ["30"]

    @pytest.mark.asyncio
    async def test_update_where_and_delete_where(self, storage):
        """Test bulk update and delete return the number of rows touched."""
        for _ in range(3):
            await storage.insert("transactions", row(csv_import_id="imp"))
        await storage.insert("transactions", row(csv_import_id="other"))

        assert await storage.update_where("transactions", {"csv_import_id": "imp"}, {"csv_import_id": None}) == 3
        assert await storage.count("transactions", {"csv_import_id": None}) == 3
        assert await storage.delete_where("transactions", {"csv_import_id": None}) == 3
        assert await storage.count("transactions") == 1

    @pytest.mark.asyncio
    async def test_delete_reports_missing(self, storage):
        """Test delete returns False for an unknown id."""
        assert await storage.delete("transactions", str(uuid4())) is False


class TestInMemoryAuditStorage:
    """Tests for InMemoryAuditStorage."""

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self, audit_storage):
        """Test events can be fetched by correlation id."""
        correlation_id = uuid4()
        await audit_storage.append_event(AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_COMPLETED, description="a", correlation_id=correlation_id,
        ))
        await audit_storage.append_event(AuditEvent(
            event_type=AuditEventType.RULE_CREATED, description="b",
        ))
        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.description for e in events] == ["a"]
        assert len(await audit_storage.get_recent_events(limit=10)) == 2
