"""Tests for the Google Sheets backend against an in-process worksheet double."""

from uuid import uuid4

import pytest

from bookkeeper.models.audit import AuditEventBuilder, AuditEventType
from bookkeeper.storage import DuplicateError, NotFoundError
from bookkeeper.storage.google_sheets import (
    AUDIT_COLUMNS,
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStorage,
    decode_cell,
    encode_cell,
)


class FakeWorksheet:
    def __init__(self, header):
        self.values = [list(header)]
        self.col_count = 26

    def get_all_values(self):
        return [list(row) for row in self.values]

    def append_row(self, row, value_input_option=None):
        self.values.append([str(cell) for cell in row])

    def update_cell(self, row, col, value):
        while len(self.values) < row:
            self.values.append([])
        cells = self.values[row - 1]
        cells.extend([""] * (col - len(cells)))
        cells[col - 1] = str(value)

    def delete_rows(self, index):
        del self.values[index - 1]

    def add_cols(self, count):
        self.col_count += count


class FakeClient:
    audit_sheet_name = "AuditLog"

    def __init__(self):
        self.sheets = {}

    def get_worksheet(self, title, header=None):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(header or ["id"])
        return self.sheets[title]


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def records(client):
    return GoogleSheetsRecordStorage(client)


class TestCells:
    """Tests for cell encoding."""

    def test_encode(self):
        """Test booleans, nulls and containers become sheet text."""
        assert encode_cell(None) == ""
        assert encode_cell(True) == "true"
        assert encode_cell(["a", "b"]) == '["a", "b"]'
        assert encode_cell(12) == "12"

    def test_decode(self):
        """Test empty cells are null and JSON text is parsed."""
        assert decode_cell("") is None
        assert decode_cell('{"a": 1}') == {"a": 1}
        assert decode_cell("[not json") == "[not json"
        assert decode_cell("Shell") == "Shell"


class TestRecordStorage:
    """Tests for GoogleSheetsRecordStorage."""

    @pytest.mark.asyncio
    async def test_insert_adds_columns(self, records, client):
        """Test new fields are appended to the header row."""
        await records.insert("transactions", {"id": "t1", "amount": "12.50", "tags": ["fuel"], "memo": None})

        sheet = client.sheets["transactions"]
        assert sheet.values[0] == ["id", "amount", "tags", "memo"]
        assert sheet.values[1] == ["t1", "12.50", '["fuel"]', ""]

        row = await records.get("transactions", "t1")
        assert row == {"id": "t1", "amount": "12.50", "tags": ["fuel"], "memo": None}

    @pytest.mark.asyncio
    async def test_duplicate_insert(self, records):
        """Test inserting an existing id fails."""
        await records.insert("payees", {"id": "p1", "name": "Bob"})
        with pytest.raises(DuplicateError):
            await records.insert("payees", {"id": "p1", "name": "Bob"})

    @pytest.mark.asyncio
    async def test_update(self, records):
        """Test update changes one cell and can add a column."""
        await records.insert("payees", {"id": "p1", "name": "Bob"})
        updated = await records.update("payees", "p1", {"email": "bob@example.com"})

        assert updated["email"] == "bob@example.com"
        assert (await records.get("payees", "p1"))["email"] == "bob@example.com"

    @pytest.mark.asyncio
    async def test_update_missing(self, records):
        """Test updating an unknown id raises NotFoundError."""
        await records.insert("payees", {"id": "p1", "name": "Bob"})
        with pytest.raises(NotFoundError):
            await records.update("payees", "nope", {"name": "X"})

    @pytest.mark.asyncio
    async def test_select_filters_and_orders(self, records):
        """Test boolean filters match sheet text and numeric columns sort as numbers."""
        await records.insert("transactions", {"id": "a", "amount": "9.00", "is_split": False})
        await records.insert("transactions", {"id": "b", "amount": "100.00", "is_split": False})
        await records.insert("transactions", {"id": "c", "amount": "50.00", "is_split": True})

        rows = await records.select("transactions", {"is_split": False}, order_by="amount", descending=True)
        assert [r["id"] for r in rows] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_where_operations(self, records):
        """Test update_where and delete_where report the rows they touched."""
        for rid, user in (("a", "u1"), ("b", "u1"), ("c", "u2")):
            await records.insert("transactions", {"id": rid, "user_id": user, "category": None})

        assert await records.update_where("transactions", {"user_id": "u1"}, {"category": "Fuel"}) == 2
        assert (await records.get("transactions", "b"))["category"] == "Fuel"

        assert await records.delete_where("transactions", {"user_id": "u1"}) == 2
        assert [r["id"] for r in await records.select("transactions")] == ["c"]
        assert await records.delete("transactions", "missing") is False


class TestAuditStorage:
    """Tests for GoogleSheetsAuditStorage."""

    @pytest.mark.asyncio
    async def test_events_round_trip(self, client):
        """Test an appended event reads back with its details and ids."""
        audit = GoogleSheetsAuditStorage(client)
        rule_id = uuid4()
        event = AuditEventBuilder.rule_created("user-1", rule_id, "SHELL", "Car and truck expenses")

        assert await audit.append_event(event) is True
        assert client.sheets["AuditLog"].values[0] == AUDIT_COLUMNS

        stored = (await audit.get_recent_events())[0]
        assert stored.event_id == event.event_id
        assert stored.event_type == AuditEventType.RULE_CREATED
        assert stored.details == {"pattern": "SHELL", "category": "Car and truck expenses"}
        assert stored.is_user_action is True

        by_entity = await audit.get_events_by_entity("classification_rule", rule_id)
        assert [e.event_id for e in by_entity] == [event.event_id]

    @pytest.mark.asyncio
    async def test_correlation_lookup(self, client):
        """Test events are grouped by correlation id."""
        audit = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        await audit.append_event(AuditEventBuilder.system_error("Boom", "bad", correlation_id=correlation_id))
        await audit.append_event(AuditEventBuilder.system_error("Other", "bad"))

        events = await audit.get_events_by_correlation_id(correlation_id)
        assert len(events) == 1
        assert events[0].error_message == "bad"
