"""Tests for transaction, split, company and payee services."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeper.models.audit import AuditEventType
from bookkeeper.models.categories import TransactionSource, TransactionType
from bookkeeper.models.entities import PayeeType
from bookkeeper.models.imports import AccountInfo
from bookkeeper.models.query import SortField, TransactionFilter, TransactionSort
from bookkeeper.services import (
    IncomeSourceService,
    InvalidIdError,
    ServiceValidationError,
    SplitService,
    TransactionService,
    duplicate_key,
    validate_split_parts,
)
from bookkeeper.storage import InMemoryRecordStorage, NotFoundError, StorageError

from tests.conftest import OTHER_USER, USER, parsed


async def make_txn(transactions, description="Office Depot", amount="-100.00", when=date(2024, 3, 15), **fields):
    return await transactions.create(USER, {
        "date": when,
        "description": description,
        "amount": Decimal(amount),
        **fields,
    })


class FailingSecondPart(InMemoryRecordStorage):
    """Accepts the first split part and fails on the next one."""

    def __init__(self):
        super().__init__()
        self.parts_written = 0

    async def insert(self, table, record):
        if record.get("parent_transaction_id"):
            self.parts_written += 1
            if self.parts_written > 1:
                raise StorageError("disk full")
        return await super().insert(table, record)


class TestTransactionService:
    """Tests for TransactionService CRUD and bulk edit."""

    @pytest.mark.asyncio
    async def test_create_infers_type_from_sign(self, transactions):
        """Test a negative amount becomes an expense, a positive one income."""
        expense = await make_txn(transactions)
        income = await make_txn(transactions, description="Client payment", amount="500.00")
        assert expense.type == TransactionType.EXPENSE
        assert income.type == TransactionType.INCOME

    @pytest.mark.asyncio
    async def test_create_is_audited(self, transactions, audit_storage):
        """Test creation writes a transaction_created audit event."""
        txn = await make_txn(transactions)
        events = await audit_storage.get_events_by_entity("transaction", txn.id)
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_CREATED]

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_payload(self, transactions):
        """Test a payload without a description is rejected."""
        with pytest.raises(ServiceValidationError):
            await transactions.create(USER, {"date": date(2024, 1, 1), "amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_other_users_records_are_not_found(self, transactions):
        """Test ownership is enforced on reads."""
        txn = await make_txn(transactions)
        with pytest.raises(NotFoundError):
            await transactions.get(OTHER_USER, txn.id)

    @pytest.mark.asyncio
    async def test_invalid_id_is_rejected(self, transactions):
        """Test a non-UUID id raises InvalidIdError."""
        with pytest.raises(InvalidIdError):
            await transactions.get(USER, "not-a-uuid")

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, transactions):
        """Test update refuses fields outside the editable set."""
        txn = await make_txn(transactions)
        with pytest.raises(ServiceValidationError):
            await transactions.update(USER, txn.id, {"user_id": OTHER_USER})

    @pytest.mark.asyncio
    async def test_update_normalizes_category(self, transactions):
        """Test a category key is saved as its label."""
        txn = await make_txn(transactions)
        updated = await transactions.update(USER, txn.id, {"category": "OFFICE_EXPENSES"})
        assert updated.category == "Office Expenses"

    @pytest.mark.asyncio
    async def test_create_many_applies_links(self, transactions):
        """Test import links are written to every saved row."""
        import_id = uuid4()
        saved = await transactions.create_many(
            USER,
            [parsed("SHELL OIL", "-40.00"), parsed("DEPOSIT", "200.00", category="GROSS_RECEIPTS")],
            csv_import_id=import_id,
            company_id=None,
        )
        assert [t.csv_import_id for t in saved] == [import_id, import_id]
        assert saved[0].source == TransactionSource.CSV_IMPORT
        assert saved[1].category == "Gross Receipts or Sales"
        assert saved[0].company_id is None

    @pytest.mark.asyncio
    async def test_bulk_update_counts_failures(self, transactions, audit_storage):
        """Test one bad id doesn't stop a bulk edit."""
        first = await make_txn(transactions)
        second = await make_txn(transactions, description="Staples")
        result = await transactions.bulk_update(
            USER, [first.id, second.id, uuid4()], {"category": "Supplies (Not Inventory)"},
        )
        assert result.requested == 3
        assert result.updated == 2
        assert result.failed == 1
        assert (await transactions.get(USER, second.id)).category == "Supplies (Not Inventory)"
        assert audit_storage.events[-1].event_type == AuditEventType.BULK_UPDATE_APPLIED

    @pytest.mark.asyncio
    async def test_bulk_update_requires_fields(self, transactions):
        """Test an empty bulk payload is rejected."""
        txn = await make_txn(transactions)
        with pytest.raises(ServiceValidationError):
            await transactions.bulk_update(USER, [txn.id], {})

    @pytest.mark.asyncio
    async def test_assign_contractor_marks_payment(self, transactions, payees):
        """Test assigning a contractor flags the payment for 1099 reporting."""
        contractor = await payees.create(USER, "Bob Builder", type=PayeeType.CONTRACTOR)
        txn = await make_txn(transactions, description="CHECK 1042")
        updated = await transactions.assign_payee(USER, txn.id, contractor.id)
        assert updated.payee == "Bob Builder"
        assert updated.is_contractor_payment is True

        cleared = await transactions.assign_payee(USER, txn.id, None)
        assert cleared.payee_id is None


    @pytest.mark.asyncio
    async def test_bulk_assign_links_and_counts_missing(self, transactions, payees, companies, storage):
        """Test each bulk assignment sets id and display name and counts unknown ids."""
        first = await make_txn(transactions, description="CHECK 1001")
        second = await make_txn(transactions, description="CHECK 1002")
        ids = [first.id, second.id, uuid4()]

        vendor = await payees.create(USER, "Sam", type=PayeeType.VENDOR, business_name="Sam's Supply")
        company = await companies.create(USER, "Acme LLC")
        source = await IncomeSourceService(storage).create(USER, "Retail Sales")

        outcomes = [
            await transactions.bulk_assign_vendor(USER, ids, vendor.id),
            await transactions.bulk_assign_company(USER, ids, company.id),
            await transactions.bulk_assign_income_source(USER, ids, source.id),
            await transactions.bulk_assign_payee(USER, ids, vendor.id),
        ]
        assert [(o.updated, o.failed) for o in outcomes] == [(2, 1)] * 4

        stored = await transactions.get(USER, second.id)
        assert stored.vendor_name == "Sam's Supply"
        assert stored.company_name == "Acme LLC"
        assert stored.income_source == "Retail Sales"
        assert stored.payee == "Sam"

    @pytest.mark.asyncio
    async def test_bulk_assign_unknown_target_fails_early(self, transactions):
        """Test assigning a payee that does not exist writes nothing."""
        txn = await make_txn(transactions)
        with pytest.raises(NotFoundError):
            await transactions.bulk_assign_payee(USER, [txn.id], uuid4())
        assert (await transactions.get(USER, txn.id)).payee_id is None

    @pytest.mark.asyncio
    async def test_transactions_without_payees(self, transactions, payees):
        """Test only check payments with no payee or vendor are listed, newest first."""
        older = await make_txn(transactions, description="CHECK 1", when=date(2024, 1, 5), payment_method="check")
        newer = await make_txn(transactions, description="CHECK 2", when=date(2024, 2, 5), payment_method="check")
        assigned = await make_txn(transactions, description="CHECK 3", payment_method="check")
        await make_txn(transactions, description="CARD", payment_method="debit_card")
        payee = await payees.create(USER, "Bob")
        await transactions.assign_payee(USER, assigned.id, payee.id)

        missing = await transactions.get_transactions_without_payees(USER)
        assert [t.id for t in missing] == [newer.id, older.id]
        assert len(await transactions.get_transactions_without_payees(USER, payment_method=None)) == 3
    @pytest.mark.asyncio
    async def test_list_filters_and_sorts(self, transactions):
        """Test list applies filters, sorting and total_count."""
        await make_txn(transactions, description="Small", amount="-5.00")
        await make_txn(transactions, description="Large", amount="-500.00")
        await make_txn(transactions, description="Old", amount="-50.00", when=date(2023, 1, 1))

        result = await transactions.list(
            USER,
            filters=TransactionFilter(date_from=date(2024, 1, 1)),
            sort=TransactionSort(field=SortField.AMOUNT, descending=False),
        )
        assert result.total_count == 2
        assert [t.description for t in result.results] == ["Large", "Small"]

    @pytest.mark.asyncio
    async def test_summary_excludes_transfers(self, transactions):
        """Test get_summary totals income and expenses but not transfers."""
        await make_txn(transactions, description="Sale", amount="300.00")
        await make_txn(transactions, description="Fuel", amount="-40.00")
        await make_txn(transactions, description="To savings", amount="-1000.00", type=TransactionType.TRANSFER)
        summary = await transactions.get_summary(USER)
        assert summary["income"] == Decimal("300.00")
        assert summary["expenses"] == Decimal("40.00")
        assert summary["net"] == Decimal("260.00")

    @pytest.mark.asyncio
    async def test_find_duplicates_ignores_punctuation(self, transactions):
        """Test duplicates match on date, amount and normalized description."""
        await make_txn(transactions, description="AMAZON.COM*1234", amount="-19.99")
        found = await transactions.find_duplicates(USER, [
            parsed("amazon com 1234", "-19.99"),
            parsed("amazon com 1234", "-20.00"),
        ])
        assert len(found) == 1

    def test_duplicate_key_quantizes_amount(self):
        """Test the duplicate key formats amounts to cents."""
        assert duplicate_key(date(2024, 1, 2), "-5", "Shell  Oil!") == ("2024-01-02", "-5.00", "SHELL OIL")


class TestSplitService:
    """Tests for splitting and unsplitting transactions."""

    @pytest.fixture
    def splits(self, storage, audit_logger):
        return SplitService(storage, audit_logger)

    @pytest.mark.asyncio
    async def test_split_keeps_remainder_on_parent(self, transactions, splits):
        """Test parts carry the sign of the original and the parent keeps the rest."""
        txn = await make_txn(transactions, amount="-100.00")
        result = await splits.split_transaction(USER, txn.id, [
            {"amount": "30.00", "category": "Office Expenses"},
            {"amount": "20.00", "category": "Meals and Entertainment"},
        ])
        assert result.split_count == 2
        assert result.remainder_amount == Decimal("50.00")
        assert result.original.amount == Decimal("-50.00")
        assert result.original.is_split is True
        assert [p.amount for p in result.parts] == [Decimal("-30.00"), Decimal("-20.00")]
        assert all(p.parent_transaction_id == txn.id for p in result.parts)

    @pytest.mark.asyncio
    async def test_split_rejects_overage(self, transactions, splits):
        """Test parts may not add up to more than the original."""
        txn = await make_txn(transactions, amount="-10.00")
        with pytest.raises(ServiceValidationError):
            await splits.split_transaction(USER, txn.id, [{"amount": "10.02", "category": "Travel"}])

    @pytest.mark.asyncio
    async def test_split_twice_is_rejected(self, transactions, splits):
        """Test a split transaction must be unsplit before splitting again."""
        txn = await make_txn(transactions, amount="-10.00")
        await splits.split_transaction(USER, txn.id, [{"amount": "5", "category": "Travel"}])
        with pytest.raises(ServiceValidationError):
            await splits.split_transaction(USER, txn.id, [{"amount": "1", "category": "Travel"}])

    @pytest.mark.asyncio
    async def test_unsplit_restores_original(self, transactions, splits):
        """Test unsplit restores the amount and removes the parts."""
        txn = await make_txn(transactions, amount="-100.00")
        await splits.split_transaction(USER, txn.id, [{"amount": "40", "category": "Travel"}])
        restored = await splits.unsplit_transaction(USER, txn.id)
        assert restored.amount == Decimal("-100.00")
        assert restored.is_split is False
        assert len(await transactions.load_all(USER)) == 1

    @pytest.mark.asyncio
    async def test_delete_split_parent_removes_parts(self, transactions, splits):
        """Test deleting a split parent deletes its parts too."""
        txn = await make_txn(transactions, amount="-100.00")
        await splits.split_transaction(USER, txn.id, [
            {"amount": "40", "category": "Travel"},
            {"amount": "10", "category": "Travel"},
        ])
        assert await transactions.delete(USER, txn.id) is True
        assert await transactions.load_all(USER) == []

    @pytest.mark.asyncio
    async def test_failed_part_write_rolls_back(self, audit_logger):
        """Test parts already written are removed when a later part fails."""
        storage = FailingSecondPart()
        transactions = TransactionService(storage, audit_logger)
        splits = SplitService(storage, audit_logger)
        txn = await make_txn(transactions, amount="-100.00")

        with pytest.raises(StorageError):
            await splits.split_transaction(USER, txn.id, [
                {"amount": "30", "category": "Travel"},
                {"amount": "20", "category": "Travel"},
            ])

        remaining = await transactions.load_all(USER)
        assert [t.id for t in remaining] == [txn.id]
        assert remaining[0].amount == Decimal("-100.00")
        assert remaining[0].is_split is False

    @pytest.mark.asyncio
    async def test_bulk_split_reports_each_entry(self, transactions, splits):
        """Test bulk_split keeps going past a failed entry."""
        good = await make_txn(transactions, amount="-50.00")
        bad = await make_txn(transactions, amount="-10.00")

        outcome = await splits.bulk_split(USER, [
            {"transaction_id": good.id, "parts": [{"amount": "20", "category": "Travel"}]},
            {"transaction_id": bad.id, "parts": [{"amount": "99", "category": "Travel"}]},
        ])

        assert outcome["success"] is False
        assert outcome["success_count"] == 1
        assert outcome["error_count"] == 1
        assert outcome["message"] == "Completed 1 of 2 splits"
        assert outcome["results"][1]["success"] is False
        assert (await transactions.get(USER, good.id)).is_split is True
        assert (await transactions.get(USER, bad.id)).is_split is False

    @pytest.mark.asyncio
    async def test_bulk_split_requires_entries(self, splits):
        """Test an empty batch is rejected."""
        with pytest.raises(ServiceValidationError, match="No splits provided"):
            await splits.bulk_split(USER, [])

    def test_validate_split_parts_requires_category(self):
        """Test each part needs a category."""
        from bookkeeper.models.transaction import Transaction
        original = Transaction(user_id=USER, date=date(2024, 1, 1), description="x", amount=Decimal("-10"))
        with pytest.raises(ServiceValidationError, match="Category is required"):
            validate_split_parts(original, [{"amount": "5"}])


class TestCompanyService:
    """Tests for companies and the default-company rule."""

    @pytest.mark.asyncio
    async def test_first_company_is_default(self, companies):
        """Test the first company becomes the default."""
        first = await companies.create(USER, "Acme LLC")
        second = await companies.create(USER, "Beta Inc")
        assert first.is_default is True
        assert second.is_default is False

    @pytest.mark.asyncio
    async def test_set_default_clears_previous(self, companies):
        """Test only one company is the default."""
        first = await companies.create(USER, "Acme LLC")
        second = await companies.create(USER, "Beta Inc")
        await companies.set_default(USER, second.id)
        assert (await companies.get(USER, first.id)).is_default is False
        assert (await companies.get_default(USER)).id == second.id

    @pytest.mark.asyncio
    async def test_delete_in_use_company_fails(self, companies, transactions):
        """Test a company referenced by transactions can't be deleted."""
        company = await companies.create(USER, "Acme LLC")
        await make_txn(transactions, company_id=company.id)
        with pytest.raises(ServiceValidationError):
            await companies.delete(USER, company.id)

    @pytest.mark.asyncio
    async def test_delete_archives(self, companies):
        """Test delete archives the company and hides it from list()."""
        company = await companies.create(USER, "Acme LLC")
        archived = await companies.delete(USER, company.id)
        assert archived.is_active is False
        assert await companies.list(USER) == []


    @pytest.mark.asyncio
    async def test_update_rejects_malformed_address(self, companies):
        """Test an address that is not an Address is refused and nothing is written."""
        company = await companies.create(USER, "Acme LLC")
        with pytest.raises(ServiceValidationError, match="address"):
            await companies.update(USER, company.id, address="12 Main St")
        assert [c.name for c in await companies.list(USER)] == ["Acme LLC"]

    @pytest.mark.asyncio
    async def test_delete_in_use_message_names_the_fix(self, companies, transactions):
        """Test the refusal tells the user to move or delete the transactions."""
        company = await companies.create(USER, "Acme LLC")
        await make_txn(transactions, company_id=company.id)
        with pytest.raises(ServiceValidationError, match="Move or delete its transactions first"):
            await companies.delete(USER, company.id)
    @pytest.mark.asyncio
    async def test_statement_company_is_matched_or_created(self, companies):
        """Test statement company names match loosely, else create a company."""
        existing = await companies.create(USER, "Acme", legal_name="ACME CONSTRUCTION LLC")
        matched = await companies.find_or_create_from_statement(
            USER, AccountInfo(company_name="ACME CONSTRUCTION LLC")
        )
        assert matched.id == existing.id

        created = await companies.find_or_create_from_statement(USER, AccountInfo(company_name="Zeta Corp"))
        assert created.name == "Zeta Corp"
        assert created.source == "pdf_import"


class TestPayeeService:
    """Tests for payees and year-to-date totals."""

    @pytest.mark.asyncio
    async def test_create_requires_name(self, payees):
        """Test payee name is required."""
        with pytest.raises(ServiceValidationError):
            await payees.create(USER, "  ")

    @pytest.mark.asyncio
    async def test_update_payee_stats(self, payees, transactions):
        """Test ytd_paid sums absolute expense payments in the year."""
        payee = await payees.create(USER, "Jane Doe", type=PayeeType.CONTRACTOR)
        for amount, when in (("-300.00", date(2024, 2, 1)), ("-450.00", date(2024, 5, 1)), ("-99.00", date(2023, 5, 1))):
            txn = await make_txn(transactions, amount=amount, when=when)
            await transactions.assign_payee(USER, txn.id, payee.id)

        updated = await payees.update_payee_stats(USER, payee.id, year=2024)
        assert updated.ytd_paid == Decimal("750.00")
        assert updated.last_payment_date == date(2024, 5, 1)
        assert updated.last_payment_amount == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_list_by_type(self, payees):
        """Test filtering payees by type."""
        await payees.create(USER, "Home Depot", type=PayeeType.VENDOR)
        await payees.create(USER, "Jane Doe", type=PayeeType.CONTRACTOR)
        contractors = await payees.get_contractors(USER)
        assert [p.name for p in contractors] == ["Jane Doe"]
