"""
Tests for Bookkeeper models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with fake external services)
3. No real API calls in tests
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from bookkeeper.models.categories import (
    IRSCategory,
    TransactionType,
    category_key,
    category_label,
    is_income_category,
    is_known_category,
    is_positive_category_key,
)
from bookkeeper.models.imports import ValidationIssue, ValidationResult
from bookkeeper.models.query import TransactionFilter
from bookkeeper.models.transaction import BulkUpdate, Transaction


class TestCategories:
    """Tests for the IRS category catalogue."""

    def test_key_resolves_to_label(self):
        """Test that a category key maps to its display label."""
        assert category_label("CAR_TRUCK_EXPENSES") == "Car and Truck Expenses"

    def test_label_passes_through(self):
        """Test that labels and unknown strings are returned unchanged."""
        assert category_label("Office Expenses") == "Office Expenses"
        assert category_label("Something Else") == "Something Else"
        assert category_label(None) is None

    def test_alias_keys_share_a_label(self):
        """Test that legacy alias keys resolve to the canonical label."""
        assert category_label("MEALS") == IRSCategory.MEALS_ENTERTAINMENT.value
        assert category_key("Meals and Entertainment") == "MEALS_ENTERTAINMENT"

    def test_known_and_income_categories(self):
        """Test category lookups used by classification and reports."""
        assert is_known_category("TRAVEL")
        assert is_known_category("Travel")
        assert not is_known_category("Groceries")
        assert is_income_category("Gross Receipts or Sales")
        assert not is_income_category("Utilities")
        assert is_positive_category_key("OWNER_CONTRIBUTION")
        assert not is_positive_category_key("OWNER_DRAWS")


class TestTransactionModel:
    """Tests for the Transaction record."""

    def test_category_key_is_stored_as_label(self):
        """Test that a category key is normalized to its label."""
        txn = Transaction(
            user_id="u",
            date=date(2024, 1, 5),
            description="Shell",
            amount=Decimal("-40.00"),
            category="CAR_TRUCK_EXPENSES",
        )
        assert txn.category == "Car and Truck Expenses"

    def test_income_and_expense_flags(self):
        """Test is_income / is_expense and absolute_amount."""
        income = Transaction(
            user_id="u", date=date(2024, 1, 5), description="Deposit",
            amount=Decimal("250.00"), type=TransactionType.INCOME,
        )
        transfer = Transaction(
            user_id="u", date=date(2024, 1, 5), description="To savings",
            amount=Decimal("-100.00"), type=TransactionType.TRANSFER,
        )
        assert income.is_income and not income.is_expense
        assert not transfer.is_income and not transfer.is_expense
        assert transfer.absolute_amount == Decimal("100.00")

    def test_rejects_empty_description(self):
        """Test that a transaction needs a description."""
        with pytest.raises(ValueError):
            Transaction(user_id="u", date=date(2024, 1, 5), description="", amount=Decimal("1"))

    def test_bulk_update_only_reports_set_fields(self):
        """Test that BulkUpdate.changes() contains only explicit fields."""
        update = BulkUpdate(category="TRAVEL", needs_review=False)
        assert update.changes() == {"category": "Travel", "needs_review": False}

    def test_bulk_update_rejects_unknown_fields(self):
        """Test that BulkUpdate forbids fields outside the payload."""
        with pytest.raises(ValueError):
            BulkUpdate(amount=Decimal("5"))


class TestTransactionFilter:
    """Tests for filter range validation."""

    def test_rejects_inverted_date_range(self):
        """Test date_from after date_to is rejected."""
        with pytest.raises(ValueError):
            TransactionFilter(date_from=date(2024, 2, 1), date_to=date(2024, 1, 1))

    def test_rejects_inverted_amount_range(self):
        """Test min_amount above max_amount is rejected."""
        with pytest.raises(ValueError):
            TransactionFilter(min_amount=Decimal("10"), max_amount=Decimal("5"))


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_defaults(self):
        """Test AuditEvent default severity and identity."""
        event = AuditEvent(event_type=AuditEventType.RULE_CREATED, description="Rule created")
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_timestamps_are_timezone_aware(self):
        """Test record and audit timestamps carry UTC."""
        txn = Transaction(user_id="u", date=date(2024, 1, 5), description="x", amount=Decimal("-1.00"))
        event = AuditEvent(event_type=AuditEventType.RULE_CREATED, description="Rule created")
        assert txn.created_at.utcoffset() == timedelta(0)
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        entity_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created",
            entity_id=entity_id,
            details={"amount": "-12.50"},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transaction_created"
        assert log_dict["entity_id"] == str(entity_id)
        assert log_dict["details"]["amount"] == "-12.50"

    def test_csv_import_with_errors_is_a_warning(self):
        """Test that an import with row errors is logged as a warning."""
        correlation_id = uuid4()
        event = AuditEventBuilder.csv_import_completed(
            user_id="u",
            import_id=uuid4(),
            file_name="chase.csv",
            saved=10,
            duplicates=2,
            errors=1,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.CSV_IMPORT_COMPLETED
        assert event.severity == AuditSeverity.WARNING
        assert event.correlation_id == correlation_id
        assert event.details["duplicates"] == 2

    def test_bulk_update_without_failures_is_info(self):
        """Test bulk edit severity when every record was updated."""
        event = AuditEventBuilder.bulk_update_applied(
            user_id="u", entity_type="transaction", fields=["category"], updated=3, failed=0,
        )
        assert event.severity == AuditSeverity.INFO
        assert event.is_user_action is True


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_errors_and_warnings_are_separated(self):
        """Test the errors / warnings properties."""
        result = ValidationResult(
            is_valid=False,
            schema_passed=False,
            semantic_passed=True,
            issues=[
                ValidationIssue(row=2, field="amount", issue_type="missing", message="Amount required"),
                ValidationIssue(
                    row=3, field="date", issue_type="future_date",
                    message="Date in future", severity="warning",
                ),
            ],
        )
        assert len(result.errors) == 1
        assert len(result.warnings) == 1
        assert result.errors[0].row == 2

    def test_severity_must_be_known(self):
        """Test that an unknown severity is rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="amount", issue_type="x", message="m", severity="fatal")
