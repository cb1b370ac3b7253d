"""Tests for the Chase statement text parser."""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeper.imports import ChaseStatementParser, StatementParseError, extract_text
from bookkeeper.imports.statement_parser import classify_by_keyword, clean_merchant_name
from bookkeeper.models.categories import IRSCategory, PaymentMethod, TransactionType


STATEMENT_TEXT = """
ACME CONSTRUCTION LLC
Account Number: 000000123456789
January 01, 2024 through January 31, 2024
Beginning Balance $5,000.00
Ending Balance $5,707.00
DEPOSITS AND ADDITIONS
01/05 Remote Online Deposit 1 $1,250.00
01/12 Zelle Payment From John Smith $300.00
01/20 Garbled
Total Deposits and Additions $1,550.00
CHECKS PAID
533 ^ 01/03 01/03 400.00
Total Checks Paid $400.00
ATM & DEBIT CARD WITHDRAWALS
01/02 Card Purchase 12/29 Home Depot 0202648 Plantation FL Card 1819 $38.80
Total ATM & Debit Card Withdrawals $38.80
ELECTRONIC WITHDRAWALS
01/11 Orig CO Name:Home Depot Orig ID:1234 Desc Date:240111 $389.20
Total Electronic Withdrawals $389.20
FEES
01/31 Monthly Service Fee $15.00
Total Fees $15.00
"""


@pytest.fixture
def parser():
    return ChaseStatementParser()


class TestAccountInfo:
    """Tests for statement header extraction."""

    def test_header_fields(self, parser):
        """Test account number, period, balances and company name."""
        info = parser.parse(STATEMENT_TEXT).account_info
        assert info.account_number == "000000123456789"
        assert info.statement_period_start == date(2024, 1, 1)
        assert info.statement_period_end == date(2024, 1, 31)
        assert info.beginning_balance == Decimal("5000.00")
        assert info.ending_balance == Decimal("5707.00")
        assert info.company_name == "ACME CONSTRUCTION LLC"

    def test_numeric_statement_period(self, parser):
        """Test the MM/DD/YYYY - MM/DD/YYYY period layout."""
        lines = ["Statement Period: 02/01/2024 - 02/29/2024"]
        info = parser.extract_account_info(lines)
        assert info.statement_period_start == date(2024, 2, 1)
        assert info.statement_period_end == date(2024, 2, 29)


class TestSections:
    """Tests for per-section line parsing."""

    def test_all_sections_are_read(self, parser):
        """Test each section yields its transactions in statement order."""
        result = parser.parse(STATEMENT_TEXT)
        descriptions = [t.description for t in result.transactions]
        assert descriptions == [
            "Remote Online Deposit 1",
            "Zelle Payment From John Smith",
            "CHECK #533",
            "Home Depot",
            "Electronic Payment: Home Depot",
            "Monthly Service Fee",
        ]
        assert [t.row_index for t in result.transactions] == list(range(6))
        assert result.skipped_lines == 1

    def test_deposits(self, parser):
        """Test deposits are income with a payment method from the wording."""
        deposit, zelle = parser.parse(STATEMENT_TEXT).transactions[:2]
        assert deposit.amount == Decimal("1250.00")
        assert deposit.type == TransactionType.INCOME
        assert deposit.payment_method == PaymentMethod.CHECK_DEPOSIT
        assert deposit.category == IRSCategory.GROSS_RECEIPTS.value
        assert zelle.payment_method == PaymentMethod.ZELLE
        assert zelle.needs_review

    def test_withdrawals_are_negative(self, parser):
        """Test checks, card purchases, electronic payments and fees are expenses."""
        check, card, electronic, fee = parser.parse(STATEMENT_TEXT).transactions[2:]
        assert check.amount == Decimal("-400.00")
        assert check.check_number == "533"
        assert check.date == date(2024, 1, 3)
        assert card.amount == Decimal("-38.80")
        assert card.payment_method == PaymentMethod.DEBIT_CARD
        assert electronic.amount == Decimal("-389.20")
        assert electronic.payment_method == PaymentMethod.BANK_TRANSFER
        assert fee.amount == Decimal("-15.00")
        assert fee.category == IRSCategory.BANK_FEES.value

    def test_summary(self, parser):
        """Test statement totals."""
        summary = parser.parse(STATEMENT_TEXT).summary
        assert summary.total_transactions == 6
        assert summary.total_income == Decimal("1550.00")
        assert summary.total_expenses == Decimal("843.00")
        assert summary.net_income == Decimal("707.00")
        assert summary.needs_review == 4

    def test_glued_deposit_amount(self, parser):
        """Test a trailing '1' glued onto an unformatted deposit amount is split off."""
        text = "DEPOSITS AND ADDITIONS\n01/08 ATM Cash Deposit 11,500.00\n"
        txn = parser.parse(text, year=2024).transactions[0]
        assert txn.amount == Decimal("1500.00")

    def test_out_of_range_deposit_is_skipped(self, parser):
        """Test a deposit above the sanity bound is dropped."""
        text = "DEPOSITS AND ADDITIONS\n01/08 Wire In $75,000.00\n"
        result = parser.parse(text, year=2024)
        assert result.transactions == []
        assert result.skipped_lines == 1


class TestGenericFallback:
    """Tests for statements without recognised sections."""

    def test_lines_parsed_without_sections(self, parser):
        """Test MM/DD lines are read when no section headers exist."""
        text = "01/15 Client payment 250.00\n01/16 Office rent (1,200.00)\n"
        result = parser.parse(text, year=2024)
        assert [t.amount for t in result.transactions] == [Decimal("250.00"), Decimal("-1200.00")]
        assert result.transactions[1].type == TransactionType.EXPENSE
        assert result.transactions[0].date == date(2024, 1, 15)


class TestHelpers:
    """Tests for merchant cleanup, keyword classification and text extraction."""

    def test_clean_merchant_name(self):
        """Test store ids and the trailing city are removed."""
        assert clean_merchant_name("Chevron 0202648 Plantation") == "Chevron"
        assert clean_merchant_name("X") == "Card Purchase"

    def test_keyword_classification(self):
        """Test deposit and fee wording."""
        assert classify_by_keyword("Mobile Deposit", TransactionType.INCOME)[0] == IRSCategory.GROSS_RECEIPTS.value
        assert classify_by_keyword("Wire Fee", TransactionType.EXPENSE)[0] == IRSCategory.BANK_FEES.value
        assert classify_by_keyword("Lumber", TransactionType.EXPENSE) == (None, 0.3)

    def test_extract_text_rejects_non_pdf(self):
        """Test bytes that aren't a PDF raise StatementParseError."""
        with pytest.raises(StatementParseError):
            extract_text(b"not a pdf")
