"""Tests for the bank CSV parser."""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeper.imports import detect_bank_format, get_supported_banks, parse_csv
from bookkeeper.imports.csv_parser import (
    CSVParseError,
    SPLIT,
    clean_amount,
    map_bank_type_to_payment_method,
    parse_amount,
    parse_transaction_date,
    validate_mapping,
)
from bookkeeper.models.categories import PaymentMethod, TransactionType


CHASE_CSV = (
    "Details,Posting Date,Description,Amount,Type,Balance,Check or Slip #\n"
    "DEBIT,01/03/2024,SHELL OIL 57444,-45.20,DEBIT_CARD,1000.00,\n"
    "CREDIT,01/04/2024,ACME CORP PAYROLL,\"1,250.00\",ACH_CREDIT,2250.00,\n"
    "DEBIT,01/05/2024,CHECK 1042,-300.00,CHECK_PAID,1950.00,1042\n"
)

CAPITAL_ONE_CSV = (
    "Transaction Date,Posted Date,Card No.,Description,Category,Debit,Credit\n"
    "2024-02-01,2024-02-02,1234,HOME DEPOT,Merchandise,12.50,\n"
    "2024-02-03,2024-02-04,1234,PAYMENT THANK YOU,Payment,,100.00\n"
)


class TestBankDetection:
    """Tests for recognising bank export layouts."""

    def test_detects_chase(self):
        """Test Chase headers are recognised."""
        fmt = detect_bank_format(["Details", "Posting Date", "Description", "Amount", "Type"])
        assert fmt.key == "chase"

    def test_detects_split_amount_banks(self):
        """Test banks with debit/credit columns are recognised."""
        assert detect_bank_format(["Transaction Date", "Description", "Debit", "Credit"]).key == "capital_one"
        assert detect_bank_format(["Date", "Description", "Withdrawals", "Deposits"]).key == "pnc"

    def test_unknown_headers(self):
        """Test unfamiliar headers give no format."""
        assert detect_bank_format(["When", "What", "How Much"]) is None

    def test_supported_banks_listing(self):
        """Test the list of selectable banks."""
        keys = [bank["key"] for bank in get_supported_banks()]
        assert "chase" in keys
        assert "wells_fargo" in keys


class TestValueParsing:
    """Tests for amount and date parsing helpers."""

    def test_clean_amount_formats(self):
        """Test currency, parentheses and DR/CR suffixes."""
        assert clean_amount("$1,234.56") == Decimal("1234.56")
        assert clean_amount("(1,234.56)") == Decimal("-1234.56")
        assert clean_amount("45.00 DR") == Decimal("-45.00")
        assert clean_amount("45.00 CR") == Decimal("45.00")
        assert clean_amount("abc") is None
        assert clean_amount("") is None

    def test_split_amounts(self):
        """Test debit becomes negative and credit positive."""
        assert parse_amount("12.50", None, SPLIT) == Decimal("-12.50")
        assert parse_amount(None, "100", SPLIT) == Decimal("100.00")
        assert parse_amount(None, None, SPLIT) == Decimal("0.00")

    def test_invalid_amount_raises(self):
        """Test an unreadable signed amount raises CSVParseError."""
        with pytest.raises(CSVParseError):
            parse_amount("n/a")

    def test_date_fallbacks(self):
        """Test common date layouts are accepted."""
        assert parse_transaction_date("01/15/2024") == date(2024, 1, 15)
        assert parse_transaction_date("2024-01-15") == date(2024, 1, 15)
        assert parse_transaction_date("1/15/24") == date(2024, 1, 15)

    def test_bad_date_raises(self):
        """Test an unreadable date raises CSVParseError."""
        with pytest.raises(CSVParseError):
            parse_transaction_date("not a date")
        with pytest.raises(CSVParseError):
            parse_transaction_date("")

    def test_bank_type_to_payment_method(self):
        """Test bank transaction types map to payment methods."""
        assert map_bank_type_to_payment_method("DEBIT_CARD") == PaymentMethod.DEBIT_CARD
        assert map_bank_type_to_payment_method("ACH_CREDIT") == PaymentMethod.BANK_TRANSFER
        assert map_bank_type_to_payment_method("CHECK_PAID") == PaymentMethod.CHECK
        assert map_bank_type_to_payment_method("DSLIP") == PaymentMethod.CHECK_DEPOSIT
        assert map_bank_type_to_payment_method(None) == PaymentMethod.OTHER

    def test_mapping_requirements(self):
        """Test a mapping needs date, description and an amount source."""
        assert validate_mapping({"date": "D", "description": "X", "amount": "A"}) == (True, [])
        assert validate_mapping({"date": "D", "description": "X", "debit": "Out", "credit": "In"})[0]
        valid, missing = validate_mapping({"date": "D", "debit": "Out"})
        assert not valid
        assert missing == ["description", "amount (or debit and credit)"]


class TestParseCSV:
    """Tests for parse_csv."""

    def test_chase_export(self):
        """Test a Chase export parses with signs, types and check numbers."""
        result = parse_csv(CHASE_CSV.encode())
        assert result.success
        assert result.detected_bank == "chase"
        assert result.parsed_count == 3

        fuel, payroll, check = result.transactions
        assert fuel.amount == Decimal("-45.20")
        assert fuel.type == TransactionType.EXPENSE
        assert fuel.payment_method == PaymentMethod.DEBIT_CARD
        assert payroll.amount == Decimal("1250.00")
        assert payroll.type == TransactionType.INCOME
        assert check.check_number == "1042"
        assert check.payment_method == PaymentMethod.CHECK
        assert check.row_index == 2

    def test_split_columns(self):
        """Test a debit/credit export produces signed amounts."""
        result = parse_csv(CAPITAL_ONE_CSV)
        assert result.detected_bank == "capital_one"
        assert [t.amount for t in result.transactions] == [Decimal("-12.50"), Decimal("100.00")]
        assert result.transactions[0].date == date(2024, 2, 1)
        assert result.transactions[0].category == "Merchandise"

    def test_unrecognised_layout_requires_mapping(self):
        """Test unknown headers hand rows back for manual mapping."""
        result = parse_csv("When,What,How Much\n03/04/2024,Coffee,-4.50\n")
        assert result.success
        assert result.requires_mapping
        assert result.raw_rows == [{"When": "03/04/2024", "What": "Coffee", "How Much": "-4.50"}]
        assert result.transactions == []

    def test_custom_mapping_with_date_format(self):
        """Test a custom mapping uses the chosen date format first."""
        result = parse_csv(
            "When,What,How Much\n03/04/2024,Coffee,-4.50\n",
            bank_format="custom",
            custom_mapping={"date": "When", "description": "What", "amount": "How Much"},
            date_format="DD/MM/YYYY",
        )
        assert result.detected_bank == "custom"
        assert result.transactions[0].date == date(2024, 4, 3)
        assert result.transactions[0].amount == Decimal("-4.50")

    def test_incomplete_custom_mapping(self):
        """Test an incomplete custom mapping is reported."""
        result = parse_csv(
            "When,What\n03/04/2024,Coffee\n",
            bank_format="custom",
            custom_mapping={"date": "When"},
        )
        assert not result.success
        assert result.requires_mapping
        assert "description" in result.errors[0].message

    def test_row_errors_keep_good_rows(self):
        """Test bad rows are reported by file row number and good rows kept."""
        csv_text = (
            "Posting Date,Description,Amount\n"
            "01/03/2024,GOOD ROW,-10.00\n"
            "not a date,BAD DATE,-5.00\n"
            "01/05/2024,,-5.00\n"
        )
        result = parse_csv(csv_text)
        assert result.success
        assert result.parsed_count == 1
        assert [e.row for e in result.errors] == [3, 4]
        assert result.errors[1].message == "Missing description"

    def test_empty_file(self):
        """Test an empty file fails cleanly."""
        result = parse_csv(b"")
        assert not result.success
        assert result.errors[0].message == "CSV file is empty or has no data rows"

    def test_unknown_bank_key(self):
        """Test an unknown explicit bank format is rejected."""
        result = parse_csv(CHASE_CSV, bank_format="first_national")
        assert not result.success
        assert "Unknown bank format" in result.errors[0].message

    def test_row_with_extra_columns_is_reported(self):
        """Test an unquoted comma in a description is an error, not a silent skip."""
        csv_text = (
            "Posting Date,Description,Amount\n"
            "01/02/2024,COFFEE,-4.00\n"
            "01/03/2024,Lunch, Inc,-12.00\n"
            "01/04/2024,TEA,-3.00\n"
        )
        result = parse_csv(csv_text)
        assert result.parsed_count == 2
        assert result.total_rows == 3
        assert [e.row for e in result.errors] == [3]
        assert "Expected 3 columns but found 4" in result.errors[0].message
        assert [t.description for t in result.transactions] == ["COFFEE", "TEA"]

    def test_trailing_delimiter_is_not_an_error(self):
        """Test an empty extra field at the end of a row is ignored."""
        result = parse_csv("Posting Date,Description,Amount\n01/02/2024,COFFEE,-4.00,\n")
        assert result.errors == []
        assert result.parsed_count == 1

    def test_error_rows_keep_file_line_numbers(self):
        """Test blank lines do not shift the reported row numbers."""
        csv_text = (
            "Posting Date,Description,Amount\n"
            "01/02/2024,COFFEE,-4.00\n"
            "\n"
            "not a date,BAD DATE,-1.00\n"
        )
        result = parse_csv(csv_text)
        assert result.total_rows == 2
        assert [e.row for e in result.errors] == [4]
