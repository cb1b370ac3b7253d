"""
Category and Enumeration Constants

Categories follow IRS Schedule C so that reports map straight onto the
tax form. The enum NAME is the stable key used by rules, the AI classifier
and the default vendor table. The enum VALUE is the label stored on
transactions and shown to users.
"""

from enum import Enum
from typing import Optional


# =============================================================================
# IRS CATEGORIES
# =============================================================================

class IRSCategory(str, Enum):
    """
    Schedule C expense/income categories plus bookkeeping extensions.

    Members that repeat a label are enum aliases, so
    IRSCategory["MEALS"] is IRSCategory.MEALS_ENTERTAINMENT.
    """
    # Schedule C Part II expenses
    ADVERTISING = "Advertising"
    CAR_TRUCK_EXPENSES = "Car and Truck Expenses"
    COMMISSIONS_FEES = "Commissions and Fees"
    CONTRACT_LABOR = "Contract Labor"
    DEPLETION = "Depletion"
    DEPRECIATION = "Depreciation and Section 179"
    EMPLOYEE_BENEFIT_PROGRAMS = "Employee Benefit Programs"
    INSURANCE_OTHER = "Insurance (Other than Health)"
    INTEREST_MORTGAGE = "Interest (Mortgage)"
    INTEREST_OTHER = "Interest (Other)"
    LEGAL_PROFESSIONAL = "Legal and Professional Services"
    OFFICE_EXPENSES = "Office Expenses"
    PENSION_PROFIT_SHARING = "Pension and Profit-Sharing Plans"
    RENT_LEASE_VEHICLES = "Rent or Lease (Vehicles, Machinery, Equipment)"
    RENT_LEASE_OTHER = "Rent or Lease (Other Business Property)"
    REPAIRS_MAINTENANCE = "Repairs and Maintenance"
    SUPPLIES = "Supplies (Not Inventory)"
    TAXES_LICENSES = "Taxes and Licenses"
    TRAVEL = "Travel"
    MEALS_ENTERTAINMENT = "Meals and Entertainment"
    UTILITIES = "Utilities"
    WAGES = "Wages (Less Employment Credits)"
    OTHER_EXPENSES = "Other Expenses"

    # Income
    GROSS_RECEIPTS = "Gross Receipts or Sales"
    RETURNS_ALLOWANCES = "Returns and Allowances"
    OTHER_INCOME = "Other Income"

    # Payroll
    EMPLOYEE_WAGES = "Employee Wages"
    PAYROLL_TAXES = "Payroll Taxes"
    WORKER_COMPENSATION = "Workers' Compensation Insurance"
    HEALTH_INSURANCE = "Health Insurance"
    RETIREMENT_CONTRIBUTIONS = "Retirement Contributions"

    # Cost of goods and operating extensions
    COST_OF_GOODS_SOLD = "Cost of Goods Sold"
    MATERIALS_SUPPLIES = "Materials and Supplies"
    SOFTWARE_SUBSCRIPTIONS = "Software Subscriptions"
    WEB_HOSTING = "Web Hosting and Domains"
    BANK_FEES = "Bank Fees"
    TRAINING_EDUCATION = "Training and Education"
    DUES_MEMBERSHIPS = "Dues and Memberships"
    TOOLS_EQUIPMENT = "Tools and Equipment"
    OTHER_COSTS = "Other Costs"

    # Owner equity and personal
    OWNER_DRAWS = "Owner Draws/Distributions"
    OWNER_CONTRIBUTION = "Owner Contribution"
    PERSONAL_EXPENSE = "Personal Expense"
    PERSONAL_TRANSFER = "Personal Transfer"

    UNCATEGORIZED = "Uncategorized"

    # Aliases for keys used by older rules
    MEALS = "Meals and Entertainment"
    RENT_LEASE_EQUIPMENT = "Rent or Lease (Vehicles, Machinery, Equipment)"
    RENT_LEASE_PROPERTY = "Rent or Lease (Other Business Property)"


# Keys whose transactions are money coming in
POSITIVE_CATEGORY_KEYS = frozenset({
    "GROSS_RECEIPTS",
    "OTHER_INCOME",
    "OWNER_CONTRIBUTION",
})

INCOME_CATEGORIES = frozenset({
    IRSCategory.GROSS_RECEIPTS.value,
    IRSCategory.OTHER_INCOME.value,
})

PERSONAL_CATEGORIES = frozenset({
    IRSCategory.PERSONAL_EXPENSE.value,
    IRSCategory.PERSONAL_TRANSFER.value,
    IRSCategory.OWNER_DRAWS.value,
    IRSCategory.OWNER_CONTRIBUTION.value,
})

_LABELS = {member.value for member in IRSCategory}


def category_label(key_or_label: Optional[str]) -> Optional[str]:
    """
    Resolve a category key (e.g. 'CAR_TRUCK_EXPENSES') to its label.

    Labels and unknown strings are returned unchanged.
    """
    if not key_or_label:
        return key_or_label
    candidate = key_or_label.strip()
    if candidate in IRSCategory.__members__:
        return IRSCategory[candidate].value
    return candidate


def category_key(label: str) -> Optional[str]:
    """Reverse lookup of the canonical key for a label."""
    for name, member in IRSCategory.__members__.items():
        if member.value == label and member.name == name:
            return name
    return None


def is_known_category(key_or_label: str) -> bool:
    return key_or_label in IRSCategory.__members__ or key_or_label in _LABELS


def is_income_category(label: Optional[str]) -> bool:
    return bool(label) and category_label(label) in INCOME_CATEGORIES


def is_positive_category_key(key: str) -> bool:
    """True when a category key classifies money coming in."""
    member = IRSCategory.__members__.get(key)
    return member is not None and member.name in POSITIVE_CATEGORY_KEYS


# =============================================================================
# TRANSACTION ENUMS
# =============================================================================

class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    CHECK_DEPOSIT = "check_deposit"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    VENMO = "venmo"
    ZELLE = "zelle"
    OTHER_ELECTRONIC = "other_electronic"
    OTHER = "other"


class TransactionSource(str, Enum):
    """Where a transaction record came from."""
    MANUAL = "manual"
    CSV_IMPORT = "csv_import"
    PDF_IMPORT = "pdf_import"
    RECEIPT = "receipt"
    CHECK = "check"
    SPLIT = "split"


class ClassificationSource(str, Enum):
    """Which classification layer assigned the category."""
    USER_RULE = "user_rule"
    GLOBAL_RULE = "global_rule"
    DEFAULT_VENDOR = "default_vendor"
    GEMINI_API = "gemini_api"
    MANUAL = "manual"
    SPLIT = "split"
    UNCLASSIFIED = "unclassified"
