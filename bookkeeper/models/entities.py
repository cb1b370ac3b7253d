"""
Counterparty and organisation models: companies, payees/vendors and
income sources.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from bookkeeper.models.base import Address, Record
from bookkeeper.models.categories import PaymentMethod


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class Company(Record):
    """
    A business the user keeps books for.

    Exactly one active company per user is the default; statements with
    no recognisable company name are filed under it.
    """

    name: str = Field(..., min_length=1, max_length=200)
    legal_name: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[str] = None
    address: Optional[Address] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    source: str = Field(default="manual", description="manual or pdf_import")
    deleted_at: Optional[datetime] = None


class PayeeType(str, Enum):
    VENDOR = "vendor"
    CONTRACTOR = "contractor"
    EMPLOYEE = "employee"


class Payee(Record):
    """
    Someone the business pays.

    Contractors paid $600 or more in a year need a 1099-NEC, which is why
    tax_id and ytd_paid live here.
    """

    name: str = Field(..., min_length=1, max_length=200)
    type: PayeeType = PayeeType.VENDOR
    business_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company_id: Optional[UUID] = None
    tax_id: Optional[str] = None
    is_1099_required: bool = False
    is_active: bool = True
    preferred_payment_method: PaymentMethod = PaymentMethod.CHECK
    category: Optional[str] = None
    default_expense_category: Optional[str] = None
    ytd_paid: Decimal = Decimal("0")
    last_payment_date: Optional[date] = None
    last_payment_amount: Optional[Decimal] = None
    address: Optional[Address] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v and not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email address: {v}")
        return v or None


class IncomeSource(Record):
    """A named stream of revenue (a client, a marketplace, rent...)."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    company_id: Optional[UUID] = None
    default_category: Optional[str] = None
    contact_email: Optional[str] = None
    is_active: bool = True
