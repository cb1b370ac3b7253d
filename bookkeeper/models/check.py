"""
Check Models

Paper checks written or received. Like receipts, a check can back any
number of transactions through transaction_ids. Bank details are kept
as the last digits only.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from bookkeeper.models.base import Record


class CheckType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class CheckStatus(str, Enum):
    PENDING = "pending"
    CLEARED = "cleared"
    BOUNCED = "bounced"
    VOIDED = "voided"
    CANCELLED = "cancelled"


class Check(Record):
    """A stored check."""

    check_number: Optional[str] = Field(default=None, max_length=20)
    amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    date: Optional[dt.date] = None
    type: CheckType = CheckType.EXPENSE
    status: CheckStatus = CheckStatus.PENDING
    cleared_date: Optional[dt.date] = None

    payee: Optional[str] = Field(default=None, max_length=200)
    payee_id: Optional[UUID] = None
    vendor_id: Optional[UUID] = None
    vendor_name: Optional[str] = Field(default=None, max_length=200)
    is_contractor_payment: bool = False

    bank_name: Optional[str] = Field(default=None, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=4, description="Last 4 digits")
    routing_number: Optional[str] = Field(default=None, max_length=9)

    memo: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = None
    company_id: Optional[UUID] = None
    image_url: Optional[str] = None
    transaction_ids: list[UUID] = Field(default_factory=list)

    @model_validator(mode="after")
    def clears_after_writing(self) -> "Check":
        if self.cleared_date and self.date and self.cleared_date < self.date:
            raise ValueError("cleared_date cannot be before the check date")
        return self

    @property
    def is_linked(self) -> bool:
        return bool(self.transaction_ids)

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it appears on a transaction: deposits positive, payments negative."""
        amount = self.amount or Decimal("0")
        return amount if self.type == CheckType.INCOME else -amount


class CheckStats(BaseModel):
    total_count: int = 0
    with_images: int = 0
    linked_count: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
