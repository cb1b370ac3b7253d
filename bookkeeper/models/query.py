"""
Query Models

Filters and sorting for transaction lists. These are the structured
form of what the Transactions page lets a user pick.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from bookkeeper.models.categories import PaymentMethod, TransactionType


class TransactionFilter(BaseModel):
    """All filters are optional and combined with AND."""

    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    categories: Optional[list[str]] = None
    payee_id: Optional[UUID] = None
    vendor_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    income_source_id: Optional[UUID] = None
    csv_import_id: Optional[UUID] = None
    statement_id: Optional[UUID] = None
    payment_method: Optional[PaymentMethod] = None
    needs_review: Optional[bool] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)
    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive match on description, payee, vendor or notes"
    )
    uncategorized_only: bool = False
    unassigned_payee_only: bool = False
    include_split_children: bool = True

    @model_validator(mode="after")
    def check_ranges(self) -> "TransactionFilter":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from cannot be after date_to")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount cannot be greater than max_amount")
        return self


class SortField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    DESCRIPTION = "description"
    CATEGORY = "category"
    PAYEE = "payee"
    CREATED_AT = "created_at"


class TransactionSort(BaseModel):
    field: SortField = SortField.DATE
    descending: bool = True


class QueryResult(BaseModel):
    """One page of query results plus the unpaginated count."""

    success: bool = True
    total_count: int = 0
    result_count: int = 0
    results: list[Any] = Field(default_factory=list)
    error_message: Optional[str] = None
    query_description: str = ""

    @property
    def data_found(self) -> bool:
        return self.result_count > 0
