"""
Transaction Models

A transaction is one line of money movement. The amount is signed:
positive means money in, negative means money out. Every other entity
(company, payee, vendor, income source, statement, CSV import) is linked
through an id field on the transaction.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookkeeper.models.base import Record
from bookkeeper.models.categories import (
    ClassificationSource,
    PaymentMethod,
    TransactionSource,
    TransactionType,
    category_label,
    is_income_category,
)


class Transaction(Record):
    """A stored bank/card/cash transaction."""

    date: dt.date = Field(..., description="Posting date")
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed amount; positive is money in"
    )
    type: TransactionType = Field(default=TransactionType.EXPENSE)

    # Categorization
    category: Optional[str] = Field(
        default=None,
        description="IRS category label"
    )
    subcategory: Optional[str] = None

    # Payment details
    payment_method: Optional[PaymentMethod] = None
    check_number: Optional[str] = None
    reference_number: Optional[str] = None

    # Linked entities
    payee: Optional[str] = Field(default=None, description="Payee display name")
    payee_id: Optional[UUID] = None
    vendor_id: Optional[UUID] = None
    vendor_name: Optional[str] = None
    income_source_id: Optional[UUID] = None
    income_source: Optional[str] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None

    # Provenance
    csv_import_id: Optional[UUID] = None
    statement_id: Optional[UUID] = None
    bank_name: Optional[str] = None
    source: TransactionSource = Field(default=TransactionSource.MANUAL)

    # Classification metadata
    classification_source: Optional[ClassificationSource] = None
    classification_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    needs_review: bool = False

    is_contractor_payment: bool = False
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    # Split tracking
    is_split: bool = False
    parent_transaction_id: Optional[UUID] = None
    split_index: Optional[int] = None
    original_amount: Optional[Decimal] = None
    original_description: Optional[str] = None

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: Optional[str]) -> Optional[str]:
        """Accept either a category key or a label; store the label."""
        return category_label(v) if v else None

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME or is_income_category(self.category)

    @property
    def is_expense(self) -> bool:
        return not self.is_income and self.type != TransactionType.TRANSFER

    @property
    def absolute_amount(self) -> Decimal:
        return abs(self.amount)


class TransactionCreate(BaseModel):
    """
    Input for creating a transaction.

    The type is derived from the amount sign when not given.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., decimal_places=2)
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    check_number: Optional[str] = None
    reference_number: Optional[str] = None
    payee: Optional[str] = None
    payee_id: Optional[UUID] = None
    vendor_id: Optional[UUID] = None
    vendor_name: Optional[str] = None
    income_source_id: Optional[UUID] = None
    income_source: Optional[str] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    csv_import_id: Optional[UUID] = None
    statement_id: Optional[UUID] = None
    bank_name: Optional[str] = None
    source: TransactionSource = TransactionSource.MANUAL
    classification_source: Optional[ClassificationSource] = None
    classification_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    needs_review: bool = False
    is_contractor_payment: bool = False
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class BulkUpdate(BaseModel):
    """
    One update payload applied to every selected transaction (Bulk Edit).

    Only fields explicitly set are applied; use model_dump(exclude_unset=True).
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    category: Optional[str] = None
    subcategory: Optional[str] = None
    type: Optional[TransactionType] = None
    payment_method: Optional[PaymentMethod] = None
    payee: Optional[str] = None
    payee_id: Optional[UUID] = None
    vendor_id: Optional[UUID] = None
    vendor_name: Optional[str] = None
    income_source_id: Optional[UUID] = None
    income_source: Optional[str] = None
    company_id: Optional[UUID] = None
    company_name: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    needs_review: Optional[bool] = None
    is_contractor_payment: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually set, in storage form."""
        changes = self.model_dump(mode="json", exclude_unset=True)
        if "category" in changes and changes["category"]:
            changes["category"] = category_label(changes["category"])
        return changes


class BulkUpdateResult(BaseModel):
    """Outcome of a bulk edit or bulk assignment."""

    requested: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class SplitPart(BaseModel):
    """One portion of a split transaction. Amount is always positive."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    payee: Optional[str] = None
    notes: Optional[str] = None


class SplitResult(BaseModel):
    """Parent and children after a split."""

    original: Transaction
    parts: list[Transaction]
    original_amount: Decimal
    remainder_amount: Decimal
    split_count: int
    split_total: Decimal
