"""
Receipt Models

A receipt records proof of a purchase. It may be linked to any number of
transactions (one payment can cover several receipts and one receipt can
be paid in installments), so links are held as an id list on the receipt.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bookkeeper.models.base import Record


class ReceiptSource(str, Enum):
    MANUAL = "manual"
    BULK = "bulk"
    SCAN = "scan"


class Receipt(Record):
    """A stored receipt."""

    vendor: Optional[str] = Field(default=None, max_length=200)
    amount: Decimal = Field(..., decimal_places=2)
    date: dt.date
    category: Optional[str] = None
    notes: Optional[str] = None
    transaction_ids: list[UUID] = Field(default_factory=list)
    image_url: Optional[str] = None
    company_id: Optional[UUID] = None
    source: ReceiptSource = ReceiptSource.MANUAL

    @property
    def is_linked(self) -> bool:
        return bool(self.transaction_ids)


class ReceiptEntry(BaseModel):
    """
    A receipt typed or pasted in bulk, before it is stored.

    Amount is kept as the user-visible numeric string ('-145.24', '500').
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: str
    date: str = Field(..., description="ISO date")
    category: str = ""
    vendor: str = ""


class PasteLineError(BaseModel):
    line: int
    text: str
    error: str


class PasteStats(BaseModel):
    total: int = 0
    parsed: int = 0
    failed: int = 0


class PasteParseResult(BaseModel):
    """Outcome of parsing a block of pasted receipt lines."""

    entries: list[ReceiptEntry] = Field(default_factory=list)
    errors: list[PasteLineError] = Field(default_factory=list)
    stats: PasteStats = Field(default_factory=PasteStats)


class ScannedReceipt(BaseModel):
    """Fields read from a receipt image by OCR. Proposed, not confirmed."""

    vendor: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[dt.date] = None
    category_hint: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ReceiptStats(BaseModel):
    total_count: int = 0
    total_amount: Decimal = Decimal("0")
    linked_count: int = 0
    unlinked_count: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
