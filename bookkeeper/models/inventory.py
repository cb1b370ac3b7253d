"""
Inventory Models

Items hold the current quantity; every change to it is recorded as an
InventoryTransaction so stock history can be reconstructed.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from bookkeeper.models.base import Record


class AdjustmentType(str, Enum):
    """Reason for a stock movement."""
    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGED = "damaged"
    CORRECTION = "correction"


class InventoryItem(Record):
    """A stocked product or material."""

    company_id: Optional[UUID] = None
    sku: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    reorder_level: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = "each"
    supplier: Optional[str] = None

    @property
    def total_value(self) -> Decimal:
        """Retail value of the stock on hand."""
        return (self.quantity * self.selling_price).quantize(Decimal("0.01"))

    @property
    def total_cost(self) -> Decimal:
        return (self.quantity * self.unit_cost).quantize(Decimal("0.01"))

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level


class InventoryTransaction(Record):
    """One stock movement. Quantity is signed: negative removes stock."""

    item_id: UUID
    type: AdjustmentType
    quantity: Decimal
    unit_cost: Optional[Decimal] = None
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Linked money transaction, if any"
    )
    notes: Optional[str] = None
    quantity_after: Optional[Decimal] = None
