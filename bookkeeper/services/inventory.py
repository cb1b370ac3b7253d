"""
Inventory Service

Items carry the quantity on hand; every stock movement is written as an
InventoryTransaction first and then applied to the item.

CRITICAL: Stock can never go negative. An adjustment that would take
the quantity below zero is rejected before anything is written.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from bookkeeper.models.inventory import AdjustmentType, InventoryItem, InventoryTransaction
from bookkeeper.services.base import BaseService, ServiceValidationError, parse_uuid
from bookkeeper.storage.interface import (
    INVENTORY_ITEMS,
    INVENTORY_TRANSACTIONS,
    deserialize_record,
    serialize_record,
)


logger = structlog.get_logger(__name__)

ITEM_FIELDS = {
    "company_id", "sku", "name", "description", "category", "unit_cost",
    "selling_price", "quantity", "reorder_level", "unit", "supplier",
}


def _decimal(value: Any, label: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ServiceValidationError(f"{label} must be a number")


class InventoryService(BaseService[InventoryItem]):
    table = INVENTORY_ITEMS
    model = InventoryItem
    entity_type = "inventory item"

    # =========================================================================
    # ITEMS
    # =========================================================================

    async def create_item(self, user_id: str, name: str, **fields: Any) -> InventoryItem:
        if not name or not name.strip():
            raise ServiceValidationError("Item name is required")
        try:
            item = InventoryItem(
                user_id=user_id,
                name=name,
                **{k: v for k, v in fields.items() if k in ITEM_FIELDS},
            )
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        return await self._insert(item)

    async def get_item(self, user_id: str, item_id: Any) -> InventoryItem:
        return await self.get(user_id, item_id)

    async def update_item(self, user_id: str, item_id: Any, **fields: Any) -> InventoryItem:
        changes = {k: v for k, v in fields.items() if k in ITEM_FIELDS}
        if not changes:
            raise ServiceValidationError("No valid fields to update")

        current = await self.get(user_id, item_id)
        try:
            InventoryItem.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise ServiceValidationError(str(e))
        return await self._apply(user_id, current.id, changes)

    async def delete_item(self, user_id: str, item_id: Any) -> bool:
        item = await self.get(user_id, item_id)
        await self._storage.delete_where(
            INVENTORY_TRANSACTIONS,
            {"user_id": user_id, "item_id": str(item.id)},
        )
        return await self._storage.delete(INVENTORY_ITEMS, str(item.id))

    async def list_items(
        self,
        user_id: str,
        company_id: Optional[Any] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        low_stock_only: bool = False,
    ) -> list[InventoryItem]:
        filters: dict[str, Any] = {}
        if company_id:
            filters["company_id"] = str(parse_uuid(company_id, "company ID"))
        if category:
            filters["category"] = category
        items = await self._select(user_id, **filters)

        if search:
            term = search.strip().lower()
            items = [
                i for i in items
                if term in i.name.lower()
                or term in (i.sku or "").lower()
                or term in (i.description or "").lower()
            ]
        if low_stock_only:
            items = [i for i in items if i.is_low_stock]
        return sorted(items, key=lambda i: i.name.lower())

    async def get_low_stock_items(self, user_id: str, company_id: Optional[Any] = None) -> list[InventoryItem]:
        return await self.list_items(user_id, company_id=company_id, low_stock_only=True)

    async def get_categories(self, user_id: str) -> list[str]:
        items = await self._select(user_id)
        return sorted({i.category for i in items if i.category})

    # =========================================================================
    # STOCK MOVEMENTS
    # =========================================================================

    async def adjust_stock(
        self,
        user_id: str,
        item_id: Any,
        quantity: Any,
        adjustment_type: Any = AdjustmentType.ADJUSTMENT,
        notes: Optional[str] = None,
        unit_cost: Optional[Any] = None,
        transaction_id: Optional[Any] = None,
    ) -> tuple[InventoryItem, InventoryTransaction]:
        """
        Apply a signed quantity change to an item.

        Returns the updated item and the recorded movement.
        """
        try:
            adjustment_type = AdjustmentType(adjustment_type)
        except ValueError:
            valid = ", ".join(t.value for t in AdjustmentType)
            raise ServiceValidationError(f"Invalid adjustment type. Must be one of: {valid}")

        quantity = _decimal(quantity, "Quantity")
        if quantity == 0:
            raise ServiceValidationError("Quantity must not be zero")

        item = await self.get(user_id, item_id)
        new_quantity = item.quantity + quantity
        if new_quantity < 0:
            raise ServiceValidationError(
                f"Insufficient stock: {item.quantity} on hand, adjustment of {quantity}"
            )

        movement = InventoryTransaction(
            user_id=user_id,
            item_id=item.id,
            type=adjustment_type,
            quantity=quantity,
            unit_cost=_decimal(unit_cost, "Unit cost") if unit_cost is not None else None,
            transaction_id=parse_uuid(transaction_id, "transaction ID") if transaction_id else None,
            notes=notes,
            quantity_after=new_quantity,
        )
        stored = await self._storage.insert(INVENTORY_TRANSACTIONS, serialize_record(movement))

        changes: dict[str, Any] = {"quantity": new_quantity}
        if adjustment_type == AdjustmentType.PURCHASE and movement.unit_cost is not None:
            changes["unit_cost"] = movement.unit_cost
        updated = await self._apply(user_id, item.id, changes)

        logger.info(
            "stock_adjusted",
            item_id=str(item.id),
            type=adjustment_type.value,
            quantity=str(quantity),
            quantity_after=str(new_quantity),
        )
        if self._audit_logger:
            await self._audit_logger.log_stock_adjusted(
                user_id=user_id,
                item_id=item.id,
                adjustment_type=adjustment_type.value,
                quantity=str(quantity),
                quantity_after=str(new_quantity),
            )
        return updated, deserialize_record(InventoryTransaction, stored)

    async def record_sale(
        self,
        user_id: str,
        item_id: Any,
        quantity: Any,
        notes: Optional[str] = None,
        transaction_id: Optional[Any] = None,
    ) -> tuple[InventoryItem, InventoryTransaction]:
        """Remove sold units. The sign of quantity is ignored."""
        quantity = -abs(_decimal(quantity, "Quantity"))
        return await self.adjust_stock(
            user_id, item_id, quantity, AdjustmentType.SALE,
            notes=notes, transaction_id=transaction_id,
        )

    async def record_purchase(
        self,
        user_id: str,
        item_id: Any,
        quantity: Any,
        unit_cost: Optional[Any] = None,
        notes: Optional[str] = None,
        transaction_id: Optional[Any] = None,
    ) -> tuple[InventoryItem, InventoryTransaction]:
        """Add purchased units. The sign of quantity is ignored."""
        quantity = abs(_decimal(quantity, "Quantity"))
        return await self.adjust_stock(
            user_id, item_id, quantity, AdjustmentType.PURCHASE,
            notes=notes, unit_cost=unit_cost, transaction_id=transaction_id,
        )

    async def get_inventory_transactions(
        self,
        user_id: str,
        item_id: Optional[Any] = None,
        adjustment_type: Optional[Any] = None,
    ) -> list[InventoryTransaction]:
        """Stock movements, newest first."""
        filters: dict[str, Any] = {"user_id": user_id}
        if item_id:
            filters["item_id"] = str(parse_uuid(item_id, "item ID"))
        if adjustment_type:
            filters["type"] = AdjustmentType(adjustment_type).value
        rows = await self._storage.select(
            INVENTORY_TRANSACTIONS,
            filters=filters,
            order_by="created_at",
            descending=True,
        )
        return [deserialize_record(InventoryTransaction, row) for row in rows]

    # =========================================================================
    # VALUATION
    # =========================================================================

    async def get_valuation(self, user_id: str, company_id: Optional[Any] = None) -> dict[str, Any]:
        """Cost and retail value of stock on hand, per item and in total."""
        items = await self.list_items(user_id, company_id=company_id)
        rows = [
            {
                "id": str(item.id),
                "name": item.name,
                "sku": item.sku,
                "quantity": item.quantity,
                "unit_cost": item.unit_cost,
                "selling_price": item.selling_price,
                "cost_value": item.total_cost,
                "retail_value": item.total_value,
            }
            for item in items
        ]
        return {
            "items": rows,
            "totals": {
                "item_count": len(items),
                "total_units": sum((i.quantity for i in items), Decimal("0")),
                "total_cost": sum((i.total_cost for i in items), Decimal("0")),
                "total_retail": sum((i.total_value for i in items), Decimal("0")),
            },
        }
