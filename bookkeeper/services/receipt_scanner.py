"""
Receipt Scanning using Mindee

Reads vendor, total, date and purchase category from a photo or PDF of a
receipt with Mindee's ReceiptV5 product.

The scan only PROPOSES values. The UI shows them pre-filled and the user
saves the receipt through ReceiptService as usual.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from mindee import Client
from mindee.product import ReceiptV5
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from bookkeeper.config import get_settings
from bookkeeper.models.categories import IRSCategory
from bookkeeper.models.receipt import ScannedReceipt


logger = structlog.get_logger(__name__)

# Mindee purchase categories -> category labels
CATEGORY_HINTS = {
    "food": IRSCategory.MEALS_ENTERTAINMENT.value,
    "gasoline": IRSCategory.CAR_TRUCK_EXPENSES.value,
    "parking": IRSCategory.CAR_TRUCK_EXPENSES.value,
    "transport": IRSCategory.TRAVEL.value,
    "accommodation": IRSCategory.TRAVEL.value,
    "telecom": IRSCategory.UTILITIES.value,
    "shopping": IRSCategory.SUPPLIES.value,
    "toll": IRSCategory.CAR_TRUCK_EXPENSES.value,
}


class ReceiptScanError(Exception):
    """The receipt could not be read."""
    pass


class MindeeReceiptScanner:
    """OCR for receipts. Client creation is lazy so tests never need a key."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(api_key=get_settings().mindee.api_key)
        return self._client

    def _safe_decimal(self, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        try:
            return Decimal(str(value)).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            return None

    def _safe_date(self, value: Any) -> Optional[date]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        for fmt in ("%Y-%m-%d", "%m/%d/%Y"):
            try:
                return datetime.strptime(str(value), fmt).date()
            except ValueError:
                continue
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(ReceiptScanError),
        reraise=True,
    )
    async def scan(self, file_bytes: bytes, filename: str) -> ScannedReceipt:
        """
        Extract receipt fields.

        Raises:
            ReceiptScanError: if Mindee finds no usable total
        """
        client = self._get_client()
        input_doc = client.source_from_bytes(file_bytes, filename)
        result = client.parse(ReceiptV5, input_doc)
        prediction = result.document.inference.prediction

        amount = self._safe_decimal(getattr(prediction.total_amount, "value", None))
        if amount is None or amount <= 0:
            raise ReceiptScanError(
                "Could not read a total from this receipt. Please enter it manually."
            )

        confidences = [
            field.confidence
            for field in (prediction.total_amount, prediction.date, prediction.supplier_name)
            if getattr(field, "value", None) is not None
        ]
        category = getattr(getattr(prediction, "category", None), "value", None)

        scanned = ScannedReceipt(
            vendor=getattr(prediction.supplier_name, "value", None),
            amount=amount,
            date=self._safe_date(getattr(prediction.date, "value", None)),
            category_hint=CATEGORY_HINTS.get(str(category).lower()) if category else None,
            confidence=sum(confidences) / len(confidences) if confidences else 0.0,
        )
        logger.info("receipt_scanned", filename=filename, confidence=scanned.confidence)
        return scanned
