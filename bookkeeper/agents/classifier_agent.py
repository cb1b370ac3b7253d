"""
Gemini Transaction Classifier

DESIGN DECISION: Gemini is the LAST automatic layer. It only sees the
transactions that user rules, global rules and default vendors could not
classify, so most imports never touch the API.

CRITICAL BOUNDARIES:
   - CAN: Propose a category KEY, subcategory and vendor per transaction
   - CANNOT: Persist anything (ClassificationService decides what is saved)
   - CANNOT: Invent categories (keys outside IRSCategory are dropped)

The model is a CLASSIFIER, not a bookkeeper. Low-confidence answers go
to the manual review queue like any other uncertain result.
"""

import asyncio
import json
from decimal import Decimal
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog

from bookkeeper.config import GeminiSettings, get_settings
from bookkeeper.models.categories import ClassificationSource, IRSCategory
from bookkeeper.models.classification import GEMINI_LOW, MANUAL_REVIEW_THRESHOLD, ClassificationResult


logger = structlog.get_logger(__name__)

CATEGORY_KEYS = [name for name in IRSCategory.__members__ if name != "UNCATEGORIZED"]


class AIClassificationError(Exception):
    """Gemini failed or answered with something unusable."""
    pass


def _field(txn: Any, name: str) -> Any:
    if isinstance(txn, dict):
        return txn.get(name)
    return getattr(txn, name, None)


def build_prompt(transactions: Sequence[Any]) -> str:
    """One numbered line per transaction: id, description, absolute amount, date."""
    lines = []
    for i, txn in enumerate(transactions, start=1):
        amount = abs(Decimal(str(_field(txn, "amount") or 0)))
        lines.append(
            f'{i}. ID: {_field(txn, "id")} | Description: "{_field(txn, "description")}" '
            f"| Amount: ${amount:.2f} | Date: {_field(txn, 'date')}"
        )

    category_list = ", ".join(CATEGORY_KEYS)
    transaction_lines = "\n".join(lines)

    return f"""You are a bookkeeping assistant that classifies bank transactions into IRS Schedule C categories for small business tax purposes.

IMPORTANT RULES:
1. Only use categories from this exact list: {category_list}
2. Be conservative - if unsure, use "OTHER_EXPENSES" for business expenses or "PERSONAL_EXPENSE" if likely personal
3. Extract the vendor/merchant name from the description
4. Consider the amount (small amounts at restaurants = MEALS_ENTERTAINMENT)
5. Common patterns:
   - Gas stations -> CAR_TRUCK_EXPENSES
   - Software (Adobe, Microsoft, etc.) -> SOFTWARE_SUBSCRIPTIONS
   - Hardware stores -> MATERIALS_SUPPLIES
   - ATM/Cash withdrawals -> OWNER_DRAWS
   - Transfers between accounts -> PERSONAL_TRANSFER

For each transaction provide: category, subcategory (can be null), vendor,
confidence (0.0 to 1.0) and reasoning (one sentence).

TRANSACTIONS:
{transaction_lines}

Respond ONLY with a valid JSON array. No markdown, no explanation:
[{{"id": "transaction_id", "category": "CATEGORY_KEY", "subcategory": null, "vendor": "Vendor Name", "confidence": 0.85, "reasoning": "Brief explanation"}}]"""


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_response(text: str) -> list[ClassificationResult]:
    """
    Turn the model's JSON array into results.

    Unknown category keys become unclassified results rather than errors.
    """
    try:
        items = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise AIClassificationError(f"Failed to parse Gemini classification response: {e}")
    if not isinstance(items, list):
        raise AIClassificationError("Gemini response is not a JSON array")

    results = []
    for item in items:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        key = str(item.get("category") or "").strip().upper()
        if key not in CATEGORY_KEYS:
            results.append(ClassificationResult(
                transaction_id=str(item["id"]),
                vendor_name=item.get("vendor"),
                reasoning=item.get("reasoning"),
            ))
            continue

        try:
            confidence = float(item.get("confidence") or GEMINI_LOW)
        except (TypeError, ValueError):
            confidence = GEMINI_LOW
        confidence = min(max(confidence, 0.0), 1.0)

        results.append(ClassificationResult(
            transaction_id=str(item["id"]),
            category=IRSCategory[key].value,
            subcategory=item.get("subcategory"),
            vendor_name=item.get("vendor"),
            confidence=confidence,
            source=ClassificationSource.GEMINI_API,
            reasoning=item.get("reasoning"),
            needs_review=confidence < MANUAL_REVIEW_THRESHOLD,
        ))
    return results


class GeminiClassifierAgent:
    """
    Batch classifier backed by google-generativeai.

    The model is created on first use so the agent can be constructed
    (and tested with a fake model) without an API key.
    """

    def __init__(
        self,
        model: Any = None,
        settings: Optional[GeminiSettings] = None,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
    ):
        self._model = model
        self._settings = settings
        self._batch_size = batch_size
        self._batch_delay = batch_delay_seconds

    def _get_settings(self) -> GeminiSettings:
        if self._settings is None:
            self._settings = get_settings().gemini
        return self._settings

    def _configure_genai(self):
        settings = self._get_settings()
        genai.configure(api_key=settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    @property
    def batch_size(self) -> int:
        if self._batch_size is None:
            self._batch_size = self._get_settings().batch_size
        return self._batch_size

    @property
    def batch_delay_seconds(self) -> float:
        if self._batch_delay is None:
            self._batch_delay = self._get_settings().batch_delay_seconds
        return self._batch_delay

    async def _classify_chunk(self, chunk: Sequence[Any]) -> list[ClassificationResult]:
        try:
            if self._model is None:
                self._configure_genai()
            response = await self._model.generate_content_async(build_prompt(chunk))
            text = response.text
        except Exception as e:
            logger.error("gemini_request_failed", error=str(e), batch_size=len(chunk))
            raise AIClassificationError(f"Gemini API error: {e}") from e
        if not text:
            raise AIClassificationError("No content in Gemini response")
        return parse_response(text)

    async def classify_batch(self, transactions: Sequence[Any]) -> list[ClassificationResult]:
        """
        Classify transactions in batches of batch_size, pausing between
        batches to stay under the free-tier rate limit.

        Raises:
            AIClassificationError: on API failure or an unparseable reply
        """
        results: list[ClassificationResult] = []
        size = self.batch_size
        for start in range(0, len(transactions), size):
            if start:
                await asyncio.sleep(self.batch_delay_seconds)
            chunk = transactions[start:start + size]
            results.extend(await self._classify_chunk(chunk))
            logger.info("gemini_batch_classified", batch_start=start, batch_size=len(chunk))
        return results
