"""
Classification Models

Rules map a description pattern (plus optional amount constraints) to a
category. Results record which layer produced the category and how
confident it was, so low-confidence results can be routed to review.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bookkeeper.models.base import Record
from bookkeeper.models.categories import ClassificationSource


# Confidence by classification layer
USER_RULE_EXACT = 1.0
USER_RULE_FUZZY = 0.85
DEFAULT_VENDOR_EXACT = 0.9
DEFAULT_VENDOR_FUZZY = 0.75
GEMINI_HIGH = 0.8
GEMINI_LOW = 0.5
MANUAL_REVIEW_THRESHOLD = 0.5


class PatternType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"


class AmountDirection(str, Enum):
    """Which sign of amount a rule applies to. Positive means money in."""
    ANY = "any"
    POSITIVE = "positive"
    NEGATIVE = "negative"


class RuleSource(str, Enum):
    MANUAL = "manual"
    LEARNED = "learned"
    GLOBAL = "global"


class ClassificationRule(Record):
    """
    A user (or global) classification rule.

    Patterns are stored uppercase because matching happens against
    cleaned, uppercased descriptions. (user_id, pattern) is unique.
    """

    name: Optional[str] = None
    pattern: str = Field(..., min_length=1, max_length=200)
    pattern_type: PatternType = PatternType.CONTAINS
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    vendor_name: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    source: RuleSource = RuleSource.MANUAL
    match_count: int = Field(default=0, ge=0)
    is_active: bool = True
    is_global: bool = False
    amount_direction: AmountDirection = AmountDirection.ANY
    amount_min: Optional[Decimal] = Field(default=None, ge=0)
    amount_max: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("pattern")
    @classmethod
    def uppercase_pattern(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def check_amount_range(self) -> "ClassificationRule":
        if (
            self.amount_min is not None
            and self.amount_max is not None
            and self.amount_min > self.amount_max
        ):
            raise ValueError("amount_min cannot be greater than amount_max")
        return self


class GlobalRuleSettings(Record):
    """Per-user switches for the shared global rule set."""

    use_global_rules: bool = True
    disabled_global_rules: list[str] = Field(
        default_factory=list,
        description="Ids of global rules this user turned off"
    )


class ClassificationResult(BaseModel):
    """Category assigned to one transaction and where it came from."""
    model_config = ConfigDict(str_strip_whitespace=True)

    transaction_id: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    vendor_name: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: ClassificationSource = ClassificationSource.UNCLASSIFIED
    rule_id: Optional[str] = None
    reasoning: Optional[str] = None
    needs_review: bool = True

    @property
    def is_classified(self) -> bool:
        return self.category is not None and self.source != ClassificationSource.UNCLASSIFIED


class BatchClassificationStats(BaseModel):
    total: int = 0
    classified_by_user_rules: int = 0
    classified_by_global_rules: int = 0
    classified_by_default_vendors: int = 0
    classified_by_ai: int = 0
    unclassified: int = 0
    needs_review: int = 0
    ai_error: Optional[str] = None


class RuleStats(BaseModel):
    total_rules: int = 0
    active_rules: int = 0
    total_matches: int = 0
    rules_by_source: dict[str, int] = Field(default_factory=dict)
