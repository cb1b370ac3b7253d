"""
Rule matching.

A rule applies to a transaction when its direction and amount range allow
the amount. Among applicable rules, the first literal pattern match wins
with full confidence. Failing that, the extracted vendor is fuzzy matched
against rule patterns with rapidfuzz and the confidence is scaled by the
similarity score.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, NamedTuple, Optional, Sequence

from rapidfuzz import fuzz, process

from bookkeeper.classification.cleaning import amount_direction
from bookkeeper.models.classification import (
    DEFAULT_VENDOR_EXACT,
    DEFAULT_VENDOR_FUZZY,
    MANUAL_REVIEW_THRESHOLD,
    USER_RULE_EXACT,
    USER_RULE_FUZZY,
    AmountDirection,
    ClassificationRule,
    PatternType,
)


# rapidfuzz scores run 0-100
FUZZY_SCORE_CUTOFF = 70


class MatchResult(NamedTuple):
    rule: ClassificationRule
    confidence: float
    fuzzy: bool = False


def _abs_amount(amount: Any) -> Decimal:
    try:
        return abs(Decimal(str(amount))) if amount is not None else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def amount_allowed(rule: ClassificationRule, amount: Any) -> bool:
    """Direction and min/max checks. Bounds compare against the absolute amount."""
    if rule.amount_direction != AmountDirection.ANY:
        if rule.amount_direction != amount_direction(amount):
            return False

    value = _abs_amount(amount)
    if rule.amount_min is not None and value < rule.amount_min:
        return False
    if rule.amount_max is not None and value > rule.amount_max:
        return False
    return True


def pattern_matches(rule: ClassificationRule, cleaned: str) -> bool:
    pattern = rule.pattern.upper()
    if rule.pattern_type == PatternType.EXACT:
        return cleaned == pattern
    if rule.pattern_type == PatternType.STARTS_WITH:
        return cleaned.startswith(pattern)
    return pattern in cleaned


def rule_matches(rule: ClassificationRule, cleaned: str, amount: Any) -> bool:
    return amount_allowed(rule, amount) and pattern_matches(rule, cleaned)


def fuzzy_score(query: str, choices: Sequence[str]) -> Optional[tuple[int, float]]:
    """
    Best (index, score) of query against choices, or None below the cutoff.
    """
    if not query or not choices:
        return None
    best = process.extractOne(
        query,
        choices,
        scorer=fuzz.ratio,
        score_cutoff=FUZZY_SCORE_CUTOFF,
    )
    if best is None:
        return None
    _, score, index = best
    return index, score


class RuleMatcher:
    """Matches cleaned descriptions against an ordered list of rules."""

    def __init__(self, rules: Sequence[ClassificationRule]):
        self._rules = [rule for rule in rules if rule.is_active]

    @property
    def rules(self) -> list[ClassificationRule]:
        return self._rules

    def match(
        self,
        cleaned: str,
        amount: Any,
        vendor: Optional[str] = None,
    ) -> Optional[MatchResult]:
        """
        Literal matches first, in rule order. Then fuzzy over the rules whose
        amount checks pass, comparing the vendor (or cleaned text) with each
        rule's pattern.
        """
        if not cleaned:
            return None

        applicable = [rule for rule in self._rules if amount_allowed(rule, amount)]

        for rule in applicable:
            if pattern_matches(rule, cleaned):
                return MatchResult(rule=rule, confidence=USER_RULE_EXACT)

        best = fuzzy_score(vendor or cleaned, [rule.pattern for rule in applicable])
        if best is None:
            return None
        index, score = best
        return MatchResult(
            rule=applicable[index],
            confidence=round(USER_RULE_FUZZY * score / 100, 4),
            fuzzy=True,
        )
