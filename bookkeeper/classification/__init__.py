"""Transaction classification: cleaning, rules, default vendors and the layered classifier."""

from bookkeeper.classification.cleaning import amount_direction, clean_description, extract_vendor
from bookkeeper.classification.matcher import (
    MANUAL_REVIEW_THRESHOLD,
    MatchResult,
    RuleMatcher,
    rule_matches,
)
from bookkeeper.classification.default_vendors import (
    DEFAULT_VENDORS,
    GLOBAL_USER_ID,
    build_global_rules,
    match_default_vendor,
    seed_global_rules,
)
from bookkeeper.classification.service import ClassificationService

__all__ = [
    "DEFAULT_VENDORS",
    "GLOBAL_USER_ID",
    "MANUAL_REVIEW_THRESHOLD",
    "ClassificationService",
    "MatchResult",
    "RuleMatcher",
    "amount_direction",
    "build_global_rules",
    "clean_description",
    "extract_vendor",
    "match_default_vendor",
    "rule_matches",
    "seed_global_rules",
]
