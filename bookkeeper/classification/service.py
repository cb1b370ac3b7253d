"""
Classification Service

Assigns categories to transactions in layers, most specific first:

    1. the user's own rules
    2. enabled global rules (unless the user switched them off)
    3. the built-in default vendor table
    4. Gemini, only when asked and only for what is still unclassified

Anything left over, or classified below the review threshold, lands in
the manual review queue. Resolving a review item can save a rule so the
same vendor is classified automatically next time.
"""

from collections import Counter, defaultdict
from typing import Any, Iterable, Optional, Sequence

import structlog
from pydantic import ValidationError

from bookkeeper.agents.classifier_agent import AIClassificationError, GeminiClassifierAgent
from bookkeeper.classification.cleaning import amount_direction, clean_description, extract_vendor
from bookkeeper.classification.default_vendors import (
    GLOBAL_USER_ID,
    PATTERNS_BY_LENGTH,
    DEFAULT_VENDORS,
    match_default_vendor,
    vendor_direction,
)
from bookkeeper.classification.matcher import (
    DEFAULT_VENDOR_EXACT,
    DEFAULT_VENDOR_FUZZY,
    MANUAL_REVIEW_THRESHOLD,
    RuleMatcher,
    fuzzy_score,
)
from bookkeeper.models.base import utc_now
from bookkeeper.models.categories import ClassificationSource, category_label
from bookkeeper.models.classification import (
    AmountDirection,
    BatchClassificationStats,
    ClassificationResult,
    ClassificationRule,
    GlobalRuleSettings,
    PatternType,
    RuleSource,
    RuleStats,
)
from bookkeeper.models.transaction import Transaction
from bookkeeper.services.base import BaseService, ServiceValidationError, parse_uuid
from bookkeeper.services.transactions import TransactionService
from bookkeeper.storage.interface import (
    CLASSIFICATION_RULES,
    GLOBAL_RULE_SETTINGS,
    NotFoundError,
    deserialize_record,
    serialize_record,
    to_storage_value,
)


logger = structlog.get_logger(__name__)

RULE_UPDATABLE_FIELDS = {
    "name",
    "pattern",
    "pattern_type",
    "category",
    "subcategory",
    "vendor_name",
    "confidence",
    "is_active",
    "amount_direction",
    "amount_min",
    "amount_max",
}

_LAYER_STATS = {
    ClassificationSource.USER_RULE: "classified_by_user_rules",
    ClassificationSource.GLOBAL_RULE: "classified_by_global_rules",
    ClassificationSource.DEFAULT_VENDOR: "classified_by_default_vendors",
    ClassificationSource.GEMINI_API: "classified_by_ai",
}


def _field(txn: Any, name: str) -> Any:
    if isinstance(txn, dict):
        return txn.get(name)
    return getattr(txn, name, None)


def _txn_key(txn: Any, index: int) -> str:
    txn_id = _field(txn, "id")
    return str(txn_id) if txn_id else str(index)


class ClassificationService(BaseService[ClassificationRule]):
    """Rule storage plus the layered classifier."""

    table = CLASSIFICATION_RULES
    model = ClassificationRule
    entity_type = "rule"

    def __init__(
        self,
        storage,
        audit_logger=None,
        ai_agent: Optional[GeminiClassifierAgent] = None,
        transactions: Optional[TransactionService] = None,
        review_threshold: float = MANUAL_REVIEW_THRESHOLD,
    ):
        super().__init__(storage, audit_logger)
        self._ai_agent = ai_agent
        self._transactions = transactions or TransactionService(storage, audit_logger)
        self._review_threshold = review_threshold

    # =========================================================================
    # RULE LOADING
    # =========================================================================

    async def _user_rules(self, user_id: str) -> list[ClassificationRule]:
        return await self._select(user_id, is_active=True, order_by="created_at")

    async def _global_rules(self) -> list[ClassificationRule]:
        rows = await self._storage.select(
            CLASSIFICATION_RULES,
            filters={"user_id": GLOBAL_USER_ID, "is_global": True},
            order_by="created_at",
        )
        return [deserialize_record(ClassificationRule, row) for row in rows]

    async def _get_global_settings(self, user_id: str) -> Optional[GlobalRuleSettings]:
        rows = await self._storage.select(GLOBAL_RULE_SETTINGS, filters={"user_id": user_id}, limit=1)
        return deserialize_record(GlobalRuleSettings, rows[0]) if rows else None

    async def _global_settings(self, user_id: str) -> GlobalRuleSettings:
        return await self._get_global_settings(user_id) or GlobalRuleSettings(user_id=user_id)

    async def _save_global_settings(self, settings: GlobalRuleSettings) -> GlobalRuleSettings:
        existing = await self._get_global_settings(settings.user_id)
        if existing is None:
            row = await self._storage.insert(GLOBAL_RULE_SETTINGS, serialize_record(settings))
        else:
            row = await self._storage.update(
                GLOBAL_RULE_SETTINGS,
                str(existing.id),
                to_storage_value({
                    "use_global_rules": settings.use_global_rules,
                    "disabled_global_rules": settings.disabled_global_rules,
                    "updated_at": utc_now(),
                }),
            )
        return deserialize_record(GlobalRuleSettings, row)

    async def _enabled_global_rules(self, user_id: str) -> list[ClassificationRule]:
        settings = await self._global_settings(user_id)
        if not settings.use_global_rules:
            return []
        disabled = set(settings.disabled_global_rules)
        return [rule for rule in await self._global_rules() if str(rule.id) not in disabled]

    async def _matchers(self, user_id: str) -> tuple[RuleMatcher, RuleMatcher]:
        return (
            RuleMatcher(await self._user_rules(user_id)),
            RuleMatcher(await self._enabled_global_rules(user_id)),
        )

    # =========================================================================
    # CLASSIFYING
    # =========================================================================

    def _from_rule(
        self,
        key: str,
        rule: ClassificationRule,
        confidence: float,
        source: ClassificationSource,
        vendor: str,
    ) -> ClassificationResult:
        return ClassificationResult(
            transaction_id=key,
            category=category_label(rule.category),
            subcategory=rule.subcategory,
            vendor_name=rule.vendor_name or vendor or None,
            confidence=confidence,
            source=source,
            rule_id=str(rule.id),
            needs_review=confidence < self._review_threshold,
        )

    def _default_vendor(self, key: str, cleaned: str, vendor: str, amount: Any) -> Optional[ClassificationResult]:
        confidence = DEFAULT_VENDOR_EXACT
        found = match_default_vendor(cleaned, vendor, amount)
        if found is None:
            best = fuzzy_score(vendor, PATTERNS_BY_LENGTH)
            if best is None:
                return None
            index, score = best
            pattern = PATTERNS_BY_LENGTH[index]
            if vendor_direction(DEFAULT_VENDORS[pattern].category) != amount_direction(amount):
                return None
            found = (pattern, DEFAULT_VENDORS[pattern])
            confidence = round(DEFAULT_VENDOR_FUZZY * score / 100, 4)

        _, mapping = found
        return ClassificationResult(
            transaction_id=key,
            category=category_label(mapping.category),
            subcategory=mapping.subcategory,
            vendor_name=mapping.vendor,
            confidence=confidence,
            source=ClassificationSource.DEFAULT_VENDOR,
            needs_review=confidence < self._review_threshold,
        )

    def _classify_local(
        self,
        txn: Any,
        key: str,
        user_matcher: RuleMatcher,
        global_matcher: RuleMatcher,
    ) -> ClassificationResult:
        description = _field(txn, "description") or _field(txn, "payee") or ""
        amount = _field(txn, "amount")
        cleaned = clean_description(description)
        vendor = extract_vendor(description)
        if not cleaned:
            return ClassificationResult(transaction_id=key)

        match = user_matcher.match(cleaned, amount, vendor)
        if match:
            return self._from_rule(key, match.rule, match.confidence, ClassificationSource.USER_RULE, vendor)

        match = global_matcher.match(cleaned, amount, vendor)
        if match:
            confidence = min(match.confidence, match.rule.confidence)
            return self._from_rule(key, match.rule, confidence, ClassificationSource.GLOBAL_RULE, vendor)

        result = self._default_vendor(key, cleaned, vendor, amount)
        if result:
            return result

        return ClassificationResult(transaction_id=key, vendor_name=vendor or None)

    async def classify_transaction(self, user_id: str, txn: Any) -> ClassificationResult:
        """Classify one transaction with the local layers."""
        user_matcher, global_matcher = await self._matchers(user_id)
        result = self._classify_local(txn, _txn_key(txn, 0), user_matcher, global_matcher)
        if result.rule_id:
            await self.increment_rule_match_count(result.rule_id)
        return result

    async def classify_batch(
        self,
        user_id: str,
        txns: Sequence[Any],
        use_ai: bool = False,
    ) -> tuple[list[ClassificationResult], BatchClassificationStats]:
        """
        Classify many transactions, optionally sending leftovers to Gemini.

        Results come back in input order. A Gemini failure leaves the
        leftovers unclassified and is reported in stats.ai_error.
        """
        user_matcher, global_matcher = await self._matchers(user_id)
        results = [
            self._classify_local(txn, _txn_key(txn, i), user_matcher, global_matcher)
            for i, txn in enumerate(txns)
        ]

        rule_hits = Counter(r.rule_id for r in results if r.rule_id)
        for rule_id, hits in rule_hits.items():
            await self.increment_rule_match_count(rule_id, by=hits)

        stats = BatchClassificationStats(total=len(results))
        leftovers = [i for i, r in enumerate(results) if not r.is_classified]

        if use_ai and leftovers and self._ai_agent is not None:
            payload = [
                {
                    "id": results[i].transaction_id,
                    "description": _field(txns[i], "description"),
                    "amount": _field(txns[i], "amount"),
                    "date": _field(txns[i], "date"),
                }
                for i in leftovers
            ]
            try:
                ai_results = {r.transaction_id: r for r in await self._ai_agent.classify_batch(payload)}
            except AIClassificationError as e:
                logger.warning("ai_classification_failed", error=str(e), count=len(leftovers))
                stats.ai_error = str(e)
                ai_results = {}

            for i in leftovers:
                ai_result = ai_results.get(results[i].transaction_id)
                if ai_result is not None and ai_result.is_classified:
                    if ai_result.vendor_name is None:
                        ai_result.vendor_name = results[i].vendor_name
                    ai_result.needs_review = ai_result.confidence < self._review_threshold
                    results[i] = ai_result

        for result in results:
            attr = _LAYER_STATS.get(result.source)
            if attr and result.is_classified:
                setattr(stats, attr, getattr(stats, attr) + 1)
            else:
                stats.unclassified += 1
            if result.needs_review:
                stats.needs_review += 1

        logger.info("batch_classified", user_id=user_id, **stats.model_dump(exclude={"ai_error"}))
        return results, stats

    async def apply_classification(
        self,
        user_id: str,
        transaction_ids: Iterable[Any],
        use_ai: bool = False,
        correlation_id=None,
    ) -> BatchClassificationStats:
        """Classify stored transactions and save the outcome on each."""
        txns = [await self._transactions.get(user_id, txn_id) for txn_id in transaction_ids]
        results, stats = await self.classify_batch(user_id, txns, use_ai=use_ai)

        for txn, result in zip(txns, results):
            if result.is_classified:
                changes = {
                    "category": result.category,
                    "subcategory": result.subcategory,
                    "classification_source": result.source,
                    "classification_confidence": result.confidence,
                    "needs_review": result.needs_review,
                }
                if result.vendor_name and not txn.vendor_name:
                    changes["vendor_name"] = result.vendor_name
            else:
                changes = {
                    "classification_source": ClassificationSource.UNCLASSIFIED,
                    "needs_review": True,
                }
            await self._transactions.update(user_id, txn.id, changes)

        if self._audit_logger:
            await self._audit_logger.log_classification(
                user_id=user_id,
                stats=stats.model_dump(),
                correlation_id=correlation_id,
            )
        return stats

    # =========================================================================
    # RULES
    # =========================================================================

    async def _find_rule(self, user_id: str, pattern: str) -> Optional[ClassificationRule]:
        rules = await self._select(user_id, pattern=pattern.strip().upper(), limit=1)
        return rules[0] if rules else None

    async def save_rule(
        self,
        user_id: str,
        pattern: str,
        category: str,
        pattern_type: PatternType = PatternType.CONTAINS,
        subcategory: Optional[str] = None,
        vendor_name: Optional[str] = None,
        source: RuleSource = RuleSource.MANUAL,
        name: Optional[str] = None,
        amount_direction: AmountDirection = AmountDirection.ANY,
        amount_min: Optional[Any] = None,
        amount_max: Optional[Any] = None,
    ) -> ClassificationRule:
        """
        Create a rule, or replace the existing rule with the same pattern.

        Patterns are unique per user after uppercasing.
        """
        if not pattern or not pattern.strip():
            raise ServiceValidationError("Pattern is required")
        if not category:
            raise ServiceValidationError("Category is required")

        fields = {
            "name": name,
            "pattern": pattern,
            "pattern_type": pattern_type,
            "category": category_label(category),
            "subcategory": subcategory,
            "vendor_name": vendor_name,
            "source": source,
            "amount_direction": amount_direction,
            "amount_min": amount_min,
            "amount_max": amount_max,
        }
        try:
            rule = ClassificationRule(user_id=user_id, **fields)
        except ValidationError as e:
            raise ServiceValidationError(str(e))

        existing = await self._find_rule(user_id, rule.pattern)
        if existing:
            changes = {k: v for k, v in serialize_record(rule).items() if k in fields}
            changes["is_active"] = True
            return await self._apply(user_id, existing.id, changes)

        saved = await self._insert(rule)
        logger.info("rule_created", user_id=user_id, pattern=saved.pattern, category=saved.category)
        if self._audit_logger:
            await self._audit_logger.log_rule_created(
                user_id=user_id,
                rule_id=saved.id,
                pattern=saved.pattern,
                category=saved.category,
            )
        return saved

    async def update_rule(self, user_id: str, rule_id: Any, **fields: Any) -> ClassificationRule:
        unknown = set(fields) - RULE_UPDATABLE_FIELDS
        if unknown:
            raise ServiceValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ServiceValidationError("No fields to update")

        current = await self.get(user_id, rule_id)
        if "category" in fields:
            fields["category"] = category_label(fields["category"])
        merged = {**current.model_dump(), **fields}
        try:
            validated = ClassificationRule.model_validate(merged)
        except ValidationError as e:
            raise ServiceValidationError(str(e))

        changes = {k: v for k, v in serialize_record(validated).items() if k in fields}
        return await self._apply(user_id, current.id, changes)

    async def delete_rule(self, user_id: str, rule_id: Any) -> bool:
        rule = await self.get(user_id, rule_id)
        deleted = await self._storage.delete(CLASSIFICATION_RULES, str(rule.id))
        if deleted and self._audit_logger:
            await self._audit_logger.log_rule_deleted(user_id, rule.id)
        return deleted

    async def list_rules(self, user_id: str, include_inactive: bool = True) -> list[ClassificationRule]:
        filters: dict[str, Any] = {} if include_inactive else {"is_active": True}
        return await self._select(user_id, order_by="created_at", **filters)

    async def increment_rule_match_count(self, rule_id: Any, by: int = 1) -> None:
        """Count a rule hit. Works for the user's rules and for global rules."""
        rule_id = parse_uuid(rule_id, "rule ID")
        row = await self._storage.get(CLASSIFICATION_RULES, str(rule_id))
        if row is None:
            logger.warning("rule_match_count_missing_rule", rule_id=str(rule_id))
            return
        await self._storage.update(
            CLASSIFICATION_RULES,
            str(rule_id),
            {"match_count": int(row.get("match_count") or 0) + by},
        )

    async def learn_from_transactions(
        self,
        user_id: str,
        txns: Iterable[Transaction],
        min_occurrences: int = 2,
    ) -> list[ClassificationRule]:
        """
        Create learned rules from reviewed transactions.

        A vendor gets a rule when at least min_occurrences of its
        transactions carry the same category. Vendors that already have a
        rule are left alone.
        """
        by_vendor: dict[str, Counter] = defaultdict(Counter)
        for txn in txns:
            if not txn.category or txn.needs_review:
                continue
            vendor = extract_vendor(txn.description)
            if vendor:
                by_vendor[vendor][(txn.category, txn.subcategory)] += 1

        learned = []
        for vendor, counts in by_vendor.items():
            (category, subcategory), occurrences = counts.most_common(1)[0]
            if occurrences < min_occurrences:
                continue
            if await self._find_rule(user_id, vendor):
                continue
            learned.append(await self.save_rule(
                user_id,
                pattern=vendor,
                category=category,
                subcategory=subcategory,
                vendor_name=vendor.title(),
                source=RuleSource.LEARNED,
            ))

        logger.info("rules_learned", user_id=user_id, count=len(learned))
        return learned

    # =========================================================================
    # REVIEW AND STATS
    # =========================================================================

    async def get_manual_review_queue(self, user_id: str) -> list[Transaction]:
        txns = await self._transactions.load_all(user_id)
        queue = [t for t in txns if t.needs_review or not t.category]
        queue.sort(key=lambda t: t.date, reverse=True)
        return queue

    async def resolve_review(
        self,
        user_id: str,
        transaction_id: Any,
        category: str,
        subcategory: Optional[str] = None,
        create_rule: bool = False,
    ) -> Transaction:
        """Set a category by hand and, optionally, remember it as a rule."""
        if not category:
            raise ServiceValidationError("Category is required")
        txn = await self._transactions.update(user_id, transaction_id, {
            "category": category_label(category),
            "subcategory": subcategory,
            "classification_source": ClassificationSource.MANUAL,
            "classification_confidence": 1.0,
            "needs_review": False,
        })

        if create_rule:
            vendor = extract_vendor(txn.description)
            if vendor:
                await self.save_rule(
                    user_id,
                    pattern=vendor,
                    category=category,
                    subcategory=subcategory,
                    vendor_name=txn.vendor_name or vendor.title(),
                )
        return txn

    async def get_stats(self, user_id: str) -> RuleStats:
        rules = await self._select(user_id)
        by_source = Counter(rule.source.value for rule in rules)
        return RuleStats(
            total_rules=len(rules),
            active_rules=sum(1 for rule in rules if rule.is_active),
            total_matches=sum(rule.match_count for rule in rules),
            rules_by_source=dict(by_source),
        )

    # =========================================================================
    # GLOBAL RULES
    # =========================================================================

    async def get_global_rules_with_status(self, user_id: str) -> dict[str, Any]:
        settings = await self._global_settings(user_id)
        disabled = set(settings.disabled_global_rules)
        return {
            "use_global_rules": settings.use_global_rules,
            "rules": [
                {**rule.model_dump(), "is_enabled": str(rule.id) not in disabled}
                for rule in await self._global_rules()
            ],
        }

    async def toggle_global_rules(self, user_id: str, enabled: bool) -> GlobalRuleSettings:
        settings = await self._global_settings(user_id)
        settings.use_global_rules = enabled
        return await self._save_global_settings(settings)

    async def _require_global_rule(self, rule_id: Any) -> str:
        rule_id = str(parse_uuid(rule_id, "rule ID"))
        row = await self._storage.get(CLASSIFICATION_RULES, rule_id)
        if row is None or not row.get("is_global"):
            raise NotFoundError(f"Global rule not found: {rule_id}")
        return rule_id

    async def disable_global_rule(self, user_id: str, rule_id: Any) -> GlobalRuleSettings:
        """Turn one global rule off for this user. Disabling twice is a no-op."""
        rule_id = await self._require_global_rule(rule_id)
        settings = await self._global_settings(user_id)
        if rule_id not in settings.disabled_global_rules:
            settings.disabled_global_rules.append(rule_id)
        return await self._save_global_settings(settings)

    async def enable_global_rule(self, user_id: str, rule_id: Any) -> GlobalRuleSettings:
        rule_id = await self._require_global_rule(rule_id)
        settings = await self._global_settings(user_id)
        settings.disabled_global_rules = [r for r in settings.disabled_global_rules if r != rule_id]
        return await self._save_global_settings(settings)
