"""Tests for description cleaning, rule matching and the layered classifier."""

import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from bookkeeper.agents import AIClassificationError, GeminiClassifierAgent, build_prompt, parse_response
from bookkeeper.classification import (
    ClassificationService,
    RuleMatcher,
    amount_direction,
    build_global_rules,
    clean_description,
    extract_vendor,
    match_default_vendor,
    seed_global_rules,
)
from bookkeeper.classification.matcher import amount_allowed
from bookkeeper.models.categories import ClassificationSource, IRSCategory
from bookkeeper.models.classification import (
    AmountDirection,
    ClassificationRule,
    PatternType,
    RuleSource,
)
from bookkeeper.services import ServiceValidationError

from tests.conftest import USER


def txn(description, amount, **fields):
    return {"description": description, "amount": Decimal(amount), "date": date(2024, 3, 1), **fields}


class FakeGeminiModel:
    """Returns canned replies in order and records the prompts it saw."""

    def __init__(self, *replies, error=None):
        self.replies = list(replies)
        self.prompts = []
        self.error = error

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.replies.pop(0))


def gemini_agent(model, batch_size=10):
    return GeminiClassifierAgent(model=model, batch_size=batch_size, batch_delay_seconds=0)


class TestCleaning:
    """Tests for description cleaning."""

    def test_prefix_and_suffix_removed(self):
        """Test bank prefixes, dates and state codes are stripped."""
        assert clean_description("ACH DEBIT ACME CORP 01/15") == "ACME CORP"
        assert clean_description("pos purchase Starbucks #1234 Seattle WA") == "STARBUCKS #1234 SEATTLE"

    def test_empty_input(self):
        """Test empty or non-string input cleans to an empty string."""
        assert clean_description("") == ""
        assert clean_description(None) == ""

    def test_extract_vendor_keeps_three_words(self):
        """Test the vendor is the first three cleaned words."""
        assert extract_vendor("DEBIT CARD PURCHASE JOES DINER AND BAR 5521") == "JOES DINER AND"

    def test_amount_direction(self):
        """Test zero counts as money in."""
        assert amount_direction(Decimal("-1")) == AmountDirection.NEGATIVE
        assert amount_direction(0) == AmountDirection.POSITIVE
        assert amount_direction(None) == AmountDirection.POSITIVE


class TestRuleMatcher:
    """Tests for literal and fuzzy rule matching."""

    def rule(self, pattern, **fields):
        return ClassificationRule(user_id=USER, pattern=pattern, category="Supplies", **fields)

    def test_pattern_types(self):
        """Test exact, starts_with and contains patterns."""
        exact = RuleMatcher([self.rule("ACME", pattern_type=PatternType.EXACT)])
        assert exact.match("ACME", -5)
        assert exact.match("ACME CORP", -5) is None

        starts = RuleMatcher([self.rule("ACME", pattern_type=PatternType.STARTS_WITH)])
        assert starts.match("ACME CORP", -5).confidence == 1.0

    def test_amount_constraints(self):
        """Test direction and absolute min/max bounds."""
        rule = self.rule("SHELL", amount_direction=AmountDirection.NEGATIVE, amount_max=Decimal("14.99"))
        assert amount_allowed(rule, Decimal("-10"))
        assert not amount_allowed(rule, Decimal("-20"))
        assert not amount_allowed(rule, Decimal("10"))

    def test_fuzzy_match_scales_confidence(self):
        """Test a near miss matches fuzzily with reduced confidence."""
        matcher = RuleMatcher([self.rule("HOME DEPOT")])
        result = matcher.match("HOMEDEPOT", -20, vendor="HOMEDEPOT")
        assert result.fuzzy
        assert 0.8 < result.confidence < 0.85

    def test_inactive_rules_ignored(self):
        """Test inactive rules never match."""
        matcher = RuleMatcher([self.rule("ACME", is_active=False)])
        assert matcher.match("ACME", -5) is None

    def test_pattern_stored_uppercase(self):
        """Test rule patterns are uppercased."""
        assert self.rule("acme lumber").pattern == "ACME LUMBER"


class TestDefaultVendors:
    """Tests for the built-in vendor table and global rules."""

    def test_match_respects_direction(self):
        """Test an expense vendor isn't matched for money in."""
        pattern, mapping = match_default_vendor("SHELL OIL", "SHELL OIL", Decimal("-40"))
        assert pattern == "SHELL"
        assert mapping.vendor == "Shell"
        assert match_default_vendor("SHELL OIL", "SHELL OIL", Decimal("40")) is None

    def test_gas_station_bands(self):
        """Test each gas station has a snack rule and a fuel rule split at $15."""
        shell = [r for r in build_global_rules() if r.pattern == "SHELL"]
        snack, fuel = shell
        assert snack.amount_max == Decimal("14.99")
        assert fuel.amount_min == Decimal("15.00")
        assert all(r.source == RuleSource.GLOBAL and r.is_global for r in shell)

    @pytest.mark.asyncio
    async def test_seeding_runs_once(self, storage):
        """Test global rules are only inserted into an empty store."""
        first = await seed_global_rules(storage)
        assert first == len(build_global_rules())
        assert await seed_global_rules(storage) == 0


class TestClassificationService:
    """Tests for the layered classifier."""

    @pytest.mark.asyncio
    async def test_user_rule_wins(self, classification, storage):
        """Test the user's own rule beats global rules and default vendors."""
        await seed_global_rules(storage)
        rule = await classification.save_rule(USER, "shell oil", "OFFICE_EXPENSES")
        result = await classification.classify_transaction(USER, txn("SHELL OIL 57444", "-45.00"))
        assert result.source == ClassificationSource.USER_RULE
        assert result.category == IRSCategory.OFFICE_EXPENSES.value
        assert result.confidence == 1.0
        assert (await classification.get(USER, rule.id)).match_count == 1

    @pytest.mark.asyncio
    async def test_gas_station_amount_bands(self, classification, storage):
        """Test small gas-station purchases are snacks and larger ones fuel."""
        await seed_global_rules(storage)
        results, stats = await classification.classify_batch(USER, [
            txn("SHELL OIL 57444", "-8.00"),
            txn("SHELL OIL 57444", "-45.00"),
        ])
        snack, fuel = results
        assert snack.category == IRSCategory.MEALS_ENTERTAINMENT.value
        assert snack.subcategory == "Gas Station Snacks"
        assert fuel.category == IRSCategory.CAR_TRUCK_EXPENSES.value
        assert fuel.subcategory == "Fuel/Gas"
        assert stats.classified_by_global_rules == 2
        assert [r.transaction_id for r in results] == ["0", "1"]

    @pytest.mark.asyncio
    async def test_global_rule_confidence_is_capped(self, classification, storage):
        """Test a global rule never reports more confidence than it carries."""
        await seed_global_rules(storage)
        result = await classification.classify_transaction(USER, txn("MCDONALD'S F1234 MIAMI FL", "-8.50"))
        assert result.source == ClassificationSource.GLOBAL_RULE
        assert result.confidence == 0.95

    @pytest.mark.asyncio
    async def test_default_vendor_when_global_rules_off(self, classification, storage):
        """Test switching global rules off falls through to default vendors."""
        await seed_global_rules(storage)
        await classification.toggle_global_rules(USER, False)
        result = await classification.classify_transaction(USER, txn("SHELL OIL 57444", "-45.00"))
        assert result.source == ClassificationSource.DEFAULT_VENDOR
        assert result.category == IRSCategory.CAR_TRUCK_EXPENSES.value
        assert result.vendor_name == "Shell"
        assert result.confidence == 0.9

    @pytest.mark.asyncio
    async def test_disable_single_global_rule(self, classification, storage):
        """Test one global rule can be switched off for a user."""
        await seed_global_rules(storage)
        status = await classification.get_global_rules_with_status(USER)
        mcdonalds = next(r for r in status["rules"] if r["pattern"] == "MCDONALD")
        await classification.disable_global_rule(USER, mcdonalds["id"])
        await classification.disable_global_rule(USER, mcdonalds["id"])

        status = await classification.get_global_rules_with_status(USER)
        assert status["use_global_rules"] is True
        disabled = [r for r in status["rules"] if not r["is_enabled"]]
        assert [r["pattern"] for r in disabled] == ["MCDONALD"]

        result = await classification.classify_transaction(USER, txn("MCDONALD'S F1234 MIAMI FL", "-8.50"))
        assert result.source == ClassificationSource.DEFAULT_VENDOR

    @pytest.mark.asyncio
    async def test_unmatched_needs_review(self, classification):
        """Test an unknown description stays unclassified and flagged."""
        result = await classification.classify_transaction(USER, txn("ZZYZX QWRT", "-5.00"))
        assert not result.is_classified
        assert result.needs_review

    @pytest.mark.asyncio
    async def test_ai_classifies_leftovers(self, storage, audit_logger, transactions):
        """Test Gemini only sees what the local layers left unclassified."""
        reply = json.dumps([{"id": "1", "category": "OFFICE_EXPENSES", "vendor": "Zzyzx", "confidence": 0.9}])
        model = FakeGeminiModel(reply)
        service = ClassificationService(
            storage, audit_logger, ai_agent=gemini_agent(model), transactions=transactions,
        )
        results, stats = await service.classify_batch(
            USER,
            [txn("SHELL OIL 57444", "-45.00"), txn("ZZYZX QWRT", "-5.00")],
            use_ai=True,
        )
        assert len(model.prompts) == 1
        assert "ZZYZX QWRT" in model.prompts[0]
        assert "SHELL OIL" not in model.prompts[0]
        assert results[1].source == ClassificationSource.GEMINI_API
        assert results[1].category == IRSCategory.OFFICE_EXPENSES.value
        assert stats.classified_by_default_vendors == 1
        assert stats.classified_by_ai == 1
        assert stats.unclassified == 0

    @pytest.mark.asyncio
    async def test_ai_failure_leaves_rows_unclassified(self, storage, audit_logger, transactions):
        """Test a Gemini failure is reported in stats rather than raised."""
        model = FakeGeminiModel(error=RuntimeError("quota exceeded"))
        service = ClassificationService(
            storage, audit_logger, ai_agent=gemini_agent(model), transactions=transactions,
        )
        results, stats = await service.classify_batch(USER, [txn("ZZYZX QWRT", "-5.00")], use_ai=True)
        assert not results[0].is_classified
        assert "quota exceeded" in stats.ai_error
        assert stats.unclassified == 1

    @pytest.mark.asyncio
    async def test_apply_classification_saves_results(self, classification, transactions, storage, audit_storage):
        """Test stored transactions get category, source and vendor."""
        await seed_global_rules(storage)
        fuel = await transactions.create(USER, {
            "date": date(2024, 3, 1), "description": "SHELL OIL 57444", "amount": Decimal("-45.00"),
        })
        unknown = await transactions.create(USER, {
            "date": date(2024, 3, 1), "description": "ZZYZX QWRT", "amount": Decimal("-5.00"),
        })
        stats = await classification.apply_classification(USER, [fuel.id, unknown.id])
        assert stats.total == 2

        fuel = await transactions.get(USER, fuel.id)
        assert fuel.category == IRSCategory.CAR_TRUCK_EXPENSES.value
        assert fuel.classification_source == ClassificationSource.GLOBAL_RULE
        assert fuel.vendor_name == "Shell"
        assert not fuel.needs_review

        unknown = await transactions.get(USER, unknown.id)
        assert unknown.needs_review
        assert unknown.classification_source == ClassificationSource.UNCLASSIFIED

        queue = await classification.get_manual_review_queue(USER)
        assert [t.id for t in queue] == [unknown.id]


class TestRules:
    """Tests for rule storage, review resolution and learning."""

    @pytest.mark.asyncio
    async def test_same_pattern_replaces_rule(self, classification):
        """Test saving an existing pattern updates it instead of duplicating."""
        await classification.save_rule(USER, "acme lumber", "SUPPLIES")
        rule = await classification.save_rule(USER, "ACME LUMBER", "MATERIALS_SUPPLIES")
        rules = await classification.list_rules(USER)
        assert len(rules) == 1
        assert rule.category == IRSCategory.MATERIALS_SUPPLIES.value

    @pytest.mark.asyncio
    async def test_invalid_rules_rejected(self, classification):
        """Test a rule needs a pattern, a category and a sane amount range."""
        with pytest.raises(ServiceValidationError):
            await classification.save_rule(USER, " ", "SUPPLIES")
        with pytest.raises(ServiceValidationError):
            await classification.save_rule(USER, "ACME", "")
        with pytest.raises(ServiceValidationError):
            await classification.save_rule(USER, "ACME", "SUPPLIES", amount_min=10, amount_max=5)

    @pytest.mark.asyncio
    async def test_update_and_delete_rule(self, classification):
        """Test rule updates are validated and deletes are audited."""
        rule = await classification.save_rule(USER, "ACME", "SUPPLIES")
        updated = await classification.update_rule(USER, rule.id, is_active=False)
        assert updated.is_active is False
        with pytest.raises(ServiceValidationError):
            await classification.update_rule(USER, rule.id, match_count=5)
        assert await classification.delete_rule(USER, rule.id) is True
        assert await classification.list_rules(USER) == []

    @pytest.mark.asyncio
    async def test_resolve_review_creates_rule(self, classification, transactions):
        """Test resolving a review item can remember the vendor as a rule."""
        item = await transactions.create(USER, {
            "date": date(2024, 3, 1), "description": "ACME LUMBER 1234",
            "amount": Decimal("-80.00"), "needs_review": True,
        })
        resolved = await classification.resolve_review(
            USER, item.id, "MATERIALS_SUPPLIES", create_rule=True,
        )
        assert resolved.needs_review is False
        assert resolved.classification_source == ClassificationSource.MANUAL

        rules = await classification.list_rules(USER)
        assert [r.pattern for r in rules] == ["ACME LUMBER"]
        assert rules[0].vendor_name == "Acme Lumber"

    @pytest.mark.asyncio
    async def test_learn_from_transactions(self, classification, transactions):
        """Test vendors seen twice with one category become learned rules."""
        created = []
        for description, category in [
            ("JOES DINER 1234", "MEALS_ENTERTAINMENT"),
            ("JOES DINER 1234", "MEALS_ENTERTAINMENT"),
            ("ONE OFF SHOP", "SUPPLIES"),
        ]:
            created.append(await transactions.create(USER, {
                "date": date(2024, 3, 1), "description": description,
                "amount": Decimal("-12.00"), "category": category,
            }))

        learned = await classification.learn_from_transactions(USER, created)
        assert [r.pattern for r in learned] == ["JOES DINER"]
        assert learned[0].source == RuleSource.LEARNED
        assert await classification.learn_from_transactions(USER, created) == []

        stats = await classification.get_stats(USER)
        assert stats.rules_by_source == {"learned": 1}


class TestGeminiAgent:
    """Tests for prompt building and response parsing."""

    def test_prompt_lists_transactions(self):
        """Test each transaction appears with its id and absolute amount."""
        prompt = build_prompt([{"id": "t1", "description": "ACME", "amount": Decimal("-12.5"), "date": "2024-03-01"}])
        assert 'ID: t1 | Description: "ACME" | Amount: $12.50' in prompt
        assert "OWNER_DRAWS" in prompt

    def test_parse_fenced_response(self):
        """Test code fences are stripped and unknown keys left unclassified."""
        text = "```json\n" + json.dumps([
            {"id": "a", "category": "travel", "vendor": "Delta", "confidence": 0.3},
            {"id": "b", "category": "GROCERIES", "vendor": "Kroger"},
            {"category": "TRAVEL"},
        ]) + "\n```"
        results = parse_response(text)
        assert len(results) == 2
        assert results[0].category == IRSCategory.TRAVEL.value
        assert results[0].needs_review
        assert not results[1].is_classified
        assert results[1].vendor_name == "Kroger"

    def test_unparseable_response(self):
        """Test invalid or non-array JSON raises AIClassificationError."""
        with pytest.raises(AIClassificationError):
            parse_response("not json")
        with pytest.raises(AIClassificationError):
            parse_response('{"id": "a"}')

    @pytest.mark.asyncio
    async def test_batches_by_size(self):
        """Test transactions are sent in batch_size chunks."""
        model = FakeGeminiModel(
            json.dumps([{"id": "a", "category": "TRAVEL", "confidence": 0.9}]),
            json.dumps([{"id": "b", "category": "UTILITIES", "confidence": 0.9}]),
        )
        agent = gemini_agent(model, batch_size=1)
        results = await agent.classify_batch([
            {"id": "a", "description": "DELTA", "amount": "-300", "date": "2024-03-01"},
            {"id": "b", "description": "FPL", "amount": "-90", "date": "2024-03-02"},
        ])
        assert len(model.prompts) == 2
        assert [r.transaction_id for r in results] == ["a", "b"]
