"""Tests for memorized rule matching and lookup."""

from uuid import uuid4

import pytest

from bookmatch.models import RuleMatchType
from bookmatch.services.rules import (
    MemorizedRuleView,
    SqlRuleLookup,
    StaticRuleLookup,
    find_matching_rule,
    rule_matches,
    rule_supports_payee,
)
from tests.factories import MemorizedRuleFactory


def make_rule(match_type: RuleMatchType, value: str, **kwargs) -> MemorizedRuleView:
    return MemorizedRuleView(
        id=uuid4(),
        name=kwargs.pop("name", value),
        match_type=match_type,
        match_value=value,
        **kwargs,
    )


class TestRuleMatches:
    def test_exact_is_case_insensitive(self):
        rule = make_rule(RuleMatchType.EXACT, "Netflix.com")
        assert rule_matches("NETFLIX.COM", rule)
        assert not rule_matches("NETFLIX.COM SYDNEY", rule)

    def test_contains(self):
        rule = make_rule(RuleMatchType.CONTAINS, "woolworths")
        assert rule_matches("EFTPOS WOOLWORTHS 3142", rule)
        assert not rule_matches("COLES 0456", rule)

    def test_regex(self):
        rule = make_rule(RuleMatchType.REGEX, r"^uber\s*\*?\s*trip")
        assert rule_matches("UBER *TRIP HELP.UBER.COM", rule)
        assert not rule_matches("UBER EATS", rule)

    def test_invalid_regex_never_matches(self):
        rule = make_rule(RuleMatchType.REGEX, "([unclosed")
        assert not rule_matches("([unclosed", rule)

    def test_empty_text(self):
        rule = make_rule(RuleMatchType.CONTAINS, "x")
        assert not rule_matches("", rule)


class TestRuleLookupHelpers:
    def test_rule_supports_payee(self):
        rules = [make_rule(RuleMatchType.CONTAINS, "WOOLWORTHS", default_payee="Woolworths")]

        assert rule_supports_payee("WOOLWORTHS 3142", "woolworths", rules)
        assert not rule_supports_payee("WOOLWORTHS 3142", "Coles", rules)
        assert not rule_supports_payee("WOOLWORTHS 3142", "", rules)

    def test_find_matching_rule_respects_context(self):
        import_only = make_rule(
            RuleMatchType.CONTAINS, "SHELL", name="a-import", apply_on_manual_entry=False
        )
        manual_only = make_rule(RuleMatchType.CONTAINS, "SHELL", name="b-manual", apply_on_import=False)
        rules = [import_only, manual_only]

        assert find_matching_rule("SHELL 1234", rules, context="import") == import_only
        assert find_matching_rule("SHELL 1234", rules, context="manual") == manual_only
        assert find_matching_rule("BP 1234", rules) is None

    @pytest.mark.asyncio
    async def test_static_lookup_orders_by_priority(self):
        low = make_rule(RuleMatchType.CONTAINS, "A", name="low", priority=5)
        high = make_rule(RuleMatchType.CONTAINS, "B", name="high", priority=1)

        rules = await StaticRuleLookup([low, high]).get_all_rules()

        assert [rule.name for rule in rules] == ["high", "low"]


class TestSqlRuleLookup:
    @pytest.mark.asyncio
    async def test_reads_rules_in_priority_order(self, db):
        await MemorizedRuleFactory.create_async(db, name="Second", priority=10)
        await MemorizedRuleFactory.create_async(
            db,
            name="First",
            priority=0,
            match_type=RuleMatchType.REGEX,
            match_value=r"^COLES",
            default_payee="Coles",
        )

        rules = await SqlRuleLookup(db).get_all_rules()

        assert [rule.name for rule in rules] == ["First", "Second"]
        assert rules[0].match_type == RuleMatchType.REGEX
        assert rules[0].default_payee == "Coles"
        assert rule_matches("COLES 0456", rules[0])
