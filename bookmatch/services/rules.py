"""Memorized rule lookup and text matching."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookmatch.logger import get_logger
from bookmatch.models import MemorizedRule, RuleMatchType

logger = get_logger(__name__)

RuleContext = Literal["import", "manual"]


@dataclass(frozen=True)
class MemorizedRuleView:
    id: UUID | None
    name: str
    match_type: RuleMatchType
    match_value: str
    default_payee: str | None = None
    default_account_id: UUID | None = None
    apply_on_import: bool = True
    apply_on_manual_entry: bool = True
    priority: int = 0


class RuleLookup(Protocol):
    async def get_all_rules(self) -> list[MemorizedRuleView]: ...


class SqlRuleLookup:
    """Read memorized rules from the database, highest priority first."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_all_rules(self) -> list[MemorizedRuleView]:
        result = await self._db.execute(
            select(MemorizedRule).order_by(MemorizedRule.priority, MemorizedRule.name)
        )
        return [
            MemorizedRuleView(
                id=rule.id,
                name=rule.name,
                match_type=rule.match_type,
                match_value=rule.match_value,
                default_payee=rule.default_payee,
                default_account_id=rule.default_account_id,
                apply_on_import=rule.apply_on_import,
                apply_on_manual_entry=rule.apply_on_manual_entry,
                priority=rule.priority,
            )
            for rule in result.scalars().all()
        ]


class StaticRuleLookup:
    """In-memory rule lookup for callers that already hold the rules."""

    def __init__(self, rules: Iterable[MemorizedRuleView] = ()) -> None:
        self._rules = sorted(rules, key=lambda rule: (rule.priority, rule.name))

    async def get_all_rules(self) -> list[MemorizedRuleView]:
        return list(self._rules)


def rule_matches(text: str, rule: MemorizedRuleView) -> bool:
    """Return True if ``text`` satisfies the rule's match condition.

    Matching is case-insensitive for every match type. A rule carrying an
    invalid regular expression never matches.
    """
    if not text or not rule.match_value:
        return False

    if rule.match_type == RuleMatchType.EXACT:
        return text.strip().lower() == rule.match_value.strip().lower()
    if rule.match_type == RuleMatchType.CONTAINS:
        return rule.match_value.lower() in text.lower()
    if rule.match_type == RuleMatchType.REGEX:
        try:
            return re.search(rule.match_value, text, re.IGNORECASE) is not None
        except re.error as exc:
            logger.warning(
                "Invalid memorized rule pattern",
                rule=rule.name,
                pattern=rule.match_value,
                error=str(exc),
            )
            return False
    return False


def supported_payees(description: str, rules: Sequence[MemorizedRuleView]) -> frozenset[str]:
    """Lower-cased default payees of the rules that match ``description``."""
    return frozenset(
        rule.default_payee.strip().lower()
        for rule in rules
        if rule.default_payee and rule_matches(description, rule)
    )


def rule_supports_payee(description: str, payee: str, rules: Sequence[MemorizedRuleView]) -> bool:
    """True when a rule that names ``payee`` as its default matches ``description``."""
    if not payee:
        return False
    return payee.strip().lower() in supported_payees(description, rules)


def find_matching_rule(
    text: str,
    rules: Sequence[MemorizedRuleView],
    context: RuleContext = "import",
) -> MemorizedRuleView | None:
    """Return the first rule enabled for ``context`` that matches ``text``."""
    for rule in rules:
        if context == "import" and not rule.apply_on_import:
            continue
        if context == "manual" and not rule.apply_on_manual_entry:
            continue
        if rule_matches(text, rule):
            return rule
    return None
