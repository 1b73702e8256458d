"""Match scoring between statement lines and ledger entries.

Scores are integers in 0..100 built from three terms:

- date proximity (max 30)
- absolute amount agreement (max 50)
- description similarity (max 20)
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from bookmatch.services.ledger_store import LedgerEntry
from bookmatch.services.rules import MemorizedRuleView, supported_payees

EXACT_AMOUNT_TOLERANCE = Decimal("0.01")
NEAR_AMOUNT_TOLERANCE = Decimal("1.00")

# Amount points for an exact match whose signs agree on both sides of a transfer.
SAME_SIGN_TRANSFER_POINTS = 30

TRANSFER_KEYWORDS = (
    "internal transfer",
    "transfer",
    "from linked account",
    "to linked account",
    "internet transfer",
    "tfr",
)

CHANNEL_PAYEE = "payee"
CHANNEL_ORIGINAL_DESCRIPTION = "original_description"
CHANNEL_RULE = "rule"
CHANNEL_TRANSFER_KEYWORD = "transfer_keyword"


@dataclass(frozen=True)
class ExternalRecord:
    """One statement line as produced by statement ingestion."""

    date: date
    description: str
    debit_amount: Decimal | None = None
    credit_amount: Decimal | None = None
    running_balance: Decimal | None = None

    @property
    def signed_amount(self) -> Decimal:
        return (self.debit_amount or Decimal("0")) - (self.credit_amount or Decimal("0"))


@dataclass(frozen=True)
class ScoreResult:
    total: int
    reasons: tuple[str, ...]
    description_channel: str | None = None


@dataclass(frozen=True)
class TextProfile:
    """Normalized text with its bigram multiset, computed once per string.

    Each bigram is tagged with its occurrence index so the multiset
    intersection of two profiles is a plain set intersection.
    """

    compact: str
    bigrams: frozenset[tuple[str, int]]


@dataclass(frozen=True)
class PreparedExternal:
    record: ExternalRecord
    amount: Decimal
    description: TextProfile | None
    rule_payees: frozenset[str]


@dataclass(frozen=True)
class PreparedLedger:
    entry: LedgerEntry
    amount: Decimal
    payee: TextProfile | None
    payee_key: str
    original_description: TextProfile | None


def normalize_text(value: str) -> str:
    """Normalize text for similarity comparison."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def _bigram_set(compact: str) -> frozenset[tuple[str, int]]:
    seen: Counter[str] = Counter()
    tagged = []
    for i in range(len(compact) - 1):
        bigram = compact[i : i + 2]
        tagged.append((bigram, seen[bigram]))
        seen[bigram] += 1
    return frozenset(tagged)


def _profile_dice(first: TextProfile, second: TextProfile) -> float:
    if first.compact == second.compact:
        return 1.0
    if len(first.compact) < 2 or len(second.compact) < 2:
        return 0.0
    intersection = len(first.bigrams & second.bigrams)
    return 2.0 * intersection / (len(first.bigrams) + len(second.bigrams))


def dice_coefficient(first: str, second: str) -> float:
    """Bigram Dice coefficient of two strings, ignoring whitespace."""
    first = re.sub(r"\s+", "", first)
    second = re.sub(r"\s+", "", second)
    return _profile_dice(
        TextProfile(first, _bigram_set(first)),
        TextProfile(second, _bigram_set(second)),
    )


def text_profile(value: str | None) -> TextProfile | None:
    """Profile ``value`` for repeated comparisons; None when nothing is left after normalizing."""
    if not value:
        return None
    normalized = normalize_text(value)
    if not normalized:
        return None
    compact = normalized.replace(" ", "")
    return TextProfile(compact, _bigram_set(compact))


def profile_similarity(a: TextProfile | None, b: TextProfile | None) -> float:
    if a is None or b is None:
        return 0.0
    return _profile_dice(a, b)


def text_similarity(a: str | None, b: str | None) -> float:
    """Dice similarity of two normalized descriptions (0.0-1.0)."""
    return profile_similarity(text_profile(a), text_profile(b))


def score_date(first: date, second: date) -> tuple[int, str | None]:
    days = abs((first - second).days)
    if days == 0:
        return 30, "Exact date match"
    if days <= 1:
        return 25, "Date within 1 day"
    if days <= 3:
        return 15, "Date within 3 days"
    if days <= 7:
        return 5, "Date within 7 days"
    return 0, None


def score_amount(first: Decimal, second: Decimal) -> tuple[int, str | None]:
    """Score absolute amount agreement; signs are compared by the caller."""
    diff = abs(abs(first) - abs(second))
    if diff < EXACT_AMOUNT_TOLERANCE:
        return 50, "Exact amount match"
    if diff < NEAR_AMOUNT_TOLERANCE:
        return 25, "Amount within $1"
    return 0, None


def score_description(similarity: float) -> tuple[int, str | None]:
    percent = f"{similarity * 100:.0f}%"
    if similarity > 0.8:
        return 20, f"High description similarity ({percent})"
    if similarity > 0.5:
        return 10, f"Medium description similarity ({percent})"
    if similarity > 0.3:
        return 5, f"Low description similarity ({percent})"
    return 0, None


def prepare_external(
    external: ExternalRecord, rules: Sequence[MemorizedRuleView]
) -> PreparedExternal:
    return PreparedExternal(
        record=external,
        amount=external.signed_amount,
        description=text_profile(external.description),
        rule_payees=supported_payees(external.description, rules),
    )


def prepare_ledger(ledger: LedgerEntry, account_id: UUID) -> PreparedLedger:
    return PreparedLedger(
        entry=ledger,
        amount=ledger.amount_for(account_id),
        payee=text_profile(ledger.payee),
        payee_key=ledger.payee.strip().lower() if ledger.payee else "",
        original_description=text_profile(ledger.original_description),
    )


def best_description_channel(
    external: PreparedExternal, ledger: PreparedLedger
) -> tuple[float, str | None]:
    """Return the best similarity across payee, original description and rules."""
    channels = [
        (profile_similarity(external.description, ledger.payee), CHANNEL_PAYEE),
        (
            profile_similarity(external.description, ledger.original_description),
            CHANNEL_ORIGINAL_DESCRIPTION,
        ),
    ]
    if ledger.entry.payee and ledger.payee_key in external.rule_payees:
        channels.append((1.0, CHANNEL_RULE))

    similarity, channel = max(channels, key=lambda item: item[0])
    if similarity <= 0:
        return 0.0, None
    return similarity, channel


def _collect(*terms: tuple[int, str | None]) -> tuple[int, list[str]]:
    total = 0
    reasons: list[str] = []
    for points, reason in terms:
        total += points
        if reason:
            reasons.append(reason)
    return total, reasons


def score_prepared(external: PreparedExternal, ledger: PreparedLedger) -> ScoreResult:
    """Score a statement line against a ledger entry, both already prepared."""
    similarity, channel = best_description_channel(external, ledger)
    points, reason = score_description(similarity)
    if reason and channel:
        reason = f"{reason} via {channel}"

    total, reasons = _collect(
        score_date(external.record.date, ledger.entry.date),
        score_amount(external.amount, ledger.amount),
        (points, reason),
    )
    return ScoreResult(
        total=total,
        reasons=tuple(reasons),
        description_channel=channel if points else None,
    )


def score_match(
    external: ExternalRecord,
    ledger: LedgerEntry,
    rules: Sequence[MemorizedRuleView],
    account_id: UUID,
) -> ScoreResult:
    """Score how likely ``external`` and ``ledger`` describe the same movement."""
    return score_prepared(prepare_external(external, rules), prepare_ledger(ledger, account_id))


def has_transfer_keyword(text: str | None) -> bool:
    if not text:
        return False
    lower = text.lower()
    return any(keyword in lower for keyword in TRANSFER_KEYWORDS)


def score_transfer_pair(
    a: LedgerEntry,
    account_a: UUID,
    b: LedgerEntry,
    account_b: UUID,
) -> ScoreResult:
    """Score two single-sided transactions as the two halves of one transfer."""
    amount_a = a.amount_for(account_a)
    amount_b = b.amount_for(account_b)

    amount_points, amount_reason = score_amount(amount_a, amount_b)
    if amount_points == 50:
        if amount_a * amount_b < 0:
            amount_reason = "Exact amount match with opposite signs"
        else:
            amount_points = SAME_SIGN_TRANSFER_POINTS
            amount_reason = "Exact amount match (same sign)"

    a_is_transfer = has_transfer_keyword(a.payee)
    b_is_transfer = has_transfer_keyword(b.payee)
    if a_is_transfer and b_is_transfer:
        keyword_similarity, keyword_reason = 1.0, "Both payees contain transfer keywords"
    elif a_is_transfer or b_is_transfer:
        keyword_similarity, keyword_reason = 0.6, "One payee contains transfer keyword"
    else:
        keyword_similarity, keyword_reason = 0.0, None

    payee_similarity = text_similarity(a.payee, b.payee)
    if keyword_similarity >= payee_similarity:
        similarity, channel = keyword_similarity, CHANNEL_TRANSFER_KEYWORD
        description_points, _ = score_description(similarity)
        description_reason = keyword_reason if description_points else None
    else:
        similarity, channel = payee_similarity, CHANNEL_PAYEE
        description_points, description_reason = score_description(similarity)
        if description_reason:
            description_reason = f"{description_reason} via {channel}"

    total, reasons = _collect(
        score_date(a.date, b.date),
        (amount_points, amount_reason),
        (description_points, description_reason),
    )
    return ScoreResult(
        total=total,
        reasons=tuple(reasons),
        description_channel=channel if description_points else None,
    )
