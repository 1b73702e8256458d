"""Reconciliation matching engine: classification and match previews."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from pathlib import Path
from uuid import UUID

import yaml

from bookmatch.config import settings
from bookmatch.logger import get_logger, log_timing
from bookmatch.services.assignment import solve_assignment
from bookmatch.services.ledger_store import (
    ZERO,
    AccountNotFoundError,
    DateRange,
    LedgerEntry,
    LedgerStore,
)
from bookmatch.services.rules import MemorizedRuleView, RuleLookup
from bookmatch.services.similarity import (
    ExternalRecord,
    prepare_external,
    prepare_ledger,
    score_prepared,
)

logger = get_logger(__name__)


class MatchType(str, Enum):
    EXACT = "exact"
    PROBABLE = "probable"
    POSSIBLE = "possible"
    NONE = "none"


@dataclass(frozen=True)
class MatchingConfig:
    """Runtime thresholds for match classification."""

    acceptance_floor: int
    exact_threshold: int
    probable_threshold: int
    possible_threshold: int


DEFAULT_CONFIG = MatchingConfig(
    acceptance_floor=30,
    exact_threshold=80,
    probable_threshold=60,
    possible_threshold=40,
)

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "reconciliation.yaml"

_ENV_OVERRIDES = {
    "acceptance_floor": "RECONCILIATION_ACCEPTANCE_FLOOR",
    "exact_threshold": "RECONCILIATION_EXACT_THRESHOLD",
    "probable_threshold": "RECONCILIATION_PROBABLE_THRESHOLD",
    "possible_threshold": "RECONCILIATION_POSSIBLE_THRESHOLD",
}

_config_cache: MatchingConfig | None = None


def load_matching_config(
    force_reload: bool = False, config_path: Path | None = None
) -> MatchingConfig:
    """Load matching thresholds from YAML if available.

    Caches the result to avoid repeated disk I/O. Environment variables
    override individual values.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    path = config_path or CONFIG_PATH

    if path.exists():
        try:
            raw = yaml.safe_load(path.read_text()) or {}
            matching = raw.get("matching", {})
            thresholds = matching.get("thresholds", {})

            config = MatchingConfig(
                acceptance_floor=int(matching.get("acceptance_floor", config.acceptance_floor)),
                exact_threshold=int(thresholds.get("exact", config.exact_threshold)),
                probable_threshold=int(thresholds.get("probable", config.probable_threshold)),
                possible_threshold=int(thresholds.get("possible", config.possible_threshold)),
            )
        except (yaml.YAMLError, OSError, AttributeError, TypeError, ValueError) as e:
            logger.warning(
                "Failed to load matching config - using defaults",
                config_path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )

    for attr, env_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config = replace(config, **{attr: int(value)})

    _config_cache = config
    return config


def classify_score(score: int, config: MatchingConfig | None = None) -> MatchType:
    """Map a 0-100 score to its confidence bucket."""
    config = config or load_matching_config()
    if score >= config.exact_threshold:
        return MatchType.EXACT
    if score >= config.probable_threshold:
        return MatchType.PROBABLE
    if score >= config.possible_threshold:
        return MatchType.POSSIBLE
    return MatchType.NONE


@dataclass(frozen=True)
class MatchCandidatePair:
    external_record: ExternalRecord
    ledger_entry: LedgerEntry | None
    posting_id: UUID | None
    score: int
    match_type: MatchType
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class PreviewSummary:
    total_external: int
    total_ledger: int
    total_matched: int
    total_possible: int
    total_unmatched: int
    statement_balance: Decimal | None
    ledger_balance: Decimal
    difference: Decimal | None


@dataclass
class MatchPreview:
    """Outcome of one matching run, grouped by confidence."""

    exact: list[MatchCandidatePair] = field(default_factory=list)
    probable: list[MatchCandidatePair] = field(default_factory=list)
    possible: list[MatchCandidatePair] = field(default_factory=list)
    low_confidence: list[MatchCandidatePair] = field(default_factory=list)
    unmatched_external: list[ExternalRecord] = field(default_factory=list)
    unmatched_ledger: list[LedgerEntry] = field(default_factory=list)
    summary: PreviewSummary | None = None


def _by_score(pairs: list[MatchCandidatePair]) -> list[MatchCandidatePair]:
    return sorted(pairs, key=lambda pair: pair.score, reverse=True)


def _summarize(
    preview: MatchPreview,
    external_records: Sequence[ExternalRecord],
    ledger_entries: Sequence[LedgerEntry],
    account_id: UUID,
) -> PreviewSummary:
    ledger_balance = sum((entry.amount_for(account_id) for entry in ledger_entries), ZERO)
    statement_balance = external_records[-1].running_balance if external_records else None
    return PreviewSummary(
        total_external=len(external_records),
        total_ledger=len(ledger_entries),
        total_matched=len(preview.exact) + len(preview.probable),
        total_possible=len(preview.possible),
        total_unmatched=len(preview.unmatched_external),
        statement_balance=statement_balance,
        ledger_balance=ledger_balance,
        difference=ledger_balance - statement_balance if statement_balance is not None else None,
    )


def match_records(
    external_records: Sequence[ExternalRecord],
    ledger_entries: Sequence[LedgerEntry],
    rules: Sequence[MemorizedRuleView],
    account_id: UUID,
    config: MatchingConfig | None = None,
) -> MatchPreview:
    """Score, solve and classify statement lines against ledger entries.

    Pure function: no I/O. Every external record ends up either in one
    pair or in ``unmatched_external``; every ledger entry is used by at
    most one pair.
    """
    config = config or load_matching_config()
    preview = MatchPreview()

    if not external_records or not ledger_entries:
        preview.unmatched_external = list(external_records)
        preview.unmatched_ledger = list(ledger_entries)
        preview.summary = _summarize(preview, external_records, ledger_entries, account_id)
        return preview

    prepared_ledger = [prepare_ledger(entry, account_id) for entry in ledger_entries]
    results = [
        [score_prepared(prepared, ledger) for ledger in prepared_ledger]
        for prepared in (prepare_external(record, rules) for record in external_records)
    ]
    scores = [[result.total for result in row] for row in results]
    assignments = solve_assignment(scores, acceptance_floor=config.acceptance_floor)

    matched_external: set[int] = set()
    matched_ledger: set[int] = set()
    for assignment in assignments:
        external = external_records[assignment.row]
        ledger = ledger_entries[assignment.col]
        posting = ledger.posting_for(account_id)
        pair = MatchCandidatePair(
            external_record=external,
            ledger_entry=ledger,
            posting_id=posting.id if posting else None,
            score=assignment.score,
            match_type=classify_score(assignment.score, config),
            reasons=results[assignment.row][assignment.col].reasons,
        )
        matched_external.add(assignment.row)
        matched_ledger.add(assignment.col)

        if pair.match_type == MatchType.EXACT:
            preview.exact.append(pair)
        elif pair.match_type == MatchType.PROBABLE:
            preview.probable.append(pair)
        elif pair.match_type == MatchType.POSSIBLE:
            preview.possible.append(pair)
        else:
            preview.low_confidence.append(pair)

    preview.exact = _by_score(preview.exact)
    preview.probable = _by_score(preview.probable)
    preview.possible = _by_score(preview.possible)
    preview.low_confidence = _by_score(preview.low_confidence)
    preview.unmatched_external = [
        record for idx, record in enumerate(external_records) if idx not in matched_external
    ]
    preview.unmatched_ledger = [
        entry for idx, entry in enumerate(ledger_entries) if idx not in matched_ledger
    ]
    preview.summary = _summarize(preview, external_records, ledger_entries, account_id)
    return preview


async def preview_matches(
    store: LedgerStore,
    rule_lookup: RuleLookup,
    account_id: UUID,
    external_records: Sequence[ExternalRecord],
    date_range: DateRange | None = None,
    config: MatchingConfig | None = None,
) -> MatchPreview:
    """Preview how statement lines pair with the account's ledger entries.

    The ledger query window is widened by the configured day buffer so
    entries dated just outside the statement period still compete.

    Raises:
        AccountNotFoundError: If the account doesn't exist
    """
    if await store.get_account(account_id) is None:
        raise AccountNotFoundError(f"Account {account_id} not found")

    window = date_range.widen(settings.reconciliation_date_buffer_days) if date_range else None
    ledger_entries = await store.find_ledger_entries(account_id, window)
    rules = await rule_lookup.get_all_rules()

    with log_timing(
        "preview_matches",
        logger=logger,
        account_id=str(account_id),
        external=len(external_records),
        ledger=len(ledger_entries),
    ) as timing:
        preview = match_records(external_records, ledger_entries, rules, account_id, config)
        timing["exact"] = len(preview.exact)
        timing["probable"] = len(preview.probable)
        timing["unmatched_external"] = len(preview.unmatched_external)

    return preview
