"""Transfer deduplication across two accounts.

Importing statements for both sides of a transfer leaves two single-sided
transactions, each booked against a category (usually Uncategorized).
This module pairs them up and merges each pair into one balanced
transaction between the two real accounts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID

from bookmatch.config import settings
from bookmatch.logger import get_logger, log_exception, log_timing
from bookmatch.models import AccountKind
from bookmatch.services.assignment import solve_assignment
from bookmatch.services.ledger_store import (
    AccountNotFoundError,
    DateRange,
    LedgerEntry,
    LedgerStore,
    LedgerStoreError,
    NewJournalEntry,
    NewPosting,
    PostingRecord,
)
from bookmatch.services.reconciliation import (
    MatchingConfig,
    MatchType,
    classify_score,
    load_matching_config,
)
from bookmatch.services.similarity import has_transfer_keyword, score_transfer_pair

logger = get_logger(__name__)

UNCATEGORIZED = "uncategorized"
DEFAULT_TRANSFER_PAYEE = "Transfer"


class TransferError(Exception):
    """Base exception for transfer matching errors."""


class SameAccountTransferError(TransferError):
    """Both sides of a transfer preview name the same account."""


class TransferMergeError(TransferError):
    """A single pair could not be merged."""

    def __init__(self, message: str, context: str | None = None) -> None:
        self.context = context
        super().__init__(f"{context}: {message}" if context else message)


@dataclass(frozen=True)
class TransferCandidate:
    """One side of a suspected transfer, seen from ``account_id``."""

    entry: LedgerEntry
    account_id: UUID
    real_posting: PostingRecord
    category_posting: PostingRecord

    @property
    def id(self) -> UUID:
        return self.entry.id

    @property
    def date(self) -> date:
        return self.entry.date

    @property
    def payee(self) -> str:
        return self.entry.payee

    @property
    def amount(self) -> Decimal:
        return self.real_posting.amount

    @property
    def is_reconciled(self) -> bool:
        return self.real_posting.reconciled


@dataclass(frozen=True)
class TransferMatchPair:
    candidate_a: TransferCandidate
    candidate_b: TransferCandidate
    score: int
    match_type: MatchType
    reasons: tuple[str, ...]
    preselected: bool


@dataclass(frozen=True)
class TransferPreviewSummary:
    total_candidates_a: int
    total_candidates_b: int
    exact_matches: int
    probable_matches: int
    possible_matches: int
    low_confidence_matches: int
    unmatched: int


@dataclass
class TransferMatchPreview:
    exact: list[TransferMatchPair] = field(default_factory=list)
    probable: list[TransferMatchPair] = field(default_factory=list)
    possible: list[TransferMatchPair] = field(default_factory=list)
    low_confidence: list[TransferMatchPair] = field(default_factory=list)
    unmatched_a: list[TransferCandidate] = field(default_factory=list)
    unmatched_b: list[TransferCandidate] = field(default_factory=list)
    summary: TransferPreviewSummary | None = None


@dataclass(frozen=True)
class TransferPairRequest:
    """A pair the user accepted, with optional overrides for the merged transaction."""

    id_a: UUID
    id_b: UUID
    date: date | None = None
    payee: str | None = None


@dataclass
class TransferMergeResult:
    merged: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    created_ids: list[UUID] = field(default_factory=list)


def _is_transfer_category(posting: PostingRecord) -> bool:
    name = posting.account_name.strip().lower()
    return name == UNCATEGORIZED or "transfer" in name


def as_transfer_candidate(entry: LedgerEntry, account_id: UUID) -> TransferCandidate | None:
    """Return the entry as a transfer candidate for ``account_id``, if it looks like one.

    A candidate has exactly two postings: one on the account and one on a
    category account that is Uncategorized or transfer-like, or whose
    payee carries a transfer keyword.
    """
    if len(entry.postings) != 2:
        return None

    real = entry.posting_for(account_id)
    others = [posting for posting in entry.postings if posting.account_id != account_id]
    if real is None or len(others) != 1:
        return None

    category = others[0]
    # Already booked against another real account: a proper transfer.
    if category.account_kind != AccountKind.CATEGORY:
        return None
    if not (_is_transfer_category(category) or has_transfer_keyword(entry.payee)):
        return None

    return TransferCandidate(
        entry=entry,
        account_id=account_id,
        real_posting=real,
        category_posting=category,
    )


async def find_transfer_candidates(
    store: LedgerStore,
    account_id: UUID,
    date_range: DateRange | None = None,
) -> list[TransferCandidate]:
    """Find transactions on ``account_id`` that look like one side of a transfer."""
    if await store.get_account(account_id) is None:
        raise AccountNotFoundError(f"Account {account_id} not found")

    window = date_range.widen(settings.reconciliation_date_buffer_days) if date_range else None
    entries = await store.find_ledger_entries(account_id, window)

    candidates = []
    for entry in entries:
        candidate = as_transfer_candidate(entry, account_id)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _summarize(preview: TransferMatchPreview, total_a: int, total_b: int) -> TransferPreviewSummary:
    return TransferPreviewSummary(
        total_candidates_a=total_a,
        total_candidates_b=total_b,
        exact_matches=len(preview.exact),
        probable_matches=len(preview.probable),
        possible_matches=len(preview.possible),
        low_confidence_matches=len(preview.low_confidence),
        unmatched=len(preview.unmatched_a) + len(preview.unmatched_b),
    )


def match_transfer_candidates(
    candidates_a: Sequence[TransferCandidate],
    candidates_b: Sequence[TransferCandidate],
    config: MatchingConfig | None = None,
) -> TransferMatchPreview:
    """Pair candidates from two accounts one-to-one by transfer score."""
    config = config or load_matching_config()
    preview = TransferMatchPreview()

    if not candidates_a or not candidates_b:
        preview.unmatched_a = list(candidates_a)
        preview.unmatched_b = list(candidates_b)
        preview.summary = _summarize(preview, len(candidates_a), len(candidates_b))
        return preview

    results = [
        [score_transfer_pair(a.entry, a.account_id, b.entry, b.account_id) for b in candidates_b]
        for a in candidates_a
    ]
    scores = [[result.total for result in row] for row in results]
    assignments = solve_assignment(scores, acceptance_floor=config.acceptance_floor)

    buckets = {
        MatchType.EXACT: preview.exact,
        MatchType.PROBABLE: preview.probable,
        MatchType.POSSIBLE: preview.possible,
        MatchType.NONE: preview.low_confidence,
    }
    matched_a: set[int] = set()
    matched_b: set[int] = set()
    for assignment in assignments:
        match_type = classify_score(assignment.score, config)
        buckets[match_type].append(
            TransferMatchPair(
                candidate_a=candidates_a[assignment.row],
                candidate_b=candidates_b[assignment.col],
                score=assignment.score,
                match_type=match_type,
                reasons=results[assignment.row][assignment.col].reasons,
                preselected=match_type in (MatchType.EXACT, MatchType.PROBABLE),
            )
        )
        matched_a.add(assignment.row)
        matched_b.add(assignment.col)

    for pairs in buckets.values():
        pairs.sort(key=lambda pair: pair.score, reverse=True)

    preview.unmatched_a = [c for idx, c in enumerate(candidates_a) if idx not in matched_a]
    preview.unmatched_b = [c for idx, c in enumerate(candidates_b) if idx not in matched_b]
    preview.summary = _summarize(preview, len(candidates_a), len(candidates_b))
    return preview


async def preview_transfer_matches(
    store: LedgerStore,
    account_a: UUID,
    account_b: UUID,
    date_range: DateRange | None = None,
    config: MatchingConfig | None = None,
) -> TransferMatchPreview:
    """Preview which transactions on two accounts are two halves of one transfer.

    Raises:
        SameAccountTransferError: If both accounts are the same
        AccountNotFoundError: If either account doesn't exist
    """
    if account_a == account_b:
        raise SameAccountTransferError("Transfer preview needs two different accounts")

    candidates_a = await find_transfer_candidates(store, account_a, date_range)
    candidates_b = await find_transfer_candidates(store, account_b, date_range)

    with log_timing(
        "preview_transfer_matches",
        logger=logger,
        account_a=str(account_a),
        account_b=str(account_b),
        candidates_a=len(candidates_a),
        candidates_b=len(candidates_b),
    ) as timing:
        preview = match_transfer_candidates(candidates_a, candidates_b, config)
        timing["exact"] = len(preview.exact)
        timing["probable"] = len(preview.probable)

    return preview


def _describe(entry: LedgerEntry, posting: PostingRecord | None) -> str:
    if posting is None:
        return f"{entry.payee or entry.id} on {entry.date.isoformat()}"
    account = posting.account_name or str(posting.account_id)
    return f"{account} {entry.date.isoformat()} {posting.amount}"


def _split_transfer_postings(entry: LedgerEntry) -> tuple[PostingRecord | None, PostingRecord | None]:
    if len(entry.postings) != 2:
        return None, None
    real = next((p for p in entry.postings if p.account_kind == AccountKind.TRANSFER), None)
    category = next((p for p in entry.postings if p.account_kind == AccountKind.CATEGORY), None)
    return real, category


async def _merge_pair(store: LedgerStore, pair: TransferPairRequest) -> UUID:
    fallback_context = f"{pair.id_a} / {pair.id_b}"
    if pair.id_a == pair.id_b:
        raise TransferMergeError("Cannot merge a transaction with itself", fallback_context)

    entries = {entry.id: entry for entry in await store.get_ledger_entries([pair.id_a, pair.id_b])}
    entry_a = entries.get(pair.id_a)
    entry_b = entries.get(pair.id_b)
    if entry_a is None or entry_b is None:
        raise TransferMergeError("Transaction not found", fallback_context)

    a_real, a_category = _split_transfer_postings(entry_a)
    b_real, b_category = _split_transfer_postings(entry_b)
    context = f"{_describe(entry_a, a_real)} / {_describe(entry_b, b_real)}"

    if a_real is None or a_category is None or b_real is None or b_category is None:
        raise TransferMergeError("Cannot identify transfer postings", context)
    if a_real.account_id == b_real.account_id:
        raise TransferMergeError("Both transactions post to the same account", context)
    if a_real.reconciled or b_real.reconciled:
        raise TransferMergeError("Cannot merge reconciled transactions", context)

    earlier, later = (entry_a, entry_b) if entry_a.date <= entry_b.date else (entry_b, entry_a)
    amount = b_real.amount
    merged = NewJournalEntry(
        entry_date=pair.date or earlier.date,
        payee=pair.payee or earlier.payee or later.payee or DEFAULT_TRANSFER_PAYEE,
        postings=(
            NewPosting(account_id=a_real.account_id, amount=-amount, cleared=a_real.cleared),
            NewPosting(account_id=b_real.account_id, amount=amount, cleared=b_real.cleared),
        ),
        metadata={
            **entry_a.metadata,
            "transfer_matched": True,
            "merged_transaction_ids": [str(entry_a.id), str(entry_b.id)],
            "merged_payees": [entry_a.payee, entry_b.payee],
            "merged_at": datetime.now(UTC).isoformat(),
        },
    )

    try:
        new_id = await store.create_transaction(merged)
        await store.delete_transaction(entry_a.id)
        await store.delete_transaction(entry_b.id)
    except LedgerStoreError as exc:
        raise TransferMergeError(str(exc), context) from exc
    return new_id


async def commit_transfer_matches(
    store: LedgerStore, pairs: Sequence[TransferPairRequest]
) -> TransferMergeResult:
    """Merge each accepted pair into one transfer transaction.

    Each pair commits or rolls back on its own; a failing pair is counted
    as skipped and reported in ``errors`` without affecting the others.
    """
    result = TransferMergeResult()

    for pair in pairs:
        try:
            async with store.atomic():
                new_id = await _merge_pair(store, pair)
        except (TransferMergeError, LedgerStoreError) as exc:
            result.skipped += 1
            message = str(exc)
            if not isinstance(exc, TransferMergeError):
                message = f"{pair.id_a} / {pair.id_b}: {message}"
            result.errors.append(message)
            log_exception(
                logger,
                exc,
                "Transfer merge failed",
                level="warning",
                include_traceback=False,
                id_a=str(pair.id_a),
                id_b=str(pair.id_b),
            )
            continue

        result.merged += 1
        result.created_ids.append(new_id)
        logger.info(
            "Transfer pair merged",
            id_a=str(pair.id_a),
            id_b=str(pair.id_b),
            transaction_id=str(new_id),
        )

    return result
