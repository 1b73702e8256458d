"""Services package."""

from bookmatch.services.assignment import Assignment, solve_assignment
from bookmatch.services.ledger_store import (
    AccountNotFoundError,
    DateRange,
    InvalidDateRangeError,
    LedgerEntry,
    LedgerStore,
    LedgerStoreError,
    PostingRecord,
    SqlLedgerStore,
)
from bookmatch.services.reconciliation import (
    MatchCandidatePair,
    MatchPreview,
    MatchType,
    classify_score,
    load_matching_config,
    preview_matches,
)
from bookmatch.services.reconciliation_session import (
    NotBalancedError,
    ReconciliationError,
    ReconciliationSessionManager,
    SessionLockedError,
    SessionNotFoundError,
    SessionOverlapError,
    SessionState,
)
from bookmatch.services.rules import (
    MemorizedRuleView,
    RuleLookup,
    SqlRuleLookup,
    StaticRuleLookup,
    find_matching_rule,
    rule_matches,
)
from bookmatch.services.similarity import (
    ExternalRecord,
    ScoreResult,
    score_match,
    score_transfer_pair,
)
from bookmatch.services.transfer_matching import (
    SameAccountTransferError,
    TransferMergeError,
    TransferMergeResult,
    TransferPairRequest,
    commit_transfer_matches,
    find_transfer_candidates,
    preview_transfer_matches,
)

__all__ = [
    "Assignment",
    "solve_assignment",
    "AccountNotFoundError",
    "DateRange",
    "InvalidDateRangeError",
    "LedgerEntry",
    "LedgerStore",
    "LedgerStoreError",
    "PostingRecord",
    "SqlLedgerStore",
    "MatchCandidatePair",
    "MatchPreview",
    "MatchType",
    "classify_score",
    "load_matching_config",
    "preview_matches",
    "NotBalancedError",
    "ReconciliationError",
    "ReconciliationSessionManager",
    "SessionLockedError",
    "SessionNotFoundError",
    "SessionOverlapError",
    "SessionState",
    "MemorizedRuleView",
    "RuleLookup",
    "SqlRuleLookup",
    "StaticRuleLookup",
    "find_matching_rule",
    "rule_matches",
    "ExternalRecord",
    "ScoreResult",
    "score_match",
    "score_transfer_pair",
    "SameAccountTransferError",
    "TransferMergeError",
    "TransferMergeResult",
    "TransferPairRequest",
    "commit_transfer_matches",
    "find_transfer_candidates",
    "preview_transfer_matches",
]
