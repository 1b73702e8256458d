"""SQLAlchemy models package."""

from bookmatch.models.account import Account, AccountKind, AccountType
from bookmatch.models.journal import JournalEntry, JournalEntryStatus, Posting
from bookmatch.models.reconciliation import ReconciliationSession
from bookmatch.models.rule import MemorizedRule, RuleMatchType

__all__ = [
    "Account",
    "AccountKind",
    "AccountType",
    "JournalEntry",
    "JournalEntryStatus",
    "MemorizedRule",
    "Posting",
    "ReconciliationSession",
    "RuleMatchType",
]
