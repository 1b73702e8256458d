"""Reconciliation sessions: statement periods checked off against the ledger.

A session moves OPEN -> BALANCED -> LOCKED. BALANCED is never stored; it
is computed whenever status is read. Only an explicit unlock leaves
LOCKED, and nothing in a locked session may be (un)marked.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from bookmatch.config import settings
from bookmatch.logger import get_logger
from bookmatch.services.ledger_store import (
    ZERO,
    AccountNotFoundError,
    AccountRecord,
    DateRange,
    InvalidDateRangeError,
    LedgerStore,
    PostingFlags,
    PostingRecord,
    SessionRecord,
)

logger = get_logger(__name__)

BALANCE_TOLERANCE = Decimal("0.01")


class ReconciliationError(Exception):
    """Base exception for reconciliation session errors."""


class SessionNotFoundError(ReconciliationError):
    pass


class SessionLockedError(ReconciliationError):
    pass


class SessionOverlapError(ReconciliationError):
    pass


class NotBalancedError(ReconciliationError):
    def __init__(self, difference: Decimal) -> None:
        self.difference = difference
        super().__init__(f"Session is not balanced: difference {difference}")


class SessionState(str, Enum):
    OPEN = "open"
    BALANCED = "balanced"
    LOCKED = "locked"


@dataclass(frozen=True)
class ReconciliationStatus:
    session_id: UUID
    account_id: UUID
    statement_start: date
    statement_end: date
    statement_start_balance: Decimal
    reconciled_amount: Decimal
    expected_end_balance: Decimal
    statement_end_balance: Decimal
    difference: Decimal
    is_balanced: bool
    reconciled_count: int
    unreconciled_count: int
    state: SessionState


@dataclass(frozen=True)
class ClearedSuggestion:
    """Cleared postings that would bring the book to the statement balance."""

    account_id: UUID
    statement_end: date
    posting_ids: list[UUID]
    expected_end_balance: Decimal
    statement_end_balance: Decimal
    difference: Decimal


@dataclass(frozen=True)
class AccountReconciliationSummary:
    account_id: UUID
    last_reconciled: date | None
    unreconciled_count: int
    unreconciled_amount: Decimal


def _total(postings: Iterable[PostingRecord]) -> Decimal:
    return sum((posting.amount for posting in postings), ZERO)


def _overlaps(first: DateRange, second: DateRange) -> bool:
    return first.contains(second.start) or second.contains(first.start)


def _require_bounded(statement_range: DateRange) -> None:
    if statement_range.start is None or statement_range.end is None:
        raise InvalidDateRangeError("Statement period needs both a start and an end date")


class ReconciliationSessionManager:
    """Session lifecycle and posting flag changes, all through a LedgerStore."""

    def __init__(self, store: LedgerStore, date_buffer_days: int | None = None) -> None:
        self._store = store
        self._buffer_days = (
            settings.reconciliation_date_buffer_days if date_buffer_days is None else date_buffer_days
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _require_account(self, account_id: UUID) -> AccountRecord:
        account = await self._store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    async def _require_session(self, session_id: UUID) -> SessionRecord:
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Reconciliation session {session_id} not found")
        return session

    async def _require_unlocked(self, session_id: UUID) -> SessionRecord:
        session = await self._require_session(session_id)
        if session.locked:
            raise SessionLockedError(f"Reconciliation session {session_id} is locked")
        return session

    async def _check_overlap(
        self, account_id: UUID, statement_range: DateRange, exclude: UUID | None = None
    ) -> None:
        for other in await self._store.list_sessions(account_id):
            if other.id == exclude or other.locked:
                continue
            if _overlaps(other.statement_range, statement_range):
                raise SessionOverlapError(
                    f"Statement period overlaps open session {other.id} "
                    f"({other.statement_start.isoformat()} to {other.statement_end.isoformat()})"
                )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_reconciliation(
        self,
        account_id: UUID,
        statement_range: DateRange,
        start_balance: Decimal,
        end_balance: Decimal,
        notes: str | None = None,
    ) -> UUID:
        """Open a session for one statement period.

        Raises:
            InvalidDateRangeError: If the period is unbounded or ends before it starts
            AccountNotFoundError: If the account doesn't exist
            SessionOverlapError: If an unlocked session already covers part of the period
        """
        _require_bounded(statement_range)
        await self._require_account(account_id)
        await self._check_overlap(account_id, statement_range)

        async with self._store.atomic():
            session = await self._store.create_session(
                account_id=account_id,
                statement_range=statement_range,
                statement_start_balance=start_balance,
                statement_end_balance=end_balance,
                notes=notes,
            )

        logger.info(
            "Reconciliation session started",
            session_id=str(session.id),
            account_id=str(account_id),
            statement_start=statement_range.start.isoformat(),
            statement_end=statement_range.end.isoformat(),
        )
        return session.id

    async def update_session(
        self,
        session_id: UUID,
        *,
        statement_range: DateRange | None = None,
        start_balance: Decimal | None = None,
        end_balance: Decimal | None = None,
        notes: str | None = None,
    ) -> SessionRecord:
        """Edit an unlocked session's period, balances or notes."""
        session = await self._require_unlocked(session_id)

        changes: dict[str, object] = {}
        if statement_range is not None:
            _require_bounded(statement_range)
            await self._check_overlap(session.account_id, statement_range, exclude=session_id)
            changes["statement_start"] = statement_range.start
            changes["statement_end"] = statement_range.end
        if start_balance is not None:
            changes["statement_start_balance"] = start_balance
        if end_balance is not None:
            changes["statement_end_balance"] = end_balance
        if notes is not None:
            changes["notes"] = notes

        if not changes:
            return session

        async with self._store.atomic():
            return await self._store.update_session(session_id, **changes)

    async def list_sessions(self, account_id: UUID | None = None) -> list[SessionRecord]:
        return await self._store.list_sessions(account_id)

    async def get_session(self, session_id: UUID) -> SessionRecord:
        return await self._require_session(session_id)

    async def lock_session(self, session_id: UUID) -> ReconciliationStatus:
        """Lock a balanced session.

        Raises:
            NotBalancedError: If the computed balance is off by a cent or more
        """
        status = await self.get_reconciliation_status(session_id)
        if status.state == SessionState.LOCKED:
            return status
        if not status.is_balanced:
            raise NotBalancedError(status.difference)

        async with self._store.atomic():
            await self._store.update_session(session_id, locked=True)

        logger.info("Reconciliation session locked", session_id=str(session_id))
        return await self.get_reconciliation_status(session_id)

    async def unlock_session(self, session_id: UUID) -> ReconciliationStatus:
        session = await self._require_session(session_id)
        if session.locked:
            async with self._store.atomic():
                await self._store.update_session(session_id, locked=False)
            logger.info("Reconciliation session unlocked", session_id=str(session_id))
        return await self.get_reconciliation_status(session_id)

    async def delete_session(self, session_id: UUID) -> None:
        """Unreconcile every posting of an unlocked session, then delete it."""
        await self._require_unlocked(session_id)

        async with self._store.atomic():
            postings = await self._store.find_postings(
                reconcile_session_id=session_id, include_void=True
            )
            released = await self._release(postings)
            await self._store.delete_session(session_id)

        logger.info(
            "Reconciliation session deleted",
            session_id=str(session_id),
            released_postings=released,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_reconciliation_status(self, session_id: UUID) -> ReconciliationStatus:
        session = await self._require_session(session_id)
        window = session.statement_range.widen(self._buffer_days)

        reconciled = await self._store.find_postings(
            session.account_id,
            date_range=window,
            reconciled=True,
            reconcile_session_id=session_id,
        )
        unreconciled = await self._store.find_postings(
            session.account_id,
            date_range=window,
            reconciled=False,
        )

        reconciled_amount = _total(reconciled)
        expected_end_balance = session.statement_start_balance + reconciled_amount
        difference = expected_end_balance - session.statement_end_balance
        is_balanced = abs(difference) < BALANCE_TOLERANCE

        if session.locked:
            state = SessionState.LOCKED
        elif is_balanced:
            state = SessionState.BALANCED
        else:
            state = SessionState.OPEN

        return ReconciliationStatus(
            session_id=session.id,
            account_id=session.account_id,
            statement_start=session.statement_start,
            statement_end=session.statement_end,
            statement_start_balance=session.statement_start_balance,
            reconciled_amount=reconciled_amount,
            expected_end_balance=expected_end_balance,
            statement_end_balance=session.statement_end_balance,
            difference=difference,
            is_balanced=is_balanced,
            reconciled_count=len(reconciled),
            unreconciled_count=len(unreconciled),
            state=state,
        )

    # ------------------------------------------------------------------
    # Posting flags
    # ------------------------------------------------------------------

    async def reconcile_postings(self, session_id: UUID, posting_ids: Sequence[UUID]) -> int:
        """Mark postings cleared and reconciled in this session.

        Idempotent. Postings of other accounts, on voided entries, or
        already reconciled by a different session are skipped. Returns the
        number of postings newly reconciled.
        """
        session = await self._require_unlocked(session_id)
        postings = await self._store.get_postings(posting_ids)
        self._warn_missing(posting_ids, postings, session_id)

        by_prior_cleared: dict[bool, list[UUID]] = defaultdict(list)
        for posting in postings:
            if posting.account_id != session.account_id:
                logger.warning(
                    "Skipping posting from another account",
                    session_id=str(session_id),
                    posting_id=str(posting.id),
                    account_id=str(posting.account_id),
                )
                continue
            if posting.voided:
                logger.warning(
                    "Skipping posting on a voided entry",
                    session_id=str(session_id),
                    posting_id=str(posting.id),
                )
                continue
            if posting.reconciled:
                if posting.reconcile_session_id != session_id:
                    logger.warning(
                        "Skipping posting reconciled by another session",
                        session_id=str(session_id),
                        posting_id=str(posting.id),
                        other_session_id=str(posting.reconcile_session_id),
                    )
                continue
            by_prior_cleared[posting.cleared].append(posting.id)

        updated = 0
        async with self._store.atomic():
            for prior_cleared, ids in by_prior_cleared.items():
                updated += await self._store.update_posting_flags(
                    ids,
                    PostingFlags(
                        cleared=True,
                        reconciled=True,
                        reconcile_session_id=session_id,
                        cleared_before_reconcile=prior_cleared,
                    ),
                )

        logger.info("Postings reconciled", session_id=str(session_id), count=updated)
        return updated

    async def unreconcile_postings(self, session_id: UUID, posting_ids: Sequence[UUID]) -> int:
        """Undo reconcile_postings for postings of this session, restoring their cleared flag."""
        await self._require_unlocked(session_id)
        postings = await self._store.get_postings(posting_ids)
        self._warn_missing(posting_ids, postings, session_id)

        ours = [posting for posting in postings if posting.reconcile_session_id == session_id]
        async with self._store.atomic():
            updated = await self._release(ours)

        logger.info("Postings unreconciled", session_id=str(session_id), count=updated)
        return updated

    async def _release(self, postings: Iterable[PostingRecord]) -> int:
        by_restored_cleared: dict[bool, list[UUID]] = defaultdict(list)
        for posting in postings:
            restored = (
                posting.cleared_before_reconcile
                if posting.cleared_before_reconcile is not None
                else posting.cleared
            )
            by_restored_cleared[restored].append(posting.id)

        updated = 0
        for cleared, ids in by_restored_cleared.items():
            updated += await self._store.update_posting_flags(
                ids,
                PostingFlags(
                    cleared=cleared,
                    reconciled=False,
                    reconcile_session_id=None,
                    cleared_before_reconcile=None,
                ),
            )
        return updated

    @staticmethod
    def _warn_missing(
        requested: Sequence[UUID], found: Sequence[PostingRecord], session_id: UUID
    ) -> None:
        missing = set(requested) - {posting.id for posting in found}
        if missing:
            logger.warning(
                "Postings not found",
                session_id=str(session_id),
                posting_ids=sorted(str(posting_id) for posting_id in missing),
            )

    # ------------------------------------------------------------------
    # Account helpers
    # ------------------------------------------------------------------

    async def get_unreconciled_postings(
        self, account_id: UUID, date_range: DateRange | None = None
    ) -> list[PostingRecord]:
        await self._require_account(account_id)
        return await self._store.find_postings(account_id, date_range=date_range, reconciled=False)

    async def suggest_cleared_postings(
        self,
        account_id: UUID,
        statement_end: date,
        statement_end_balance: Decimal,
    ) -> ClearedSuggestion:
        """Suggest the unreconciled cleared postings up to ``statement_end``.

        The expected balance is the opening balance plus everything already
        reconciled plus the suggested postings. Nothing is modified.
        """
        account = await self._require_account(account_id)
        period = DateRange(end=statement_end)

        already_reconciled = await self._store.find_postings(
            account_id, date_range=period, reconciled=True
        )
        suggested = await self._store.find_postings(
            account_id, date_range=period, reconciled=False, cleared=True
        )

        expected = account.opening_balance + _total(already_reconciled) + _total(suggested)
        return ClearedSuggestion(
            account_id=account_id,
            statement_end=statement_end,
            posting_ids=[posting.id for posting in suggested],
            expected_end_balance=expected,
            statement_end_balance=statement_end_balance,
            difference=expected - statement_end_balance,
        )

    async def get_account_reconciliation_summary(
        self, account_id: UUID
    ) -> AccountReconciliationSummary:
        await self._require_account(account_id)

        locked = [session for session in await self._store.list_sessions(account_id) if session.locked]
        last_reconciled = max((session.statement_end for session in locked), default=None)
        unreconciled = await self._store.find_postings(account_id, reconciled=False)

        return AccountReconciliationSummary(
            account_id=account_id,
            last_reconciled=last_reconciled,
            unreconciled_count=len(unreconciled),
            unreconciled_amount=_total(unreconciled),
        )
