"""Ledger store contract and its SQLAlchemy implementation.

The matching core only sees the read-only views defined here
(LedgerEntry, PostingRecord, SessionRecord) and asks the store for
targeted mutations. SqlLedgerStore is the single place that knows the
ORM models.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from bookmatch.logger import get_logger
from bookmatch.models import (
    Account,
    AccountKind,
    JournalEntry,
    JournalEntryStatus,
    Posting,
    ReconciliationSession,
)

logger = get_logger(__name__)

ZERO = Decimal("0.00")


class LedgerStoreError(Exception):
    """Base exception for ledger store errors."""


class InvalidDateRangeError(LedgerStoreError, ValueError):
    """Date range whose end falls before its start."""


class UnbalancedEntryError(LedgerStoreError):
    """Journal entry whose postings do not sum to zero."""


class AccountNotFoundError(LedgerStoreError):
    """Account does not exist."""


@dataclass(frozen=True)
class DateRange:
    """Inclusive civil-date range; either bound may be open."""

    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.end < self.start:
            raise InvalidDateRangeError(
                f"Date range ends before it starts: {self.start.isoformat()} > {self.end.isoformat()}"
            )

    def contains(self, value: date) -> bool:
        if self.start and value < self.start:
            return False
        if self.end and value > self.end:
            return False
        return True

    def widen(self, days: int) -> DateRange:
        """Return the range extended by ``days`` on each bounded side."""
        if days <= 0:
            return self
        delta = timedelta(days=days)
        return DateRange(
            start=self.start - delta if self.start else None,
            end=self.end + delta if self.end else None,
        )


@dataclass(frozen=True)
class AccountRecord:
    id: UUID
    name: str
    kind: AccountKind
    opening_balance: Decimal


@dataclass(frozen=True)
class PostingRecord:
    """Read-only view of one posting and its reconciliation flags."""

    id: UUID
    journal_entry_id: UUID
    account_id: UUID
    amount: Decimal
    entry_date: date
    cleared: bool = False
    reconciled: bool = False
    reconcile_session_id: UUID | None = None
    cleared_before_reconcile: bool | None = None
    account_name: str = ""
    account_kind: AccountKind = AccountKind.TRANSFER
    voided: bool = False


@dataclass(frozen=True)
class LedgerEntry:
    """Ledger transaction reduced to what matching needs."""

    id: UUID
    date: date
    payee: str
    postings: tuple[PostingRecord, ...]
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def original_description(self) -> str | None:
        value = self.metadata.get("original_description")
        return str(value) if value else None

    def postings_for(self, account_id: UUID) -> list[PostingRecord]:
        return [posting for posting in self.postings if posting.account_id == account_id]

    def posting_for(self, account_id: UUID) -> PostingRecord | None:
        postings = self.postings_for(account_id)
        return postings[0] if postings else None

    def amount_for(self, account_id: UUID) -> Decimal:
        """Signed amount this entry moves through ``account_id``."""
        return sum((posting.amount for posting in self.postings_for(account_id)), ZERO)


@dataclass(frozen=True)
class PostingFlags:
    cleared: bool
    reconciled: bool
    reconcile_session_id: UUID | None
    cleared_before_reconcile: bool | None = None


@dataclass(frozen=True)
class NewPosting:
    account_id: UUID
    amount: Decimal
    cleared: bool = False


@dataclass(frozen=True)
class NewJournalEntry:
    entry_date: date
    payee: str
    postings: tuple[NewPosting, ...]
    memo: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class SessionRecord:
    id: UUID
    account_id: UUID
    statement_start: date
    statement_end: date
    statement_start_balance: Decimal
    statement_end_balance: Decimal
    notes: str | None
    locked: bool
    created_at: datetime | None = None

    @property
    def statement_range(self) -> DateRange:
        return DateRange(self.statement_start, self.statement_end)


class LedgerStore(Protocol):
    """Narrow repository interface the matching core depends on."""

    def atomic(self) -> AbstractAsyncContextManager[None]: ...

    async def get_account(self, account_id: UUID) -> AccountRecord | None: ...

    async def find_ledger_entries(
        self, account_id: UUID, date_range: DateRange | None = None
    ) -> list[LedgerEntry]: ...

    async def get_ledger_entries(self, entry_ids: Iterable[UUID]) -> list[LedgerEntry]: ...

    async def get_postings(self, posting_ids: Iterable[UUID]) -> list[PostingRecord]: ...

    async def find_postings(
        self,
        account_id: UUID | None = None,
        *,
        date_range: DateRange | None = None,
        reconciled: bool | None = None,
        cleared: bool | None = None,
        reconcile_session_id: UUID | None = None,
        include_void: bool = False,
    ) -> list[PostingRecord]: ...

    async def update_posting_flags(self, posting_ids: Iterable[UUID], flags: PostingFlags) -> int: ...

    async def create_transaction(self, entry: NewJournalEntry) -> UUID: ...

    async def delete_transaction(self, entry_id: UUID) -> None: ...

    async def create_session(
        self,
        *,
        account_id: UUID,
        statement_range: DateRange,
        statement_start_balance: Decimal,
        statement_end_balance: Decimal,
        notes: str | None = None,
    ) -> SessionRecord: ...

    async def get_session(self, session_id: UUID) -> SessionRecord | None: ...

    async def list_sessions(self, account_id: UUID | None = None) -> list[SessionRecord]: ...

    async def update_session(self, session_id: UUID, **changes: Any) -> SessionRecord: ...

    async def delete_session(self, session_id: UUID) -> None: ...


def validate_balanced(postings: Sequence[NewPosting]) -> None:
    """
    Validate that postings describe a complete double entry.

    Raises:
        UnbalancedEntryError: If fewer than 2 postings or the amounts don't sum to zero
    """
    if len(postings) < 2:
        raise UnbalancedEntryError("Journal entry must have at least 2 postings")

    total = sum((posting.amount for posting in postings), ZERO)
    if abs(total) >= Decimal("0.01"):
        raise UnbalancedEntryError(f"Journal entry not balanced: postings sum to {total}")


def _to_posting_record(posting: Posting, entry: JournalEntry) -> PostingRecord:
    account = posting.account
    return PostingRecord(
        id=posting.id,
        journal_entry_id=posting.journal_entry_id,
        account_id=posting.account_id,
        amount=Decimal(posting.amount),
        entry_date=entry.entry_date,
        cleared=posting.cleared,
        reconciled=posting.reconciled,
        reconcile_session_id=posting.reconcile_session_id,
        cleared_before_reconcile=posting.cleared_before_reconcile,
        account_name=account.name if account else "",
        account_kind=account.kind if account else AccountKind.TRANSFER,
        voided=entry.status == JournalEntryStatus.VOID,
    )


def _to_ledger_entry(entry: JournalEntry) -> LedgerEntry:
    return LedgerEntry(
        id=entry.id,
        date=entry.entry_date,
        payee=entry.payee,
        postings=tuple(_to_posting_record(posting, entry) for posting in entry.postings),
        metadata=dict(entry.entry_metadata or {}),
    )


def _to_session_record(session: ReconciliationSession) -> SessionRecord:
    return SessionRecord(
        id=session.id,
        account_id=session.account_id,
        statement_start=session.statement_start,
        statement_end=session.statement_end,
        statement_start_balance=Decimal(session.statement_start_balance),
        statement_end_balance=Decimal(session.statement_end_balance),
        notes=session.notes,
        locked=session.locked,
        created_at=session.created_at,
    )


class SqlLedgerStore:
    """LedgerStore backed by an async SQLAlchemy session.

    The store flushes but never commits; the request owner commits.
    Each ``atomic()`` block runs in a SAVEPOINT so a failed logical
    operation leaves no partial writes behind.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        try:
            async with self._db.begin_nested():
                yield
        except SQLAlchemyError as exc:
            raise LedgerStoreError(f"Ledger update failed: {exc}") from exc

    async def get_account(self, account_id: UUID) -> AccountRecord | None:
        account = await self._db.get(Account, account_id)
        if account is None:
            return None
        return AccountRecord(
            id=account.id,
            name=account.name,
            kind=account.kind,
            opening_balance=Decimal(account.opening_balance),
        )

    async def find_ledger_entries(
        self, account_id: UUID, date_range: DateRange | None = None
    ) -> list[LedgerEntry]:
        query = (
            select(JournalEntry)
            .where(JournalEntry.postings.any(Posting.account_id == account_id))
            .where(JournalEntry.status != JournalEntryStatus.VOID)
            .options(selectinload(JournalEntry.postings).selectinload(Posting.account))
            .order_by(JournalEntry.entry_date, JournalEntry.created_at)
            .execution_options(populate_existing=True)
        )
        if date_range and date_range.start:
            query = query.where(JournalEntry.entry_date >= date_range.start)
        if date_range and date_range.end:
            query = query.where(JournalEntry.entry_date <= date_range.end)

        result = await self._db.execute(query)
        return [_to_ledger_entry(entry) for entry in result.scalars().all()]

    async def get_ledger_entries(self, entry_ids: Iterable[UUID]) -> list[LedgerEntry]:
        ids = list(entry_ids)
        if not ids:
            return []
        result = await self._db.execute(
            select(JournalEntry)
            .where(JournalEntry.id.in_(ids))
            .options(selectinload(JournalEntry.postings).selectinload(Posting.account))
            .execution_options(populate_existing=True)
        )
        return [_to_ledger_entry(entry) for entry in result.scalars().all()]

    def _posting_query(self):
        return (
            select(Posting)
            .join(JournalEntry, Posting.journal_entry_id == JournalEntry.id)
            .options(joinedload(Posting.account), joinedload(Posting.journal_entry))
            .order_by(JournalEntry.entry_date, JournalEntry.created_at)
            .execution_options(populate_existing=True)
        )

    async def get_postings(self, posting_ids: Iterable[UUID]) -> list[PostingRecord]:
        ids = list(posting_ids)
        if not ids:
            return []
        result = await self._db.execute(self._posting_query().where(Posting.id.in_(ids)))
        return [
            _to_posting_record(posting, posting.journal_entry)
            for posting in result.scalars().all()
        ]

    async def find_postings(
        self,
        account_id: UUID | None = None,
        *,
        date_range: DateRange | None = None,
        reconciled: bool | None = None,
        cleared: bool | None = None,
        reconcile_session_id: UUID | None = None,
        include_void: bool = False,
    ) -> list[PostingRecord]:
        query = self._posting_query()
        if not include_void:
            query = query.where(JournalEntry.status != JournalEntryStatus.VOID)
        if account_id is not None:
            query = query.where(Posting.account_id == account_id)
        if date_range and date_range.start:
            query = query.where(JournalEntry.entry_date >= date_range.start)
        if date_range and date_range.end:
            query = query.where(JournalEntry.entry_date <= date_range.end)
        if reconciled is not None:
            query = query.where(Posting.reconciled == reconciled)
        if cleared is not None:
            query = query.where(Posting.cleared == cleared)
        if reconcile_session_id is not None:
            query = query.where(Posting.reconcile_session_id == reconcile_session_id)

        result = await self._db.execute(query)
        return [
            _to_posting_record(posting, posting.journal_entry)
            for posting in result.scalars().all()
        ]

    async def update_posting_flags(self, posting_ids: Iterable[UUID], flags: PostingFlags) -> int:
        ids = list(posting_ids)
        if not ids:
            return 0
        result = await self._db.execute(
            update(Posting)
            .where(Posting.id.in_(ids))
            .values(
                cleared=flags.cleared,
                reconciled=flags.reconciled,
                reconcile_session_id=flags.reconcile_session_id,
                cleared_before_reconcile=flags.cleared_before_reconcile,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def create_transaction(self, entry: NewJournalEntry) -> UUID:
        validate_balanced(entry.postings)
        journal_entry = JournalEntry(
            entry_date=entry.entry_date,
            payee=entry.payee,
            memo=entry.memo,
            status=JournalEntryStatus.POSTED,
            entry_metadata=entry.metadata,
        )
        journal_entry.postings = [
            Posting(account_id=posting.account_id, amount=posting.amount, cleared=posting.cleared)
            for posting in entry.postings
        ]
        self._db.add(journal_entry)
        await self._db.flush()
        return journal_entry.id

    async def delete_transaction(self, entry_id: UUID) -> None:
        result = await self._db.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .options(selectinload(JournalEntry.postings))
        )
        journal_entry = result.scalar_one_or_none()
        if journal_entry is None:
            raise LedgerStoreError(f"Journal entry {entry_id} not found")
        await self._db.delete(journal_entry)
        await self._db.flush()

    async def create_session(
        self,
        *,
        account_id: UUID,
        statement_range: DateRange,
        statement_start_balance: Decimal,
        statement_end_balance: Decimal,
        notes: str | None = None,
    ) -> SessionRecord:
        session = ReconciliationSession(
            account_id=account_id,
            statement_start=statement_range.start,
            statement_end=statement_range.end,
            statement_start_balance=statement_start_balance,
            statement_end_balance=statement_end_balance,
            notes=notes,
            locked=False,
        )
        self._db.add(session)
        await self._db.flush()
        await self._db.refresh(session)
        return _to_session_record(session)

    async def get_session(self, session_id: UUID) -> SessionRecord | None:
        result = await self._db.execute(
            select(ReconciliationSession)
            .where(ReconciliationSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        return _to_session_record(session) if session else None

    async def list_sessions(self, account_id: UUID | None = None) -> list[SessionRecord]:
        query = select(ReconciliationSession).order_by(ReconciliationSession.created_at.desc())
        if account_id is not None:
            query = query.where(ReconciliationSession.account_id == account_id)
        result = await self._db.execute(query.execution_options(populate_existing=True))
        return [_to_session_record(session) for session in result.scalars().all()]

    async def update_session(self, session_id: UUID, **changes: Any) -> SessionRecord:
        session = await self._db.get(ReconciliationSession, session_id)
        if session is None:
            raise LedgerStoreError(f"Reconciliation session {session_id} not found")
        for key, value in changes.items():
            setattr(session, key, value)
        await self._db.flush()
        await self._db.refresh(session)
        return _to_session_record(session)

    async def delete_session(self, session_id: UUID) -> None:
        await self._db.execute(
            delete(ReconciliationSession)
            .where(ReconciliationSession.id == session_id)
            .execution_options(synchronize_session=False)
        )
        logger.debug("Reconciliation session row deleted", session_id=str(session_id))
