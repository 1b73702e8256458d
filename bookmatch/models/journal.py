"""Journal entry models for double-entry bookkeeping."""

from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    DECIMAL,
    JSON,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookmatch.database import Base
from bookmatch.models.base import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from bookmatch.models.account import Account
    from bookmatch.models.reconciliation import ReconciliationSession


class JournalEntryStatus(str, enum.Enum):
    """Status of a journal entry."""

    POSTED = "posted"
    VOID = "void"


class JournalEntry(Base, UUIDMixin, TimestampMixin):
    """
    Journal entry header for one bookkeeping transaction.

    The signed amounts of an entry's postings sum to zero.
    """

    __tablename__ = "journal_entries"

    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    payee: Mapped[str] = mapped_column(String(500), nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[JournalEntryStatus] = mapped_column(
        Enum(
            JournalEntryStatus,
            name="journal_entry_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=JournalEntryStatus.POSTED,
        index=True,
    )
    # Import-time details such as the bank description before a memorized
    # rule rewrote the payee ("original_description").
    entry_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    postings: Mapped[list[Posting]] = relationship(
        "Posting", back_populates="journal_entry", cascade="all, delete-orphan"
    )


class Posting(Base, UUIDMixin):
    """
    One account-and-amount line of a journal entry.

    Amounts are signed from the account's point of view: money leaving a
    bank account is negative, money arriving is positive.
    """

    __tablename__ = "postings"

    journal_entry_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    cleared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconcile_session_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reconciliation_sessions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Cleared flag as it was before a session reconciled this posting.
    cleared_before_reconcile: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    journal_entry: Mapped[JournalEntry] = relationship("JournalEntry", back_populates="postings")
    account: Mapped[Account] = relationship("Account", back_populates="postings")
    reconcile_session: Mapped[ReconciliationSession | None] = relationship(
        "ReconciliationSession", back_populates="postings"
    )
