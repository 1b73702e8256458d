"""Reconciliation session models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DECIMAL, Boolean, Date, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookmatch.database import Base
from bookmatch.models.base import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from bookmatch.models.journal import Posting


class ReconciliationSession(Base, UUIDMixin, TimestampMixin):
    """A statement period being checked off against one account."""

    __tablename__ = "reconciliation_sessions"

    account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    statement_start: Mapped[date] = mapped_column(Date, nullable=False)
    statement_end: Mapped[date] = mapped_column(Date, nullable=False)
    statement_start_balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    statement_end_balance: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    postings: Mapped[list[Posting]] = relationship("Posting", back_populates="reconcile_session")
