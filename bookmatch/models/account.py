"""Account model for double-entry bookkeeping."""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DECIMAL, Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookmatch.config import settings
from bookmatch.database import Base
from bookmatch.models.base import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from bookmatch.models.journal import Posting


class AccountType(str, enum.Enum):
    """Account type classification."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AccountKind(str, enum.Enum):
    """Whether an account is a real (bank/card) account or a category bucket."""

    TRANSFER = "TRANSFER"
    CATEGORY = "CATEGORY"


class Account(Base, UUIDMixin, TimestampMixin):
    """
    Account represents a ledger account in the chart of accounts.

    TRANSFER accounts mirror a real bank or card account and are the ones
    reconciled against statements. CATEGORY accounts are income and expense
    buckets.
    """

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, name="account_type_enum"), nullable=False
    )
    kind: Mapped[AccountKind] = mapped_column(
        Enum(AccountKind, name="account_kind_enum"),
        nullable=False,
        default=AccountKind.TRANSFER,
    )
    opening_balance: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), nullable=False, default=Decimal("0.00")
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default=lambda: settings.base_currency
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    postings: Mapped[list[Posting]] = relationship("Posting", back_populates="account")

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.kind.value})>"
