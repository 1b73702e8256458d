"""Memorized payee rule models."""

import enum
from uuid import UUID

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bookmatch.database import Base
from bookmatch.models.base import TimestampMixin, UUIDMixin


class RuleMatchType(str, enum.Enum):
    """How a rule's match value is tested against a description."""

    EXACT = "EXACT"
    CONTAINS = "CONTAINS"
    REGEX = "REGEX"


class MemorizedRule(Base, UUIDMixin, TimestampMixin):
    """Rule that rewrites an imported bank description into a ledger payee."""

    __tablename__ = "memorized_rules"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    match_type: Mapped[RuleMatchType] = mapped_column(
        Enum(RuleMatchType, name="rule_match_type_enum"),
        nullable=False,
        default=RuleMatchType.CONTAINS,
    )
    match_value: Mapped[str] = mapped_column(String(500), nullable=False)
    default_payee: Mapped[str | None] = mapped_column(String(500), nullable=True)
    default_account_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    apply_on_import: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    apply_on_manual_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
