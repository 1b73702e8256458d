"""Initial schema for bookmatch."""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    account_type_enum = sa.Enum(
        "ASSET",
        "LIABILITY",
        "EQUITY",
        "INCOME",
        "EXPENSE",
        name="account_type_enum",
    )
    account_kind_enum = sa.Enum("TRANSFER", "CATEGORY", name="account_kind_enum")
    journal_entry_status_enum = sa.Enum("posted", "void", name="journal_entry_status_enum")
    rule_match_type_enum = sa.Enum("EXACT", "CONTAINS", "REGEX", name="rule_match_type_enum")

    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", account_type_enum, nullable=False),
        sa.Column("kind", account_kind_enum, nullable=False),
        sa.Column("opening_balance", sa.DECIMAL(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("archived", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "reconciliation_sessions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("account_id", sa.Uuid(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("statement_start", sa.Date(), nullable=False),
        sa.Column("statement_end", sa.Date(), nullable=False),
        sa.Column("statement_start_balance", sa.DECIMAL(18, 2), nullable=False),
        sa.Column("statement_end_balance", sa.DECIMAL(18, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("locked", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_reconciliation_sessions_account_id", "reconciliation_sessions", ["account_id"]
    )

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("payee", sa.String(length=500), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("status", journal_entry_status_enum, nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_journal_entries_entry_date", "journal_entries", ["entry_date"])
    op.create_index("ix_journal_entries_status", "journal_entries", ["status"])

    op.create_table(
        "postings",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "journal_entry_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("journal_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("account_id", sa.Uuid(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", sa.DECIMAL(18, 2), nullable=False),
        sa.Column("cleared", sa.Boolean(), nullable=False),
        sa.Column("reconciled", sa.Boolean(), nullable=False),
        sa.Column(
            "reconcile_session_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("reconciliation_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("cleared_before_reconcile", sa.Boolean(), nullable=True),
    )
    op.create_index("ix_postings_journal_entry_id", "postings", ["journal_entry_id"])
    op.create_index("ix_postings_account_id", "postings", ["account_id"])
    op.create_index("ix_postings_reconcile_session_id", "postings", ["reconcile_session_id"])

    op.create_table(
        "memorized_rules",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("match_type", rule_match_type_enum, nullable=False),
        sa.Column("match_value", sa.String(length=500), nullable=False),
        sa.Column("default_payee", sa.String(length=500), nullable=True),
        sa.Column(
            "default_account_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("apply_on_import", sa.Boolean(), nullable=False),
        sa.Column("apply_on_manual_entry", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("memorized_rules")
    op.drop_index("ix_postings_reconcile_session_id", table_name="postings")
    op.drop_index("ix_postings_account_id", table_name="postings")
    op.drop_index("ix_postings_journal_entry_id", table_name="postings")
    op.drop_table("postings")
    op.drop_index("ix_journal_entries_status", table_name="journal_entries")
    op.drop_index("ix_journal_entries_entry_date", table_name="journal_entries")
    op.drop_table("journal_entries")
    op.drop_index("ix_reconciliation_sessions_account_id", table_name="reconciliation_sessions")
    op.drop_table("reconciliation_sessions")
    op.drop_table("accounts")

    bind = op.get_bind()
    for enum_name in (
        "rule_match_type_enum",
        "journal_entry_status_enum",
        "account_kind_enum",
        "account_type_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
