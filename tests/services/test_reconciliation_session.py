"""Tests for reconciliation session lifecycle and posting flags."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from bookmatch.models import JournalEntry, JournalEntryStatus

from bookmatch.services.ledger_store import (
    AccountNotFoundError,
    DateRange,
    InvalidDateRangeError,
    SqlLedgerStore,
)
from bookmatch.services.reconciliation_session import (
    NotBalancedError,
    ReconciliationSessionManager,
    SessionLockedError,
    SessionNotFoundError,
    SessionOverlapError,
    SessionState,
)
from tests.factories import AccountFactory, CategoryFactory, create_entry, posting_on

JANUARY = DateRange(date(2025, 1, 1), date(2025, 1, 31))


@pytest.fixture
def manager(db):
    return ReconciliationSessionManager(SqlLedgerStore(db))


@pytest.fixture
def store(db):
    return SqlLedgerStore(db)


async def january_postings(db, bank, amounts, cleared=False):
    """One entry per amount on ``bank``, dated through January; returns bank postings."""
    other = await CategoryFactory.create_async(db)
    postings = []
    for day, amount in enumerate(amounts, start=5):
        entry = await create_entry(
            db,
            bank,
            other,
            Decimal(amount),
            entry_date=date(2025, 1, day),
            payee=f"Payee {day}",
            cleared=cleared,
        )
        postings.append(posting_on(entry, bank))
    return postings


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_balanced_after_reconciling(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-50.00", "-40.00", "-30.00"])
        session_id = await manager.start_reconciliation(
            bank.id, JANUARY, Decimal("1000.00"), Decimal("880.00")
        )

        updated = await manager.reconcile_postings(session_id, [p.id for p in postings])
        status = await manager.get_reconciliation_status(session_id)

        assert updated == 3
        assert status.reconciled_amount == Decimal("-120.00")
        assert status.expected_end_balance == Decimal("880.00")
        assert status.is_balanced is True
        assert status.state == SessionState.BALANCED
        assert status.reconciled_count == 3
        assert status.unreconciled_count == 0

    @pytest.mark.asyncio
    async def test_difference_when_statement_disagrees(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-50.00", "-40.00", "-30.00"])
        session_id = await manager.start_reconciliation(
            bank.id, JANUARY, Decimal("1000.00"), Decimal("880.00")
        )
        await manager.reconcile_postings(session_id, [p.id for p in postings])

        await manager.update_session(session_id, end_balance=Decimal("900.00"))
        status = await manager.get_reconciliation_status(session_id)

        assert status.is_balanced is False
        assert status.difference == Decimal("-20.00")
        assert status.state == SessionState.OPEN

    @pytest.mark.asyncio
    async def test_lock_requires_balance(self, db, manager):
        bank = await AccountFactory.create_async(db)
        session_id = await manager.start_reconciliation(
            bank.id, JANUARY, Decimal("100.00"), Decimal("90.00")
        )

        with pytest.raises(NotBalancedError) as exc_info:
            await manager.lock_session(session_id)

        assert exc_info.value.difference == Decimal("10.00")
        assert (await manager.get_session(session_id)).locked is False

    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-10.00"])
        session_id = await manager.start_reconciliation(
            bank.id, JANUARY, Decimal("100.00"), Decimal("90.00")
        )
        await manager.reconcile_postings(session_id, [postings[0].id])

        locked = await manager.lock_session(session_id)
        assert locked.state == SessionState.LOCKED
        assert (await manager.lock_session(session_id)).state == SessionState.LOCKED

        with pytest.raises(SessionLockedError):
            await manager.unreconcile_postings(session_id, [postings[0].id])
        with pytest.raises(SessionLockedError):
            await manager.reconcile_postings(session_id, [postings[0].id])
        with pytest.raises(SessionLockedError):
            await manager.update_session(session_id, notes="too late")
        with pytest.raises(SessionLockedError):
            await manager.delete_session(session_id)

        unlocked = await manager.unlock_session(session_id)
        assert unlocked.state == SessionState.BALANCED
        assert await manager.unreconcile_postings(session_id, [postings[0].id]) == 1

    @pytest.mark.asyncio
    async def test_start_rejects_unknown_account(self, manager):
        with pytest.raises(AccountNotFoundError):
            await manager.start_reconciliation(uuid4(), JANUARY, Decimal("0"), Decimal("0"))

    @pytest.mark.asyncio
    async def test_start_rejects_open_ended_period(self, db, manager):
        bank = await AccountFactory.create_async(db)
        with pytest.raises(InvalidDateRangeError):
            await manager.start_reconciliation(
                bank.id, DateRange(start=date(2025, 1, 1)), Decimal("0"), Decimal("0")
            )

    def test_reversed_period_is_rejected(self):
        with pytest.raises(InvalidDateRangeError):
            DateRange(date(2025, 2, 1), date(2025, 1, 1))

    @pytest.mark.asyncio
    async def test_overlapping_open_sessions_are_rejected(self, db, manager):
        bank = await AccountFactory.create_async(db)
        await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))

        with pytest.raises(SessionOverlapError):
            await manager.start_reconciliation(
                bank.id, DateRange(date(2025, 1, 31), date(2025, 2, 28)), Decimal("0"), Decimal("0")
            )

        february = await manager.start_reconciliation(
            bank.id, DateRange(date(2025, 2, 1), date(2025, 2, 28)), Decimal("0"), Decimal("0")
        )
        assert february is not None

    @pytest.mark.asyncio
    async def test_locked_session_does_not_block_new_period(self, db, manager):
        bank = await AccountFactory.create_async(db)
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))
        await manager.lock_session(session_id)

        other_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))

        assert other_id != session_id

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            await manager.get_reconciliation_status(uuid4())

    @pytest.mark.asyncio
    async def test_list_sessions_by_account(self, db, manager):
        bank = await AccountFactory.create_async(db)
        card = await AccountFactory.create_async(db)
        await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))
        await manager.start_reconciliation(card.id, JANUARY, Decimal("0"), Decimal("0"))

        assert len(await manager.list_sessions(bank.id)) == 1
        assert len(await manager.list_sessions()) == 2


class TestPostingFlags:
    @pytest.mark.asyncio
    async def test_unreconcile_restores_cleared_flag(self, db, manager, store):
        bank = await AccountFactory.create_async(db)
        cleared = await january_postings(db, bank, ["-5.00"], cleared=True)
        uncleared = await january_postings(db, bank, ["-7.00"], cleared=False)
        ids = [cleared[0].id, uncleared[0].id]
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-12.00"))

        await manager.reconcile_postings(session_id, ids)
        after_reconcile = {p.id: p for p in await store.get_postings(ids)}
        assert all(p.reconciled and p.cleared for p in after_reconcile.values())
        assert all(p.reconcile_session_id == session_id for p in after_reconcile.values())

        await manager.unreconcile_postings(session_id, ids)
        restored = {p.id: p for p in await store.get_postings(ids)}
        assert restored[cleared[0].id].cleared is True
        assert restored[uncleared[0].id].cleared is False
        assert not any(p.reconciled for p in restored.values())
        assert all(p.reconcile_session_id is None for p in restored.values())

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-5.00"])
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-5.00"))

        assert await manager.reconcile_postings(session_id, [postings[0].id]) == 1
        assert await manager.reconcile_postings(session_id, [postings[0].id]) == 0
        assert (await manager.get_reconciliation_status(session_id)).reconciled_count == 1

    @pytest.mark.asyncio
    async def test_postings_from_other_accounts_are_skipped(self, db, manager, store):
        bank = await AccountFactory.create_async(db)
        card = await AccountFactory.create_async(db)
        foreign = await january_postings(db, card, ["-9.00"])
        missing_id = uuid4()
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))

        updated = await manager.reconcile_postings(session_id, [foreign[0].id, missing_id])

        assert updated == 0
        assert (await store.get_postings([foreign[0].id]))[0].reconciled is False

    @pytest.mark.asyncio
    async def test_posting_reconciled_elsewhere_is_not_stolen(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-5.00"])
        first = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-5.00"))
        await manager.reconcile_postings(first, [postings[0].id])
        await manager.lock_session(first)
        second = await manager.start_reconciliation(
            bank.id, DateRange(date(2025, 1, 1), date(2025, 1, 15)), Decimal("0"), Decimal("-5.00")
        )

        assert await manager.reconcile_postings(second, [postings[0].id]) == 0
        assert await manager.unreconcile_postings(second, [postings[0].id]) == 0
        assert (await manager.get_reconciliation_status(second)).reconciled_count == 0

    @pytest.mark.asyncio
    async def test_delete_session_unreconciles_postings(self, db, manager, store):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-5.00", "-6.00"], cleared=True)
        ids = [p.id for p in postings]
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-11.00"))
        await manager.reconcile_postings(session_id, ids)

        await manager.delete_session(session_id)

        with pytest.raises(SessionNotFoundError):
            await manager.get_session(session_id)
        released = await store.get_postings(ids)
        assert not any(p.reconciled for p in released)
        assert all(p.cleared for p in released)
        assert all(p.reconcile_session_id is None for p in released)

    @pytest.mark.asyncio
    async def test_postings_on_void_entries_are_skipped(self, db, manager, store):
        bank = await AccountFactory.create_async(db)
        other = await CategoryFactory.create_async(db)
        voided = await create_entry(
            db, bank, other, Decimal("-5.00"), entry_date=date(2025, 1, 5), status=JournalEntryStatus.VOID
        )
        posting_id = posting_on(voided, bank).id
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("0"))

        assert await manager.reconcile_postings(session_id, [posting_id]) == 0
        (posting,) = await store.get_postings([posting_id])
        assert posting.voided is True
        assert posting.reconciled is False

    @pytest.mark.asyncio
    async def test_delete_session_releases_postings_voided_after_reconcile(self, db, manager, store):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-5.00"], cleared=False)
        posting_id = postings[0].id
        entry_id = postings[0].journal_entry_id
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-5.00"))
        assert await manager.reconcile_postings(session_id, [posting_id]) == 1
        await db.execute(
            update(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .values(status=JournalEntryStatus.VOID)
            .execution_options(synchronize_session=False)
        )

        await manager.delete_session(session_id)

        (posting,) = await store.get_postings([posting_id])
        assert posting.voided is True
        assert posting.reconciled is False
        assert posting.cleared is False
        assert posting.reconcile_session_id is None


class TestAccountHelpers:
    @pytest.mark.asyncio
    async def test_unreconciled_postings(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-1.00", "-2.00", "-3.00"])
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-1.00"))
        await manager.reconcile_postings(session_id, [postings[0].id])

        remaining = await manager.get_unreconciled_postings(bank.id)

        assert {p.id for p in remaining} == {postings[1].id, postings[2].id}
        narrowed = await manager.get_unreconciled_postings(
            bank.id, DateRange(date(2025, 1, 7), date(2025, 1, 31))
        )
        assert [p.id for p in narrowed] == [postings[2].id]

    @pytest.mark.asyncio
    async def test_suggest_cleared_postings(self, db, manager, store):
        bank = await AccountFactory.create_async(db, opening_balance=Decimal("500.00"))
        reconciled = await january_postings(db, bank, ["-100.00"])
        session_id = await manager.start_reconciliation(
            bank.id, DateRange(date(2024, 12, 1), date(2025, 1, 5)), Decimal("500.00"), Decimal("400.00")
        )
        await manager.reconcile_postings(session_id, [reconciled[0].id])
        await manager.lock_session(session_id)
        other = await CategoryFactory.create_async(db)
        cleared = await create_entry(
            db, bank, other, Decimal("-25.00"), entry_date=date(2025, 1, 20), cleared=True
        )
        cleared_id = posting_on(cleared, bank).id
        await create_entry(db, bank, other, Decimal("-60.00"), entry_date=date(2025, 1, 21), cleared=False)
        await create_entry(db, bank, other, Decimal("-9.00"), entry_date=date(2025, 2, 3), cleared=True)

        suggestion = await manager.suggest_cleared_postings(bank.id, date(2025, 1, 31), Decimal("375.00"))

        assert suggestion.posting_ids == [cleared_id]
        assert suggestion.expected_end_balance == Decimal("375.00")
        assert suggestion.difference == Decimal("0.00")
        # Read-only: nothing was marked.
        assert (await store.get_postings(suggestion.posting_ids))[0].reconciled is False

    @pytest.mark.asyncio
    async def test_account_summary(self, db, manager):
        bank = await AccountFactory.create_async(db)
        postings = await january_postings(db, bank, ["-10.00", "-15.00"])
        session_id = await manager.start_reconciliation(bank.id, JANUARY, Decimal("0"), Decimal("-10.00"))
        await manager.reconcile_postings(session_id, [postings[0].id])

        before_lock = await manager.get_account_reconciliation_summary(bank.id)
        assert before_lock.last_reconciled is None

        await manager.lock_session(session_id)
        summary = await manager.get_account_reconciliation_summary(bank.id)

        assert summary.last_reconciled == date(2025, 1, 31)
        assert summary.unreconciled_count == 1
        assert summary.unreconciled_amount == Decimal("-15.00")

    @pytest.mark.asyncio
    async def test_account_helpers_require_account(self, manager):
        with pytest.raises(AccountNotFoundError):
            await manager.get_account_reconciliation_summary(uuid4())
        with pytest.raises(AccountNotFoundError):
            await manager.suggest_cleared_postings(uuid4(), date(2025, 1, 31), Decimal("0"))
