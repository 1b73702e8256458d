"""Tests for model column defaults."""

from decimal import Decimal

import pytest

from bookmatch.config import settings
from bookmatch.models import Account, AccountKind, AccountType
from tests.factories import AccountFactory


class TestAccountDefaults:
    @pytest.mark.asyncio
    async def test_currency_follows_base_currency_setting(self, db, monkeypatch):
        monkeypatch.setattr(settings, "base_currency", "NZD")
        account = Account(name="Kiwi Saver", type=AccountType.ASSET)
        db.add(account)
        await db.flush()
        await db.refresh(account)

        assert account.currency == "NZD"
        assert account.kind == AccountKind.TRANSFER
        assert account.opening_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_factory_accounts_use_default_currency(self, db):
        account = await AccountFactory.create_async(db)

        assert account.currency == settings.base_currency
