"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from bookmatch.deps import DbSession, SessionManager

    async def my_endpoint(db: DbSession, manager: SessionManager):
        ...
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bookmatch.database import get_db
from bookmatch.services.ledger_store import SqlLedgerStore
from bookmatch.services.reconciliation_session import ReconciliationSessionManager
from bookmatch.services.rules import SqlRuleLookup

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_ledger_store(db: DbSession) -> SqlLedgerStore:
    return SqlLedgerStore(db)


def get_rule_lookup(db: DbSession) -> SqlRuleLookup:
    return SqlRuleLookup(db)


Store = Annotated[SqlLedgerStore, Depends(get_ledger_store)]
Rules = Annotated[SqlRuleLookup, Depends(get_rule_lookup)]


def get_session_manager(store: Store) -> ReconciliationSessionManager:
    return ReconciliationSessionManager(store)


SessionManager = Annotated[ReconciliationSessionManager, Depends(get_session_manager)]

__all__ = ["DbSession", "Rules", "SessionManager", "Store"]
