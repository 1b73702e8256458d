"""Test fixtures and configuration."""

import logging
import os
import sys

# Point the application at the test database before bookmatch is imported.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ENVIRONMENT"] = "testing"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import structlog  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from bookmatch import models  # noqa: E402, F401
from bookmatch.database import Base, get_db  # noqa: E402
from bookmatch.logger import get_logger  # noqa: E402
from bookmatch.services import reconciliation as reconciliation_service  # noqa: E402

logger = get_logger(__name__)


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


# --- Matching config isolation ---
@pytest.fixture(autouse=True)
def reset_matching_config(monkeypatch):
    """Drop the cached matching config so env overrides never leak between tests."""
    for name in (
        "RECONCILIATION_ACCEPTANCE_FLOOR",
        "RECONCILIATION_EXACT_THRESHOLD",
        "RECONCILIATION_PROBABLE_THRESHOLD",
        "RECONCILIATION_POSSIBLE_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(reconciliation_service, "_config_cache", None)
    yield
    monkeypatch.setattr(reconciliation_service, "_config_cache", None)


def _enable_sqlite_savepoints(engine) -> None:
    """Let pysqlite/aiosqlite emit BEGIN and SAVEPOINT the way SQLAlchemy expects."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Disable the driver's own BEGIN handling; also enforce foreign keys.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test engine with a fresh schema.

    In-memory SQLite needs a StaticPool so every checkout sees the same
    database. Other URLs (TEST_DATABASE_URL) run without pooling.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine):
    """Create a test database session with transaction rollback for isolation.

    The session joins an outer transaction through SAVEPOINTs, so a
    ``commit()`` from code under test only releases a savepoint and the
    outer rollback still discards everything.
    """
    connection = await db_engine.connect()
    transaction = await connection.begin()
    session = AsyncSession(
        bind=connection,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    yield session

    await session.close()
    await transaction.rollback()
    await connection.close()


@pytest_asyncio.fixture(scope="function")
async def client(db):
    """Create async test client whose requests share the test session."""
    from bookmatch.main import app

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client_instance:
        yield client_instance
    app.dependency_overrides.pop(get_db, None)
