"""Pytest configuration.

This repo uses Pydantic Settings with environment-based DB config.
To keep unit tests import-safe (even when a local .env isn't present),
we set minimal test defaults here before importing the app.

Tests run against a per-test SQLite file (aiosqlite) and in-memory fakes for
the queue, data source, blob store and notifier.
"""

import os


os.environ.setdefault("APP_NAME", "Report Builder")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_PREFIX", "/api/v1")
# pydantic-settings parses List[str] from env/.env as JSON; force a safe value
# to keep tests import-safe regardless of local developer .env contents.
os.environ["CORS_ORIGINS"] = "[]"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite:///./.pytest-reports.db")
# No broker: queue code paths use the in-process transport.
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ.setdefault("REPORT_STORAGE_BACKEND", "local")
os.environ.setdefault("REPORT_NOTIFY_MODE", "log")

from typing import Any, AsyncGenerator, Mapping

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.api.deps import get_data_source, get_queue, get_storage
from app.core.database import get_db
from app.main import app
from app.models.base import Base
from app.services.report_catalog import ReportCatalog, get_report_catalog
from app.services.report_data_source import ReportDataSource
from app.services.report_errors import ReportNotFoundError
from app.services.report_notifications import NotificationSink
from app.services.report_queue import QueueEntry, QueuePolicy, QueueStats, ReportQueue
from app.services.report_storage import BlobStore, KeyHints, StoredBlob, build_report_key


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeQueue(ReportQueue):
    """Records submitted entries; optionally fails on add/stats."""

    def __init__(self) -> None:
        self.entries: list[QueueEntry] = []
        self.removed: list[str] = []
        self.fail_add = False
        self.fail_stats = False

    async def add(self, entry: QueueEntry, policy: QueuePolicy) -> None:
        if self.fail_add:
            raise ConnectionError("broker down")
        self.entries.append(entry)

    async def remove(self, entry_id: str) -> bool:
        self.removed.append(entry_id)
        return True

    async def stats(self) -> QueueStats:
        if self.fail_stats:
            raise ConnectionError("broker down")
        return QueueStats(waiting=len(self.entries))


class FakeDataSource(ReportDataSource):
    def __init__(self, rows: list[dict[str, Any]] | None = None, options: list[dict[str, Any]] | None = None):
        self.rows = rows or []
        self.options = options or []
        self.error: Exception | None = None
        self.calls: list[tuple[str, dict]] = []

    async def fetch_rows(self, report_type: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        self.calls.append((report_type, dict(filters)))
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.rows]

    async def fetch_filter_options(self, filter_id: str, scope: Mapping[str, Any]) -> list[dict[str, Any]]:
        return list(self.options)


class MemoryBlobStore(BlobStore):
    """Dict-backed blob store with an optional hook that runs during put."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.get_calls: list[str] = []
        self.deleted: list[str] = []
        self.on_put = None

    async def put(self, data: bytes, hints: KeyHints) -> StoredBlob:
        key = build_report_key(hints)
        self.blobs[key] = data
        if self.on_put is not None:
            await self.on_put(key)
        return StoredBlob(reference=key, key=key, size=len(data))

    async def get(self, key: str) -> bytes:
        self.get_calls.append(key)
        if key not in self.blobs:
            raise ReportNotFoundError("Report file not found")
        return self.blobs[key]

    async def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return self.blobs.pop(key, None) is not None

    async def health(self) -> dict[str, Any]:
        return {"healthy": True, "backend": "memory"}


class RecordingNotifier(NotificationSink):
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def notify(self, user_id: str, title: str, message: str, payload: Mapping[str, Any]) -> None:
        self.sent.append({"user_id": user_id, "title": title, "message": message, "payload": dict(payload)})


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Per-test SQLite database with all report tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}", poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def catalog() -> ReportCatalog:
    return get_report_catalog()


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Id": "u1", "X-User-Role": "STATE_DIRECTORATE", "X-Institution-Id": "inst-1"}


@pytest_asyncio.fixture
async def client(session_factory, fake_queue, blob_store, data_source) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the SQLite test database and fakes."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_queue] = lambda: fake_queue
    app.dependency_overrides[get_storage] = lambda: blob_store
    app.dependency_overrides[get_data_source] = lambda: data_source

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
