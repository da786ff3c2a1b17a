"""
Test setup for the sync worker.
Provides catalog (SQLite), storage and index fixtures.
"""
# Settings need DATABASE_URL at import time (backend.api.main builds the app)
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import create_async_engine

from backend.core.config import Settings
from backend.core.database.connection import create_session_factory
from backend.core.database.models import Base, Blob, SyncStatus
from backend.core.sync.repository import BlobRepository
from backend.core.sync.storage import ContentStore, FetchedObject


@pytest.fixture
def settings():
    """Settings independent of the developer's .env"""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        environment="dev",
        storage_backend="local",
        local_bucket_path="/tmp",
        queue_backend="local",
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Catalog database in a temporary SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def repository(session_factory):
    return BlobRepository(session_factory)


@pytest.fixture
def add_blob(session_factory):
    """Insert a Blob row the way the site ingestion service would."""
    async def _add(
        site_id: str = "site1",
        path: str = "articles/test.md",
        metadata: dict = None,
        sync_status: str = SyncStatus.PENDING.value,
        **fields,
    ) -> str:
        blob = Blob(
            id=fields.pop("id", uuid.uuid4().hex),
            site_id=site_id,
            path=path,
            app_path=fields.pop("app_path", path.rsplit(".", 1)[0]),
            size=fields.pop("size", 100),
            sha=fields.pop("sha", "0" * 40),
            extension=fields.pop("extension", path.rsplit(".", 1)[-1] if "." in path else None),
            blob_metadata=metadata if metadata is not None else {},
            sync_status=sync_status,
            **fields,
        )
        async with session_factory() as session:
            session.add(blob)
            await session.commit()
        return blob.id
    return _add


@pytest.fixture
def mock_storage():
    """Content store returning whatever body a test sets."""
    storage = MagicMock(spec=ContentStore)
    storage.fetch = AsyncMock()
    storage.delete = AsyncMock()

    def set_content(text: str):
        body = text.encode("utf-8")
        storage.fetch.return_value = FetchedObject(body=body, size=len(body))

    storage.set_content = set_content
    return storage


@pytest.fixture
def mock_indexer():
    indexer = MagicMock()
    indexer.upsert = AsyncMock(return_value=True)
    indexer.remove = AsyncMock(return_value=True)
    return indexer


@pytest.fixture
def sample_markdown():
    """Markdown file from the end-to-end example"""
    return (
        "---\n"
        'title: "Test Article"\n'
        'description: "A test markdown file"\n'
        "date: 2024-03-20\n"
        "authors:\n"
        "  - Jane Doe\n"
        "---\n"
        "# Heading in body\n"
        "\n"
        "Some body text.\n"
    )
