"""
Blob Repository

Catalog lookups and sync-status transitions for Blob rows.
Follows the same patterns as DocumentRepository for consistency, but every
call runs in its own short session: one batch shares a session factory
across concurrently running tasks, and an AsyncSession must never be used
by two tasks at once.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import func

from backend.core.database.models import Blob, SyncStatus
from backend.core.sync.errors import SyncError

logger = logging.getLogger(__name__)


class DocumentNotFoundError(SyncError):
    """No Blob row exists for (siteId, path)."""
    pass


def _sanitize_text(text: Optional[str]) -> Optional[str]:
    """
    Remove null characters from text that cause PostgreSQL errors.

    PostgreSQL cannot store \u0000 in TEXT or JSONB values.
    """
    if text is None:
        return None
    return text.replace('\x00', '')


def _sanitize_json(value: Any) -> Any:
    """Recursively strip null characters from strings in a JSON value."""
    if isinstance(value, str):
        return _sanitize_text(value)
    if isinstance(value, dict):
        return {_sanitize_text(str(k)): _sanitize_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_json(v) for v in value]
    return value


def normalize_permalink(permalink: Any) -> Optional[str]:
    """
    Strip leading and trailing slashes from a permalink.

    Returns None for a missing or empty permalink (or one made only of slashes).
    """
    if permalink is None:
        return None
    normalized = str(permalink).strip().strip("/")
    return normalized or None


class BlobRepository:
    """
    Repository for Blob catalog operations.

    Handles:
    - Resolving the newest Blob for a site path
    - Sync state transitions (PROCESSING, SUCCESS, ERROR)
    - Deleting unpublished Blobs
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, blob_id: str) -> Optional[Blob]:
        """Get Blob by ID."""
        async with self.session_factory() as session:
            return await session.get(Blob, blob_id)

    async def find_latest_id_by_path(self, site_id: str, path: str) -> str:
        """
        Get the ID of the most recently created Blob for a site path.

        Raises:
            DocumentNotFoundError: If the site has no Blob at that path
        """
        stmt = (
            select(Blob.id)
            .where(Blob.site_id == site_id, Blob.path == path)
            .order_by(Blob.created_at.desc())
            .limit(1)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            blob_id = result.scalar_one_or_none()

        if blob_id is None:
            raise DocumentNotFoundError(f"No blob found for path: {path}")
        return blob_id

    async def _update(self, blob_id: str, **values) -> None:
        stmt = (
            update(Blob)
            .where(Blob.id == blob_id)
            .values(updated_at=func.now(), **values)
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def mark_processing(self, blob_id: str) -> None:
        """Claim a Blob before its content is fetched."""
        await self._update(blob_id, sync_status=SyncStatus.PROCESSING.value)
        logger.debug(f"Marked blob {blob_id} as PROCESSING")

    async def mark_success(
        self,
        blob_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        permalink: Optional[str] = None,
    ) -> None:
        """
        Record a successful sync and clear any previous error.

        Args:
            blob_id: Blob ID
            metadata: Extracted metadata. When None (non-markdown files) the
                stored metadata and permalink are left untouched.
            permalink: Normalized permalink, written together with metadata
        """
        values: Dict[str, Any] = {
            "sync_status": SyncStatus.SUCCESS.value,
            "sync_error": None,
        }
        if metadata is not None:
            values["blob_metadata"] = _sanitize_json(metadata)
            values["permalink"] = _sanitize_text(permalink)

        await self._update(blob_id, **values)
        logger.info(f"Marked blob {blob_id} as SUCCESS")

    async def mark_error(self, blob_id: str, error_message: str) -> None:
        """Record a failed sync. Metadata is left as it was."""
        await self._update(
            blob_id,
            sync_status=SyncStatus.ERROR.value,
            sync_error=_sanitize_text(error_message),
        )
        logger.info(f"Marked blob {blob_id} as ERROR: {error_message}")

    async def delete_document(self, blob_id: str) -> None:
        """Delete a Blob row. Deleting a missing row is a no-op."""
        async with self.session_factory() as session:
            await session.execute(delete(Blob).where(Blob.id == blob_id))
            await session.commit()
        logger.info(f"Deleted blob {blob_id} from catalog")
