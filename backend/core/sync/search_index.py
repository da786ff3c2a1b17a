"""
Search Index

Best-effort maintenance of the Typesense full-text index. One collection per
site, one search document per Blob. The index is a derived view that can be
rebuilt from the catalog and the bucket at any time, so failures here are
logged and swallowed: they must never fail a catalog update or block a
deletion.

Expected misses (deleting a document that is not indexed) are logged at
INFO; real failures are logged at ERROR with structured fields so they can
be alerted on separately.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from backend.core.config import Settings

logger = logging.getLogger(__name__)


def _epoch_seconds(value: Any) -> Optional[int]:
    """Whole seconds since epoch for an ISO date string, or None if unparseable."""
    if not value:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    try:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def build_search_document(
    blob_id: str,
    path: str,
    body: str,
    metadata: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Project a processed Blob into its search document.

    Args:
        blob_id: Blob ID (becomes the document id)
        path: Repository-relative path
        body: Markdown body without frontmatter
        metadata: Extracted metadata

    Returns:
        Dict with id, title, content, path, description, authors, date
    """
    return {
        "id": str(blob_id),
        "title": metadata.get("title"),
        "content": body,
        "path": path,
        "description": metadata.get("description"),
        "authors": metadata.get("authors"),
        "date": _epoch_seconds(metadata.get("date")),
    }


class SearchIndexer:
    """
    Typesense client limited to upsert and delete of single documents.

    Wraps an httpx.AsyncClient whose base_url and API key header point at
    the Typesense node. Both operations return True on success and never raise.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @staticmethod
    def create_client(settings: Settings) -> httpx.AsyncClient:
        """HTTP client configured for the Typesense node in settings."""
        return httpx.AsyncClient(
            base_url=settings.typesense_url,
            headers={"X-TYPESENSE-API-KEY": settings.typesense_api_key or ""},
            timeout=httpx.Timeout(10.0, connect=settings.typesense_timeout_seconds),
        )

    async def upsert(self, collection: str, document: Dict[str, Any]) -> bool:
        """
        Create or replace a search document.

        Args:
            collection: Collection name (the site ID)
            document: Search document (see build_search_document)
        """
        url = f"/collections/{quote(collection, safe='')}/documents"
        try:
            resp = await self.client.post(url, params={"action": "upsert"}, json=document)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"Failed indexing document: {collection} - {document.get('path')}: {e}",
                extra={
                    "index_operation": "upsert",
                    "collection": collection,
                    "document_id": document.get("id"),
                },
            )
            return False
        except Exception as e:
            # Bugs (e.g. unserializable metadata) must not fail the sync either
            logger.error(
                f"Unexpected error indexing document: {collection} - {document.get('path')}: {e}",
                exc_info=True,
                extra={
                    "index_operation": "upsert",
                    "collection": collection,
                    "document_id": document.get("id"),
                },
            )
            return False

        logger.info(f"Successfully indexed document: {collection} - {document.get('path')}")
        return True

    async def remove(self, collection: str, document_id: str) -> bool:
        """
        Delete a search document.

        A document that is not in the index is an expected miss, not a failure.
        """
        url = f"/collections/{quote(collection, safe='')}/documents/{quote(str(document_id), safe='')}"
        try:
            resp = await self.client.delete(url)
            if resp.status_code == 404:
                logger.info(f"Document not in search index: {collection} - {document_id}")
                return True
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"Failed removing document from index: {collection} - {document_id}: {e}",
                extra={
                    "index_operation": "remove",
                    "collection": collection,
                    "document_id": str(document_id),
                },
            )
            return False
        except Exception as e:
            logger.error(
                f"Unexpected error removing document from index: {collection} - {document_id}: {e}",
                exc_info=True,
                extra={
                    "index_operation": "remove",
                    "collection": collection,
                    "document_id": str(document_id),
                },
            )
            return False

        logger.info(f"Removed document from search index: {collection} - {document_id}")
        return True
