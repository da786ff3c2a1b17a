"""
Blob Processor

Runs one storage notification through the sync state machine:

    resolve blob -> PROCESSING -> fetch -> extract -> SUCCESS + index
                                                   -> (publish: false) delete
    any failure after PROCESSING -> ERROR, exception re-raised

Non-markdown files are marked SUCCESS straight away; there is nothing to
extract from them. Every status write carries values computed from content
fetched within the same call, so two concurrent runs for the same blob both
leave a consistent row behind (last write wins).
"""

import enum
import logging

from backend.core.sync.keys import build_key
from backend.core.sync.markdown import decode_markdown, extract_metadata, is_markdown_path
from backend.core.sync.repository import BlobRepository, normalize_permalink
from backend.core.sync.search_index import SearchIndexer, build_search_document
from backend.core.sync.storage import ContentStore

logger = logging.getLogger(__name__)


class ProcessOutcome(str, enum.Enum):
    """How a processed notification ended."""
    INDEXED = "indexed"                      # Metadata stored, SUCCESS
    SKIPPED_NON_MARKDOWN = "non_markdown"    # SUCCESS without fetching content
    UNPUBLISHED = "unpublished"              # publish: false, blob removed everywhere


class BlobProcessor:
    """
    Processor for syncing a single site file.

    Handles:
    - Sync state transitions on the catalog row
    - Content fetch and metadata extraction
    - Removal of files marked publish: false
    - Search index upkeep (best-effort)
    """

    def __init__(
        self,
        storage: ContentStore,
        repository: BlobRepository,
        indexer: SearchIndexer,
    ):
        self.storage = storage
        self.repository = repository
        self.indexer = indexer

    async def process(self, site_id: str, branch: str, path: str) -> ProcessOutcome:
        """
        Sync one file.

        Args:
            site_id: Owning site
            branch: Content branch
            path: Repository-relative path

        Returns:
            ProcessOutcome

        Raises:
            DocumentNotFoundError: If the catalog has no Blob for the path
            SyncError: Fetch or parse failure (the Blob is left in ERROR)
        """
        logger.debug(f"Getting blob ID for: {site_id} {path}")
        blob_id = await self.repository.find_latest_id_by_path(site_id, path)

        if not is_markdown_path(path):
            logger.info(f"Non-markdown file, marking as SUCCESS: {site_id} {path}")
            await self.repository.mark_success(blob_id)
            return ProcessOutcome.SKIPPED_NON_MARKDOWN

        await self.repository.mark_processing(blob_id)

        try:
            return await self._sync_markdown(blob_id, site_id, branch, path)
        except Exception as e:
            logger.error(f"Error processing blob {blob_id} ({site_id} {path}): {type(e).__name__}: {e}")
            try:
                await self.repository.mark_error(blob_id, str(e) or type(e).__name__)
            except Exception as status_error:
                logger.error(
                    f"Could not mark blob {blob_id} as ERROR: {status_error}",
                    exc_info=True,
                )
            raise

    async def _sync_markdown(self, blob_id: str, site_id: str, branch: str, path: str) -> ProcessOutcome:
        key = build_key(site_id, branch, path)

        logger.debug(f"Fetching content for key: {key}")
        fetched = await self.storage.fetch(key)
        markdown = decode_markdown(fetched.body)

        result = extract_metadata(markdown, path)
        metadata = result.metadata

        if metadata.get("publish") is False:
            await self._unpublish(blob_id, site_id, key)
            return ProcessOutcome.UNPUBLISHED

        permalink = normalize_permalink(metadata.get("permalink"))
        await self.repository.mark_success(blob_id, metadata, permalink)

        document = build_search_document(blob_id, path, result.body, metadata)
        await self.indexer.upsert(site_id, document)
        return ProcessOutcome.INDEXED

    async def _unpublish(self, blob_id: str, site_id: str, key: str) -> None:
        """Remove a publish: false file from storage, catalog and index."""
        logger.info(f"File has publish: false, removing {key} (blob {blob_id})")

        try:
            await self.storage.delete(key)
        except Exception as e:
            # Catalog and index removal still go ahead
            logger.error(f"Error deleting {key} from storage: {e}")

        await self.repository.delete_document(blob_id)
        await self.indexer.remove(site_id, blob_id)
