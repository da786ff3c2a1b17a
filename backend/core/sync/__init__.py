"""
Markdown Sync Module

Keeps the Blob catalog and the search index in step with markdown files
uploaded to object storage. Driven by storage-change notifications from a
queue with at-least-once delivery.

- keys: notification key parsing and validation
- storage: S3 / local bucket content stores with a size ceiling
- markdown: frontmatter, title and description extraction
- repository: Blob lookups and sync status transitions
- search_index: best-effort Typesense upkeep
- pipeline: per-file state machine
- consumer: concurrent batch handling and acknowledgement
"""

from backend.core.sync.errors import SyncError
from backend.core.sync.keys import (
    ObjectKey,
    decode_key,
    InvalidKeyError,
    InvalidKeyFormatError,
    InvalidIdentifierError,
)
from backend.core.sync.storage import (
    ContentStore,
    S3ContentStore,
    LocalBucketContentStore,
    FetchedObject,
    StorageError,
    ObjectNotFoundError,
    FileTooLargeError,
    create_content_store,
)
from backend.core.sync.markdown import ExtractionResult, MarkdownParseError, extract_metadata
from backend.core.sync.repository import BlobRepository, DocumentNotFoundError, normalize_permalink
from backend.core.sync.search_index import SearchIndexer, build_search_document
from backend.core.sync.pipeline import BlobProcessor, ProcessOutcome
from backend.core.sync.consumer import BatchContext, BatchResult, QueueConsumer

__all__ = [
    "SyncError",
    "ObjectKey",
    "decode_key",
    "InvalidKeyError",
    "InvalidKeyFormatError",
    "InvalidIdentifierError",
    "ContentStore",
    "S3ContentStore",
    "LocalBucketContentStore",
    "FetchedObject",
    "StorageError",
    "ObjectNotFoundError",
    "FileTooLargeError",
    "create_content_store",
    "ExtractionResult",
    "MarkdownParseError",
    "extract_metadata",
    "BlobRepository",
    "DocumentNotFoundError",
    "normalize_permalink",
    "SearchIndexer",
    "build_search_document",
    "BlobProcessor",
    "ProcessOutcome",
    "BatchContext",
    "BatchResult",
    "QueueConsumer",
]
