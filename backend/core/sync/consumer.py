"""
Queue Consumer

Handles a batch of storage notifications. Every message runs as its own
task; there is no ordering between messages, not even between two
notifications for the same file. A message is acknowledged only after it
was handled successfully; failed messages are left for the queue platform
to redeliver.

The clients a batch needs (storage, catalog, search) are bundled in a
BatchContext that is built once per batch and passed to every task.
"""

import asyncio
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence

from backend.core.config import Settings
from backend.core.database.connection import create_engine_for, create_session_factory
from backend.core.sync.errors import SyncError
from backend.core.sync.keys import InvalidKeyFormatError, decode_key
from backend.core.sync.pipeline import BlobProcessor
from backend.core.sync.queues import QueueMessage
from backend.core.sync.repository import BlobRepository
from backend.core.sync.search_index import SearchIndexer
from backend.core.sync.storage import ContentStore, create_content_store

logger = logging.getLogger(__name__)


@dataclass
class BatchContext:
    """Clients shared by all tasks of one batch."""
    storage: ContentStore
    repository: BlobRepository
    indexer: SearchIndexer

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        settings: Settings,
        storage: Optional[ContentStore] = None,
    ) -> AsyncIterator["BatchContext"]:
        """
        Build the batch clients and release them afterwards.

        Args:
            settings: Application settings
            storage: Content store to reuse across batches (built from
                settings when omitted)
        """
        async with AsyncExitStack() as stack:
            # Each client is released even if a later one fails to build
            engine = create_engine_for(settings)
            stack.push_async_callback(engine.dispose)
            http_client = SearchIndexer.create_client(settings)
            stack.push_async_callback(http_client.aclose)

            yield cls(
                storage=storage or create_content_store(settings),
                repository=BlobRepository(create_session_factory(engine)),
                indexer=SearchIndexer(http_client),
            )


@dataclass
class BatchResult:
    """Per-batch acknowledgement counts."""
    acked: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def _object_key(body) -> str:
    """Pull object.key out of a notification body (dict or JSON text)."""
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError:
            raise InvalidKeyFormatError(f"Notification body is not JSON: {body!r}")
    try:
        key = body["object"]["key"]
    except (KeyError, TypeError):
        raise InvalidKeyFormatError(f"Notification has no object key: {body!r}")
    if not isinstance(key, str) or not key:
        raise InvalidKeyFormatError(f"Notification has no object key: {body!r}")
    return key


class QueueConsumer:
    """Fans a batch of notifications out to the BlobProcessor."""

    def __init__(self, context: BatchContext, reserved_directories: Sequence[str] = ("_flowershow/",)):
        self.context = context
        self.reserved_directories = list(reserved_directories)
        self.processor = BlobProcessor(context.storage, context.repository, context.indexer)

    def is_reserved(self, path: str) -> bool:
        """True for files inside an internal directory (e.g. _flowershow/)."""
        return any(directory in path for directory in self.reserved_directories)

    async def handle_batch(self, messages: Sequence[QueueMessage]) -> BatchResult:
        """
        Handle all messages concurrently.

        Returns:
            BatchResult with acknowledged and failed counts
        """
        outcomes = await asyncio.gather(*(self.handle_message(m) for m in messages))

        result = BatchResult()
        for error in outcomes:
            if error is None:
                result.acked += 1
            else:
                result.failed += 1
                result.errors.append(error)
        logger.info(f"Batch done: {result.acked} acked, {result.failed} left for redelivery")
        return result

    async def handle_message(self, message: QueueMessage) -> Optional[str]:
        """
        Handle one notification.

        Returns:
            None when the message was acknowledged, otherwise the error
            message (the notification stays un-acknowledged)
        """
        raw_key = None
        try:
            raw_key = _object_key(message.body)
            key = decode_key(raw_key)
            logger.debug(f"Parsed components: {key.site_id} {key.branch} {key.path}")

            if self.is_reserved(key.path):
                logger.info(f"Skipping file inside internal directory: {key.site_id} {key.path}")
                await message.ack()
                return None

            outcome = await self.processor.process(key.site_id, key.branch, key.path)
            await message.ack()
            logger.info(f"Processed {key.site_id} {key.path}: {outcome.value}")
            return None
        except Exception as e:
            # The queue platform redelivers un-acked messages
            logger.error(
                f"Error processing message (key={raw_key}): {type(e).__name__}: {e}",
                exc_info=not isinstance(e, SyncError),
                extra={"object_key": raw_key, "error_type": type(e).__name__},
            )
            return f"{type(e).__name__}: {e}"
