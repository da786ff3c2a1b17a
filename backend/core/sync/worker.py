"""
Queue Worker Loop

Pulls batches from the queue platform and hands each one to a fresh
QueueConsumer. Catalog and search clients are built per batch (see
BatchContext); the content store and the queue client live for the whole run.
"""

import logging
from typing import Optional

from backend.core.config import Settings
from backend.core.sync.consumer import BatchContext, BatchResult, QueueConsumer
from backend.core.sync.storage import ContentStore, create_content_store

logger = logging.getLogger(__name__)


async def run_batch(messages, settings: Settings, storage: Optional[ContentStore] = None) -> BatchResult:
    """Process one received batch inside its own BatchContext."""
    async with BatchContext.open(settings, storage=storage) as context:
        consumer = QueueConsumer(context, settings.reserved_directories_list)
        return await consumer.handle_batch(messages)


async def run_worker(
    queue,
    settings: Settings,
    max_batches: Optional[int] = None,
    storage: Optional[ContentStore] = None,
) -> int:
    """
    Consume notifications until max_batches batches were handled.

    Args:
        queue: SqsQueue or LocalQueue
        settings: Application settings
        max_batches: Stop after this many non-empty batches (None runs forever)
        storage: Content store to reuse (built from settings when omitted)

    Returns:
        Number of batches handled
    """
    storage = storage or create_content_store(settings)
    batches = 0

    logger.info(f"Worker started (queue={type(queue).__name__}, storage={type(storage).__name__})")
    while max_batches is None or batches < max_batches:
        messages = await queue.receive(settings.queue_batch_size)
        if not messages:
            continue

        logger.info(f"Received batch of {len(messages)} message(s)")
        await run_batch(messages, settings, storage=storage)
        batches += 1

    return batches
