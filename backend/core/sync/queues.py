"""
Queue Platform Adapters

The worker consumes storage notifications from a queue that owns delivery
semantics: a message that is not acknowledged comes back later. Retrying,
backoff and dead-lettering are the platform's job (an SQS redrive policy in
production), never the consumer's.

- SqsQueue: Amazon SQS (or any SQS-compatible service) via boto3
- LocalQueue: in-process asyncio queue for dev mode, with SQS-like
  redelivery of un-acknowledged messages
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

import boto3

from backend.core.config import Settings

logger = logging.getLogger(__name__)


class QueueMessage:
    """A delivered notification. Call ack() once it has been handled."""

    def __init__(
        self,
        body: Any,
        on_ack: Optional[Callable[[], Awaitable[None]]] = None,
        message_id: Optional[str] = None,
    ):
        self.body = body
        self.message_id = message_id
        self._on_ack = on_ack
        self.acked = False

    async def ack(self) -> None:
        if self.acked:
            return
        if self._on_ack is not None:
            await self._on_ack()
        self.acked = True

    def __repr__(self) -> str:
        return f"<QueueMessage(id={self.message_id}, acked={self.acked})>"


class SqsQueue:
    """
    SQS-backed notification queue.

    ack() deletes the message; anything not deleted becomes visible again
    after the visibility timeout.
    """

    def __init__(
        self,
        client,
        queue_url: str,
        wait_time_seconds: int = 20,
        visibility_timeout: int = 60,
    ):
        self.client = client
        self.queue_url = queue_url
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout = visibility_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqsQueue":
        if not settings.queue_url:
            raise ValueError("queue_url is required for the sqs queue backend")
        client = boto3.client("sqs", region_name=settings.queue_region or settings.s3_region)
        return cls(
            client,
            settings.queue_url,
            wait_time_seconds=settings.queue_wait_time_seconds,
            visibility_timeout=settings.queue_visibility_timeout,
        )

    async def receive(self, max_messages: int = 10) -> List[QueueMessage]:
        """Long-poll for up to max_messages (SQS caps this at 10)."""
        loop = asyncio.get_running_loop()
        resp = await loop.run_in_executor(
            None,
            lambda: self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=min(max_messages, 10),
                WaitTimeSeconds=self.wait_time_seconds,
                VisibilityTimeout=self.visibility_timeout,
            ),
        )
        return [self._wrap(raw) for raw in resp.get("Messages", [])]

    def _wrap(self, raw: dict) -> QueueMessage:
        receipt_handle = raw["ReceiptHandle"]

        async def delete():
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: self.client.delete_message(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=receipt_handle,
                ),
            )

        return QueueMessage(raw.get("Body"), on_ack=delete, message_id=raw.get("MessageId"))

    async def send(self, body: dict) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self.client.send_message(QueueUrl=self.queue_url, MessageBody=json.dumps(body)),
        )


@dataclass
class _Envelope:
    body: Any
    message_id: str
    receives: int = 0


class LocalQueue:
    """
    In-process queue for dev mode.

    A received message that has not been acknowledged after
    redelivery_delay seconds is queued again, up to max_receives deliveries;
    after that it is dropped with a warning (the local stand-in for a
    dead-letter queue).
    """

    def __init__(self, redelivery_delay: float = 60.0, max_receives: int = 5):
        self.redelivery_delay = redelivery_delay
        self.max_receives = max_receives
        self._queue: asyncio.Queue[_Envelope] = asyncio.Queue()
        self._counter = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalQueue":
        return cls(
            redelivery_delay=settings.queue_visibility_timeout,
            max_receives=settings.queue_max_receives,
        )

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, body: dict) -> None:
        self._counter += 1
        await self._queue.put(_Envelope(body=body, message_id=str(self._counter)))

    async def receive(self, max_messages: int = 10, wait_time: Optional[float] = None) -> List[QueueMessage]:
        """
        Wait for at least one message, then take up to max_messages.

        Returns an empty list if nothing arrives within wait_time seconds
        (None waits forever).
        """
        try:
            first = await asyncio.wait_for(self._queue.get(), timeout=wait_time)
        except asyncio.TimeoutError:
            return []

        envelopes = [first]
        while len(envelopes) < max_messages and not self._queue.empty():
            envelopes.append(self._queue.get_nowait())

        return [self._deliver(envelope) for envelope in envelopes]

    def _deliver(self, envelope: _Envelope) -> QueueMessage:
        envelope.receives += 1
        message = QueueMessage(envelope.body, message_id=envelope.message_id)
        loop = asyncio.get_running_loop()
        loop.call_later(self.redelivery_delay, self._redeliver, envelope, message)
        return message

    def _redeliver(self, envelope: _Envelope, message: QueueMessage) -> None:
        if message.acked:
            return
        if envelope.receives >= self.max_receives:
            logger.warning(
                f"Dropping message {envelope.message_id} after {envelope.receives} deliveries: {envelope.body}"
            )
            return
        logger.debug(f"Redelivering message {envelope.message_id} (delivery {envelope.receives + 1})")
        self._queue.put_nowait(envelope)


def create_queue(settings: Settings):
    """Queue adapter for this deployment (settings.queue_backend)."""
    if settings.queue_backend == "local":
        return LocalQueue.from_settings(settings)
    return SqsQueue.from_settings(settings)
