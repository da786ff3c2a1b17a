"""
Storage notification endpoint (dev mode)

Accepts an S3-style event envelope (as sent by MinIO bucket notifications)
and forwards the object key to the sync queue with only its + signs turned
into spaces; percent-decoding is left to the consumer. Production deployments
receive notifications straight from the storage provider's queue.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


def get_queue(request: Request):
    """Queue the app forwards notifications to (set up in create_app)."""
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="Queue not configured")
    return queue


def first_record_key(event: Any) -> Optional[str]:
    """Records[0].s3.object.key of an S3 event, or None."""
    try:
        key = event["Records"][0]["s3"]["object"]["key"]
    except (KeyError, IndexError, TypeError):
        return None
    return key if isinstance(key, str) and key else None


@router.post("/queue")
async def enqueue_notification(request: Request, queue=Depends(get_queue)):
    """
    Forward a storage event to the sync queue.

    - 400 "Invalid JSON" if the body is not JSON
    - 400 "Bad S3 event" if the envelope has no object key
    - 200 "Queued" otherwise
    """
    try:
        event = await request.json()
    except ValueError:
        return PlainTextResponse("Invalid JSON", status_code=400)

    raw_key = first_record_key(event)
    if not raw_key:
        return PlainTextResponse("Bad S3 event", status_code=400)

    # MinIO encodes spaces as +. Percent-escapes stay; decode_key undoes them
    key = raw_key.replace("+", " ")
    await queue.send({"object": {"key": key}})
    logger.info(f"Queued notification for {key}")
    return PlainTextResponse("Queued", status_code=200)
