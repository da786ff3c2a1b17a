"""
FastAPI app for the Markdown Sync Worker

Serves the liveness probe and, in dev mode, the storage-notification
adapter that feeds the sync queue. In dev mode with the local queue the
app also runs the queue worker in the background.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request as FastAPIRequest
from fastapi.responses import JSONResponse, Response
from typing import Optional
import asyncio
import logging
import os
import re
import uuid

from backend.api.routes import notifications
from backend.core.config import Settings, get_settings
from backend.core.sync.queues import LocalQueue, create_queue
from backend.core.sync.worker import run_worker

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("api.errors")


def _sanitize_error_message(message: str) -> str:
    """
    Scrub potential secrets from exception messages before logging.

    Covers database URLs with passwords and key/secret assignments.
    """
    sanitized = re.sub(
        r'(postgresql|postgres|postgresql\+asyncpg)://[^:]+:[^@]+@',
        r'\1://[USER]:[REDACTED]@',
        message,
        flags=re.IGNORECASE
    )
    sanitized = re.sub(
        r'(password|passwd|secret|token|key)["\']?\s*[=:]\s*["\']?[^"\'\s,;]+',
        r'\1=[REDACTED]',
        sanitized,
        flags=re.IGNORECASE
    )
    return sanitized


def create_app(
    settings: Optional[Settings] = None,
    queue=None,
    start_worker: bool = True,
) -> FastAPI:
    """
    Build the app.

    Args:
        settings: Application settings (default: from environment)
        queue: Queue to forward notifications to (default: built from
            settings in dev mode, none in production)
        start_worker: Run the queue worker in the background when the queue
            is a LocalQueue
    """
    settings = settings or get_settings()
    if queue is None and settings.is_dev:
        queue = create_queue(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker_task = None
        if start_worker and isinstance(queue, LocalQueue):
            worker_task = asyncio.create_task(run_worker(queue, settings))
            logger.info("Local queue worker started")
        yield
        if worker_task is not None:
            worker_task.cancel()
            try:
                await worker_task
            except asyncio.CancelledError:
                pass
            logger.info("Local queue worker stopped")

    app = FastAPI(
        title="Markdown Sync Worker",
        description="Storage notification adapter and health probe",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.queue = queue

    @app.exception_handler(Exception)
    async def global_exception_handler(request: FastAPIRequest, exc: Exception):
        """Log the full error internally, return a generic message."""
        error_id = str(uuid.uuid4())
        error_logger.error(
            f"Error {error_id}: {type(exc).__name__}: {_sanitize_error_message(str(exc))}",
            exc_info=True,
            extra={
                "error_id": error_id,
                "path": request.url.path,
                "method": request.method,
            }
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "An internal error occurred", "error_id": error_id}
        )

    @app.get("/health")
    async def health_check():
        """Liveness probe (no body)"""
        return Response(status_code=200)

    if settings.is_dev:
        app.include_router(notifications.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
