#!/usr/bin/env python3
"""
Markdown Sync Worker CLI

Consumes storage notifications from the sync queue and keeps the Blob
catalog and the search index up to date.

Usage:
    python process_queue.py
    python process_queue.py --once --verbose
    python process_queue.py --key site1/main/raw/articles/test.md

Examples:
    # Run forever against the configured SQS queue
    python process_queue.py

    # Handle a single batch and exit (cron-style)
    python process_queue.py --once

    # Re-sync one file without going through the queue
    python process_queue.py --key "site1/main/raw/notes/My+Note.md"
"""

import argparse
import asyncio
import logging
import os
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()


def setup_logging(verbose: bool = False, quiet: bool = False, settings=None):
    """Configure logging based on verbosity (falls back to LOG_LEVEL)."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    elif settings is not None:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=settings.log_format if settings is not None else "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # boto3 is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def process_key(args, settings) -> int:
    """Run a single key through the consumer, bypassing the queue."""
    from backend.core.sync.queues import QueueMessage
    from backend.core.sync.worker import run_batch

    message = QueueMessage({"object": {"key": args.key}}, message_id="cli")
    result = await run_batch([message], settings)
    if result.failed:
        print(f"Failed: {result.errors[0]}", file=sys.stderr)
        return 1
    print(f"Processed: {args.key}")
    return 0


async def consume(args, settings) -> int:
    """Main consume loop."""
    from backend.core.sync.queues import create_queue
    from backend.core.sync.worker import run_worker

    queue = create_queue(settings)
    max_batches = 1 if args.once else args.max_batches

    batches = await run_worker(queue, settings, max_batches=max_batches)
    logging.getLogger(__name__).info(f"Handled {batches} batch(es)")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Consume storage notifications and sync markdown metadata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Consume forever
  %(prog)s --once                            # One batch, then exit
  %(prog)s --max-batches 20                  # Stop after 20 batches
  %(prog)s --key site1/main/raw/a/b.md       # Re-sync a single file
        """
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Handle a single non-empty batch and exit",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        help="Stop after this many non-empty batches",
    )
    parser.add_argument(
        "--key", "-k",
        type=str,
        help="Process one object key directly instead of reading the queue",
    )

    # Output options
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output",
    )

    args = parser.parse_args()

    from pydantic import ValidationError
    from backend.core.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Error: invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(verbose=args.verbose, quiet=args.quiet, settings=settings)

    try:
        if args.key:
            exit_code = asyncio.run(process_key(args, settings))
        else:
            exit_code = asyncio.run(consume(args, settings))
    except KeyboardInterrupt:
        print("Interrupted, shutting down", file=sys.stderr)
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
