"""
Sync worker exceptions.

Every failure the worker raises on purpose derives from SyncError, so the
queue consumer can tell expected, message-level failures apart from bugs
in its logs. Each module defines its own subclasses next to the code that
raises them.
"""


class SyncError(Exception):
    """Base class for sync worker errors."""
    pass
