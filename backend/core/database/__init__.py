"""Database module for the sync worker"""
from .models import Base, Blob, SyncStatus
from .connection import to_async_url, create_engine_for, create_session_factory

__all__ = [
    'Base',
    'Blob',
    'SyncStatus',
    'to_async_url',
    'create_engine_for',
    'create_session_factory',
]
