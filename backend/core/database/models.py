"""
SQLAlchemy Database Models

Maps the catalog table the sync worker reads and updates:
- Blob: one row per tracked file of a site, with extracted metadata
  and the per-file sync state machine

Rows are created by the site ingestion service; the worker only updates
or deletes them. Column names follow the catalog's camelCase schema.
"""
import enum

from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class SyncStatus(str, enum.Enum):
    """
    Blob sync lifecycle states.

    pending -> processing -> success | error
    (a blob whose frontmatter sets publish: false is deleted instead)
    """
    PENDING = "PENDING"           # Row created, no notification handled yet
    PROCESSING = "PROCESSING"     # Worker claimed the blob and is fetching content
    SUCCESS = "SUCCESS"           # Metadata persisted, syncError cleared
    ERROR = "ERROR"               # Any failure after claiming (re-enterable)


class Blob(Base):
    """
    Catalog record for a single file of a site.

    (siteId, path) and (siteId, appPath) are each unique.
    """
    __tablename__ = "Blob"

    id = Column(String, primary_key=True)
    site_id = Column("siteId", String, nullable=False)
    path = Column(Text, nullable=False)
    app_path = Column("appPath", Text, nullable=False)

    # Content descriptors
    size = Column(Integer, nullable=False)
    sha = Column(String, nullable=False)
    extension = Column(String)

    # Owned by the sync worker
    # (attribute is not called "metadata", which SQLAlchemy reserves)
    blob_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    permalink = Column(Text)
    sync_status = Column("syncStatus", String, nullable=False, default=SyncStatus.PENDING.value)
    sync_error = Column("syncError", Text)

    # Timestamps
    created_at = Column("createdAt", DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column("updatedAt", DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("siteId", "path"),
        UniqueConstraint("siteId", "appPath"),
        Index("Blob_siteId_idx", "siteId"),
        Index("Blob_appPath_idx", "appPath"),
    )

    def __repr__(self) -> str:
        return f"<Blob(id={self.id}, site={self.site_id}, path={self.path}, status={self.sync_status})>"
