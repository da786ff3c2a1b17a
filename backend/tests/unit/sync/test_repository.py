"""
Tests for BlobRepository against a SQLite catalog.
"""

import pytest

from backend.core.database.models import SyncStatus
from backend.core.sync.repository import DocumentNotFoundError, normalize_permalink


class TestFindLatest:
    """Tests for resolving a Blob from (siteId, path)."""

    @pytest.mark.asyncio
    async def test_finds_blob_for_site_and_path(self, repository, add_blob):
        blob_id = await add_blob(site_id="site1", path="articles/test.md")
        await add_blob(site_id="site2", path="articles/test.md")

        assert await repository.find_latest_id_by_path("site1", "articles/test.md") == blob_id

    @pytest.mark.asyncio
    async def test_missing_path(self, repository, add_blob):
        await add_blob(site_id="site1", path="articles/test.md")

        with pytest.raises(DocumentNotFoundError, match="No blob found for path: articles/other.md"):
            await repository.find_latest_id_by_path("site1", "articles/other.md")

    @pytest.mark.asyncio
    async def test_path_belongs_to_other_site(self, repository, add_blob):
        await add_blob(site_id="site2", path="articles/test.md")

        with pytest.raises(DocumentNotFoundError):
            await repository.find_latest_id_by_path("site1", "articles/test.md")


class TestStatusTransitions:
    """Tests for PROCESSING / SUCCESS / ERROR updates."""

    @pytest.mark.asyncio
    async def test_mark_processing(self, repository, add_blob):
        blob_id = await add_blob()
        await repository.mark_processing(blob_id)

        blob = await repository.get(blob_id)
        assert blob.sync_status == SyncStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_mark_success_writes_metadata_and_clears_error(self, repository, add_blob):
        blob_id = await add_blob(sync_status=SyncStatus.ERROR.value, sync_error="previous failure")

        await repository.mark_success(blob_id, {"title": "T", "tags": ["a"]}, "blog/post")

        blob = await repository.get(blob_id)
        assert blob.sync_status == SyncStatus.SUCCESS.value
        assert blob.sync_error is None
        assert blob.blob_metadata == {"title": "T", "tags": ["a"]}
        assert blob.permalink == "blog/post"

    @pytest.mark.asyncio
    async def test_mark_success_without_metadata_keeps_existing(self, repository, add_blob):
        blob_id = await add_blob(path="image.png", metadata={"kept": True}, permalink="img")

        await repository.mark_success(blob_id)

        blob = await repository.get(blob_id)
        assert blob.sync_status == SyncStatus.SUCCESS.value
        assert blob.blob_metadata == {"kept": True}
        assert blob.permalink == "img"

    @pytest.mark.asyncio
    async def test_mark_success_replaces_permalink(self, repository, add_blob):
        blob_id = await add_blob(permalink="old")
        await repository.mark_success(blob_id, {"title": "T"}, None)

        blob = await repository.get(blob_id)
        assert blob.permalink is None

    @pytest.mark.asyncio
    async def test_mark_error_keeps_metadata(self, repository, add_blob):
        blob_id = await add_blob(metadata={"title": "Old"})

        await repository.mark_error(blob_id, "Object not found: site1/main/raw/articles/test.md")

        blob = await repository.get(blob_id)
        assert blob.sync_status == SyncStatus.ERROR.value
        assert blob.sync_error == "Object not found: site1/main/raw/articles/test.md"
        assert blob.blob_metadata == {"title": "Old"}

    @pytest.mark.asyncio
    async def test_null_characters_removed(self, repository, add_blob):
        blob_id = await add_blob()
        await repository.mark_success(blob_id, {"title": "a\x00b", "nested": {"k\x00": ["c\x00"]}}, "p\x00")

        blob = await repository.get(blob_id)
        assert blob.blob_metadata == {"title": "ab", "nested": {"k": ["c"]}}
        assert blob.permalink == "p"


class TestDelete:
    """Tests for deleting unpublished Blobs."""

    @pytest.mark.asyncio
    async def test_delete_document(self, repository, add_blob):
        blob_id = await add_blob()
        other_id = await add_blob(path="articles/other.md")

        await repository.delete_document(blob_id)

        assert await repository.get(blob_id) is None
        assert await repository.get(other_id) is not None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, repository):
        await repository.delete_document("does-not-exist")


@pytest.mark.parametrize("value,expected", [
    ("/blog/post/", "blog/post"),
    ("blog/post", "blog/post"),
    ("//", None),
    ("", None),
    (None, None),
    (" /about ", "about"),
])
def test_normalize_permalink(value, expected):
    assert normalize_permalink(value) == expected
