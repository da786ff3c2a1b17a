"""
Tests for Settings and database URL handling.
"""

import pytest
from pydantic import ValidationError

from backend.core.config import DEFAULT_MAX_FILE_BYTES, Settings
from backend.core.database.connection import to_async_url


def make_settings(**overrides) -> Settings:
    values = {"database_url": "postgresql://u:p@localhost/db"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("ENVIRONMENT", "STORAGE_BACKEND", "QUEUE_BACKEND", "RESERVED_DIRECTORIES", "MAX_FILE_BYTES"):
            monkeypatch.delenv(name, raising=False)
        settings = make_settings()

        assert settings.environment == "production"
        assert not settings.is_dev
        assert settings.storage_backend == "s3"
        assert settings.queue_backend == "sqs"
        assert settings.max_file_bytes == DEFAULT_MAX_FILE_BYTES == 5 * 1024 * 1024
        assert settings.reserved_directories_list == ["_flowershow/"]

    def test_environment_is_normalized(self):
        assert make_settings(environment="DEV").is_dev

    @pytest.mark.parametrize("field,value", [
        ("environment", "staging"),
        ("storage_backend", "gcs"),
        ("queue_backend", "kafka"),
    ])
    def test_invalid_choices(self, field, value):
        with pytest.raises(ValidationError):
            make_settings(**{field: value})

    def test_database_url_required(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_reserved_directories_list(self):
        settings = make_settings(reserved_directories=" _flowershow/ , .obsidian/,, ")
        assert settings.reserved_directories_list == ["_flowershow/", ".obsidian/"]

    def test_typesense_url(self):
        settings = make_settings(typesense_protocol="https", typesense_host="ts.example.com", typesense_port=443)
        assert settings.typesense_url == "https://ts.example.com:443"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("QUEUE_BATCH_SIZE", "5")
        monkeypatch.setenv("S3_FORCE_PATH_STYLE", "true")

        settings = make_settings()

        assert settings.queue_batch_size == 5
        assert settings.s3_force_path_style is True


@pytest.mark.parametrize("url,expected", [
    ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ("sqlite+aiosqlite:///tmp/x.db", "sqlite+aiosqlite:///tmp/x.db"),
])
def test_to_async_url(url, expected):
    assert to_async_url(url) == expected
