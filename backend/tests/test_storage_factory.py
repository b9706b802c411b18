"""Tests for object store selection and storage settings resolution."""

import pytest

from app.config import MinIOConfig, S3Config, Settings, StorageConfig
from app.core.errors import StorageConfigurationError
from app.core.storage.minio_service import MinIOObjectStore
from app.core.storage.s3_service import S3ObjectStore
from app.core.storage.storage_factory import create_object_store


class TestCreateObjectStore:
    def test_minio_backend(self):
        config = StorageConfig(
            backend="minio",
            bucket="documents",
            minio=MinIOConfig(endpoint="minio:9000", access_key="a", secret_key="b"),
        )
        store = create_object_store(config)
        assert isinstance(store, MinIOObjectStore)
        assert store.bucket == "documents"

    def test_s3_backend(self):
        config = StorageConfig(backend="S3", bucket="prod-docs", s3=S3Config(region="eu-central-1"))
        store = create_object_store(config)
        assert isinstance(store, S3ObjectStore)
        assert store.region == "eu-central-1"

    def test_unknown_backend_fails_fast(self):
        with pytest.raises(StorageConfigurationError, match="Unknown storage backend"):
            create_object_store(StorageConfig(backend="azure", bucket="docs"))

    def test_missing_bucket(self):
        config = StorageConfig(backend="s3", bucket="", s3=S3Config(region="us-east-1"))
        with pytest.raises(StorageConfigurationError):
            create_object_store(config)

    def test_missing_connection_block(self):
        with pytest.raises(StorageConfigurationError):
            create_object_store(StorageConfig(backend="minio", bucket="docs"))


class TestSettingsStorageConfig:
    def test_defaults_to_minio(self):
        config = Settings(minio_bucket="uploads").storage_config()
        assert config.backend == "minio"
        assert config.bucket == "uploads"
        assert config.minio is not None
        assert config.s3 is None

    def test_s3_selection(self):
        config = Settings(storage_backend="s3", s3_bucket="prod-docs", s3_region="us-west-2").storage_config()
        assert config.backend == "s3"
        assert config.bucket == "prod-docs"
        assert config.s3.region == "us-west-2"

    def test_config_is_frozen(self):
        config = Settings().storage_config()
        with pytest.raises(Exception):
            config.bucket = "other"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "s3")
        monkeypatch.setenv("S3_BUCKET", "env-bucket")
        config = Settings().storage_config()
        assert config.backend == "s3"
        assert config.bucket == "env-bucket"
