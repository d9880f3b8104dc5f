"""
Key-Value Storage Connectors for Check Guardian.
Each collection is one serialized string under a fixed key. Values are
stored in Azure Blob Storage, in JSON files on the local filesystem, or
in memory for tests.
"""

import logging
import os
import threading
from typing import Protocol

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Whole-value string storage: no partial updates, no transactions."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class LocalFileKeyValueStore:
    """Stores each key as `<directory>/<key>.json`."""

    def __init__(self, directory: str = "data"):
        self.directory = directory
        self._lock = threading.Lock()
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        safe_key = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return os.path.join(self.directory, f"{safe_key}.json")

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        with self._lock:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)


class AzureBlobKeyValueStore:
    """Stores each key as a JSON blob in one container."""

    def __init__(self, connection_string: str, container: str = "check-guardian"):
        self.container = container
        self.blob_service = BlobServiceClient.from_connection_string(connection_string)
        try:
            self.blob_service.create_container(self.container)
        except ResourceExistsError:
            pass
        logger.info(f"Azure Blob Storage connected (container={self.container})")

    def _blob_name(self, key: str) -> str:
        return f"collections/{key}.json"

    def get(self, key: str) -> str | None:
        client = self.blob_service.get_blob_client(self.container, self._blob_name(key))
        try:
            return client.download_blob().readall().decode("utf-8")
        except ResourceNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        client = self.blob_service.get_blob_client(self.container, self._blob_name(key))
        client.upload_blob(
            value.encode("utf-8"),
            overwrite=True,
            content_settings=ContentSettings(content_type="application/json"),
        )


def build_store(settings: Settings | None = None) -> KeyValueStore:
    """Create the store selected by `settings.storage_backend`."""
    settings = settings or get_settings()
    backend = settings.storage_backend.lower()

    if backend == "azure":
        if not settings.azure_storage_connection_string:
            raise ValueError("storage_backend=azure requires AZURE_STORAGE_CONNECTION_STRING")
        return AzureBlobKeyValueStore(settings.azure_storage_connection_string, settings.blob_container_checks)
    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "local":
        logger.info(f"Using local storage in '{settings.storage_dir}'")
        return LocalFileKeyValueStore(settings.storage_dir)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
