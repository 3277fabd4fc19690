"""Credential and folder-cache persistence, in memory or in Azure Blob Storage."""

from __future__ import annotations

import contextlib
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from drive_destination.drive.models import Credentials

if TYPE_CHECKING:
    from drive_destination.config import AppConfig

logger = logging.getLogger(__name__)

# Top-level keys of the persisted state document
KEY_CREDENTIALS = "credentials"
KEY_FOLDER_CACHE = "folder_cache"


class TokenStore(ABC):
    """Narrow get/set interface over the OAuth credentials and the folder cache.

    Writes are read-modify-write with last-write-wins semantics; there is no
    transactional guard between concurrent invocations.
    """

    @abstractmethod
    def load_credentials(self) -> Credentials:
        """Return the stored credentials (empty fields when nothing is stored)."""

    @abstractmethod
    def save_credentials(self, credentials: Credentials) -> None:
        """Persist the given credentials, replacing the stored ones."""

    @abstractmethod
    def load_folder_cache(self) -> dict[str, str]:
        """Return the path → folder id mapping."""

    @abstractmethod
    def save_folder_cache(self, cache: dict[str, str]) -> None:
        """Persist the path → folder id mapping, replacing the stored one."""


class MemoryTokenStore(TokenStore):
    """Process-local TokenStore, used for tests and embedded use."""

    def __init__(
        self,
        credentials: Credentials | None = None,
        folder_cache: dict[str, str] | None = None,
    ) -> None:
        self._credentials = credentials or Credentials()
        self._folder_cache = dict(folder_cache or {})

    def load_credentials(self) -> Credentials:
        return Credentials.from_dict(self._credentials.to_dict())

    def save_credentials(self, credentials: Credentials) -> None:
        self._credentials = Credentials.from_dict(credentials.to_dict())

    def load_folder_cache(self) -> dict[str, str]:
        return dict(self._folder_cache)

    def save_folder_cache(self, cache: dict[str, str]) -> None:
        self._folder_cache = dict(cache)


class BlobTokenStore(TokenStore):
    """TokenStore backed by a single JSON document in Azure Blob Storage.

    The document holds both the credentials and the folder cache::

        {"credentials": {...}, "folder_cache": {"backups/site": "folder-id"}}
    """

    def __init__(
        self,
        storage_connection_string: str,
        container: str,
        blob: str,
    ) -> None:
        """Initialise the blob-backed store.

        Args:
            storage_connection_string: Azure Storage connection string.
            container: Blob container name for the state document.
            blob: Blob path of the state document.
        """
        self._blob_service = BlobServiceClient.from_connection_string(storage_connection_string)
        self._container = container
        self._blob = blob

    def load_credentials(self) -> Credentials:
        return Credentials.from_dict(self._read_document().get(KEY_CREDENTIALS) or {})

    def save_credentials(self, credentials: Credentials) -> None:
        document = self._read_document()
        document[KEY_CREDENTIALS] = credentials.to_dict()
        self._write_document(document)
        logger.info("[save_credentials] saved credentials to blob storage")

    def load_folder_cache(self) -> dict[str, str]:
        raw = self._read_document().get(KEY_FOLDER_CACHE) or {}
        return {str(path): str(folder_id) for path, folder_id in raw.items()}

    def save_folder_cache(self, cache: dict[str, str]) -> None:
        document = self._read_document()
        document[KEY_FOLDER_CACHE] = dict(cache)
        self._write_document(document)
        logger.info("[save_folder_cache] saved folder cache; entry_count:%d", len(cache))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_document(self) -> dict[str, Any]:
        """Download and decode the state document; empty on first run."""
        try:
            container_client = self._blob_service.get_container_client(self._container)
            blob_client = container_client.get_blob_client(self._blob)
            data = blob_client.download_blob().readall()
        except ResourceNotFoundError:
            logger.info("[_read_document] no state document found in blob storage — first run")
            return {}
        document = json.loads(data.decode("utf-8"))
        if not isinstance(document, dict):
            raise ValueError(f"State document is not a JSON object; blob:{self._blob}")
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        """Upload the state document, creating the container if needed."""
        container_client = self._blob_service.get_container_client(self._container)
        # Container already exists in the steady state.
        with contextlib.suppress(Exception):
            container_client.create_container()

        blob_client = container_client.get_blob_client(self._blob)
        blob_client.upload_blob(json.dumps(document).encode("utf-8"), overwrite=True)


def token_store_from_config(config: AppConfig) -> BlobTokenStore:
    """Construct a BlobTokenStore from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured BlobTokenStore instance.
    """
    return BlobTokenStore(
        storage_connection_string=config.storage_connection_string,
        container=config.state_container,
        blob=config.state_blob,
    )
