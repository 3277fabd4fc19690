"""Unit tests for storage/token_store.py — memory and Azure Blob backends."""

import json
from unittest.mock import MagicMock, patch

from azure.core.exceptions import ResourceNotFoundError

from drive_destination.config import AppConfig
from drive_destination.drive.models import Credentials
from drive_destination.storage.token_store import (
    BlobTokenStore,
    MemoryTokenStore,
    token_store_from_config,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store() -> tuple[BlobTokenStore, MagicMock, MagicMock]:
    """Return (store, mock_container_client, mock_blob_client)."""
    with patch("drive_destination.storage.token_store.BlobServiceClient") as mock_bsc_cls:
        mock_bsc = MagicMock()
        mock_bsc_cls.from_connection_string.return_value = mock_bsc
        store = BlobTokenStore(
            storage_connection_string="DefaultEndpointsProtocol=https;AccountName=test",
            container="drive-destination-state",
            blob="settings/drive.json",
        )
    mock_container = MagicMock()
    mock_blob = MagicMock()
    mock_bsc.get_container_client.return_value = mock_container
    mock_container.get_blob_client.return_value = mock_blob
    return store, mock_container, mock_blob


def _stored_document(mock_blob: MagicMock, document: dict) -> None:  # type: ignore[type-arg]
    mock_blob.download_blob.return_value.readall.return_value = json.dumps(document).encode()


def _uploaded_document(mock_blob: MagicMock) -> dict:  # type: ignore[type-arg]
    data = mock_blob.upload_blob.call_args[0][0]
    return json.loads(data.decode("utf-8"))  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# MemoryTokenStore tests
# ---------------------------------------------------------------------------


class TestMemoryTokenStore:
    def test_starts_empty(self) -> None:
        store = MemoryTokenStore()
        assert store.load_credentials() == Credentials()
        assert store.load_folder_cache() == {}

    def test_saves_and_loads_credentials(self) -> None:
        store = MemoryTokenStore()
        store.save_credentials(Credentials(client_id="cid", access_token="at"))
        assert store.load_credentials().access_token == "at"

    def test_returned_objects_are_copies(self) -> None:
        store = MemoryTokenStore(folder_cache={"backups": "f1"})
        cache = store.load_folder_cache()
        cache["other"] = "f2"
        creds = store.load_credentials()
        creds.access_token = "mutated"

        assert store.load_folder_cache() == {"backups": "f1"}
        assert store.load_credentials().access_token == ""


# ---------------------------------------------------------------------------
# BlobTokenStore tests
# ---------------------------------------------------------------------------


class TestBlobTokenStoreLoad:
    def test_returns_empty_credentials_when_blob_not_found(self) -> None:
        store, _, mock_blob = _make_store()
        mock_blob.download_blob.side_effect = ResourceNotFoundError("not found")

        assert store.load_credentials() == Credentials()
        assert store.load_folder_cache() == {}

    def test_reads_credentials_from_document(self) -> None:
        store, _, mock_blob = _make_store()
        _stored_document(
            mock_blob,
            {
                "credentials": {
                    "client_id": "cid",
                    "client_secret": "cs",
                    "access_token": "at",
                    "refresh_token": "rt",
                    "token_expiry": "2024-05-01T12:00:00",
                },
                "folder_cache": {"backups/site": "folder-9"},
            },
        )

        creds = store.load_credentials()

        assert creds.access_token == "at"
        assert creds.refresh_token == "rt"
        assert creds.token_expiry is not None
        assert store.load_folder_cache() == {"backups/site": "folder-9"}

    def test_uses_configured_container_and_blob(self) -> None:
        store, mock_container, mock_blob = _make_store()
        _stored_document(mock_blob, {})

        store.load_credentials()

        store._blob_service.get_container_client.assert_called_with("drive-destination-state")
        mock_container.get_blob_client.assert_called_with("settings/drive.json")


class TestBlobTokenStoreSave:
    def test_save_credentials_keeps_folder_cache(self) -> None:
        store, _, mock_blob = _make_store()
        _stored_document(mock_blob, {"folder_cache": {"backups": "f1"}})

        store.save_credentials(Credentials(access_token="new-at"))

        document = _uploaded_document(mock_blob)
        assert document["credentials"]["access_token"] == "new-at"
        assert document["folder_cache"] == {"backups": "f1"}
        assert mock_blob.upload_blob.call_args.kwargs == {"overwrite": True}

    def test_save_folder_cache_keeps_credentials(self) -> None:
        store, _, mock_blob = _make_store()
        _stored_document(mock_blob, {"credentials": {"refresh_token": "rt"}})

        store.save_folder_cache({"backups/site": "f2"})

        document = _uploaded_document(mock_blob)
        assert document["credentials"] == {"refresh_token": "rt"}
        assert document["folder_cache"] == {"backups/site": "f2"}

    def test_creates_container_on_first_write(self) -> None:
        store, mock_container, mock_blob = _make_store()
        mock_blob.download_blob.side_effect = ResourceNotFoundError("not found")

        store.save_folder_cache({})

        mock_container.create_container.assert_called_once()
        mock_blob.upload_blob.assert_called_once()

    def test_continues_if_container_already_exists(self) -> None:
        store, mock_container, mock_blob = _make_store()
        _stored_document(mock_blob, {})
        mock_container.create_container.side_effect = Exception("ContainerAlreadyExists")

        # Should not raise.
        store.save_credentials(Credentials())
        mock_blob.upload_blob.assert_called_once()


# ---------------------------------------------------------------------------
# token_store_from_config tests
# ---------------------------------------------------------------------------


class TestTokenStoreFromConfig:
    def test_passes_correct_config_fields(self) -> None:
        config = AppConfig(
            redirect_uri="https://x/api/callback",
            storage_connection_string="DefaultEndpointsProtocol=https;AccountName=test",
            state_container="my-container",
            state_blob="my/state.json",
        )

        with patch("drive_destination.storage.token_store.BlobServiceClient") as mock_bsc_cls:
            store = token_store_from_config(config)

        mock_bsc_cls.from_connection_string.assert_called_once_with(
            "DefaultEndpointsProtocol=https;AccountName=test"
        )
        assert store._container == "my-container"
        assert store._blob == "my/state.json"
