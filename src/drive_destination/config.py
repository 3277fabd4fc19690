"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Destination
    settings have sensible defaults but can be overridden via environment
    variables.
    """

    # Required: no defaults, fail at startup if missing
    redirect_uri: str
    storage_connection_string: str

    # OAuth client: optional here, may already be stored in the state blob
    client_id: str = ""
    client_secret: str = ""

    # Destination settings: defaults provided, overridable via env
    folder_path: str = "/backups"
    max_backups: int = 10
    state_container: str = "drive-destination-state"
    state_blob: str = "settings/drive.json"
    settings_url: str = "/api/status"


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        DD_REDIRECT_URI: Absolute URL of the OAuth callback route.
        AzureWebJobsStorage: Azure Storage account connection string.

    Optional environment variables (with defaults):
        DD_CLIENT_ID: Google OAuth client ID (seeded into the state blob).
        DD_CLIENT_SECRET: Google OAuth client secret (seeded into the state blob).
        DD_FOLDER_PATH: Drive folder path for backups (default: /backups).
        DD_MAX_BACKUPS: Number of backups to keep, 0 for unlimited (default: 10).
        DD_STATE_CONTAINER: Blob container for token and folder-cache storage.
        DD_STATE_BLOB: Blob path of the state document.
        DD_SETTINGS_URL: Where the authorization routes redirect when done.

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        redirect_uri=os.environ["DD_REDIRECT_URI"],
        storage_connection_string=os.environ["AzureWebJobsStorage"],  # noqa: SIM112
        client_id=os.environ.get("DD_CLIENT_ID", ""),
        client_secret=os.environ.get("DD_CLIENT_SECRET", ""),
        folder_path=os.environ.get("DD_FOLDER_PATH", "/backups"),
        max_backups=int(os.environ.get("DD_MAX_BACKUPS", "10")),
        state_container=os.environ.get("DD_STATE_CONTAINER", "drive-destination-state"),
        state_blob=os.environ.get("DD_STATE_BLOB", "settings/drive.json"),
        settings_url=os.environ.get("DD_SETTINGS_URL", "/api/status"),
    )
