"""Data models for Drive files, stored credentials and host backup files."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO

# Drive API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_SIZE = "size"
FIELD_CREATED_TIME = "createdTime"
FIELD_DESCRIPTION = "description"
FIELD_MIME_TYPE = "mimeType"
FIELD_PARENTS = "parents"
FIELD_FILES = "files"
FIELD_NEXT_PAGE_TOKEN = "nextPageToken"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
UPLOAD_MIME_TYPE = "application/octet-stream"
ROOT_FOLDER_ID = "root"

# Field selector shared by list and get calls
FILE_FIELDS = "id,name,size,createdTime,modifiedTime,description"

# BackupFile metadata keys understood by the host engine
META_ID = "id"
META_FILESIZE = "filesize"
META_DATESTAMP = "datestamp"
META_DESCRIPTION = "description"


@dataclass
class TokenPair:
    """Tokens returned by an authorization-code exchange."""

    access_token: str
    refresh_token: str
    expiry: datetime | None = None


@dataclass
class Credentials:
    """OAuth client and token state persisted by a TokenStore.

    ``token_expiry`` is a naive UTC datetime, the representation used by
    google-auth. Empty strings stand for "not set".
    """

    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    token_expiry: datetime | None = None

    @property
    def has_client(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_expiry": self.token_expiry.isoformat() if self.token_expiry else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credentials:
        expiry = data.get("token_expiry")
        return cls(
            client_id=data.get("client_id") or "",
            client_secret=data.get("client_secret") or "",
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token") or "",
            token_expiry=datetime.fromisoformat(expiry) if expiry else None,
        )


@dataclass
class BackupFile:
    """A backup artifact as exchanged with the host backup engine.

    Content comes from ``path`` when set, otherwise from ``content``.
    """

    full_name: str
    meta: dict[str, Any] = field(default_factory=dict)
    path: Path | None = None
    content: bytes | None = None

    def open_for_read(self) -> BinaryIO:
        """Open the file's byte content for reading.

        Raises:
            ValueError: If the file has neither a path nor in-memory content.
        """
        if self.path is not None:
            return self.path.open("rb")
        if self.content is not None:
            return io.BytesIO(self.content)
        raise ValueError(f"Backup file has no content source: {self.full_name}")


@dataclass
class RemoteFile:
    """One backup artifact as seen in Drive.

    ``remote_id`` is the only identifier used for get and delete;
    ``display_name`` is not unique.
    """

    remote_id: str
    display_name: str
    size_bytes: int
    created_at: datetime
    description: str | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> RemoteFile:
        """Map a raw Drive file resource to a RemoteFile.

        Raises:
            ValueError: If the id is missing or size/createdTime are unparseable.
        """
        remote_id = raw.get(FIELD_ID)
        if not remote_id:
            raise ValueError("Drive file resource has no id")
        created = raw.get(FIELD_CREATED_TIME)
        return cls(
            remote_id=str(remote_id),
            display_name=raw.get(FIELD_NAME, ""),
            size_bytes=int(raw.get(FIELD_SIZE) or 0),
            created_at=_parse_timestamp(created) if created else datetime.now(tz=UTC),
            description=raw.get(FIELD_DESCRIPTION) or None,
        )

    def as_backup_file(self) -> BackupFile:
        """Return the host-facing reference for this file."""
        meta: dict[str, Any] = {
            META_ID: self.remote_id,
            META_FILESIZE: self.size_bytes,
            META_DATESTAMP: int(self.created_at.timestamp()),
        }
        if self.description:
            meta[META_DESCRIPTION] = self.description
        return BackupFile(full_name=self.display_name, meta=meta)


def _parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by Drive (e.g. 2024-05-01T10:00:00.000Z)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
