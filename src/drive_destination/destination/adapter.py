"""Google Drive backup destination — save, load, list, delete and retention."""

from __future__ import annotations

import contextlib
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from googleapiclient.http import MediaIoBaseUpload

from drive_destination.drive.auth import AuthSession, auth_session_from_config
from drive_destination.drive.folders import FolderResolver
from drive_destination.drive.models import (
    FIELD_FILES,
    FIELD_ID,
    FIELD_NAME,
    FIELD_NEXT_PAGE_TOKEN,
    FILE_FIELDS,
    FOLDER_MIME_TYPE,
    META_DESCRIPTION,
    META_FILESIZE,
    META_ID,
    UPLOAD_MIME_TYPE,
    BackupFile,
    RemoteFile,
)
from drive_destination.errors import (
    DeleteError,
    DestinationNotWritableError,
    DownloadError,
    ListError,
    MissingIdentifierError,
    TempFileError,
    UploadError,
)
from drive_destination.storage.token_store import TokenStore, token_store_from_config

if TYPE_CHECKING:
    from drive_destination.config import AppConfig

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 8192
TEMP_FILE_PREFIX = "bam"
DEFAULT_QUERY_LIMIT = 100


class DriveBackupDestination:
    """The CRUD, listing and retention surface used by the host backup engine.

    Every operation asks the AuthSession for a fresh service handle so that an
    expired token is refreshed (and persisted) before the remote call.
    """

    def __init__(
        self,
        session: AuthSession,
        folder_resolver: FolderResolver,
        folder_path: str = "/backups",
        max_backups: int = 10,
    ) -> None:
        """Initialise the destination.

        Args:
            session: AuthSession providing authenticated Drive service handles.
            folder_resolver: Resolver for the backup folder path.
            folder_path: Logical Drive folder for backups; empty or "/" means root.
            max_backups: Number of backups to keep after each save; 0 for unlimited.
        """
        self._session = session
        self._folders = folder_resolver
        self._folder_path = folder_path
        self._max_backups = max_backups

    @staticmethod
    def supported_ops() -> list[str]:
        return ["save", "load", "list", "delete"]

    def check_writable(self) -> bool:
        """Probe the connection by listing a single file.

        Raises:
            DestinationNotWritableError: If the probe fails for any reason.
        """
        try:
            service = self._session.ensure_authenticated()
            service.files().list(pageSize=1, fields="files(id, name)").execute()
        except Exception as exc:
            raise DestinationNotWritableError(
                f"Google Drive destination is not writable: {exc}"
            ) from exc
        return True

    def save(self, file: BackupFile) -> str:
        """Upload a backup file, then apply retention.

        Args:
            file: Backup file to upload; ``meta["description"]`` is copied to Drive.

        Returns:
            Drive id of the new file.

        Raises:
            UploadError: If the file cannot be read or the upload fails.
        """
        service = self._session.ensure_authenticated()
        folder_id = self._folders.resolve(self._folder_path, service=service)

        metadata: dict[str, Any] = {"name": file.full_name}
        description = file.meta.get(META_DESCRIPTION)
        if description:
            metadata["description"] = description
        if folder_id:
            metadata["parents"] = [folder_id]

        try:
            content = self._read_all(file)
            media = MediaIoBaseUpload(io.BytesIO(content), mimetype=UPLOAD_MIME_TYPE, resumable=False)
            result = service.files().create(body=metadata, media_body=media, fields="id").execute()
        except Exception as exc:
            logger.error("[save] upload failed; name:%s;error:%s", file.full_name, exc)
            raise UploadError(f"Failed to upload backup to Google Drive: {exc}") from exc

        remote_id = str(result[FIELD_ID])
        logger.info(
            "[save] uploaded backup; name:%s;id:%s;size:%d", file.full_name, remote_id, len(content)
        )

        if self._max_backups > 0:
            self.cleanup_old_backups(self._max_backups)
        return remote_id

    def list_files(self) -> list[RemoteFile]:
        """List backups in the destination folder, newest first.

        Falls back to the storage root when the folder cannot be resolved.
        Entries that cannot be parsed are skipped.

        Raises:
            ListError: If the listing call itself fails.
        """
        service = self._session.ensure_authenticated()

        query = f"trashed=false and mimeType!='{FOLDER_MIME_TYPE}'"
        try:
            folder_id = self._folders.resolve(self._folder_path, service=service)
        except Exception as exc:
            logger.warning("[list_files] failed to get backup folder, listing from root; error:%s", exc)
            folder_id = None
        if folder_id:
            query += f" and '{folder_id}' in parents"

        raw_files: list[dict[str, Any]] = []
        page_token: str | None = None
        try:
            while True:
                response = (
                    service.files()
                    .list(
                        q=query,
                        orderBy="createdTime desc",
                        fields=f"nextPageToken, files({FILE_FIELDS})",
                        pageToken=page_token,
                    )
                    .execute()
                )
                raw_files.extend(response.get(FIELD_FILES, []))
                page_token = response.get(FIELD_NEXT_PAGE_TOKEN)
                if not page_token:
                    break
        except Exception as exc:
            raise ListError(f"Failed to list files from Google Drive: {exc}") from exc

        files: list[RemoteFile] = []
        for raw in raw_files:
            try:
                files.append(RemoteFile.from_api(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "[list_files] skipping file; name:%s;error:%s", raw.get(FIELD_NAME), exc
                )

        files.sort(key=lambda f: f.created_at, reverse=True)
        return files

    def get_file(self, remote_id: str) -> RemoteFile:
        """Fetch the metadata of one file.

        Raises:
            DownloadError: If the metadata cannot be retrieved.
        """
        service = self._session.ensure_authenticated()
        try:
            raw = service.files().get(fileId=remote_id, fields=FILE_FIELDS).execute()
            return RemoteFile.from_api(raw)
        except Exception as exc:
            raise DownloadError(f"Failed to get file from Google Drive: {exc}") from exc

    def load(self, file: BackupFile) -> BackupFile:
        """Download a backup into a fresh local temporary file.

        Args:
            file: Reference carrying the Drive id in ``meta["id"]``.

        Returns:
            BackupFile whose ``path`` is the temporary file with the downloaded bytes.

        Raises:
            MissingIdentifierError: If the reference has no id.
            DownloadError: If the content cannot be retrieved.
            TempFileError: If the temporary file cannot be written or read back.
        """
        remote_id = file.meta.get(META_ID)
        if not remote_id:
            raise MissingIdentifierError("File ID is required to load from Google Drive.")

        service = self._session.ensure_authenticated()
        try:
            content = service.files().get_media(fileId=remote_id).execute()
        except Exception as exc:
            logger.error("[load] download failed; id:%s;error:%s", remote_id, exc)
            raise DownloadError(f"Failed to download file from Google Drive: {exc}") from exc

        temp_path = self._write_temp_file(content)
        logger.info("[load] downloaded backup; id:%s;size:%d", remote_id, len(content))
        return BackupFile(
            full_name=file.full_name,
            meta={META_ID: remote_id, META_FILESIZE: len(content)},
            path=temp_path,
        )

    def delete(self, remote_id: str) -> bool:
        """Delete one file.

        Returns:
            True on success, False when no service handle is available.

        Raises:
            DeleteError: If the provider fails the delete (e.g. unknown id).
        """
        service = self._session.ensure_authenticated()
        if service is None:
            return False
        try:
            service.files().delete(fileId=remote_id).execute()
        except Exception as exc:
            raise DeleteError(f"Failed to delete file from Google Drive: {exc}") from exc
        logger.info("[delete] deleted file; id:%s", remote_id)
        return True

    def exists(self, remote_id: str) -> bool:
        """Return whether the file exists. Never raises."""
        try:
            service = self._session.ensure_authenticated()
            service.files().get(fileId=remote_id, fields="id").execute()
        except Exception:
            return False
        return True

    def count_files(self) -> int:
        return len(self.list_files())

    def query_files(
        self,
        filters: dict[str, Any] | None = None,
        sort: str = "datestamp",
        direction: str = "desc",
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> list[RemoteFile]:
        """Return a page of list_files().

        Only ``offset`` and ``limit`` are applied; ``filters``, ``sort`` and
        ``direction`` are accepted for interface compatibility and ignored.
        """
        return self.list_files()[offset : offset + limit]

    def cleanup_old_backups(self, max_backups: int) -> None:
        """Delete the oldest backups so that at most ``max_backups`` remain.

        Failures are logged and never propagate.
        """
        try:
            files = self.list_files()
        except Exception as exc:
            logger.error("[cleanup_old_backups] failed to list backups; error:%s", exc)
            return

        excess = len(files) - max_backups
        if excess <= 0:
            return

        removed = 0
        oldest_first = sorted(files, key=lambda f: f.created_at)
        for remote_file in oldest_first[:excess]:
            try:
                if self.delete(remote_file.remote_id):
                    removed += 1
            except Exception as exc:
                logger.error(
                    "[cleanup_old_backups] failed to delete old backup; id:%s;error:%s",
                    remote_file.remote_id,
                    exc,
                )
        logger.info(
            "[cleanup_old_backups] retention applied; max_backups:%d;excess:%d;removed:%d",
            max_backups,
            excess,
            removed,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_all(file: BackupFile) -> bytes:
        """Read the whole file into memory in fixed-size chunks."""
        buffer = bytearray()
        with file.open_for_read() as stream:
            while chunk := stream.read(READ_CHUNK_BYTES):
                buffer.extend(chunk)
        return bytes(buffer)

    @staticmethod
    def _write_temp_file(content: bytes) -> Path:
        """Write content to a new temporary file and verify it is readable."""
        try:
            fd, name = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX)
        except OSError as exc:
            raise TempFileError(f"Could not create temporary file: {exc}") from exc

        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.remove(name)
            raise TempFileError(f"Could not write temporary file: {exc}") from exc

        temp_path = Path(name)
        if not temp_path.is_file() or not os.access(temp_path, os.R_OK):
            raise TempFileError(f"Temp file is not readable: {temp_path}")
        return temp_path


def destination_from_config(
    config: AppConfig, token_store: TokenStore | None = None
) -> DriveBackupDestination:
    """Construct a DriveBackupDestination from application configuration.

    Creates the token store, AuthSession and FolderResolver from the config,
    then wires them into the destination.

    Args:
        config: Application configuration instance.
        token_store: Store to use; a BlobTokenStore from the config by default.

    Returns:
        Configured DriveBackupDestination instance.
    """
    store = token_store or token_store_from_config(config)
    session = auth_session_from_config(config, token_store=store)
    return DriveBackupDestination(
        session=session,
        folder_resolver=FolderResolver(session=session, token_store=store),
        folder_path=config.folder_path,
        max_backups=config.max_backups,
    )
