"""Logical folder path → Drive folder id resolution with a persistent cache."""

from __future__ import annotations

import logging
from typing import Any

from drive_destination.drive.auth import AuthSession
from drive_destination.drive.models import (
    FIELD_FILES,
    FIELD_ID,
    FOLDER_MIME_TYPE,
    ROOT_FOLDER_ID,
)
from drive_destination.storage.token_store import TokenStore

logger = logging.getLogger(__name__)


def escape_query_value(value: str) -> str:
    """Escape a string literal for the Drive ``q`` query language."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class FolderResolver:
    """Resolves slash-separated paths to Drive folder ids, creating missing folders.

    Resolved ids are cached in the TokenStore and trusted until invalidated:
    a folder deleted or renamed out-of-band leaves a stale entry behind.
    """

    def __init__(self, session: AuthSession, token_store: TokenStore) -> None:
        self._session = session
        self._store = token_store

    @staticmethod
    def normalize_path(path: str | None) -> str:
        """Trim whitespace and surrounding separators ("/backups/site/" → "backups/site")."""
        return (path or "").strip().strip("/")

    def resolve(self, path: str | None, service: Any = None) -> str | None:
        """Return the folder id for ``path``, creating the folder chain if absent.

        Args:
            path: Logical folder path such as "/backups/mysite".
            service: Drive service to reuse; obtained from the session on a cache miss
                when omitted.

        Returns:
            Folder id, or None for the storage root. None is also returned when
            lookup or creation fails partway, so backups fall back to the root.

        Raises:
            NotAuthorizedError, ExpiredCredentialError: If a service is needed and
                the session cannot provide one.
        """
        normalized = self.normalize_path(path)
        if not normalized:
            return None

        cache = self._store.load_folder_cache()
        if normalized in cache:
            return cache[normalized]

        if service is None:
            service = self._session.ensure_authenticated()

        try:
            folder_id = self._create_folder_structure(service, normalized)
        except Exception:
            logger.error(
                "[resolve] failed to create folder structure; path:%s", normalized, exc_info=True
            )
            return None

        try:
            cache = self._store.load_folder_cache()
            cache[normalized] = folder_id
            self._store.save_folder_cache(cache)
        except Exception:
            logger.warning(
                "[resolve] failed to cache folder id; path:%s;folder_id:%s",
                normalized,
                folder_id,
                exc_info=True,
            )
            return folder_id
        logger.info("[resolve] cached folder id; path:%s;folder_id:%s", normalized, folder_id)
        return folder_id

    def invalidate(self, path: str | None = None) -> None:
        """Drop the cached id for ``path``, or the whole cache when path is None."""
        if path is None:
            self._store.save_folder_cache({})
            logger.info("[invalidate] cleared folder cache")
            return
        cache = self._store.load_folder_cache()
        if cache.pop(self.normalize_path(path), None) is not None:
            self._store.save_folder_cache(cache)
            logger.info("[invalidate] dropped cached folder; path:%s", self.normalize_path(path))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _create_folder_structure(self, service: Any, path: str) -> str:
        """Walk the path segments under the root, reusing or creating each folder."""
        parent_id = ROOT_FOLDER_ID
        for name in path.split("/"):
            if not name:
                continue
            existing = self._find_folder(service, name, parent_id)
            if existing is not None:
                parent_id = existing
                continue
            metadata = {
                "name": name,
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [parent_id],
            }
            folder = service.files().create(body=metadata, fields="id").execute()
            parent_id = folder[FIELD_ID]
            logger.info("[_create_folder_structure] created folder; name:%s;id:%s", name, parent_id)
        return parent_id

    @staticmethod
    def _find_folder(service: Any, name: str, parent_id: str) -> str | None:
        """Return the id of a non-trashed folder named ``name`` under ``parent_id``."""
        query = (
            f"name='{escape_query_value(name)}' and mimeType='{FOLDER_MIME_TYPE}'"
            f" and trashed=false and '{parent_id}' in parents"
        )
        response = service.files().list(q=query, pageSize=1, fields="files(id, name)").execute()
        files = response.get(FIELD_FILES, [])
        return files[0][FIELD_ID] if files else None
