"""Pytest configuration — adds src/ to sys.path and provides an in-memory Drive fake."""

import os
import re
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest

# Add src/ to Python path so tests can import from drive_destination
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from googleapiclient.errors import HttpError  # noqa: E402

FOLDER_MIME = "application/vnd.google-apps.folder"

_CLAUSE_NAME = re.compile(r"^name='((?:[^'\\]|\\.)*)'$")
_CLAUSE_MIME = re.compile(r"^mimeType(!?=)'([^']*)'$")
_CLAUSE_PARENT = re.compile(r"^'([^']*)' in parents$")


def _http_error(status: int, message: str) -> HttpError:
    body = f'{{"error": {{"code": {status}, "message": "{message}"}}}}'.encode()
    return HttpError(SimpleNamespace(status=status, reason=message), body)


@dataclass
class FakeFile:
    id: str
    name: str
    mime_type: str
    parents: list[str]
    created: datetime
    content: bytes = b""
    description: str | None = None
    trashed: bool = False

    def resource(self) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": str(len(self.content)),
            "createdTime": self.created.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            "modifiedTime": self.created.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        }
        if self.description:
            raw["description"] = self.description
        return raw


class _Call:
    def __init__(self, fn: Any) -> None:
        self._fn = fn

    def execute(self) -> Any:
        return self._fn()


@dataclass
class FakeDriveService:
    """Minimal stand-in for a Drive v3 Resource, sufficient for the destination."""

    files_by_id: dict[str, FakeFile] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    page_size: int = 100
    _counter: int = 0
    _clock: datetime = datetime(2024, 1, 1, tzinfo=UTC)

    def files(self) -> "FakeDriveService":
        return self

    # -- helpers ---------------------------------------------------------

    def add_file(
        self,
        name: str,
        content: bytes = b"",
        parents: list[str] | None = None,
        created: datetime | None = None,
        mime_type: str = "application/octet-stream",
    ) -> FakeFile:
        self._counter += 1
        if created is None:
            self._clock += timedelta(minutes=1)
            created = self._clock
        fake = FakeFile(
            id=f"file-{self._counter}",
            name=name,
            mime_type=mime_type,
            parents=parents or ["root"],
            created=created,
            content=content,
        )
        self.files_by_id[fake.id] = fake
        return fake

    def live_files(self) -> list[FakeFile]:
        return [f for f in self.files_by_id.values() if not f.trashed and f.mime_type != FOLDER_MIME]

    def _require(self, file_id: str) -> FakeFile:
        fake = self.files_by_id.get(file_id)
        if fake is None:
            raise _http_error(404, f"File not found: {file_id}.")
        return fake

    def _matches(self, fake: FakeFile, q: str | None) -> bool:
        if not q:
            return True
        for clause in (c.strip() for c in q.split(" and ")):
            if clause == "trashed=false":
                if fake.trashed:
                    return False
            elif m := _CLAUSE_NAME.match(clause):
                if fake.name != re.sub(r"\\(.)", r"\1", m.group(1)):
                    return False
            elif m := _CLAUSE_MIME.match(clause):
                same = fake.mime_type == m.group(2)
                if same != (m.group(1) == "="):
                    return False
            elif m := _CLAUSE_PARENT.match(clause):
                if m.group(1) not in fake.parents:
                    return False
            else:
                raise ValueError(f"Unsupported query clause: {clause}")
        return True

    # -- Drive v3 files() surface -----------------------------------------

    def create(self, body: dict[str, Any], media_body: Any = None, fields: str = "") -> _Call:
        def run() -> dict[str, Any]:
            self.calls.append("create")
            content = b""
            if media_body is not None:
                content = media_body.getbytes(0, media_body.size())
            fake = self.add_file(
                name=body["name"],
                content=content,
                parents=body.get("parents"),
                mime_type=body.get("mimeType", "application/octet-stream"),
            )
            fake.description = body.get("description")
            return {"id": fake.id}

        return _Call(run)

    def list(self, q: str | None = None, pageToken: str | None = None, **kwargs: Any) -> _Call:
        def run() -> dict[str, Any]:
            self.calls.append("list")
            matches = [f for f in self.files_by_id.values() if self._matches(f, q)]
            if kwargs.get("orderBy") == "createdTime desc":
                matches.sort(key=lambda f: f.created, reverse=True)
            limit = kwargs.get("pageSize") or self.page_size
            start = int(pageToken or 0)
            page = matches[start : start + limit]
            response: dict[str, Any] = {"files": [f.resource() for f in page]}
            if start + limit < len(matches) and "pageSize" not in kwargs:
                response["nextPageToken"] = str(start + limit)
            return response

        return _Call(run)

    def get(self, fileId: str, fields: str = "") -> _Call:
        def run() -> dict[str, Any]:
            self.calls.append("get")
            return self._require(fileId).resource()

        return _Call(run)

    def get_media(self, fileId: str) -> _Call:
        def run() -> bytes:
            self.calls.append("get_media")
            return self._require(fileId).content

        return _Call(run)

    def delete(self, fileId: str) -> _Call:
        def run() -> str:
            self.calls.append("delete")
            self._require(fileId)
            del self.files_by_id[fileId]
            return ""

        return _Call(run)


@pytest.fixture
def fake_drive() -> FakeDriveService:
    return FakeDriveService()
