"""Shared fixtures: an in-memory remote store speaking the DriveClient API."""

import hashlib
import itertools
import re
from pathlib import Path
from typing import Any, Optional

import pytest

from pydrivesync.exceptions import DriveNotFoundError
from pydrivesync.output import OutputFormatter
from pydrivesync.utils import DIRECTORY_MIME_TYPE

SYNC_ENTRIES_RE = re.compile(
    r"appProperties has \{key='syncRootId' and value='(.+)'\}"
)
SYNC_ROOTS_RE = re.compile(r"appProperties has \{key='syncRoot' and value='true'\}")
CHILDREN_RE = re.compile(r"'(.+)' in parents and trashed = false")

MUTATING = {
    "create_file",
    "update_file",
    "delete_file",
    "upload_file",
    "update_file_content",
}


class FakeDriveClient:
    """Flat in-memory node store with the DriveClient method signatures.

    Every call is recorded in ``calls`` as ``(method, detail)``; ``mutations``
    filters the calls that change remote state. Assigning an exception to
    ``failures[method]`` makes that method raise it.
    """

    def __init__(self, quota_limit: Optional[int] = None):
        self.nodes: dict[str, dict[str, Any]] = {}
        self.contents: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.quota_limit = quota_limit
        self._ids = itertools.count(1)

    # Test helpers

    def add_folder(
        self,
        name: str,
        parent: str = "root",
        app_properties: Optional[dict[str, str]] = None,
        parents: Optional[list[str]] = None,
    ) -> str:
        node_id = f"id{next(self._ids)}"
        self.nodes[node_id] = {
            "id": node_id,
            "name": name,
            "mimeType": DIRECTORY_MIME_TYPE,
            "parents": parents if parents is not None else [parent],
            "appProperties": dict(app_properties or {}),
            "createdTime": "2025-01-15T10:30:00.000Z",
            "modifiedTime": "2025-01-15T10:30:00.000Z",
        }
        return node_id

    def add_file(
        self,
        name: str,
        parent: str,
        content: bytes = b"",
        app_properties: Optional[dict[str, str]] = None,
        parents: Optional[list[str]] = None,
    ) -> str:
        node_id = f"id{next(self._ids)}"
        self.nodes[node_id] = {
            "id": node_id,
            "name": name,
            "mimeType": "application/octet-stream",
            "parents": parents if parents is not None else [parent],
            "appProperties": dict(app_properties or {}),
            "createdTime": "2025-01-15T10:30:00.000Z",
            "modifiedTime": "2025-01-15T10:30:00.000Z",
        }
        self._set_content(node_id, content)
        return node_id

    def add_sync_root(self, name: str = "backup") -> str:
        return self.add_folder(
            name, app_properties={"sync": "true", "syncRoot": "true"}
        )

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in MUTATING]

    def paths(self, root_id: str) -> dict[str, dict[str, Any]]:
        """Map relative path -> node for every descendant of root_id."""
        result: dict[str, dict[str, Any]] = {}

        def walk(parent_id: str, prefix: str) -> None:
            for node in self.nodes.values():
                if node["parents"] == [parent_id]:
                    path = f"{prefix}{node['name']}"
                    result[path] = node
                    if node["mimeType"] == DIRECTORY_MIME_TYPE:
                        walk(node["id"], f"{path}/")

        walk(root_id, "")
        return result

    def _set_content(self, node_id: str, content: bytes) -> None:
        self.contents[node_id] = content
        self.nodes[node_id]["md5Checksum"] = hashlib.md5(content).hexdigest()
        self.nodes[node_id]["size"] = str(len(content))

    def _record(self, method: str, detail: str) -> None:
        self.calls.append((method, detail))
        if method in self.failures:
            raise self.failures[method]

    def _node(self, file_id: str) -> dict[str, Any]:
        if file_id not in self.nodes:
            raise DriveNotFoundError(f"Resource not found: {file_id}")
        return self.nodes[file_id]

    # DriveClient API

    def __enter__(self) -> "FakeDriveClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        pass

    def list_files(
        self,
        query: str,
        fields: str,
        page_token: Optional[str] = None,
        page_size: int = 1000,
    ) -> dict[str, Any]:
        self._record("list_files", query)
        if match := SYNC_ENTRIES_RE.fullmatch(query):
            matches = [
                n
                for n in self.nodes.values()
                if n["appProperties"].get("syncRootId") == match.group(1)
            ]
        elif SYNC_ROOTS_RE.fullmatch(query):
            matches = [
                n for n in self.nodes.values() if "syncRoot" in n["appProperties"]
            ]
        elif match := CHILDREN_RE.fullmatch(query):
            matches = [
                n for n in self.nodes.values() if match.group(1) in n["parents"]
            ]
        else:
            raise AssertionError(f"Unexpected query: {query}")

        start = int(page_token or 0)
        page = [dict(n) for n in matches[start : start + page_size]]
        result: dict[str, Any] = {"files": page}
        if start + page_size < len(matches):
            result["nextPageToken"] = str(start + page_size)
        return result

    def get_file(self, file_id: str, fields: str) -> dict[str, Any]:
        self._record("get_file", file_id)
        return dict(self._node(file_id))

    def create_file(self, metadata: dict[str, Any], fields: str = "id") -> dict:
        self._record("create_file", metadata["name"])
        node_id = self.add_folder(
            metadata["name"],
            parents=list(metadata["parents"]),
            app_properties=metadata.get("appProperties"),
        )
        self.nodes[node_id]["mimeType"] = metadata.get("mimeType", "")
        return dict(self.nodes[node_id])

    def update_file(
        self, file_id: str, metadata: dict[str, Any], fields: str = "id"
    ) -> dict[str, Any]:
        self._record("update_file", file_id)
        node = self._node(file_id)
        node["appProperties"] = dict(metadata.get("appProperties", {}))
        return dict(node)

    def delete_file(self, file_id: str) -> None:
        self._record("delete_file", self._node(file_id)["name"])
        # Deleting a folder removes its descendants
        pending = [file_id]
        while pending:
            current = pending.pop()
            self.nodes.pop(current, None)
            self.contents.pop(current, None)
            pending.extend(
                n["id"] for n in self.nodes.values() if current in n["parents"]
            )

    def get_about(self, fields: str = "storageQuota") -> dict[str, Any]:
        self._record("get_about", fields)
        usage = sum(len(c) for c in self.contents.values())
        quota: dict[str, str] = {"usage": str(usage)}
        if self.quota_limit is not None:
            quota["limit"] = str(self.quota_limit)
        return {"storageQuota": quota}

    def upload_file(
        self,
        file_path: Path,
        metadata: dict[str, Any],
        chunk_size: int = 0,
        idle_timeout: float = 0,
        cancel_token=None,
        progress_callback=None,
        fields: str = "id",
    ) -> dict[str, Any]:
        self._record("upload_file", metadata["name"])
        content = Path(file_path).read_bytes()
        node_id = self.add_file(
            metadata["name"],
            parent="",
            content=content,
            parents=list(metadata["parents"]),
            app_properties=metadata.get("appProperties"),
        )
        if progress_callback:
            progress_callback(len(content), len(content))
        return dict(self.nodes[node_id])

    def update_file_content(
        self,
        file_id: str,
        file_path: Path,
        chunk_size: int = 0,
        idle_timeout: float = 0,
        cancel_token=None,
        progress_callback=None,
        fields: str = "id",
    ) -> dict[str, Any]:
        self._record("update_file_content", self._node(file_id)["name"])
        self._set_content(file_id, Path(file_path).read_bytes())
        return dict(self.nodes[file_id])

    def download_file(
        self,
        file_id: str,
        output_path: Path,
        chunk_size: int = 0,
        idle_timeout: float = 0,
        cancel_token=None,
        progress_callback=None,
    ) -> Path:
        self._record("download_file", self._node(file_id)["name"])
        content = self.contents[file_id]
        Path(output_path).write_bytes(content)
        if progress_callback:
            progress_callback(len(content), len(content))
        return Path(output_path)


@pytest.fixture
def fake_client():
    """An empty in-memory remote store."""
    return FakeDriveClient()


@pytest.fixture
def quiet_output():
    """Output formatter that prints nothing."""
    return OutputFormatter(quiet=True)


def write_tree(root: Path, files: dict[str, bytes], dirs: tuple[str, ...] = ()) -> None:
    """Create files (and extra empty directories) below root."""
    for rel in dirs:
        (root / rel).mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def local_snapshot(root: Path) -> dict[str, Optional[str]]:
    """Map relative path -> md5 (None for directories) for a local tree."""
    snapshot: dict[str, Optional[str]] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_dir():
            snapshot[rel] = None
        else:
            snapshot[rel] = hashlib.md5(path.read_bytes()).hexdigest()
    return snapshot
