"""Data models for remote store responses."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .utils import DIRECTORY_MIME_TYPE

# Fields requested for every node the sync engine inspects
FILE_FIELDS = (
    "id,name,parents,md5Checksum,mimeType,size,modifiedTime,createdTime,appProperties"
)


@dataclass
class FileEntry:
    """A node in the remote store.

    The store is flat: hierarchy is expressed only through ``parents``.
    """

    id: str
    name: str
    mime_type: str = ""
    parents: list[str] = field(default_factory=list)
    md5_checksum: str = ""
    size: int = 0
    modified_time: Optional[str] = None
    created_time: Optional[str] = None
    app_properties: dict[str, str] = field(default_factory=dict)

    @property
    def is_folder(self) -> bool:
        """True if this node is a directory."""
        return self.mime_type == DIRECTORY_MIME_TYPE

    @property
    def is_sync_root(self) -> bool:
        """True if this node carries the sync-root marker."""
        return "syncRoot" in self.app_properties

    @property
    def parent_id(self) -> Optional[str]:
        """The single parent id, or None if the node has zero or several."""
        if len(self.parents) == 1:
            return self.parents[0]
        return None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "FileEntry":
        """Create a FileEntry from a remote store response object."""
        size = data.get("size")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            parents=[str(p) for p in data.get("parents") or []],
            md5_checksum=data.get("md5Checksum") or "",
            size=int(size) if size not in (None, "") else 0,
            modified_time=data.get("modifiedTime"),
            created_time=data.get("createdTime"),
            app_properties=dict(data.get("appProperties") or {}),
        )


@dataclass
class FileList:
    """One page of a file listing."""

    entries: list[FileEntry]
    next_page_token: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "FileList":
        """Create a FileList from a listing response."""
        return cls(
            entries=[FileEntry.from_api_response(f) for f in data.get("files", [])],
            next_page_token=data.get("nextPageToken") or None,
        )


@dataclass
class StorageQuota:
    """Storage usage of the account; ``limit`` is None when unlimited."""

    limit: Optional[int]
    usage: int

    @property
    def free(self) -> Optional[int]:
        """Free bytes, or None when unlimited."""
        if self.limit is None:
            return None
        return self.limit - self.usage

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "StorageQuota":
        """Create a StorageQuota from an ``about`` response."""
        quota = data.get("storageQuota") or {}
        limit = quota.get("limit")
        return cls(
            limit=int(limit) if limit not in (None, "", "0", 0) else None,
            usage=int(quota.get("usage") or 0),
        )
