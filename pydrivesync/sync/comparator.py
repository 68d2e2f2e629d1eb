"""Content comparison between a local file and its remote counterpart."""

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from ..utils import md5sum
from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)

# Only files larger than this keep their md5 in the persistent cache
CACHE_MIN_SIZE = 5 * 1024 * 1024


class FileComparer(Protocol):
    """Decides whether a matched local/remote file pair differs in content."""

    def changed(self, local: LocalFile, remote: RemoteFile) -> bool: ...


class Md5Comparer:
    """Compares the md5 of the local content with the remote checksum.

    Raises:
        OSError: From ``changed`` if the local file cannot be read
    """

    def local_md5(self, local: LocalFile) -> str:
        return md5sum(local.path)

    def changed(self, local: LocalFile, remote: RemoteFile) -> bool:
        return self.local_md5(local) != remote.md5


class CachedMd5Comparer(Md5Comparer):
    """Md5 comparer that remembers the checksum of large local files.

    The cache is a JSON file keyed by absolute path. An entry is reused
    only while the file's size and modification time (ns) are unchanged.
    Remote listings are never cached.
    """

    def __init__(self, cache_path: Path, min_size: int = CACHE_MIN_SIZE):
        """Initialize the comparer.

        Args:
            cache_path: JSON file holding cached checksums
            min_size: Files up to this many bytes are always hashed
        """
        self.cache_path = cache_path
        self.min_size = min_size
        self._lock = threading.Lock()
        self._cache = self._load()

    def _load(self) -> dict[str, dict]:
        if not self.cache_path.exists():
            logger.debug(f"No md5 cache found at {self.cache_path}")
            return {}

        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load md5 cache: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed md5 cache at {self.cache_path}")
            return {}
        logger.debug(f"Loaded {len(data)} cached checksums from {self.cache_path}")
        return data

    def _save(self) -> None:
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(self._cache, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to save md5 cache: {e}")

    def local_md5(self, local: LocalFile) -> str:
        if local.size <= self.min_size:
            return md5sum(local.path)

        key = str(local.path.resolve())
        with self._lock:
            cached = self._cache.get(key)
            if (
                cached
                and cached.get("size") == local.size
                and cached.get("mtime_ns") == local.mtime_ns
            ):
                return cached["md5"]

        digest = md5sum(local.path)
        with self._lock:
            self._cache[key] = {
                "size": local.size,
                "mtime_ns": local.mtime_ns,
                "md5": digest,
            }
            self._save()
        return digest
