"""Local directory scanning and the local/remote entry types."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import SyncOperationError
from ..models import FileEntry
from ..utils import ROOT_PATH
from .ignore import IGNORE_FILE_NAME, IgnoreRules, load_ignore_file

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """A local file or directory below the sync root."""

    path: Path
    """Absolute path"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    is_dir: bool
    """Whether the entry is a directory"""

    size: int
    """Size in bytes (0 for directories)"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    mtime_ns: int = 0
    """Last modification time in nanoseconds"""

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the entry
            base_path: Sync root for calculating relative paths

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        is_dir = file_path.is_dir()
        return cls(
            path=file_path,
            # Use as_posix() to ensure forward slashes on all platforms
            relative_path=file_path.relative_to(base_path).as_posix(),
            is_dir=is_dir,
            size=0 if is_dir else stat.st_size,
            mtime=stat.st_mtime,
            mtime_ns=stat.st_mtime_ns,
        )


@dataclass
class RemoteFile:
    """A remote node together with its reconstructed relative path."""

    entry: FileEntry
    """Remote node"""

    relative_path: str
    """Relative path from the sync root"""

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def is_dir(self) -> bool:
        return self.entry.is_folder

    @property
    def md5(self) -> str:
        """Content checksum reported by the remote store."""
        return self.entry.md5_checksum

    @property
    def size(self) -> int:
        return self.entry.size


class DirectoryScanner:
    """Scans a local directory tree.

    Any I/O or permission error aborts the scan; a partial tree is never
    returned.

    Examples:
        >>> scanner = DirectoryScanner(ignore_patterns=["*.tmp"])
        >>> entries = scanner.scan_local(Path("/sync/folder"))
    """

    def __init__(
        self,
        ignore_patterns: Optional[list[str]] = None,
        use_ignore_file: bool = True,
    ):
        """Initialize directory scanner.

        Args:
            ignore_patterns: Glob patterns to ignore (e.g., ["*.log", "build/"])
            use_ignore_file: Whether to load .drivesyncignore from the root
        """
        self.ignore_patterns = ignore_patterns or []
        self.use_ignore_file = use_ignore_file

    def _load_rules(self, root: Path) -> IgnoreRules:
        rules = IgnoreRules.from_patterns(self.ignore_patterns)
        if self.use_ignore_file:
            try:
                rules.extend(load_ignore_file(root / IGNORE_FILE_NAME))
            except OSError as e:
                raise SyncOperationError(
                    f"Failed to read ignore file: {e}",
                    operation="scan",
                    path=IGNORE_FILE_NAME,
                ) from e
        return rules

    def filter_remote(
        self, directory: Path, remote_files: list[RemoteFile]
    ) -> list[RemoteFile]:
        """Drop remote entries that a scan of ``directory`` would ignore.

        The rules are the same ones scan_local applies, so an entry below an
        ignored directory is dropped together with it.

        Args:
            directory: Local sync root the rules are loaded from
            remote_files: Remote entries with their relative paths

        Returns:
            The remote entries that are not ignored

        Raises:
            SyncOperationError: If the ignore file cannot be read
        """
        rules = self._load_rules(directory.resolve())
        if not rules:
            return remote_files

        kept: list[RemoteFile] = []
        for remote_file in remote_files:
            path = remote_file.relative_path
            if _is_ignored_path(rules, path, remote_file.is_dir):
                logger.debug(f"Ignoring remote (from rules): {path}")
                continue
            kept.append(remote_file)
        return kept

    def scan_local(self, directory: Path) -> list[LocalFile]:
        """Recursively scan a local directory.

        Args:
            directory: Sync root to scan

        Returns:
            LocalFile objects for every file and directory below the root,
            parents before children, excluding the root itself

        Raises:
            SyncOperationError: If any entry cannot be read
        """
        root = directory.resolve()
        rules = self._load_rules(root)
        entries: list[LocalFile] = []
        self._scan(root, root, rules, entries)
        return entries

    def _scan(
        self,
        directory: Path,
        base_path: Path,
        rules: IgnoreRules,
        entries: list[LocalFile],
    ) -> None:
        try:
            items = sorted(directory.iterdir())
        except OSError as e:
            raise SyncOperationError(
                f"Failed to read directory {directory}: {e}",
                operation="scan",
                path=_relative(directory, base_path),
            ) from e

        for item in items:
            relative_path = item.relative_to(base_path).as_posix()
            try:
                # Only regular files and directories are synced
                if item.is_symlink():
                    logger.debug(f"Skipping symlink: {relative_path}")
                    continue
                is_dir = item.is_dir()
                if not is_dir and not item.is_file():
                    logger.debug(f"Skipping special file: {relative_path}")
                    continue
                if rules.is_ignored(relative_path, is_dir=is_dir):
                    logger.debug(f"Ignoring (from rules): {relative_path}")
                    continue
                entries.append(LocalFile.from_path(item, base_path))
            except OSError as e:
                raise SyncOperationError(
                    f"Failed to stat {relative_path}: {e}",
                    operation="scan",
                    path=relative_path,
                ) from e

            if is_dir:
                self._scan(item, base_path, rules, entries)


def _relative(path: Path, base_path: Path) -> str:
    if path == base_path:
        return ROOT_PATH
    return path.relative_to(base_path).as_posix()


def _is_ignored_path(rules: IgnoreRules, relative_path: str, is_dir: bool) -> bool:
    parts = relative_path.split("/")
    for depth in range(1, len(parts)):
        if rules.is_ignored("/".join(parts[:depth]), is_dir=True):
            return True
    return rules.is_ignored(relative_path, is_dir=is_dir)
