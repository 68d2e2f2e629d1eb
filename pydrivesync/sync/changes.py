"""Reconciliation of local and remote trees by relative path."""

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TypeVar, Union

from ..exceptions import SyncOperationError
from ..utils import ROOT_PATH, path_depth
from .comparator import FileComparer
from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)

Entry = TypeVar("Entry", bound=Union[LocalFile, RemoteFile])


@dataclass
class ChangedFile:
    """A file present on both sides whose content differs."""

    local: LocalFile
    remote: RemoteFile

    @property
    def relative_path(self) -> str:
        return self.local.relative_path


@dataclass
class ChangeSet:
    """Differences between a local and a remote tree.

    ``missing_remote_*`` and ``extraneous_local`` hold local entries,
    ``missing_local_*`` and ``extraneous_remote`` hold remote entries.
    Each direction only reads the collections it needs.
    """

    missing_remote_dirs: list[LocalFile] = field(default_factory=list)
    missing_remote_files: list[LocalFile] = field(default_factory=list)
    missing_local_dirs: list[RemoteFile] = field(default_factory=list)
    missing_local_files: list[RemoteFile] = field(default_factory=list)
    changed: list[ChangedFile] = field(default_factory=list)
    extraneous_remote: list[RemoteFile] = field(default_factory=list)
    extraneous_local: list[LocalFile] = field(default_factory=list)
    type_mismatches: list[str] = field(default_factory=list)
    """Paths that are a file on one side and a directory on the other"""


def ordering_key(relative_path: str) -> tuple[int, str]:
    """Sort key placing parents before their children.

    Examples:
        >>> sorted(["a/b", "b", "a"], key=ordering_key)
        ['a', 'b', 'a/b']
    """
    return (path_depth(relative_path), relative_path)


def creation_order(entries: Iterable[Entry]) -> list[Entry]:
    """Order entries so every parent precedes its children."""
    return sorted(entries, key=lambda e: ordering_key(e.relative_path))


def deletion_order(entries: Iterable[Entry]) -> list[Entry]:
    """Order entries as the exact reverse of creation_order."""
    return creation_order(entries)[::-1]


def reconcile(
    local_files: Iterable[LocalFile],
    remote_files: Iterable[RemoteFile],
    comparer: FileComparer,
) -> ChangeSet:
    """Compute the differences between two trees.

    Entries correspond only by relative path. The root (".") is never part
    of any result, and directories are never reported as changed.

    Args:
        local_files: Local entries
        remote_files: Remote entries with reconstructed paths
        comparer: Decides whether a matched file pair differs

    Returns:
        ChangeSet describing both directions

    Raises:
        SyncOperationError: If the comparer cannot read a local file
    """
    start = time.time()
    local_by_path = {
        f.relative_path: f for f in local_files if f.relative_path != ROOT_PATH
    }
    remote_by_path = {
        f.relative_path: f for f in remote_files if f.relative_path != ROOT_PATH
    }
    changes = ChangeSet()

    for path, local in local_by_path.items():
        remote = remote_by_path.get(path)
        if remote is None:
            if local.is_dir:
                changes.missing_remote_dirs.append(local)
            else:
                changes.missing_remote_files.append(local)
            changes.extraneous_local.append(local)
            continue

        if local.is_dir != remote.is_dir:
            logger.warning(
                f"Type mismatch for {path}: local is "
                f"{'a directory' if local.is_dir else 'a file'}, remote is "
                f"{'a directory' if remote.is_dir else 'a file'}; skipping"
            )
            changes.type_mismatches.append(path)
            continue

        if local.is_dir:
            continue

        try:
            if comparer.changed(local, remote):
                changes.changed.append(ChangedFile(local=local, remote=remote))
        except OSError as e:
            raise SyncOperationError(
                f"Failed to compare {path}: {e}", operation="compare", path=path
            ) from e

    for path, remote in remote_by_path.items():
        if path in local_by_path:
            continue
        if remote.is_dir:
            changes.missing_local_dirs.append(remote)
        else:
            changes.missing_local_files.append(remote)
        changes.extraneous_remote.append(remote)

    logger.debug(
        f"Reconciled {len(local_by_path)} local and {len(remote_by_path)} remote "
        f"entries in {time.time() - start:.2f}s: "
        f"{len(changes.missing_remote_dirs) + len(changes.missing_remote_files)} "
        f"missing remotely, "
        f"{len(changes.missing_local_dirs) + len(changes.missing_local_files)} "
        f"missing locally, {len(changes.changed)} changed"
    )
    return changes
