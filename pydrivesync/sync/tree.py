"""Remote tree validation, path reconstruction and the in-memory tree mirror.

The remote store is flat: every node only knows its parent ids. The
functions here turn the flat node list of a sync root into entries keyed
by relative path, refusing anything that is not a proper tree.
"""

import logging
from collections.abc import Iterable
from typing import Optional

from ..exceptions import SyncConsistencyError
from ..models import FileEntry
from ..utils import ROOT_PATH, parent_path
from .scanner import RemoteFile

logger = logging.getLogger(__name__)

# Names that cannot be used as a single path segment
INVALID_NAMES = frozenset({"", ".", ".."})


def check_remote_entries(entries: Iterable[FileEntry]) -> None:
    """Validate the tree shape of a remote listing.

    Args:
        entries: Nodes linked to one sync root

    Raises:
        SyncConsistencyError: If a node has an unusable name, does not have
            exactly one parent, or shares its name with a sibling
    """
    seen: dict[tuple[str, str], str] = {}
    for entry in entries:
        if entry.name in INVALID_NAMES or "/" in entry.name:
            raise SyncConsistencyError(
                f"Remote entry {entry.id} has invalid name {entry.name!r}",
                operation="validate",
                path=entry.id,
            )

        if len(entry.parents) != 1:
            raise SyncConsistencyError(
                f"Remote entry '{entry.name}' has {len(entry.parents)} parents, "
                "expected exactly one",
                operation="validate",
                path=entry.id,
            )

        key = (entry.name, entry.parents[0])
        if key in seen:
            raise SyncConsistencyError(
                f"Duplicate remote entry '{entry.name}' in parent "
                f"{entry.parents[0]} (ids {seen[key]} and {entry.id})",
                operation="validate",
                path=entry.id,
            )
        seen[key] = entry.id


def build_relative_paths(root_id: str, entries: Iterable[FileEntry]) -> dict[str, str]:
    """Reconstruct the relative path of every node by walking its parent chain.

    Each chain is walked once; resolved ancestors are memoized so the total
    cost is linear in the number of nodes.

    Args:
        root_id: Id of the sync root
        entries: Validated nodes (see check_remote_entries)

    Returns:
        Mapping of node id to relative path (the root maps to ".")

    Raises:
        SyncConsistencyError: If a chain never reaches the root or loops
    """
    by_id = {entry.id: entry for entry in entries if entry.id != root_id}
    paths: dict[str, str] = {root_id: ROOT_PATH}

    for node_id in by_id:
        chain: list[FileEntry] = []
        visiting: set[str] = set()
        current: Optional[str] = node_id

        while current not in paths:
            if current in visiting:
                raise SyncConsistencyError(
                    f"Remote entry '{by_id[node_id].name}' is part of a parent cycle",
                    operation="resolve",
                    path=node_id,
                )
            entry = by_id.get(current) if current is not None else None
            if entry is None:
                child = chain[-1] if chain else by_id[node_id]
                raise SyncConsistencyError(
                    f"Parent {current} of remote entry '{child.name}' "
                    "is not part of the sync root",
                    operation="resolve",
                    path=child.id,
                )
            visiting.add(current)
            chain.append(entry)
            current = entry.parent_id

        base = paths[current]
        for entry in reversed(chain):
            base = entry.name if base == ROOT_PATH else f"{base}/{entry.name}"
            paths[entry.id] = base

    return paths


def check_unique_paths(paths: dict[str, str]) -> None:
    """Ensure no two nodes resolved to the same relative path.

    Args:
        paths: Mapping of node id to relative path

    Raises:
        SyncConsistencyError: If a relative path is claimed twice
    """
    owners: dict[str, str] = {}
    for node_id, path in paths.items():
        if path in owners:
            raise SyncConsistencyError(
                f"Remote entries {owners[path]} and {node_id} share the "
                f"relative path '{path}'",
                operation="resolve",
                path=path,
            )
        owners[path] = node_id


def collect_remote_files(root_id: str, entries: list[FileEntry]) -> list[RemoteFile]:
    """Validate a remote listing and attach a relative path to every node.

    Args:
        root_id: Id of the sync root
        entries: Nodes linked to the sync root

    Returns:
        RemoteFile objects, excluding the root itself

    Raises:
        SyncConsistencyError: If the listing is not a proper tree
    """
    entries = [entry for entry in entries if entry.id != root_id]
    check_remote_entries(entries)
    paths = build_relative_paths(root_id, entries)
    check_unique_paths(paths)
    logger.debug(f"Reconstructed {len(entries)} remote paths below {root_id}")
    return [RemoteFile(entry=entry, relative_path=paths[entry.id]) for entry in entries]


class RemoteTree:
    """In-memory mirror of the remote tree, keyed by relative path.

    Seeded with the sync root and every collected remote entry; the engine
    registers each directory or file it creates so later phases can resolve
    it as a parent. In dry-run mode synthetic entries (empty id) are
    registered the same way.
    """

    def __init__(self, root: FileEntry, remote_files: Iterable[RemoteFile] = ()):
        self.root = root
        self._entries: dict[str, FileEntry] = {ROOT_PATH: root}
        for remote_file in remote_files:
            self.register(remote_file.relative_path, remote_file.entry)

    def register(self, relative_path: str, entry: FileEntry) -> None:
        self._entries[relative_path] = entry

    def get(self, relative_path: str) -> Optional[FileEntry]:
        return self._entries.get(relative_path)

    def resolve_parent(self, relative_path: str) -> FileEntry:
        """Return the directory an entry at ``relative_path`` belongs in.

        Raises:
            SyncConsistencyError: If the parent is unknown or not a directory
        """
        parent = parent_path(relative_path)
        entry = self._entries.get(parent)
        if entry is None:
            raise SyncConsistencyError(
                f"Parent directory '{parent}' of '{relative_path}' does not exist",
                operation="resolve",
                path=relative_path,
            )
        if not entry.is_folder:
            raise SyncConsistencyError(
                f"Parent '{parent}' of '{relative_path}' is not a directory",
                operation="resolve",
                path=relative_path,
            )
        return entry

    def __contains__(self, relative_path: str) -> bool:
        return relative_path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
