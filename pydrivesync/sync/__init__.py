"""Sync engine for pydrivesync - push/pull of a local tree against a sync root."""

from .changes import (
    ChangedFile,
    ChangeSet,
    creation_order,
    deletion_order,
    ordering_key,
    reconcile,
)
from .comparator import CachedMd5Comparer, FileComparer, Md5Comparer
from .engine import SyncEngine, SyncResult
from .ignore import IGNORE_FILE_NAME, IgnoreRule, IgnoreRules, load_ignore_file
from .operations import SYNC_ROOT_PROPERTIES, SyncOperations, sync_properties
from .options import PullSyncOptions, PushSyncOptions, SyncOptions
from .scanner import DirectoryScanner, LocalFile, RemoteFile
from .tree import (
    RemoteTree,
    build_relative_paths,
    check_remote_entries,
    check_unique_paths,
    collect_remote_files,
)

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncOperations",
    "SyncOptions",
    "PushSyncOptions",
    "PullSyncOptions",
    "DirectoryScanner",
    "LocalFile",
    "RemoteFile",
    "ChangedFile",
    "ChangeSet",
    "reconcile",
    "creation_order",
    "deletion_order",
    "ordering_key",
    "FileComparer",
    "Md5Comparer",
    "CachedMd5Comparer",
    "RemoteTree",
    "build_relative_paths",
    "check_remote_entries",
    "check_unique_paths",
    "collect_remote_files",
    "IgnoreRule",
    "IgnoreRules",
    "IGNORE_FILE_NAME",
    "load_ignore_file",
    "SYNC_ROOT_PROPERTIES",
    "sync_properties",
]
