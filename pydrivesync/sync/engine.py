"""Core sync engine for push and pull synchronization."""

import logging
import os
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from ..api import DriveClient
from ..exceptions import (
    DriveAPIError,
    DriveNotFoundError,
    DriveTransferCancelledError,
    DriveTransferTimeoutError,
    SyncCancelledError,
    SyncConsistencyError,
    SyncError,
    SyncOperationError,
    SyncSetupError,
)
from ..file_entries_manager import FileEntriesManager
from ..models import FileEntry, StorageQuota
from ..output import OutputFormatter
from ..transfer import CancelToken
from ..utils import DIRECTORY_MIME_TYPE, ROOT_PATH, format_size, parent_path
from .changes import ChangeSet, creation_order, deletion_order, reconcile
from .comparator import FileComparer, Md5Comparer
from .operations import SyncOperations
from .options import PullSyncOptions, PushSyncOptions
from .scanner import DirectoryScanner, LocalFile, RemoteFile
from .tree import RemoteTree, collect_remote_files

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Progress hook: (relative_path, bytes_transferred, total_bytes)
SyncProgressCallback = Callable[[str, int, int], None]
ProgressBinder = Callable[[str], Optional[Callable[[int, int], None]]]


@dataclass
class SyncResult:
    """Outcome of a successful sync run."""

    direction: str
    dry_run: bool = False
    local_entries: int = 0
    remote_entries: int = 0
    dirs_created: int = 0
    files_created: int = 0
    files_updated: int = 0
    deleted: int = 0
    type_mismatches: int = 0
    elapsed: float = 0.0

    @property
    def total_operations(self) -> int:
        return (
            self.dirs_created + self.files_created + self.files_updated + self.deleted
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_operations"] = self.total_operations
        return data


def _run_operation(
    operation: str,
    path: str,
    func: Callable[..., T],
    *args: Any,
    cancel_token: Optional[CancelToken] = None,
    **kwargs: Any,
) -> T:
    """Run one mutation, translating any failure into a SyncError.

    Args:
        operation: Name of the operation, used in the error
        path: Relative path the operation works on
        func: Callable performing the mutation

    Raises:
        SyncCancelledError: If the run was cancelled or the transfer stalled
        SyncOperationError: If the mutation failed
    """
    try:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return func(*args, **kwargs)
    except (DriveTransferTimeoutError, DriveTransferCancelledError) as e:
        raise SyncCancelledError(
            f"Failed to {operation} {path}: {e}", operation=operation, path=path
        ) from e
    except SyncError:
        raise
    except (DriveAPIError, OSError) as e:
        raise SyncOperationError(
            f"Failed to {operation} {path}: {e}", operation=operation, path=path
        ) from e


class SyncEngine:
    """Orchestrates push and pull synchronization of one sync root.

    Both directions collect the local and remote trees concurrently, then
    apply the differences sequentially in four phases: create directories,
    create files, update changed files and, optionally, delete extraneous
    entries. The first failure aborts the run; re-running it recomputes the
    differences from the current state.
    """

    def __init__(
        self,
        client: DriveClient,
        output: Optional[OutputFormatter] = None,
        scanner: Optional[DirectoryScanner] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Drive API client
            output: Output formatter receiving progress lines
            scanner: Local directory scanner (defaults to one honoring
                .drivesyncignore)
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.scanner = scanner or DirectoryScanner()
        self.entries_manager = FileEntriesManager(client)

    # =========================
    # Push (local authoritative)
    # =========================

    def push_sync(
        self,
        local_path: Path,
        root_id: str,
        options: Optional[PushSyncOptions] = None,
        comparer: Optional[FileComparer] = None,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[SyncProgressCallback] = None,
    ) -> SyncResult:
        """Make a remote sync root mirror a local directory.

        Args:
            local_path: Local directory
            root_id: Id of the remote sync root (an empty directory the
                first time)
            options: Push options
            comparer: Content comparer (default: Md5Comparer)
            cancel_token: Optional cancellation flag
            progress_callback: Optional transfer progress hook

        Returns:
            SyncResult with operation counts

        Raises:
            SyncError: On the first failure; nothing is rolled back

        Examples:
            >>> engine = SyncEngine(client)
            >>> result = engine.push_sync(Path("/data"), "1AbC", PushSyncOptions())
            >>> print(f"Uploaded {result.files_created} files")
        """
        options = options or PushSyncOptions()
        comparer = comparer or Md5Comparer()
        started = time.time()
        ops = SyncOperations(
            self.client,
            chunk_size=options.chunk_size,
            timeout=options.timeout,
            cancel_token=cancel_token,
        )

        self.output.info("Starting sync...")
        if options.dry_run:
            self.output.info("Dry run: no changes will be made")

        local_root = local_path.resolve()
        if not local_root.is_dir():
            raise SyncSetupError(
                f"Local path is not a directory: {local_path}",
                operation="setup",
                path=str(local_path),
            )
        root = self._prepare_push_root(root_id, ops, options.dry_run, cancel_token)

        self.output.info("Collecting local and remote file information...")
        local_files, remote_files = self._collect(local_root, root.id)
        self.output.info(
            f"Found {len(local_files)} local files "
            f"and {len(remote_files)} remote files"
        )

        changes = self._reconcile(local_files, remote_files, comparer)
        if options.check_free_space:
            self._ensure_free_space(changes)

        result = SyncResult(
            direction="push",
            dry_run=options.dry_run,
            local_entries=len(local_files),
            remote_entries=len(remote_files),
            type_mismatches=len(changes.type_mismatches),
        )
        tree = RemoteTree(root, remote_files)
        progress = _progress_factory(progress_callback)

        dry_run = options.dry_run
        self._create_remote_dirs(changes, tree, ops, dry_run, result)
        self._upload_missing_files(changes, tree, ops, dry_run, result, progress)
        self._update_remote_files(changes, tree, ops, dry_run, result, progress)
        if options.delete_extraneous:
            self._delete_extraneous_remote(changes, tree, ops, dry_run, result)

        result.elapsed = time.time() - started
        self.output.info(f"Sync finished in {timedelta(seconds=round(result.elapsed))}")
        return result

    def _prepare_push_root(
        self,
        root_id: str,
        ops: SyncOperations,
        dry_run: bool,
        cancel_token: Optional[CancelToken],
    ) -> FileEntry:
        """Return the push root, marking an empty directory on first use."""
        root = self._get_root(root_id)
        if root.is_sync_root:
            return root

        empty = _run_operation(
            "list",
            root.id,
            self.entries_manager.is_folder_empty,
            root.id,
        )
        if not empty:
            raise SyncSetupError(
                f"Directory '{root.name}' is not a sync root and not empty, "
                "the initial sync requires an empty directory",
                operation="setup",
                path=root.id,
            )

        self.output.info(f"Marking '{root.name}' as sync root")
        if dry_run:
            return root
        return _run_operation(
            "mark sync root",
            root.id,
            ops.mark_sync_root,
            root,
            cancel_token=cancel_token,
        )

    def _ensure_free_space(self, changes: ChangeSet) -> None:
        """Refuse to start when the upload would not fit the remote quota."""
        needed = sum(f.size for f in changes.missing_remote_files)
        needed += sum(c.local.size for c in changes.changed)
        if needed == 0:
            return

        about = _run_operation("get quota", ROOT_PATH, self.client.get_about)
        quota = StorageQuota.from_api_response(about)
        if quota.free is None:
            logger.debug("Remote storage quota is unlimited")
            return
        if needed > quota.free:
            raise SyncSetupError(
                f"Not enough free space, have {format_size(max(quota.free, 0))} "
                f"need {format_size(needed)}",
                operation="setup",
            )

    def _create_remote_dirs(
        self,
        changes: ChangeSet,
        tree: RemoteTree,
        ops: SyncOperations,
        dry_run: bool,
        result: SyncResult,
    ) -> None:
        missing = creation_order(changes.missing_remote_dirs)
        if not missing:
            return

        total = len(missing)
        self.output.info(f"\n{total} remote directories are missing")
        for i, local_file in enumerate(missing, 1):
            path = local_file.relative_path
            parent = tree.resolve_parent(path)
            self.output.info(
                f"[{i:04d}/{total:04d}] Creating directory {tree.root.name}/{path}"
            )
            if dry_run:
                entry = FileEntry(
                    id="",
                    name=local_file.name,
                    mime_type=DIRECTORY_MIME_TYPE,
                    parents=[parent.id],
                )
            else:
                entry = _run_operation(
                    "create directory",
                    path,
                    ops.create_remote_dir,
                    local_file.name,
                    parent.id,
                    tree.root.id,
                    cancel_token=ops.cancel_token,
                )
            tree.register(path, entry)
            result.dirs_created += 1

    def _upload_missing_files(
        self,
        changes: ChangeSet,
        tree: RemoteTree,
        ops: SyncOperations,
        dry_run: bool,
        result: SyncResult,
        progress: ProgressBinder,
    ) -> None:
        missing = creation_order(changes.missing_remote_files)
        if not missing:
            return

        total = len(missing)
        self.output.info(f"\n{total} remote files are missing")
        for i, local_file in enumerate(missing, 1):
            path = local_file.relative_path
            parent = tree.resolve_parent(path)
            self.output.info(
                f"[{i:04d}/{total:04d}] Uploading {path} -> {tree.root.name}/{path}"
            )
            if dry_run:
                entry = FileEntry(
                    id="",
                    name=local_file.name,
                    parents=[parent.id],
                    size=local_file.size,
                )
            else:
                start = time.time()
                entry = _run_operation(
                    "upload",
                    path,
                    ops.upload_new_file,
                    local_file,
                    parent.id,
                    tree.root.id,
                    progress_callback=progress(path),
                    cancel_token=ops.cancel_token,
                )
                logger.debug(f"Uploaded {path} in {time.time() - start:.2f}s")
            tree.register(path, entry)
            result.files_created += 1

    def _update_remote_files(
        self,
        changes: ChangeSet,
        tree: RemoteTree,
        ops: SyncOperations,
        dry_run: bool,
        result: SyncResult,
        progress: ProgressBinder,
    ) -> None:
        changed = creation_order(changes.changed)
        if not changed:
            return

        total = len(changed)
        self.output.info(f"\n{total} local files have changed")
        for i, changed_file in enumerate(changed, 1):
            path = changed_file.relative_path
            self.output.info(
                f"[{i:04d}/{total:04d}] Updating {path} -> {tree.root.name}/{path}"
            )
            if dry_run:
                result.files_updated += 1
                continue

            start = time.time()
            entry = _run_operation(
                "update",
                path,
                ops.update_remote_file,
                changed_file.local,
                changed_file.remote,
                progress_callback=progress(path),
                cancel_token=ops.cancel_token,
            )
            logger.debug(f"Updated {path} in {time.time() - start:.2f}s")
            tree.register(path, entry)
            result.files_updated += 1

    def _delete_extraneous_remote(
        self,
        changes: ChangeSet,
        tree: RemoteTree,
        ops: SyncOperations,
        dry_run: bool,
        result: SyncResult,
    ) -> None:
        extraneous = deletion_order(changes.extraneous_remote)
        if not extraneous:
            return

        total = len(extraneous)
        self.output.info(f"\n{total} remote files are extraneous")
        for i, remote_file in enumerate(extraneous, 1):
            path = remote_file.relative_path
            self.output.info(f"[{i:04d}/{total:04d}] Deleting {tree.root.name}/{path}")
            if not dry_run:
                _run_operation(
                    "delete",
                    path,
                    ops.delete_remote,
                    remote_file,
                    cancel_token=ops.cancel_token,
                )
            result.deleted += 1

    # =========================
    # Pull (remote authoritative)
    # =========================

    def pull_sync(
        self,
        root_id: str,
        local_path: Path,
        options: Optional[PullSyncOptions] = None,
        comparer: Optional[FileComparer] = None,
        cancel_token: Optional[CancelToken] = None,
        progress_callback: Optional[SyncProgressCallback] = None,
    ) -> SyncResult:
        """Make a local directory mirror a remote sync root.

        Args:
            root_id: Id of a directory previously marked by push_sync
            local_path: Local directory (created when missing)
            options: Pull options
            comparer: Content comparer (default: Md5Comparer)
            cancel_token: Optional cancellation flag
            progress_callback: Optional transfer progress hook

        Returns:
            SyncResult with operation counts

        Raises:
            SyncError: On the first failure; nothing is rolled back
        """
        options = options or PullSyncOptions()
        comparer = comparer or Md5Comparer()
        started = time.time()
        ops = SyncOperations(
            self.client,
            chunk_size=options.chunk_size,
            timeout=options.timeout,
            cancel_token=cancel_token,
        )

        self.output.info("Starting sync...")
        if options.dry_run:
            self.output.info("Dry run: no changes will be made")

        root = self._get_root(root_id)
        if not root.is_sync_root:
            raise SyncSetupError(
                f"Directory '{root.name}' is not a sync root",
                operation="setup",
                path=root.id,
            )

        local_root = local_path.resolve()
        local_exists = self._prepare_pull_target(local_root, options.dry_run)

        self.output.info("Collecting file information...")
        local_files, remote_files = self._collect(
            local_root, root.id, scan_local=local_exists
        )
        remote_files = self.scanner.filter_remote(local_root, remote_files)
        self.output.info(
            f"Found {len(local_files)} local files "
            f"and {len(remote_files)} remote files"
        )

        changes = self._reconcile(local_files, remote_files, comparer)
        result = SyncResult(
            direction="pull",
            dry_run=options.dry_run,
            local_entries=len(local_files),
            remote_entries=len(remote_files),
            type_mismatches=len(changes.type_mismatches),
        )
        local_dirs = {ROOT_PATH} | {f.relative_path for f in local_files if f.is_dir}
        progress = _progress_factory(progress_callback)

        self._create_local_dirs(changes, local_root, local_dirs, ops, options, result)
        self._download_files(
            "local files are missing",
            "download",
            changes.missing_local_files,
            local_root,
            local_dirs,
            ops,
            options.dry_run,
            progress,
        )
        result.files_created = len(changes.missing_local_files)
        self._download_files(
            "remote files have changed",
            "update",
            [c.remote for c in changes.changed],
            local_root,
            local_dirs,
            ops,
            options.dry_run,
            progress,
        )
        result.files_updated = len(changes.changed)
        if options.delete_extraneous:
            self._delete_extraneous_local(changes, ops, options.dry_run, result)

        result.elapsed = time.time() - started
        self.output.info(f"Sync finished in {timedelta(seconds=round(result.elapsed))}")
        return result

    def _prepare_pull_target(self, local_root: Path, dry_run: bool) -> bool:
        """Ensure the local target directory exists.

        Returns:
            True if the directory exists (and should be scanned)
        """
        if local_root.is_dir():
            return True
        if local_root.exists():
            raise SyncSetupError(
                f"Local path is not a directory: {local_root}",
                operation="setup",
                path=str(local_root),
            )

        self.output.info(f"Creating local directory {local_root}")
        if dry_run:
            return False
        try:
            local_root.mkdir(parents=True)
        except OSError as e:
            raise SyncSetupError(
                f"Failed to create local directory {local_root}: {e}",
                operation="setup",
                path=str(local_root),
            ) from e
        return True

    def _create_local_dirs(
        self,
        changes: ChangeSet,
        local_root: Path,
        local_dirs: set[str],
        ops: SyncOperations,
        options: PullSyncOptions,
        result: SyncResult,
    ) -> None:
        missing = creation_order(changes.missing_local_dirs)
        if not missing:
            return

        total = len(missing)
        self.output.info(f"\n{total} local directories are missing")
        for i, remote_file in enumerate(missing, 1):
            path = remote_file.relative_path
            target = _resolve_local_target(local_root, local_dirs, path)
            self.output.info(
                f"[{i:04d}/{total:04d}] Creating directory {local_root.name}/{path}"
            )
            if not options.dry_run:
                _run_operation(
                    "create directory",
                    path,
                    ops.create_local_dir,
                    target,
                    cancel_token=ops.cancel_token,
                )
            local_dirs.add(path)
            result.dirs_created += 1

    def _download_files(
        self,
        heading: str,
        operation: str,
        remote_files: list[RemoteFile],
        local_root: Path,
        local_dirs: set[str],
        ops: SyncOperations,
        dry_run: bool,
        progress: ProgressBinder,
    ) -> None:
        files = creation_order(remote_files)
        if not files:
            return

        total = len(files)
        self.output.info(f"\n{total} {heading}")
        for i, remote_file in enumerate(files, 1):
            path = remote_file.relative_path
            target = _resolve_local_target(local_root, local_dirs, path)
            self.output.info(
                f"[{i:04d}/{total:04d}] Downloading {path} -> {local_root.name}/{path}"
            )
            if dry_run:
                continue

            start = time.time()
            _run_operation(
                operation,
                path,
                ops.download_file,
                remote_file,
                target,
                progress_callback=progress(path),
                cancel_token=ops.cancel_token,
            )
            logger.debug(f"Downloaded {path} in {time.time() - start:.2f}s")

    def _delete_extraneous_local(
        self,
        changes: ChangeSet,
        ops: SyncOperations,
        dry_run: bool,
        result: SyncResult,
    ) -> None:
        extraneous = deletion_order(changes.extraneous_local)
        if not extraneous:
            return

        total = len(extraneous)
        self.output.info(f"\n{total} local files are extraneous")
        for i, local_file in enumerate(extraneous, 1):
            self.output.info(f"[{i:04d}/{total:04d}] Deleting {local_file.path}")
            if not dry_run:
                _run_operation(
                    "delete",
                    local_file.relative_path,
                    ops.delete_local,
                    local_file,
                    cancel_token=ops.cancel_token,
                )
            result.deleted += 1

    # =========================
    # Listing
    # =========================

    def list_sync_roots(self) -> list[FileEntry]:
        """List every remote directory marked as a sync root."""
        return _run_operation("list", ROOT_PATH, self.entries_manager.get_sync_roots)

    def list_sync_content(self, root_id: str) -> list[RemoteFile]:
        """List the synced entries below a sync root.

        Returns:
            RemoteFile objects sorted case-insensitively by relative path

        Raises:
            SyncSetupError: If the root is missing or not a sync root
            SyncConsistencyError: If the remote tree is malformed
        """
        root = self._get_root(root_id)
        if not root.is_sync_root:
            raise SyncSetupError(
                f"Directory '{root.name}' is not a sync root",
                operation="setup",
                path=root.id,
            )
        remote_files = self._collect_remote(root.id)
        return sorted(remote_files, key=lambda f: f.relative_path.lower())

    # =========================
    # Shared steps
    # =========================

    def _get_root(self, root_id: str) -> FileEntry:
        """Fetch the sync root and check that it is a directory."""
        try:
            root = self.entries_manager.get_entry(root_id)
        except DriveNotFoundError as e:
            raise SyncSetupError(
                f"Sync root {root_id} not found", operation="setup", path=root_id
            ) from e
        except DriveAPIError as e:
            raise SyncOperationError(
                f"Failed to get sync root {root_id}: {e}",
                operation="get root",
                path=root_id,
            ) from e

        if not root.is_folder:
            raise SyncSetupError(
                f"Sync root '{root.name}' is not a directory",
                operation="setup",
                path=root_id,
            )
        return root

    def _collect_remote(self, root_id: str) -> list[RemoteFile]:
        start = time.time()
        entries = _run_operation(
            "list", root_id, self.entries_manager.get_sync_root_entries, root_id
        )
        remote_files = collect_remote_files(root_id, entries)
        logger.debug(
            f"Collected {len(remote_files)} remote entries "
            f"in {time.time() - start:.2f}s"
        )
        return remote_files

    def _collect_local(self, local_root: Path) -> list[LocalFile]:
        start = time.time()
        local_files = self.scanner.scan_local(local_root)
        logger.debug(
            f"Scanned {len(local_files)} local entries in {time.time() - start:.2f}s"
        )
        return local_files

    def _collect(
        self, local_root: Path, root_id: str, scan_local: bool = True
    ) -> tuple[list[LocalFile], list[RemoteFile]]:
        """Collect both trees concurrently, failing on the first error."""
        executor = ThreadPoolExecutor(max_workers=2)
        try:
            remote_future = executor.submit(self._collect_remote, root_id)
            futures = [remote_future]
            local_future = None
            if scan_local:
                local_future = executor.submit(self._collect_local, local_root)
                futures.append(local_future)

            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                # Re-raises the first failure; the other result is discarded
                future.result()

            local_files = local_future.result() if local_future is not None else []
            return local_files, remote_future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _reconcile(
        self,
        local_files: list[LocalFile],
        remote_files: list[RemoteFile],
        comparer: FileComparer,
    ) -> ChangeSet:
        changes = reconcile(local_files, remote_files, comparer)
        for path in changes.type_mismatches:
            self.output.warning(
                f"Skipping {path}: it is a file on one side and a directory "
                "on the other"
            )
        return changes


def _resolve_local_target(local_root: Path, local_dirs: set[str], path: str) -> Path:
    """Return the local path for an entry whose parent must already exist."""
    parent = parent_path(path)
    if parent not in local_dirs:
        raise SyncConsistencyError(
            f"Local parent directory '{parent}' of '{path}' does not exist",
            operation="resolve",
            path=path,
        )
    target = Path(os.path.normpath(local_root.joinpath(*path.split("/"))))
    if target == local_root or local_root not in target.parents:
        raise SyncConsistencyError(
            f"Remote path '{path}' points outside of {local_root}",
            operation="resolve",
            path=path,
        )
    return target


def _progress_factory(
    progress_callback: Optional[SyncProgressCallback],
) -> ProgressBinder:
    """Bind the sync progress hook to one relative path per transfer."""

    def bind(path: str) -> Optional[Callable[[int, int], None]]:
        if progress_callback is None:
            return None
        return partial(progress_callback, path)

    return bind
