"""Side-effecting primitives used by the sync engine.

Every method here performs exactly one filesystem or remote mutation.
Ordering, dry-run handling and error wrapping live in the engine.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from ..api import DriveClient
from ..models import FILE_FIELDS, FileEntry
from ..transfer import CancelToken
from ..utils import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT, DIRECTORY_MIME_TYPE
from .scanner import LocalFile, RemoteFile

logger = logging.getLogger(__name__)

# Marker stored on a remote directory anchoring a sync relationship
SYNC_ROOT_PROPERTIES = {"sync": "true", "syncRoot": "true"}

# Suffix of a download that has not completed yet
INCOMPLETE_SUFFIX = ".incomplete"

ProgressCallback = Callable[[int, int], None]


def sync_properties(root_id: str) -> dict[str, str]:
    """Properties linking a synced node back to its sync root."""
    return {"sync": "true", "syncRootId": root_id}


def incomplete_path(local_path: Path) -> Path:
    """Temporary path a download is written to before being moved into place."""
    return local_path.with_name(local_path.name + INCOMPLETE_SUFFIX)


class SyncOperations:
    """Unified operations for both sync directions."""

    def __init__(
        self,
        client: DriveClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        cancel_token: Optional[CancelToken] = None,
    ):
        """Initialize sync operations.

        Args:
            client: Drive API client
            chunk_size: Chunk size in bytes for streamed transfers
            timeout: Idle timeout in seconds for transfers (0 disables it)
            cancel_token: Optional cancellation flag checked by transfers
        """
        self.client = client
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.cancel_token = cancel_token

    # =========================
    # Remote side
    # =========================

    def mark_sync_root(self, root: FileEntry) -> FileEntry:
        """Store the sync-root marker on a remote directory."""
        properties = {**root.app_properties, **SYNC_ROOT_PROPERTIES}
        result = self.client.update_file(
            root.id, {"appProperties": properties}, fields=FILE_FIELDS
        )
        return FileEntry.from_api_response(result)

    def create_remote_dir(self, name: str, parent_id: str, root_id: str) -> FileEntry:
        """Create a remote directory linked to the sync root.

        Args:
            name: Directory name
            parent_id: Id of the parent directory
            root_id: Id of the sync root

        Returns:
            The created directory
        """
        metadata = {
            "name": name,
            "mimeType": DIRECTORY_MIME_TYPE,
            "parents": [parent_id],
            "appProperties": sync_properties(root_id),
        }
        return FileEntry.from_api_response(
            self.client.create_file(metadata, fields=FILE_FIELDS)
        )

    def upload_new_file(
        self,
        local_file: LocalFile,
        parent_id: str,
        root_id: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> FileEntry:
        """Upload a local file as a new remote node.

        Args:
            local_file: Local file to upload
            parent_id: Id of the remote parent directory
            root_id: Id of the sync root
            progress_callback: Optional progress callback
                function(bytes_uploaded, total_bytes)

        Returns:
            The created remote node
        """
        metadata = {
            "name": local_file.name,
            "parents": [parent_id],
            "appProperties": sync_properties(root_id),
        }
        result = self.client.upload_file(
            local_file.path,
            metadata,
            chunk_size=self.chunk_size,
            idle_timeout=self.timeout,
            cancel_token=self.cancel_token,
            progress_callback=progress_callback,
            fields=FILE_FIELDS,
        )
        return FileEntry.from_api_response(result)

    def update_remote_file(
        self,
        local_file: LocalFile,
        remote_file: RemoteFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> FileEntry:
        """Replace the content of an existing remote node.

        Name, parents and properties of the node are left untouched.
        """
        result = self.client.update_file_content(
            remote_file.id,
            local_file.path,
            chunk_size=self.chunk_size,
            idle_timeout=self.timeout,
            cancel_token=self.cancel_token,
            progress_callback=progress_callback,
            fields=FILE_FIELDS,
        )
        return FileEntry.from_api_response(result)

    def delete_remote(self, remote_file: RemoteFile) -> None:
        """Delete a remote node by id."""
        self.client.delete_file(remote_file.id)

    # =========================
    # Local side
    # =========================

    def create_local_dir(self, local_path: Path) -> None:
        """Create a local directory; an existing directory is left as is.

        Raises:
            FileExistsError: If a non-directory exists at the path
        """
        local_path.mkdir(exist_ok=True)

    def download_file(
        self,
        remote_file: RemoteFile,
        local_path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """Download a remote file, replacing any local file at the path.

        Content is written to ``<name>.incomplete`` first and moved into
        place only once the transfer completed.

        Args:
            remote_file: Remote file to download
            local_path: Local path where file should be saved
            progress_callback: Optional progress callback
                function(bytes_downloaded, total_bytes)

        Returns:
            Path where file was saved
        """
        temp_path = incomplete_path(local_path)
        try:
            self.client.download_file(
                remote_file.id,
                temp_path,
                chunk_size=self.chunk_size,
                idle_timeout=self.timeout,
                cancel_token=self.cancel_token,
                progress_callback=progress_callback,
            )
            os.replace(temp_path, local_path)
        except BaseException:
            _remove_quietly(temp_path)
            raise
        return local_path

    def delete_local(self, local_file: LocalFile) -> None:
        """Delete a local file or an empty local directory."""
        if local_file.is_dir:
            local_file.path.rmdir()
        else:
            local_file.path.unlink()


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove incomplete download {path}: {e}")
