"""Manager for fetching file entries with automatic pagination."""

import logging
from collections.abc import Generator
from typing import Optional

from .api import DriveClient
from .models import FILE_FIELDS, FileEntry, FileList

logger = logging.getLogger(__name__)

ROOT_FIELDS = "id,name,mimeType,appProperties,createdTime"


def sync_root_query() -> str:
    """Query matching every directory marked as a sync root."""
    return "appProperties has {key='syncRoot' and value='true'}"


def sync_entries_query(root_id: str) -> str:
    """Query matching every node linked to the given sync root."""
    return f"appProperties has {{key='syncRootId' and value='{root_id}'}}"


def children_query(folder_id: str) -> str:
    """Query matching the direct children of a directory."""
    return f"'{folder_id}' in parents and trashed = false"


class FileEntriesManager:
    """Manages file entry fetching with automatic pagination.

    Errors are never swallowed: a failed page aborts the whole listing so
    that no partial tree is handed to the caller.
    """

    def __init__(self, client: DriveClient, page_size: int = 1000):
        """Initialize the file entries manager.

        Args:
            client: Drive API client
            page_size: Number of entries per page (default: 1000)
        """
        self.client = client
        self.page_size = page_size

    def iter_entries(
        self,
        query: str,
        fields: str = FILE_FIELDS,
    ) -> Generator[FileEntry, None, None]:
        """Iterate over every entry matching a query, page by page.

        Args:
            query: Search predicate
            fields: Fields to request for each entry

        Yields:
            FileEntry objects
        """
        page_token: Optional[str] = None
        page = 0

        while True:
            page += 1
            result = self.client.list_files(
                query=query,
                fields=fields,
                page_token=page_token,
                page_size=self.page_size,
            )
            file_list = FileList.from_api_response(result)
            logger.debug(
                f"Page {page} of {query!r} returned {len(file_list.entries)} entries"
            )
            yield from file_list.entries

            if not file_list.next_page_token:
                break
            page_token = file_list.next_page_token

    def get_all(self, query: str, fields: str = FILE_FIELDS) -> list[FileEntry]:
        """Get every entry matching a query."""
        return list(self.iter_entries(query, fields=fields))

    def get_entry(self, entry_id: str, fields: str = ROOT_FIELDS) -> FileEntry:
        """Get a single entry by id.

        Raises:
            DriveNotFoundError: If the entry does not exist
        """
        return FileEntry.from_api_response(self.client.get_file(entry_id, fields))

    def get_sync_root_entries(self, root_id: str) -> list[FileEntry]:
        """Get every node tagged as belonging to a sync root."""
        return self.get_all(sync_entries_query(root_id))

    def get_sync_roots(self) -> list[FileEntry]:
        """Get every directory marked as a sync root."""
        return self.get_all(sync_root_query(), fields=ROOT_FIELDS)

    def is_folder_empty(self, folder_id: str) -> bool:
        """Check whether a directory has no children."""
        result = self.client.list_files(
            query=children_query(folder_id), fields="id", page_size=1
        )
        return not FileList.from_api_response(result).entries
