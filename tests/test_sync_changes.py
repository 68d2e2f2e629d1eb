"""Tests for reconciliation and mutation ordering."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from pydrivesync.exceptions import SyncOperationError
from pydrivesync.models import FileEntry
from pydrivesync.sync import (
    LocalFile,
    RemoteFile,
    creation_order,
    deletion_order,
    ordering_key,
    reconcile,
)
from pydrivesync.utils import DIRECTORY_MIME_TYPE


def local(path: str, is_dir: bool = False) -> LocalFile:
    return LocalFile(
        path=Path("/sync") / path,
        relative_path=path,
        is_dir=is_dir,
        size=0 if is_dir else 10,
        mtime=0.0,
    )


def remote(path: str, is_dir: bool = False, md5: str = "") -> RemoteFile:
    entry = FileEntry(
        id=f"id-{path}",
        name=path.rpartition("/")[2],
        mime_type=DIRECTORY_MIME_TYPE if is_dir else "text/plain",
        md5_checksum=md5,
    )
    return RemoteFile(entry=entry, relative_path=path)


def comparer(changed_paths=()):
    mock = Mock()
    mock.changed.side_effect = lambda lf, rf: lf.relative_path in changed_paths
    return mock


def paths(entries):
    return [e.relative_path for e in entries]


class TestOrdering:
    """Tests for creation and deletion ordering."""

    def test_ordering_key(self):
        """Test that depth dominates and names break ties."""
        assert ordering_key("a/b") == (1, "a/b")
        assert sorted(["z", "a/b/c", "a/b", "a"], key=ordering_key) == [
            "a",
            "z",
            "a/b",
            "a/b/c",
        ]

    def test_creation_order_parents_first(self):
        """Test that every parent precedes its children."""
        entries = [local("a/b/c", True), local("b", True), local("a", True)]
        ordered = paths(creation_order(entries))

        assert ordered == ["a", "b", "a/b/c"]

    def test_deletion_order_is_reverse(self):
        """Test that deletion order is the exact reverse of creation order."""
        entries = [local("a", True), local("a/b", True), local("a/b/c"), local("d")]

        assert paths(deletion_order(entries)) == paths(creation_order(entries))[::-1]
        assert paths(deletion_order(entries)) == ["a/b/c", "a/b", "d", "a"]


class TestReconcile:
    """Tests for reconcile."""

    def test_partitions(self):
        """Test the classification of every kind of entry."""
        local_files = [
            local("docs", True),
            local("docs/new.txt"),
            local("same.txt"),
            local("edited.txt"),
            local("only_local", True),
        ]
        remote_files = [
            remote("docs", True),
            remote("same.txt"),
            remote("edited.txt"),
            remote("old", True),
            remote("old/gone.txt"),
        ]

        changes = reconcile(local_files, remote_files, comparer({"edited.txt"}))

        assert paths(changes.missing_remote_dirs) == ["only_local"]
        assert paths(changes.missing_remote_files) == ["docs/new.txt"]
        assert paths(changes.missing_local_dirs) == ["old"]
        assert paths(changes.missing_local_files) == ["old/gone.txt"]
        assert paths(changes.changed) == ["edited.txt"]
        assert paths(changes.extraneous_remote) == ["old", "old/gone.txt"]
        assert sorted(paths(changes.extraneous_local)) == [
            "docs/new.txt",
            "only_local",
        ]
        assert changes.type_mismatches == []

    def test_directories_never_changed(self):
        """Test that matched directories are not compared."""
        compare = comparer({"docs"})
        changes = reconcile([local("docs", True)], [remote("docs", True)], compare)

        assert changes.changed == []
        compare.changed.assert_not_called()

    def test_root_excluded(self):
        """Test that the root path never appears in any result."""
        changes = reconcile([local(".", True)], [remote(".", True)], comparer())

        assert changes.missing_remote_dirs == []
        assert changes.missing_local_dirs == []
        assert changes.extraneous_remote == []

    def test_type_mismatch(self, caplog):
        """Test that a file/directory conflict is reported and skipped."""
        changes = reconcile([local("x")], [remote("x", True)], comparer({"x"}))

        assert changes.type_mismatches == ["x"]
        assert changes.changed == []
        assert changes.missing_remote_files == []
        assert changes.extraneous_remote == []
        assert "Type mismatch for x" in caplog.text

    def test_identical_trees(self):
        """Test that matching trees yield no work."""
        changes = reconcile([local("a.txt")], [remote("a.txt")], comparer())

        assert changes.changed == []
        assert changes.missing_remote_files == []
        assert changes.missing_local_files == []

    def test_compare_error(self):
        """Test that an unreadable local file aborts reconciliation."""
        compare = Mock()
        compare.changed.side_effect = PermissionError("denied")

        with pytest.raises(SyncOperationError, match="Failed to compare a.txt") as e:
            reconcile([local("a.txt")], [remote("a.txt")], compare)
        assert e.value.operation == "compare"
        assert e.value.path == "a.txt"
