"""Tests for remote tree validation and path reconstruction."""

import pytest

from pydrivesync.exceptions import SyncConsistencyError
from pydrivesync.models import FileEntry
from pydrivesync.sync import (
    RemoteFile,
    RemoteTree,
    build_relative_paths,
    check_remote_entries,
    check_unique_paths,
    collect_remote_files,
)
from pydrivesync.utils import DIRECTORY_MIME_TYPE


def folder(entry_id: str, name: str, parent: str = "root") -> FileEntry:
    return FileEntry(
        id=entry_id, name=name, mime_type=DIRECTORY_MIME_TYPE, parents=[parent]
    )


def blob(entry_id: str, name: str, parent: str = "root") -> FileEntry:
    return FileEntry(id=entry_id, name=name, mime_type="text/plain", parents=[parent])


class TestCheckRemoteEntries:
    """Tests for check_remote_entries."""

    def test_valid_tree(self):
        """Test that a proper tree passes."""
        check_remote_entries([folder("d", "docs"), blob("f", "a.txt", "d")])

    def test_same_name_in_different_parents(self):
        """Test that equal names below different parents are allowed."""
        check_remote_entries(
            [folder("d", "docs"), blob("f1", "a.txt"), blob("f2", "a.txt", "d")]
        )

    def test_no_parent(self):
        """Test that an orphaned node is rejected."""
        entry = FileEntry(id="x", name="x.txt", parents=[])
        with pytest.raises(SyncConsistencyError, match="has 0 parents") as exc_info:
            check_remote_entries([entry])
        assert exc_info.value.operation == "validate"
        assert exc_info.value.path == "x"

    def test_multiple_parents(self):
        """Test that a node with two parents is rejected."""
        entry = FileEntry(id="x", name="x.txt", parents=["root", "d"])
        with pytest.raises(SyncConsistencyError, match="has 2 parents"):
            check_remote_entries([entry])

    def test_duplicate_name(self):
        """Test that two nodes with the same name and parent are rejected."""
        with pytest.raises(SyncConsistencyError, match="Duplicate remote entry"):
            check_remote_entries([blob("f1", "a.txt"), folder("f2", "a.txt")])

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "../escape"])
    def test_invalid_name(self, name):
        """Test that names that are not a single path segment are rejected."""
        with pytest.raises(SyncConsistencyError, match="invalid name") as exc_info:
            check_remote_entries([folder("d", "docs"), blob("x", name, "d")])
        assert exc_info.value.operation == "validate"
        assert exc_info.value.path == "x"


class TestBuildRelativePaths:
    """Tests for build_relative_paths."""

    def test_nested_paths(self):
        """Test reconstruction of nested paths in any listing order."""
        entries = [
            blob("f", "c.txt", "b"),
            folder("b", "b", "a"),
            folder("a", "a"),
            blob("t", "top.txt"),
        ]

        paths = build_relative_paths("root", entries)

        assert paths == {
            "root": ".",
            "a": "a",
            "b": "a/b",
            "f": "a/b/c.txt",
            "t": "top.txt",
        }

    def test_missing_parent(self):
        """Test that a chain not reaching the root is fatal."""
        entries = [folder("a", "a", "elsewhere"), blob("f", "f.txt", "a")]

        with pytest.raises(SyncConsistencyError, match="not part of the sync root"):
            build_relative_paths("root", entries)

    def test_cycle(self):
        """Test that a parent cycle is detected instead of looping."""
        entries = [folder("a", "a", "b"), folder("b", "b", "a")]

        with pytest.raises(SyncConsistencyError, match="parent cycle") as exc_info:
            build_relative_paths("root", entries)
        assert exc_info.value.operation == "resolve"

    def test_self_parent(self):
        """Test that a node listing itself as parent is a cycle."""
        with pytest.raises(SyncConsistencyError, match="parent cycle"):
            build_relative_paths("root", [folder("a", "a", "a")])


class TestCollectRemoteFiles:
    """Tests for collect_remote_files."""

    def test_excludes_root(self):
        """Test that the root itself is filtered out."""
        root = FileEntry(
            id="root", name="backup", mime_type=DIRECTORY_MIME_TYPE, parents=["top"]
        )
        files = collect_remote_files("root", [root, folder("a", "a")])

        assert [(f.id, f.relative_path) for f in files] == [("a", "a")]

    def test_validation_runs_first(self):
        """Test that duplicates are reported before path resolution."""
        with pytest.raises(SyncConsistencyError, match="Duplicate"):
            collect_remote_files("root", [blob("1", "x"), blob("2", "x")])

    def test_repeated_relative_path(self):
        """Test that two nodes resolving to the same path are rejected."""
        paths = {"root": ".", "a": "a", "b": "a/b", "c": "a/b"}

        with pytest.raises(SyncConsistencyError, match="share the relative path") as e:
            check_unique_paths(paths)
        assert e.value.operation == "resolve"
        assert e.value.path == "a/b"

    def test_distinct_relative_paths(self):
        """Test that a proper mapping passes."""
        check_unique_paths({"root": ".", "a": "a", "b": "a/b"})


class TestRemoteTree:
    """Tests for RemoteTree."""

    @pytest.fixture
    def tree(self):
        root = FileEntry(id="root", name="backup", mime_type=DIRECTORY_MIME_TYPE)
        return RemoteTree(
            root,
            [
                RemoteFile(folder("a", "a"), "a"),
                RemoteFile(blob("f", "file.txt"), "file.txt"),
            ],
        )

    def test_seeded_with_root(self, tree):
        """Test that the root is registered as '.'."""
        assert tree.get(".").id == "root"
        assert "a" in tree
        assert len(tree) == 3

    def test_resolve_parent(self, tree):
        """Test resolving top-level and nested parents."""
        assert tree.resolve_parent("new.txt").id == "root"
        assert tree.resolve_parent("a/new.txt").id == "a"

    def test_resolve_registered_parent(self, tree):
        """Test that registered directories become resolvable."""
        tree.register("a/sub", folder("", "sub", "a"))
        assert tree.resolve_parent("a/sub/x.txt").name == "sub"

    def test_missing_parent(self, tree):
        """Test that an unknown parent is a consistency error."""
        with pytest.raises(SyncConsistencyError, match="does not exist"):
            tree.resolve_parent("missing/x.txt")

    def test_parent_is_file(self, tree):
        """Test that a file cannot act as a parent."""
        with pytest.raises(SyncConsistencyError, match="is not a directory"):
            tree.resolve_parent("file.txt/x.txt")
