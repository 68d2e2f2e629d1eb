"""Ignore rules for local scanning.

Patterns are shell globs, one per line in ``.drivesyncignore`` at the local
sync root. Blank lines and lines starting with ``#`` are skipped. A trailing
``/`` restricts a pattern to directories. Patterns containing ``/`` are
matched against the whole relative path, others against the entry name.
"""

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..utils import base_name

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".drivesyncignore"


@dataclass(frozen=True)
class IgnoreRule:
    """A single ignore pattern."""

    pattern: str
    directory_only: bool = False
    anchored: bool = False

    @classmethod
    def parse(cls, line: str) -> Optional["IgnoreRule"]:
        """Parse one line of an ignore file, returning None for blanks/comments."""
        line = line.strip()
        if not line or line.startswith("#"):
            return None

        directory_only = line.endswith("/")
        pattern = line.rstrip("/")
        anchored = "/" in pattern
        pattern = pattern.lstrip("/")
        if not pattern:
            return None
        return cls(pattern=pattern, directory_only=directory_only, anchored=anchored)

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        """Check whether this rule matches a relative path."""
        if self.directory_only and not is_dir:
            return False
        target = relative_path if self.anchored else base_name(relative_path)
        return fnmatch.fnmatchcase(target, self.pattern)


def load_ignore_file(path: Path) -> list[IgnoreRule]:
    """Load rules from an ignore file; a missing file yields no rules.

    Raises:
        OSError: If the file exists but cannot be read
    """
    if not path.is_file():
        return []

    with open(path, encoding="utf-8") as f:
        rules = [rule for rule in map(IgnoreRule.parse, f) if rule is not None]
    logger.debug(f"Loaded {len(rules)} ignore rule(s) from {path}")
    return rules


class IgnoreRules:
    """A set of ignore rules applied to relative paths."""

    def __init__(self, rules: Optional[list[IgnoreRule]] = None):
        self.rules: list[IgnoreRule] = list(rules or [])

    @classmethod
    def from_patterns(cls, patterns: list[str]) -> "IgnoreRules":
        """Build rules from caller-supplied patterns."""
        rules = [IgnoreRule.parse(p) for p in patterns]
        return cls([r for r in rules if r is not None])

    def extend(self, rules: list[IgnoreRule]) -> None:
        self.rules.extend(rules)

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check whether any rule matches a relative path."""
        return any(rule.matches(relative_path, is_dir) for rule in self.rules)

    def __len__(self) -> int:
        return len(self.rules)
