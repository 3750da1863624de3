"""File-level changes from a local diff and their classification.

A :class:`FileChange` carries diff statistics for one path: line counts
for text files, byte sizes for binary ones.  The three predicates
:func:`is_added`, :func:`is_modified` and :func:`is_deleted` are evaluated
independently; :func:`classify` combines them and refuses to guess when
none (or more than one) applies.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import UnclassifiedChangeError, ValidationError
from .tree import _normalize_path


class ChangeKind(str, Enum):
    """Kind of change: ``ADDED``, ``MODIFIED`` or ``DELETED``."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True)
class FileChange:
    """One changed path of a local diff.

    Attributes:
        path: Repository-relative path with forward slashes.
        binary: Whether the diff treated the file as binary.
        insertions: Added lines (text files).
        deletions: Removed lines (text files).
        before: Size in bytes before the change (binary files).
        after: Size in bytes after the change (binary files).
    """
    path: str
    binary: bool = False
    insertions: int = 0
    deletions: int = 0
    before: int = 0
    after: int = 0

    def __post_init__(self):
        path = _normalize_path(self.path)
        if not path:
            raise ValidationError("Change path must not be empty")
        object.__setattr__(self, "path", path)
        for name in ("insertions", "deletions", "before", "after"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer: {value!r}")
        if self.binary and (self.insertions or self.deletions):
            raise ValidationError(f"Binary change {path!r} cannot count lines")
        if not self.binary and (self.before or self.after):
            raise ValidationError(f"Text change {path!r} cannot count bytes")

    @classmethod
    def text(cls, path: str, insertions: int, deletions: int) -> FileChange:
        return cls(path, binary=False, insertions=insertions, deletions=deletions)

    @classmethod
    def binary_file(cls, path: str, before: int, after: int) -> FileChange:
        return cls(path, binary=True, before=before, after=after)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> FileChange:
        """Parse a diff-summary record.

        Accepts ``{"file", "insertions", "deletions", "binary": false}`` and
        ``{"file", "before", "after", "binary": true}``; ``path`` may be
        used instead of ``file``.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Malformed change record: {data!r}")
        path = data.get("file", data.get("path"))
        if not isinstance(path, str):
            raise ValidationError(f"Change record has no path: {data!r}")
        binary = data.get("binary", False)
        if not isinstance(binary, bool):
            raise ValidationError(f"'binary' must be a boolean: {data!r}")
        try:
            if binary:
                return cls.binary_file(path, data["before"], data["after"])
            return cls.text(path, data["insertions"], data["deletions"])
        except KeyError as exc:
            raise ValidationError(f"Change record for {path!r} lacks {exc.args[0]!r}") from None

    def to_json(self) -> dict[str, Any]:
        if self.binary:
            return {"file": self.path, "binary": True,
                    "before": self.before, "after": self.after}
        return {"file": self.path, "binary": False,
                "insertions": self.insertions, "deletions": self.deletions}


def _exists(work_dir: str | os.PathLike[str], change: FileChange) -> bool:
    """True if the working copy still has a file (or symlink) at the path.

    A directory in its place means the file is gone.
    """
    full = os.path.join(work_dir, *change.path.split("/"))
    if os.path.islink(full):
        return True
    return os.path.exists(full) and not os.path.isdir(full)


def is_added(work_dir: str | os.PathLike[str], change: FileChange) -> bool:
    """True if *change* introduces a new file."""
    if change.binary:
        return change.before == 0 and change.after > 0
    return change.insertions > 0 and change.deletions == 0


def is_modified(work_dir: str | os.PathLike[str], change: FileChange) -> bool:
    """True if *change* alters a file that exists before and after.

    A text change without insertions counts as a modification as long as
    the file is still in the working copy (lines removed, or a mode-only
    change).
    """
    if change.binary:
        return change.before > 0 and change.after > 0
    return (change.insertions > 0 and change.deletions > 0) or (
        change.insertions == 0 and _exists(work_dir, change)
    )


def is_deleted(work_dir: str | os.PathLike[str], change: FileChange) -> bool:
    """True if *change* removes the file from the working copy."""
    if change.binary:
        return change.before > 0 and change.after == 0
    return (
        change.insertions == 0
        and change.deletions > 0
        and not _exists(work_dir, change)
    )


def classify(work_dir: str | os.PathLike[str], change: FileChange) -> ChangeKind:
    """Return the :class:`ChangeKind` of *change*.

    Raises:
        UnclassifiedChangeError: If no predicate (or more than one) holds.
    """
    kinds = [
        kind
        for kind, predicate in (
            (ChangeKind.ADDED, is_added),
            (ChangeKind.MODIFIED, is_modified),
            (ChangeKind.DELETED, is_deleted),
        )
        if predicate(work_dir, change)
    ]
    if len(kinds) != 1:
        raise UnclassifiedChangeError(change.path)
    return kinds[0]
