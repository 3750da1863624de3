"""Fold local changes into a nested path dictionary.

The dictionary maps one path segment to either a new :class:`Blob`, the
:data:`REMOVED` marker for a deleted file, or another dictionary for a
subdirectory.  It only lives until :func:`treepatch.merge.merge` folds it
into a :class:`~treepatch.tree.Tree`.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Union

from .changes import ChangeKind, FileChange, classify
from .exceptions import ValidationError
from .local import read_blob
from .tree import Blob, _is_under, _normalize_path

logger = logging.getLogger(__name__)


class _Removed:
    __slots__ = ()

    def __repr__(self) -> str:
        return "REMOVED"


REMOVED = _Removed()

PathDictionary = dict[str, Union[Blob, _Removed, "PathDictionary"]]


def check_scope(changes: Iterable[FileChange], keyboard_path: str) -> str:
    """Ensure every change lies under *keyboard_path*; return it normalized."""
    prefix = _normalize_path(keyboard_path)
    for change in changes:
        if not _is_under(change.path, prefix):
            raise ValidationError(f"file {change.path} doesn't start with {prefix}")
    return prefix


def build(
    work_dir: str | os.PathLike[str],
    changes: Iterable[FileChange],
    keyboard_path: str = "",
) -> PathDictionary:
    """Return the nested dictionary of *changes*, keyed from the repo root.

    Added and modified files are read from *work_dir*; deleted files become
    :data:`REMOVED`.

    Raises:
        ValidationError: If a change lies outside *keyboard_path*, cannot be
            classified, or conflicts with another change.
    """
    changes = list(changes)
    check_scope(changes, keyboard_path)
    root: PathDictionary = {}
    for change in changes:
        add_tree(work_dir, root, "", change.path, change)
    return root


def add_tree(
    work_dir: str | os.PathLike[str],
    parent: PathDictionary,
    current_path: str,
    path_to_process: str,
    change: FileChange,
) -> PathDictionary:
    """Insert *change* into *parent*, the dictionary for *current_path*.

    *path_to_process* is the part of the change path below *current_path*.
    """
    name, _, rest = path_to_process.partition("/")
    if not rest:
        leaf = _leaf(work_dir, change)
        existing = parent.get(name)
        if existing is None:
            parent[name] = leaf
        elif isinstance(existing, dict) and leaf is not REMOVED and _only_removed(existing):
            # a directory emptied by deletions is replaced by a file
            parent[name] = leaf
        elif not (leaf is REMOVED and isinstance(existing, dict)):
            # a deleted file whose name is reused as a directory stays a directory
            raise ValidationError(f"Conflicting changes for {change.path!r}")
        return parent

    sub_path = f"{current_path}/{name}" if current_path else name
    if not change.path.startswith(sub_path + "/"):
        raise ValidationError(f"file {change.path} doesn't start with {sub_path}")
    existing = parent.get(name)
    if existing is None or existing is REMOVED:
        existing = parent[name] = {}
    elif isinstance(existing, Blob) and classify(work_dir, change) is ChangeKind.DELETED:
        # the directory is already being replaced by this file
        logger.debug("%s: deleted with its directory %s", change.path, sub_path)
        return parent
    elif not isinstance(existing, dict):
        raise ValidationError(
            f"{sub_path!r} is changed both as a file and as a directory"
        )
    add_tree(work_dir, existing, sub_path, rest, change)
    return parent


def _only_removed(node: PathDictionary) -> bool:
    return all(
        v is REMOVED or (isinstance(v, dict) and _only_removed(v))
        for v in node.values()
    )


def _leaf(work_dir: str | os.PathLike[str], change: FileChange) -> Blob | _Removed:
    kind = classify(work_dir, change)
    if kind is ChangeKind.DELETED:
        logger.debug("%s: deleted", change.path)
        return REMOVED
    try:
        blob = read_blob(work_dir, change.path, binary=change.binary)
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
        raise ValidationError(
            f"{kind} file {change.path!r} is not readable in the working copy: {exc}"
        ) from exc
    logger.debug("%s: %s", change.path, kind)
    return blob
