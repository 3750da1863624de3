"""Merge local changes into a previously materialized remote tree.

Only the ancestor chain from changed leaves to the root is rebuilt; each
rebuilt tree has ``sha=None`` and ``base_tree`` set to the sha it
replaces.  Every other entry is carried over as is, in its original
position.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable

from .build import REMOVED, PathDictionary, build, check_scope
from .changes import FileChange
from .exceptions import UnsupportedInputError, ValidationError
from .tree import Blob, Subtree, Tree, TreeNode

logger = logging.getLogger(__name__)


def merge(
    work_dir: str | os.PathLike[str],
    changes: Iterable[FileChange],
    previous_tree: Tree,
    keyboard_path: str,
) -> Tree:
    """Return a new tree with *changes* applied to *previous_tree*.

    Args:
        work_dir: Root of the local working copy the changes were made in.
        changes: The local diff; every path must lie under *keyboard_path*.
        previous_tree: Remote root tree, materialized along *keyboard_path*
            (see :func:`treepatch.fetch.materialize`).
        keyboard_path: Repo path of the component being pushed.

    Returns:
        A tree whose ``base_tree`` is ``previous_tree.sha``.  Touched
        subtrees and blobs have ``sha=None``; deleted entries are listed in
        the owning tree's ``removed``.

    Raises:
        ValidationError: If a change lies outside *keyboard_path*, cannot be
            classified, or falls in a subtree that was not materialized.
        UnsupportedInputError: If a traversed tree is truncated.
    """
    changes = list(changes)
    check_scope(changes, keyboard_path)
    built = build(work_dir, changes, keyboard_path)
    tree = _merge_tree(previous_tree, built, "", base_tree=previous_tree.sha)
    logger.debug(
        "Merged %d change(s) into %s under %r", len(changes), previous_tree.sha, keyboard_path
    )
    return tree


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def _merge_tree(
    previous: Tree | None,
    built: PathDictionary,
    prefix: str,
    base_tree: str | None,
) -> Tree:
    if previous is not None and previous.truncated:
        raise UnsupportedInputError(previous.sha)

    pending = dict(built)
    entries: list[TreeNode] = []
    removed: list[TreeNode] = []

    for node in previous.entries if previous is not None else ():
        change = pending.pop(node.path, None)
        full = _join(prefix, node.path)
        if change is None:
            entries.append(node)
        elif change is REMOVED:
            logger.debug("%s: removed", full)
            removed.append(node)
        elif isinstance(change, Blob):
            logger.debug("%s: replaced", full)
            entries.append(change)
        else:
            subtree = _merge_subtree(node, change, full)
            if subtree is None:
                logger.debug("%s: pruned (empty)", full)
                removed.append(node)
            else:
                entries.append(subtree)

    for name, change in pending.items():
        full = _join(prefix, name)
        if change is REMOVED:
            logger.debug("%s: not in previous tree, nothing to remove", full)
        elif isinstance(change, Blob):
            logger.debug("%s: added", full)
            entries.append(change)
        else:
            child = _merge_tree(None, change, full, base_tree=None)
            if child.entries:
                logger.debug("%s: new directory", full)
                entries.append(Subtree(path=name, child_tree=child))

    return Tree(entries=entries, base_tree=base_tree, removed=removed)


def _merge_subtree(node: TreeNode, built: PathDictionary, full: str) -> TreeNode | None:
    """Rebuild *node* with the changes below it; ``None`` if it ends up empty."""
    if isinstance(node, Subtree):
        if node.child_tree is None:
            raise ValidationError(f"Subtree {full!r} was not materialized")
        child = _merge_tree(node.child_tree, built, full, base_tree=node.sha)
        if not child.entries:
            return None
        return Subtree(path=node.path, child_tree=child)

    # a file or submodule replaced by a directory
    child = _merge_tree(None, built, full, base_tree=None)
    if not child.entries:
        return node
    logger.debug("%s: %s replaced by directory", full, node.type)
    return Subtree(path=node.path, child_tree=child)
