"""Submit a merged tree to the remote, deepest trees first.

A parent tree can only be created once the shas of its rebuilt children
are known, so submission is post-order.  Sibling subtrees are independent
and submitted concurrently.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .exceptions import ValidationError
from .fetch import gather_fail_fast
from .tree import Blob, Subtree, Tree, TreeNode

logger = logging.getLogger(__name__)


class TreeWriter(Protocol):
    """Anything that can create trees and blobs on the remote."""

    async def create_tree(self, payload: dict[str, Any]) -> Tree: ...

    async def create_blob(self, content: str, encoding: str = "utf-8") -> str: ...


async def submit(writer: TreeWriter, tree: Tree) -> Tree:
    """Create every tree in *tree* that has no sha yet; return the result.

    The returned tree has the remote-assigned ``sha`` and ``url`` at every
    rebuilt level, with rebuilt child trees attached as ``child_tree``.
    A tree that already has a sha is returned unchanged.
    """
    if tree.sha is not None:
        return tree
    entries = await gather_fail_fast(_resolve(writer, entry) for entry in tree.entries)
    resolved = Tree(entries=entries, base_tree=tree.base_tree, removed=tree.removed)
    created = await writer.create_tree(resolved.to_payload())
    if created.sha is None:
        raise ValidationError("Remote did not assign a sha to the created tree")
    logger.debug("Submitted tree %s (base %s)", created.sha, tree.base_tree)

    children = {
        e.path: e.child_tree
        for e in entries
        if isinstance(e, Subtree) and e.child_tree is not None
    }
    result: list[TreeNode] = []
    for entry in created.entries:
        if isinstance(entry, Subtree) and entry.path in children:
            entry = Subtree(
                path=entry.path, sha=entry.sha, url=entry.url,
                child_tree=children[entry.path],
            )
        result.append(entry)
    return Tree(
        entries=result,
        sha=created.sha,
        url=created.url,
        base_tree=tree.base_tree,
        truncated=created.truncated,
    )


async def _resolve(writer: TreeWriter, entry: TreeNode) -> TreeNode:
    if isinstance(entry, Subtree) and entry.sha is None:
        child = await submit(writer, entry.child_tree)
        return Subtree(path=entry.path, sha=child.sha, url=child.url, child_tree=child)
    if isinstance(entry, Blob) and entry.sha is None and entry.encoding == "base64":
        sha = await writer.create_blob(entry.content, "base64")
        logger.debug("Uploaded blob %s as %s", entry.path, sha)
        return Blob(path=entry.path, mode=entry.mode, sha=sha, size=entry.size)
    return entry
