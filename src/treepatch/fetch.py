"""Materialize a remote tree graph along one path.

Only the chain of directories leading to *desired_path* is expanded on
the way down; below that point every subtree is expanded completely, so
the merge step knows every untouched neighbour of the component.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Iterable, Protocol, TypeVar

from .exceptions import RemoteFetchError, TreePatchError, UnsupportedInputError
from .tree import Subtree, Tree, TreeNode, _normalize_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TreeReader(Protocol):
    """Anything that can list a remote tree by sha."""

    async def get_tree(self, sha: str) -> Tree: ...


async def gather_fail_fast(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Run *aws* concurrently and return their results in input order.

    The first exception cancels every task still running and is re-raised
    once they have finished cancelling.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return [task.result() for task in tasks]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def _get_tree(reader: TreeReader, sha: str) -> Tree:
    try:
        tree = await reader.get_tree(sha)
    except RemoteFetchError:
        raise
    except Exception as exc:
        raise RemoteFetchError(f"Failed to fetch tree {sha}: {exc}") from exc
    if tree.truncated:
        raise UnsupportedInputError(sha)
    logger.debug("Fetched tree %s (%d entries)", sha, len(tree))
    return tree


async def _materialize(reader: TreeReader, sha: str, desired: list[str]) -> Tree:
    tree = await _get_tree(reader, sha)
    entries = await gather_fail_fast(
        _expand_entry(reader, entry, desired) for entry in tree.entries
    )
    return Tree(
        entries=entries,
        sha=tree.sha,
        url=tree.url,
        base_tree=tree.base_tree,
        truncated=tree.truncated,
    )


async def _expand_entry(reader: TreeReader, entry: TreeNode, desired: list[str]) -> TreeNode:
    if isinstance(entry, Subtree) and (not desired or entry.path == desired[0]):
        if entry.sha is None:
            raise RemoteFetchError(f"Remote listed subtree {entry.path!r} without a sha")
        child = await _materialize(reader, entry.sha, desired[1:])
        return Subtree(path=entry.path, sha=entry.sha, url=entry.url, child_tree=child)
    if isinstance(entry, Subtree) and entry.child_tree is not None:
        return Subtree(path=entry.path, sha=entry.sha, url=entry.url)
    return entry


async def materialize(reader: TreeReader, root_sha: str, desired_path: str = "") -> Tree:
    """Fetch *root_sha* and expand the subtrees along *desired_path*.

    An empty *desired_path* expands everything.  Siblings on one level are
    fetched concurrently and returned in listing order.

    Raises:
        RemoteFetchError: If any tree along the way cannot be fetched.
        UnsupportedInputError: If the remote truncated any listing.
        ValidationError: If *desired_path* is malformed.
    """
    path = _normalize_path(desired_path)
    desired = path.split("/") if path else []
    logger.debug("Materializing %s along %r", root_sha, path)
    try:
        return await _materialize(reader, root_sha, desired)
    except TreePatchError:
        raise
    except Exception as exc:
        raise RemoteFetchError(f"Failed to materialize tree {root_sha}: {exc}") from exc
