"""Tree object model for treepatch.

Mirrors the hosted API's tree listing: a :class:`Tree` is an ordered
sequence of entries, each a :class:`Blob`, :class:`Subtree` or
:class:`Submodule`.  A ``sha`` of ``None`` marks an entry the remote still
has to hash.  Subtrees may carry their materialized listing in
``child_tree``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Iterator, Union

from .exceptions import ValidationError

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000


class TreeMode(str, Enum):
    """Mode code of a tree entry, as the hosted API spells it.

    Members: ``BLOB``, ``EXECUTABLE``, ``TREE``, ``COMMIT``, ``LINK``.
    """
    BLOB = "100644"
    EXECUTABLE = "100755"
    TREE = "040000"
    COMMIT = "160000"
    LINK = "120000"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @classmethod
    def parse(cls, value: str) -> TreeMode:
        """Return the mode for *value*, raising ValidationError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown tree mode: {value!r}") from None

    @classmethod
    def from_filemode(cls, mode: int) -> TreeMode:
        """Convert a git filemode integer to a :class:`TreeMode`."""
        try:
            return _MODE_FROM_INT[mode]
        except KeyError:
            raise ValidationError(f"Unknown git filemode: {mode:o}") from None

    @property
    def filemode(self) -> int:
        """Return the git filemode integer for this mode."""
        return int(self.value, 8)

    @property
    def object_type(self) -> str:
        """Return the object type (``blob``, ``tree`` or ``commit``)."""
        if self is TreeMode.TREE:
            return "tree"
        if self is TreeMode.COMMIT:
            return "commit"
        return "blob"


_MODE_FROM_INT = {
    GIT_FILEMODE_BLOB: TreeMode.BLOB,
    GIT_FILEMODE_BLOB_EXECUTABLE: TreeMode.EXECUTABLE,
    GIT_FILEMODE_TREE: TreeMode.TREE,
    GIT_FILEMODE_LINK: TreeMode.LINK,
    GIT_FILEMODE_COMMIT: TreeMode.COMMIT,
}

BLOB_MODES = frozenset({TreeMode.BLOB, TreeMode.EXECUTABLE, TreeMode.LINK})
ENCODINGS = ("utf-8", "base64")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def _is_root_path(path: str | os.PathLike[str]) -> bool:
    """Return True if path represents the root (empty or only slashes)."""
    p = os.fspath(path)
    if os.name == "nt":
        p = p.replace("\\", "/")
    return p.strip("/") == ""


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a repo path: strip slashes, reject bad segments.

    The root (empty string or only slashes) normalizes to ``""``.
    """
    if _is_root_path(path):
        return ""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValidationError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValidationError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def _is_under(path: str, prefix: str) -> bool:
    """True if *path* is *prefix* itself or lies below it."""
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")


def _check_segment(name: str) -> None:
    if not name or "/" in name or name in (".", ".."):
        raise ValidationError(f"Invalid tree entry name: {name!r}")


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Blob:
    """A file entry.

    Unchanged blobs are identified by ``sha``.  New or changed blobs have
    ``sha=None`` and carry their payload in ``content``, either as text
    (``encoding="utf-8"``) or base64 (``encoding="base64"``).
    """
    type: ClassVar[str] = "blob"

    path: str
    mode: TreeMode = TreeMode.BLOB
    sha: str | None = None
    size: int | None = None
    url: str | None = None
    content: str | None = None
    encoding: str = "utf-8"

    def __post_init__(self):
        _check_segment(self.path)
        if self.mode not in BLOB_MODES:
            raise ValidationError(f"Mode {self.mode} is not a blob mode: {self.path!r}")
        if self.encoding not in ENCODINGS:
            raise ValidationError(f"Unknown blob encoding: {self.encoding!r}")
        if self.sha is None and self.content is None:
            raise ValidationError(f"Blob {self.path!r} has neither sha nor content")

    @property
    def is_new(self) -> bool:
        return self.sha is None


@dataclass(frozen=True)
class Subtree:
    """A directory entry, optionally with its materialized listing."""
    type: ClassVar[str] = "tree"
    mode: ClassVar[TreeMode] = TreeMode.TREE
    size: ClassVar[None] = None

    path: str
    sha: str | None = None
    url: str | None = None
    child_tree: Tree | None = None

    def __post_init__(self):
        _check_segment(self.path)
        if self.sha is None and self.child_tree is None:
            raise ValidationError(f"Subtree {self.path!r} has neither sha nor child tree")

    @property
    def is_new(self) -> bool:
        return self.sha is None


@dataclass(frozen=True)
class Submodule:
    """A submodule entry pointing at a commit of another repository."""
    type: ClassVar[str] = "commit"
    mode: ClassVar[TreeMode] = TreeMode.COMMIT
    size: ClassVar[None] = None

    path: str
    sha: str
    url: str | None = None

    def __post_init__(self):
        _check_segment(self.path)

    @property
    def is_new(self) -> bool:
        return False


TreeNode = Union[Blob, Subtree, Submodule]


@dataclass(frozen=True)
class Tree:
    """An ordered directory listing.

    Attributes:
        entries: The listing, in the order it must be submitted.
        sha: Hash assigned by the remote, ``None`` for an unsubmitted tree.
        url: Remote locator, informational only.
        base_tree: Sha of the tree this one updates, ``None`` if built
            from scratch.
        truncated: The remote cut the listing short.  Never complete.
        removed: Entries of ``base_tree`` this tree deletes.
    """
    entries: tuple[TreeNode, ...] = ()
    sha: str | None = None
    url: str | None = None
    base_tree: str | None = None
    truncated: bool = False
    removed: tuple[TreeNode, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "removed", tuple(self.removed))
        seen: set[str] = set()
        for entry in self.entries:
            if entry.path in seen:
                raise ValidationError(f"Duplicate tree entry: {entry.path!r}")
            seen.add(entry.path)

    def __iter__(self) -> Iterator[TreeNode]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: str) -> bool:
        return any(e.path == name for e in self.entries)

    def __getitem__(self, name: str) -> TreeNode:
        for entry in self.entries:
            if entry.path == name:
                return entry
        raise KeyError(name)

    def names(self) -> list[str]:
        return [e.path for e in self.entries]

    def node_at(self, path: str) -> TreeNode:
        """Return the entry at slash-separated *path*.

        Raises ``FileNotFoundError`` if missing and ``NotADirectoryError``
        if a parent is not a materialized subtree.
        """
        path = _normalize_path(path)
        if not path:
            raise ValidationError("Path must not be empty")
        segments = path.split("/")
        tree = self
        for i, seg in enumerate(segments):
            try:
                node = tree[seg]
            except KeyError:
                raise FileNotFoundError(path) from None
            if i == len(segments) - 1:
                return node
            if not isinstance(node, Subtree) or node.child_tree is None:
                raise NotADirectoryError("/".join(segments[: i + 1]))
            tree = node.child_tree
        raise FileNotFoundError(path)

    def walk(self, prefix: str = "") -> Iterator[tuple[str, TreeNode]]:
        """Yield ``(full_path, node)`` depth-first in listing order.

        Only materialized subtrees are descended into.
        """
        for entry in self.entries:
            full_path = f"{prefix}/{entry.path}" if prefix else entry.path
            yield full_path, entry
            if isinstance(entry, Subtree) and entry.child_tree is not None:
                yield from entry.child_tree.walk(full_path)

    # -- serialization -----------------------------------------------------

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Tree:
        """Parse a tree listing as returned by the remote.

        Nested ``childTree`` keys (as written by :meth:`to_json`) are
        parsed recursively.
        """
        try:
            raw_entries = data["tree"]
        except (KeyError, TypeError):
            raise ValidationError("Tree listing has no 'tree' array") from None
        return cls(
            entries=tuple(_node_from_json(e) for e in raw_entries),
            sha=data.get("sha"),
            url=data.get("url"),
            base_tree=data.get("base_tree"),
            truncated=bool(data.get("truncated", False)),
            removed=tuple(_node_from_json(e) for e in data.get("removed") or ()),
        )

    def to_json(self) -> dict[str, Any]:
        """Return the nested form, with materialized subtrees as ``childTree``."""
        result: dict[str, Any] = {
            "base_tree": self.base_tree,
            "sha": self.sha,
            "url": self.url,
            "tree": [_node_to_json(e) for e in self.entries],
            "truncated": self.truncated,
        }
        if self.removed:
            result["removed"] = [_node_to_json(e) for e in self.removed]
        return result

    def to_payload(self) -> dict[str, Any]:
        """Return the create-tree request body for this level.

        Every subtree must already have a sha, and binary blobs must have
        been uploaded; :func:`treepatch.submit.submit` takes care of both.
        """
        items: list[dict[str, Any]] = []
        for entry in self.entries:
            item = {"path": entry.path, "mode": str(entry.mode), "type": entry.type}
            if entry.sha is not None:
                item["sha"] = entry.sha
            elif isinstance(entry, Blob) and entry.encoding == "utf-8":
                item["content"] = entry.content
            else:
                raise ValidationError(
                    f"Entry {entry.path!r} must be submitted before its parent tree"
                )
            items.append(item)
        for entry in self.removed:
            items.append({
                "path": entry.path, "mode": str(entry.mode), "type": entry.type,
                "sha": None,
            })
        payload: dict[str, Any] = {"tree": items}
        if self.base_tree is not None:
            payload["base_tree"] = self.base_tree
        return payload


def _node_from_json(data: dict[str, Any]) -> TreeNode:
    try:
        path = data["path"]
        mode = TreeMode.parse(data["mode"])
    except (KeyError, TypeError):
        raise ValidationError(f"Malformed tree entry: {data!r}") from None
    declared = data.get("type")
    if declared is not None and declared != mode.object_type:
        raise ValidationError(
            f"Entry {path!r} has type {declared!r} but mode {mode} ({mode.object_type})"
        )
    sha = data.get("sha")
    url = data.get("url")
    if mode is TreeMode.TREE:
        child = data.get("childTree")
        return Subtree(
            path=path, sha=sha, url=url,
            child_tree=Tree.from_json(child) if child is not None else None,
        )
    if mode is TreeMode.COMMIT:
        if sha is None:
            raise ValidationError(f"Submodule {path!r} has no commit sha")
        return Submodule(path=path, sha=sha, url=url)
    return Blob(
        path=path, mode=mode, sha=sha, size=data.get("size"), url=url,
        content=data.get("content"), encoding=data.get("encoding") or "utf-8",
    )


def _node_to_json(node: TreeNode) -> dict[str, Any]:
    result: dict[str, Any] = {
        "path": node.path,
        "mode": str(node.mode),
        "type": node.type,
        "size": node.size,
        "sha": node.sha,
        "url": node.url,
        "content": None,
        "childTree": None,
    }
    if isinstance(node, Blob) and node.content is not None:
        result["content"] = node.content
        result["encoding"] = node.encoding
    elif isinstance(node, Subtree) and node.child_tree is not None:
        result["childTree"] = node.child_tree.to_json()
    return result
