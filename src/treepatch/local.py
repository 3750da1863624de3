"""Read changes from the local working copy.

:func:`read_blob` turns one changed file into a new :class:`~treepatch.tree.Blob`;
:func:`changes_for_commit` produces the :class:`~treepatch.changes.FileChange`
list for a commit of a local git repository, using dulwich.
"""

from __future__ import annotations

import base64
import difflib
import logging
import os
import stat

from dulwich.diff_tree import tree_changes
from dulwich.errors import NotGitRepository
from dulwich.objects import Commit
from dulwich.repo import Repo

from .changes import FileChange
from .exceptions import ValidationError
from .tree import GIT_FILEMODE_COMMIT, Blob, TreeMode

logger = logging.getLogger(__name__)

# git looks at this many leading bytes to decide whether a file is binary
_BINARY_PROBE_SIZE = 8000


def _mode_from_disk(local_path: str) -> TreeMode:
    """Return the tree mode based on the file's owner-execute bit.

    Also validates the path: raises FileNotFoundError, PermissionError
    or IsADirectoryError before anything is read.
    """
    st = os.stat(local_path)
    if stat.S_ISDIR(st.st_mode):
        raise IsADirectoryError(local_path)
    if st.st_mode & stat.S_IXUSR:
        return TreeMode.EXECUTABLE
    return TreeMode.BLOB


def read_blob(work_dir: str | os.PathLike[str], path: str, binary: bool = False) -> Blob:
    """Read *path* (relative to *work_dir*) as a new blob entry.

    Text is returned as a UTF-8 string, binary content base64-encoded.
    Symlinks are not followed: their target becomes the content.
    """
    full = os.path.join(work_dir, *path.split("/"))
    name = path.rsplit("/", 1)[-1]
    if os.path.islink(full):
        target = os.readlink(full)
        return Blob(name, TreeMode.LINK, size=len(target), content=target)

    mode = _mode_from_disk(full)
    with open(full, "rb") as f:
        data = f.read()
    if binary:
        content = base64.b64encode(data).decode("ascii")
        encoding = "base64"
    else:
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError(f"{path!r} is not valid UTF-8 text") from None
        encoding = "utf-8"
    logger.debug("Read %s (%s, %d chars)", path, mode, len(content))
    return Blob(name, mode, size=len(content), content=content, encoding=encoding)


# ---------------------------------------------------------------------------
# Local diff
# ---------------------------------------------------------------------------

def _is_binary(data: bytes) -> bool:
    return b"\0" in data[:_BINARY_PROBE_SIZE]


def _line_counts(old: bytes, new: bytes) -> tuple[int, int]:
    """Return ``(insertions, deletions)`` between two texts, like numstat."""
    a = old.splitlines(keepends=True)
    b = new.splitlines(keepends=True)
    insertions = deletions = 0
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            deletions += i2 - i1
        if tag in ("replace", "insert"):
            insertions += j2 - j1
    return insertions, deletions


def _present(entry):
    # dulwich reports a missing side either as None or as an all-None entry
    if entry is None or entry.sha is None:
        return None
    return entry


def _resolve_commit(repo: Repo, commit: str | None) -> Commit:
    if commit is None:
        try:
            sha = repo.head()
        except KeyError:
            raise ValidationError("Repository has no HEAD commit") from None
    else:
        sha = commit.encode() if isinstance(commit, str) else commit
        if len(sha) != 40:
            matches = [s for s in repo.object_store if s.startswith(sha)]
            if len(matches) != 1:
                raise ValidationError(f"Cannot resolve commit: {commit!r}")
            sha = matches[0]
    try:
        obj = repo[sha]
    except KeyError:
        raise ValidationError(f"Commit not found: {commit!r}") from None
    if not isinstance(obj, Commit):
        raise ValidationError(f"Not a commit: {commit!r}")
    return obj


def changes_for_commit(
    repo_dir: str | os.PathLike[str], commit: str | None = None,
) -> list[FileChange]:
    """Return the changes *commit* (default ``HEAD``) makes to its first parent.

    Root commits are compared against the empty tree.  Submodule entries
    are skipped: their content lives in another repository.
    """
    try:
        repo = Repo(os.fspath(repo_dir))
    except NotGitRepository:
        raise ValidationError(f"Not a git repository: {os.fspath(repo_dir)}") from None
    with repo:
        target = _resolve_commit(repo, commit)
        parent_tree = repo[target.parents[0]].tree if target.parents else None
        store = repo.object_store

        result: list[FileChange] = []
        for change in tree_changes(store, parent_tree, target.tree):
            old = _present(change.old)
            new = _present(change.new)
            entry = new or old
            if (old and old.mode == GIT_FILEMODE_COMMIT) or (
                new and new.mode == GIT_FILEMODE_COMMIT
            ):
                logger.warning("Skipping submodule change %s", entry.path.decode())
                continue
            path = entry.path.decode("utf-8")
            old_data = store[old.sha].as_raw_string() if old else b""
            new_data = store[new.sha].as_raw_string() if new else b""
            if _is_binary(old_data) or _is_binary(new_data):
                fc = FileChange.binary_file(path, len(old_data), len(new_data))
            else:
                insertions, deletions = _line_counts(old_data, new_data)
                fc = FileChange.text(path, insertions, deletions)
            logger.debug("Change %s: %s", change.type, fc)
            result.append(fc)
    return result
