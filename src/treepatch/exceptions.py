"""Exceptions for treepatch."""

from __future__ import annotations


class TreePatchError(Exception):
    """Base class for all treepatch errors."""


class ValidationError(TreePatchError, ValueError):
    """Raised when input is structurally invalid.

    Typical causes are a change path outside the component being pushed,
    a malformed change record, or an unknown tree mode.  The operation
    that raised it produces no output.
    """


class UnclassifiedChangeError(ValidationError):
    """Raised when a change is neither added, modified nor deleted.

    Happens for a text change with no insertions and no deletions whose
    file is gone from the working copy, or a binary change of 0 -> 0 bytes.
    """

    def __init__(self, path: str):
        super().__init__(f"Cannot classify change to {path!r}")
        self.path = path


class UnsupportedInputError(TreePatchError):
    """Raised for a tree listing the remote reported as truncated."""

    def __init__(self, sha: str | None):
        super().__init__(
            f"Tree {sha} was truncated by the remote; paginated listings "
            "are not supported"
        )
        self.sha = sha


class RemoteError(TreePatchError):
    """Raised when a call to the hosted tree API fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteFetchError(RemoteError):
    """Raised when materializing a remote tree fails at any level.

    The underlying error is chained as ``__cause__``.
    """


class WaitTimeoutError(RemoteError):
    """Raised when a polled repository does not appear in time."""
