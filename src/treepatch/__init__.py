from .tree import Blob, Subtree, Submodule, Tree, TreeMode, TreeNode
from .changes import ChangeKind, FileChange, classify, is_added, is_deleted, is_modified
from .exceptions import (
    TreePatchError,
    ValidationError,
    UnclassifiedChangeError,
    UnsupportedInputError,
    RemoteError,
    RemoteFetchError,
    WaitTimeoutError,
)
from .local import read_blob, changes_for_commit
from .fetch import materialize
from .build import build
from .merge import merge
from .submit import submit
from .remote import GitHubClient, RemoteConfig

__all__ = [
    "Blob", "Subtree", "Submodule", "Tree", "TreeMode", "TreeNode",
    "ChangeKind", "FileChange", "classify", "is_added", "is_deleted", "is_modified",
    "TreePatchError", "ValidationError", "UnclassifiedChangeError",
    "UnsupportedInputError", "RemoteError", "RemoteFetchError", "WaitTimeoutError",
    "read_blob", "changes_for_commit",
    "materialize", "build", "merge", "submit",
    "GitHubClient", "RemoteConfig",
]
