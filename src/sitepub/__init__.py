from .backend import (
    Backend, CommitResult, RemotePathSupport, Repository, Result, ScmUrl,
    get_backend, register_backend, unregister_backend,
)
from .changes import ChangeAction, ChangeActionKind, ChangeSet, EntryKind, Transfer, TransferStats
from .compare import compare
from .config import PublishConfig
from .exceptions import BackendError, ConfigurationError, PublishError, TransferError
from .materialize import Materializer
from .policy import NormalizationPolicy, PathPolicy
from .publish import Publisher, PublishReport, PublishState

__all__ = [
    "Backend", "CommitResult", "RemotePathSupport", "Repository", "Result", "ScmUrl",
    "get_backend", "register_backend", "unregister_backend",
    "ChangeAction", "ChangeActionKind", "ChangeSet", "EntryKind", "Transfer", "TransferStats",
    "compare", "Materializer", "NormalizationPolicy", "PathPolicy",
    "PublishConfig", "Publisher", "PublishReport", "PublishState",
    "PublishError", "ConfigurationError", "BackendError", "TransferError",
]
