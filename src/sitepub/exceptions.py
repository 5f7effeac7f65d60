"""Exceptions for sitepub."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .backend import Result


class PublishError(Exception):
    """Base class for every error that aborts a publish run."""


class ConfigurationError(PublishError):
    """Raised before any backend call when the run is misconfigured.

    Missing or unreadable content directory, a subdirectory escaping the
    working copy, a malformed ``scm:`` URL or an unknown provider.
    """


class BackendError(PublishError):
    """Raised when a backend operation reports failure.

    The failing :class:`~sitepub.backend.Result` is kept on ``result``.
    """

    def __init__(self, message: str, result: Result | None = None):
        super().__init__(message)
        self.result = result


class TransferError(PublishError):
    """Raised when a filesystem operation fails while comparing or copying."""

    def __init__(self, path: str, error: str):
        super().__init__(f"{path}: {error}")
        self.path = path
        self.error = error
