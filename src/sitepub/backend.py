"""Version-control backend interface.

A backend is any object implementing :class:`Backend`.  Each operation
returns a :class:`Result` instead of raising; the publisher checks every
result and turns failures into :class:`~sitepub.exceptions.BackendError`.

Backends whose remote is a path that may not exist yet (a Subversion URL,
a local bare repository) also implement :class:`RemotePathSupport`.

Backends are looked up by the provider part of an ``scm:`` URL::

    scm:git:https://example.com/site.git
    scm:git|file:///srv/site.git
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol, Sequence, runtime_checkable

from .exceptions import ConfigurationError

SCM_PREFIX = "scm:"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class Result:
    """Outcome of one backend call.

    Attributes:
        success: Whether the operation succeeded.
        message: Short provider message.
        output: Raw command output, if any.
    """
    success: bool
    message: str = ""
    output: str = ""

    @classmethod
    def ok(cls, message: str = "", output: str = "") -> Result:
        return cls(True, message, output)

    @classmethod
    def failure(cls, message: str, output: str = "") -> Result:
        return cls(False, message, output)


@dataclass
class CommitResult(Result):
    """Result of a commit: the new revision and the committed paths."""
    revision: str | None = None
    committed: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Repository location
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScmUrl:
    """A parsed ``scm:<provider><delimiter><address>`` locator."""
    provider: str
    delimiter: str
    address: str

    @classmethod
    def parse(cls, url: str) -> ScmUrl:
        """Split *url* into provider and provider-specific address.

        The delimiter is ``|`` when one appears after the ``scm:`` prefix,
        otherwise ``:``.
        """
        if not url.startswith(SCM_PREFIX):
            raise ConfigurationError(f"SCM URL must start with {SCM_PREFIX!r}: {url}")
        rest = url[len(SCM_PREFIX):]
        delimiter = "|" if "|" in rest else ":"
        provider, sep, address = rest.partition(delimiter)
        if not sep or not provider or not address:
            raise ConfigurationError(f"Malformed SCM URL: {url}")
        return cls(provider, delimiter, address)

    def __str__(self) -> str:
        return f"{SCM_PREFIX}{self.provider}{self.delimiter}{self.address}"


@dataclass(frozen=True)
class Repository:
    """What a backend needs to reach the remote."""
    url: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class Backend(Protocol):
    """Operations the publisher needs from a version-control system.

    All *paths* are relative to *working_dir* and use forward slashes.
    """

    #: Private entry names in a working copy, never reconciled.
    metadata_names: tuple[str, ...]

    def checkout(self, repository: Repository, working_dir: Path, branch: str | None) -> Result: ...

    def update(self, repository: Repository, working_dir: Path, branch: str | None) -> Result: ...

    def add(self, repository: Repository, working_dir: Path, paths: Sequence[str],
            message: str, *, force: bool = False) -> Result: ...

    def remove(self, repository: Repository, working_dir: Path, paths: Sequence[str],
               message: str) -> Result: ...

    def commit(self, repository: Repository, working_dir: Path, branch: str | None,
               message: str) -> CommitResult: ...


@runtime_checkable
class RemotePathSupport(Protocol):
    """Optional capability: check for and create the remote location."""

    def remote_exists(self, repository: Repository) -> bool: ...

    def create_remote_path(self, repository: Repository, message: str) -> Result: ...


# ---------------------------------------------------------------------------
# Provider registry
# ---------------------------------------------------------------------------

BackendFactory = Callable[..., Backend]

_REGISTRY: dict[str, BackendFactory] = {}


def register_backend(provider: str, factory: BackendFactory) -> None:
    """Register *factory* for ``scm:<provider>:...`` URLs."""
    _REGISTRY[provider] = factory


def unregister_backend(provider: str) -> None:
    _REGISTRY.pop(provider, None)


def get_backend(provider: str, **options) -> Backend:
    """Instantiate the backend registered for *provider*."""
    _register_defaults()
    try:
        factory = _REGISTRY[provider]
    except KeyError:
        known = ", ".join(sorted(_REGISTRY)) or "none"
        raise ConfigurationError(
            f"No backend for SCM provider {provider!r} (available: {known})"
        ) from None
    return factory(**options)


def _register_defaults() -> None:
    from .git import GitBackend

    _REGISTRY.setdefault("git", GitBackend)
