"""Publish run configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .exceptions import ConfigurationError
from .policy import NormalizationPolicy, PathPolicy

DEFAULT_MESSAGE = "Site checkin"


@dataclass
class PublishConfig:
    """Every knob of a publish run.

    Attributes:
        content_dir: Generated content to publish.
        url: Backend address (the part after ``scm:<provider>:``).
        checkout_dir: Working-copy path.  ``None`` or a path still holding
            an unresolved ``${...}`` placeholder means "use a temporary
            directory".
        subdirectory: Working-copy subdirectory that receives the content.
        branch: Branch to check out and push, or ``None`` for the default.
        message: Commit message.
        dry_run: Compute and report the changes without touching anything.
        try_update: Update an existing working copy instead of recloning.
        skip_commit: Stage changes but do not commit.
        skip_deletes: Never stage deletions.
        add_unique_directory: One backend add call per new directory.
        ignore_deletes: Ignore-deletion patterns, relative to the working-copy root.
        protected: Top-level names never deleted.
        includes: Comma-separated include patterns.
        excludes: Comma-separated exclude patterns.
        normalize_extensions: Extra extensions copied as normalized text.
        encoding: Text encoding for normalized files.
        line_ending: Line terminator written to normalized files.
        auto_create_remote: Create a missing remote path before checkout.
        checkout_attempts: Number of checkout attempts.
        retry_delay: Seconds to wait between checkout attempts.
        username: Backend user name.
        password: Backend password.
        skip: Do nothing at all.
    """
    content_dir: Path
    url: str
    checkout_dir: Path | None = None
    subdirectory: str | None = None
    branch: str | None = None
    message: str = DEFAULT_MESSAGE
    dry_run: bool = False
    try_update: bool = False
    skip_commit: bool = False
    skip_deletes: bool = False
    add_unique_directory: bool = False
    ignore_deletes: tuple[str, ...] = ()
    protected: tuple[str, ...] = ()
    includes: str | None = None
    excludes: str | None = None
    normalize_extensions: tuple[str, ...] = ()
    encoding: str = "utf-8"
    line_ending: str = os.linesep
    auto_create_remote: bool = True
    checkout_attempts: int = 3
    retry_delay: float = 3.0
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    skip: bool = False

    def __post_init__(self):
        self.content_dir = Path(self.content_dir)
        if self.checkout_dir is not None:
            self.checkout_dir = Path(self.checkout_dir)

    # ------------------------------------------------------------------
    @property
    def needs_temporary_checkout(self) -> bool:
        """True when the checkout path is unset or still templated."""
        return self.checkout_dir is None or "${" in str(self.checkout_dir)

    def path_policy(self) -> PathPolicy:
        return PathPolicy.from_strings(
            ignore_deletes=self.ignore_deletes,
            protected=self.protected,
            includes=self.includes,
            excludes=self.excludes,
        )

    def normalization_policy(self) -> NormalizationPolicy:
        return NormalizationPolicy(self.normalize_extensions)

    def update_directory(self, checkout: Path) -> Path:
        """Directory inside *checkout* that receives the content."""
        if not self.subdirectory:
            return checkout
        return checkout / self._subdirectory_parts()

    def _subdirectory_parts(self) -> str:
        sub = self.subdirectory.replace("\\", "/")
        pure = PurePosixPath(sub)
        if pure.is_absolute() or ".." in pure.parts:
            raise ConfigurationError(
                f"Subdirectory escapes the working copy: {self.subdirectory}"
            )
        return str(pure)

    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Check the configuration before any backend interaction.

        Raises:
            ConfigurationError: if the content directory is missing, is not
                a directory or cannot be read, if the subdirectory escapes
                the working copy, or if a numeric knob is out of range.
        """
        content = self.content_dir
        if not content.exists():
            raise ConfigurationError(f"Content directory does not exist: {content}")
        if not content.is_dir():
            raise ConfigurationError(f"Content path is not a directory: {content}")
        if not os.access(content, os.R_OK | os.X_OK):
            raise ConfigurationError(f"Content directory is not readable: {content}")
        if self.subdirectory:
            self._subdirectory_parts()
        if self.checkout_attempts < 1:
            raise ConfigurationError("checkout_attempts must be at least 1")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must not be negative")
