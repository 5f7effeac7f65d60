"""Publish orchestration: acquire, reconcile, materialize, stage, commit.

Usage::

    from sitepub import PublishConfig, Publisher, get_backend

    config = PublishConfig(content_dir="build/site", url="file:///srv/site.git")
    report = Publisher(get_backend("git"), config).run()
    print(report.changes.total, report.commit.revision)

Every backend call returns a :class:`~sitepub.backend.Result`; a failed
result aborts the run with :class:`~sitepub.exceptions.BackendError`,
except for directory adds, which only log a warning.  Checkout is retried
with a fixed delay through the injectable *sleep*.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator

from .backend import Backend, CommitResult, RemotePathSupport, Repository, Result
from .changes import ChangeSet
from .compare import compare
from .config import PublishConfig
from .exceptions import BackendError, TransferError
from .materialize import Materializer

logger = logging.getLogger(__name__)

ADD_DIRECTORY_MESSAGE = "Adding directory"
ADD_DIRECTORIES_MESSAGE = "Adding directories"
ADD_FILES_MESSAGE = "Adding new site files."
DELETE_FILES_MESSAGE = "Deleting obsolete site files."
CREATE_REMOTE_MESSAGE = "Automatic remote path creation"


class PublishState(str, Enum):
    """Where a :class:`Publisher` is in its run."""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RECONCILING = "reconciling"
    MATERIALIZING = "materializing"
    STAGING = "staging"
    COMMITTING = "committing"
    DONE = "done"
    ABORTED = "aborted"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass
class PublishReport:
    """Outcome of :meth:`Publisher.run`.

    Attributes:
        changes: The computed :class:`~sitepub.changes.ChangeSet`.
        commit: Commit result, or ``None`` when nothing was committed
            (dry run, ``skip_commit``, skipped run).
        state: Final state (``DONE`` on success).
        elapsed: Wall time of the run in seconds.
        dry_run: Whether the run only reported changes.
        skipped: Whether the run was skipped entirely.
    """
    changes: ChangeSet = field(default_factory=ChangeSet)
    commit: CommitResult | None = None
    state: PublishState = PublishState.IDLE
    elapsed: float = 0.0
    dry_run: bool = False
    skipped: bool = False


def _check(result: Result, step: str) -> Result:
    """Raise :class:`BackendError` if *result* is not a success."""
    if not result.success:
        msg = f"Failed to {step}: {result.message} {result.output}".rstrip()
        logger.error(msg)
        raise BackendError(msg, result)
    return result


def _empty_directory(path: Path) -> None:
    if not path.exists():
        path.mkdir(parents=True)
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def _implied_directories(added: list[str]) -> list[str]:
    """Parent directories of *added* paths, up to the working-copy root.

    Walking up from each path stops at the first parent already seen.
    """
    seen: set[str] = set()
    dirs: set[str] = set()
    for path in added:
        parent = path.rpartition("/")[0]
        while parent and parent not in seen:
            seen.add(parent)
            dirs.add(parent)
            parent = parent.rpartition("/")[0]
    return sorted(dirs)


class Publisher:
    """Runs one publish of a content tree through a backend.

    Args:
        backend: Any :class:`~sitepub.backend.Backend`.
        config: The run configuration.
        sleep: Called with the retry delay between checkout attempts
            (default :func:`time.sleep`).  An :exc:`InterruptedError` from
            it cuts the wait short and the next attempt runs;
            :exc:`KeyboardInterrupt` aborts the run.
        clock: Monotonic clock used for the elapsed time
            (default :func:`time.monotonic`).
    """

    def __init__(
        self,
        backend: Backend,
        config: PublishConfig,
        *,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.backend = backend
        self.config = config
        self.repository = Repository(config.url, config.username, config.password)
        self.state = PublishState.IDLE
        self._sleep = sleep if sleep is not None else time.sleep
        self._clock = clock if clock is not None else time.monotonic

    def __repr__(self) -> str:
        return f"Publisher({self.backend!r}, url={self.config.url!r}, state={self.state})"

    def _enter(self, state: PublishState) -> None:
        logger.debug("state %s -> %s", self.state, state)
        self.state = state

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> PublishReport:
        """Execute the publish run.

        Raises:
            ConfigurationError: before any backend call, on bad configuration.
            BackendError: when a backend step fails (checkout after retries).
            TransferError: when comparing or copying fails.
        """
        cfg = self.config
        if cfg.skip:
            logger.info("Skipping publish")
            return PublishReport(state=self.state, dry_run=cfg.dry_run, skipped=True)

        start = self._clock()
        report = PublishReport(dry_run=cfg.dry_run)
        try:
            cfg.validate()
            with self._working_copy() as checkout:
                self._enter(PublishState.ACQUIRING)
                self._acquire(checkout)

                self._enter(PublishState.RECONCILING)
                report.changes = changes = self._reconcile(checkout)

                if not cfg.dry_run:
                    self._enter(PublishState.MATERIALIZING)
                    self._materialize(changes)

                    self._enter(PublishState.STAGING)
                    self._stage(checkout, changes)

                    if cfg.skip_commit:
                        logger.info("Commit skipped: changes left staged in %s", checkout)
                    else:
                        self._enter(PublishState.COMMITTING)
                        report.commit = self._commit(checkout)
        except BaseException:
            self._enter(PublishState.ABORTED)
            report.state = self.state
            raise
        self._enter(PublishState.DONE)
        report.state = self.state
        report.elapsed = self._clock() - start
        return report

    @contextmanager
    def _working_copy(self) -> Iterator[Path]:
        """Yield the checkout path, creating and removing a temporary one if needed."""
        cfg = self.config
        if not cfg.needs_temporary_checkout:
            yield Path(cfg.checkout_dir)
            return
        tmp = Path(tempfile.mkdtemp(prefix="sitepub-"))
        logger.info("Using temporary checkout directory %s", tmp)
        try:
            yield tmp
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

    # ------------------------------------------------------------------
    # Acquiring
    # ------------------------------------------------------------------

    def _acquire(self, checkout: Path) -> None:
        cfg = self.config
        self._ensure_remote(checkout)

        logger.info("%s %s into %s", "Updating" if cfg.try_update else "Checking out",
                    cfg.url, checkout)
        if checkout.exists() and not cfg.try_update:
            try:
                shutil.rmtree(checkout)
            except OSError as exc:
                raise TransferError(str(checkout), f"unable to remove old checkout: {exc}") from exc

        force_checkout = False
        if not checkout.exists():
            if cfg.try_update:
                logger.info("try_update requested but no working copy exists: forcing checkout")
            checkout.mkdir(parents=True)
            force_checkout = True

        if cfg.try_update and not force_checkout:
            _check(self.backend.update(self.repository, checkout, cfg.branch), "update from SCM")
        else:
            self._checkout_with_retry(checkout)

    def _ensure_remote(self, checkout: Path) -> None:
        backend = self.backend
        if not isinstance(backend, RemotePathSupport):
            return
        if backend.remote_exists(self.repository):
            return
        if not self.config.auto_create_remote:
            logger.warning("Remote %s does not exist and automatic remote path creation is disabled",
                           self.config.url)
            return
        logger.info("Remote %s does not exist: creating", self.config.url)
        _check(backend.create_remote_path(self.repository, f"{CREATE_REMOTE_MESSAGE}: {self.config.url}"),
               "create remote path")
        # New remote: force a fresh checkout.
        if checkout.exists():
            shutil.rmtree(checkout)

    def _checkout_with_retry(self, checkout: Path) -> None:
        cfg = self.config
        attempts = cfg.checkout_attempts
        for attempt in range(1, attempts + 1):
            try:
                _check(self.backend.checkout(self.repository, checkout, cfg.branch),
                       "check out from SCM")
                return
            except BackendError as exc:
                if attempt == attempts:
                    raise
                logger.warning("Checkout attempt %d/%d failed: %s; retrying in %gs",
                               attempt, attempts, exc, cfg.retry_delay)
            try:
                self._sleep(cfg.retry_delay)
            except InterruptedError:
                logger.warning("Retry wait interrupted; retrying now")
            _empty_directory(checkout)

    # ------------------------------------------------------------------
    # Reconciling and materializing
    # ------------------------------------------------------------------

    def _reconcile(self, checkout: Path) -> ChangeSet:
        cfg = self.config
        update_dir = cfg.update_directory(checkout)
        if update_dir != checkout:
            update_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Will copy content into subdirectory %s", cfg.subdirectory)
        logger.info("Comparing %s with %s", cfg.content_dir, update_dir)
        changes = compare(
            update_dir, cfg.content_dir, cfg.protected,
            root=checkout,
            policy=cfg.path_policy(),
            metadata_names=self.backend.metadata_names,
        )
        logger.info("Publishing content will result in %d addition(s), %d update(s), %d delete(s)",
                    len(changes.added), len(changes.updated), len(changes.deleted))
        return changes

    def _materialize(self, changes: ChangeSet) -> None:
        cfg = self.config
        materializer = Materializer(
            cfg.normalization_policy(),
            encoding=cfg.encoding,
            line_ending=cfg.line_ending,
        )
        stats = materializer.apply_all(changes)
        logger.info("Content consists of %d directories and %d files", stats.directories, stats.files)

    # ------------------------------------------------------------------
    # Staging and committing
    # ------------------------------------------------------------------

    def _stage(self, checkout: Path, changes: ChangeSet) -> None:
        if changes.added:
            self._add(checkout, changes.added)
        if changes.deleted:
            if self.config.skip_deletes:
                logger.info("Deletions skipped: %d path(s) left in place", len(changes.deleted))
            else:
                logger.info("scm remove: %s", changes.deleted)
                _check(self.backend.remove(self.repository, checkout, changes.deleted,
                                           DELETE_FILES_MESSAGE),
                       "delete files from SCM")

    def _add(self, checkout: Path, added: list[str]) -> None:
        backend = self.backend
        dirs = _implied_directories(added)
        if dirs:
            if self.config.add_unique_directory:
                for d in dirs:
                    logger.info("scm add directory: %s", d)
                    result = backend.add(self.repository, checkout, [d], ADD_DIRECTORY_MESSAGE)
                    if not result.success:
                        logger.warning("Error adding directory %s: %s", d, result.output or result.message)
            else:
                logger.info("scm add directories: %s", dirs)
                result = backend.add(self.repository, checkout, dirs, ADD_DIRECTORIES_MESSAGE)
                if not result.success:
                    logger.warning("Error adding directories %s: %s", dirs, result.output or result.message)

        implied = set(dirs)
        files = [p for p in added if p not in implied]
        if files:
            logger.info("scm add files: %s", files)
            _check(backend.add(self.repository, checkout, files, ADD_FILES_MESSAGE, force=True),
                   "add new files to SCM")

    def _commit(self, checkout: Path) -> CommitResult:
        cfg = self.config
        logger.info("Checking in to %s", cfg.url)
        result = self.backend.commit(self.repository, checkout, cfg.branch, cfg.message)
        _check(result, "check in files to SCM")
        logger.info("Checked in %d file(s) to revision %s", len(result.committed), result.revision)
        return result
