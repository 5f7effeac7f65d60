"""Lock-step comparison of a content tree against a working copy.

:func:`compare` walks the destination (working copy) and the source
(content) directories together and classifies every entry as added,
updated or deleted.  Nothing is written: the resulting
:class:`~sitepub.changes.ChangeSet` carries a copy schedule that
:class:`~sitepub.materialize.Materializer` applies later.

Regular files are always re-copied; there is no hashing or mtime shortcut.
Symbolic links are never followed.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from .changes import ChangeSet, EntryKind, Transfer
from .exceptions import TransferError
from .policy import PathPolicy

logger = logging.getLogger(__name__)


def _is_real_dir(path: Path) -> bool:
    """True for a directory that is not a symlink to one."""
    return not path.is_symlink() and path.is_dir()


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _list_dir(path: Path) -> list[str]:
    try:
        return sorted(os.listdir(path))
    except OSError as exc:
        raise TransferError(str(path), exc.strerror or str(exc)) from exc


class _Walker:
    """Recursive state for one :func:`compare` call."""

    def __init__(self, changes: ChangeSet, prefix: str, policy: PathPolicy,
                 metadata_names: frozenset[str]):
        self.changes = changes
        self.prefix = prefix
        self.policy = policy
        self.metadata_names = metadata_names

    def rel(self, local_rel: str) -> str:
        """Path relative to the working-copy root."""
        return _join(self.prefix, local_rel)

    def _entries(self, directory: Path, local_rel: str) -> list[str]:
        names = []
        for name in _list_dir(directory):
            if name in self.metadata_names:
                continue
            child = directory / name
            if not self.policy.is_selected(_join(local_rel, name), is_dir=_is_real_dir(child)):
                continue
            names.append(name)
        return names

    # ------------------------------------------------------------------
    def walk(self, dest: Path, src: Path | None, local_rel: str,
             protected: frozenset[str]) -> None:
        dest_names = self._entries(dest, local_rel) if _is_real_dir(dest) else []
        src_names = self._entries(src, local_rel) if src is not None else []
        dest_set = set(dest_names)
        src_set = set(src_names)

        for name in dest_names:
            if name in src_set:
                continue
            child_local = _join(local_rel, name)
            child = dest / name
            if self.policy.is_deletion_ignored(self.rel(child_local)):
                continue
            is_dir = _is_real_dir(child)
            if is_dir and name in protected:
                logger.debug("%s is protected: not deleted", child_local)
                continue
            logger.debug("marked for deletion: %s", child_local)
            if is_dir:
                self.walk(child, None, child_local, frozenset())
            self.changes.deleted.append(self.rel(child_local))

        if src is None:
            return
        for name in src_names:
            child_local = _join(local_rel, name)
            path = self.rel(child_local)
            source = src / name
            target = dest / name
            exists = name in dest_set

            if source.is_symlink():
                if exists and _is_real_dir(target):
                    # The directory goes away; the link is new to the backend.
                    self.walk(target, None, child_local, frozenset())
                    self.changes.added.append(path)
                elif not exists:
                    self.changes.added.append(path)
                self.changes.transfers.append(Transfer(source, target, path, EntryKind.SYMLINK))
            elif source.is_dir():
                if not exists:
                    self.changes.added.append(path)
                elif not _is_real_dir(target):
                    # A file or symlink is being replaced by a directory.
                    self.changes.deleted.append(path)
                self.changes.transfers.append(Transfer(source, target, path, EntryKind.DIRECTORY))
                self.walk(target, source, child_local, frozenset())
            else:
                if exists and _is_real_dir(target):
                    self.walk(target, None, child_local, frozenset())
                    self.changes.added.append(path)
                elif exists:
                    self.changes.updated.append(path)
                else:
                    self.changes.added.append(path)
                self.changes.transfers.append(Transfer(source, target, path, EntryKind.FILE))


def compare(
    destination: str | os.PathLike[str],
    source: str | os.PathLike[str] | None,
    protected: Iterable[str] = (),
    *,
    root: str | os.PathLike[str] | None = None,
    policy: PathPolicy | None = None,
    metadata_names: Iterable[str] = (),
) -> ChangeSet:
    """Classify every entry of *source* against *destination*.

    Args:
        destination: Directory to reconcile (the working copy or a
            subdirectory of it).  Must exist.
        source: Content directory, or ``None`` when the content is gone
            entirely (every destination entry is then deleted).
        protected: Top-level directory names never deleted.  Only applied
            to the entries of *destination* itself.
        root: Working-copy root that reported paths are relative to;
            defaults to *destination*.
        policy: Ignore-deletion and selection rules.  Patterns are matched
            against paths relative to *root*, so a subdirectory is part
            of the path.
        metadata_names: Backend-private entry names (e.g. ``.git``) skipped
            on both sides.

    Returns:
        A :class:`~sitepub.changes.ChangeSet` with ``stats`` still zeroed.

    Raises:
        TransferError: if a directory cannot be listed.
    """
    destination = Path(destination)
    if not _is_real_dir(destination):
        raise TransferError(str(destination), "not a directory")
    root_path = Path(root) if root is not None else destination
    prefix = os.path.relpath(destination, root_path).replace(os.sep, "/")
    if prefix == ".":
        prefix = ""

    policy = policy if policy is not None else PathPolicy()
    protected_names = frozenset(protected) | policy.protected
    changes = ChangeSet()
    walker = _Walker(changes, prefix, policy, frozenset(metadata_names))
    walker.walk(destination, Path(source) if source is not None else None, "", protected_names)
    return changes
