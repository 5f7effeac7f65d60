"""Data structures for reconciliation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class EntryKind(str, Enum):
    """Kind of filesystem entry: ``DIRECTORY``, ``FILE`` or ``SYMLINK``."""
    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class ChangeActionKind(str, Enum):
    """Kind of change action: ``ADD``, ``UPDATE``, or ``DELETE``."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass
class ChangeAction:
    """A single add/update/delete action in a :class:`ChangeSet`.

    Attributes:
        path: Path relative to the working-copy root.
        action: :class:`ChangeActionKind` value.
    """
    path: str
    action: ChangeActionKind


@dataclass
class Transfer:
    """One scheduled copy from the content tree into the working copy.

    Attributes:
        source: Absolute source path.
        destination: Absolute destination path inside the working copy.
        path: Destination path relative to the working-copy root.
        kind: :class:`EntryKind` of the source entry.
    """
    source: Path
    destination: Path
    path: str
    kind: EntryKind


@dataclass
class TransferStats:
    """Running counters filled by the materializer."""
    directories: int = 0
    files: int = 0
    total_bytes: int = 0


@dataclass
class ChangeSet:
    """Result of one reconciliation pass.

    Attributes:
        added: Paths present in the content tree but not in the working copy.
        updated: Paths present in both (regular files, always re-copied).
        deleted: Paths present only in the working copy, children before
            their directory.
        transfers: Copy schedule in traversal order.
        stats: Counters accumulated while materializing.
    """
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    transfers: list[Transfer] = field(default_factory=list)
    stats: TransferStats = field(default_factory=TransferStats)

    @property
    def in_sync(self) -> bool:
        """``True`` if there are no add, update, or delete actions."""
        return not self.added and not self.updated and not self.deleted

    @property
    def total(self) -> int:
        """Total number of add + update + delete actions."""
        return len(self.added) + len(self.updated) + len(self.deleted)

    def actions(self) -> list[ChangeAction]:
        """Return all actions as a flat list sorted by path."""
        result: list[ChangeAction] = []
        for p in self.added:
            result.append(ChangeAction(path=p, action=ChangeActionKind.ADD))
        for p in self.updated:
            result.append(ChangeAction(path=p, action=ChangeActionKind.UPDATE))
        for p in self.deleted:
            result.append(ChangeAction(path=p, action=ChangeActionKind.DELETE))
        result.sort(key=lambda a: a.path)
        return result


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_ONE_KB = 1024
_SIZE_UNITS = (
    (_ONE_KB ** 6, "EB"),
    (_ONE_KB ** 5, "PB"),
    (_ONE_KB ** 4, "TB"),
    (_ONE_KB ** 3, "GB"),
    (_ONE_KB ** 2, "MB"),
    (_ONE_KB, "KB"),
)


def format_size(size: int) -> str:
    """Human-readable byte count, truncated to whole units (``"12 MB"``)."""
    for unit, label in _SIZE_UNITS:
        if size // unit > 0:
            return f"{size // unit} {label}"
    return f"{size} bytes"


def format_duration(seconds: float) -> str:
    """Format an elapsed time as ``"H h M m S s"``."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours} h {minutes} m {secs} s"
