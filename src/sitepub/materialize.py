"""Apply a copy schedule to the working copy."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .changes import ChangeSet, EntryKind, Transfer, TransferStats
from .exceptions import TransferError
from .policy import NormalizationPolicy

logger = logging.getLogger(__name__)


def _clear(path: Path) -> None:
    """Remove whatever is at *path* (file, symlink or directory tree)."""
    if path.is_symlink() or (path.exists() and not path.is_dir()):
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


class Materializer:
    """Copies content entries into the working copy.

    Files whose extension is in *normalization* are decoded with *encoding*
    and rewritten with *line_ending*; everything else is copied byte for
    byte.  Counters are accumulated on :attr:`stats`.
    """

    def __init__(
        self,
        normalization: NormalizationPolicy | None = None,
        *,
        encoding: str = "utf-8",
        line_ending: str = os.linesep,
        stats: TransferStats | None = None,
    ) -> None:
        self.normalization = normalization if normalization is not None else NormalizationPolicy()
        self.encoding = encoding
        self.line_ending = line_ending
        self.stats = stats if stats is not None else TransferStats()

    def apply_all(self, changes: ChangeSet) -> TransferStats:
        """Apply every transfer of *changes* in order; return the counters.

        The counters are also stored on ``changes.stats``.
        """
        for transfer in changes.transfers:
            self.apply(transfer)
        changes.stats = self.stats
        return self.stats

    def apply(self, transfer: Transfer) -> None:
        """Apply one transfer.  Raises :class:`TransferError` on failure."""
        try:
            if transfer.kind is EntryKind.DIRECTORY:
                self._make_dir(transfer.destination)
            elif transfer.kind is EntryKind.SYMLINK:
                self._copy_symlink(transfer.source, transfer.destination)
            else:
                self._copy_file(transfer.source, transfer.destination)
        except (OSError, UnicodeError) as exc:
            raise TransferError(transfer.path, str(exc)) from exc

    # ------------------------------------------------------------------
    def _make_dir(self, dest: Path) -> None:
        if dest.is_symlink() or (dest.exists() and not dest.is_dir()):
            dest.unlink()
        dest.mkdir(exist_ok=True)
        self.stats.directories += 1

    def _copy_symlink(self, src: Path, dest: Path) -> None:
        _clear(dest)
        os.symlink(os.readlink(src), dest)
        shutil.copystat(src, dest, follow_symlinks=False)

    def _copy_file(self, src: Path, dest: Path) -> None:
        # Writing through an existing symlink would modify its referent.
        if dest.is_symlink() or dest.is_dir():
            _clear(dest)
        if self.normalization.requires_normalization(src.name):
            self._copy_normalized(src, dest)
        else:
            shutil.copyfile(src, dest)
        self.stats.files += 1
        self.stats.total_bytes += dest.stat().st_size

    def _copy_normalized(self, src: Path, dest: Path) -> None:
        """Rewrite *src* into *dest* with uniform line endings.

        Universal-newline decoding maps ``\\r\\n`` and ``\\r`` to ``\\n``;
        writing with ``newline=line_ending`` maps them back.  A missing
        final newline stays missing.
        """
        with open(src, "r", encoding=self.encoding, newline=None) as fin:
            text = fin.read()
        with open(dest, "w", encoding=self.encoding, newline=self.line_ending) as fout:
            fout.write(text)
