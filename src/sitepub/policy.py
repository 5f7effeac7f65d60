"""Path policies for reconciliation.

:class:`PathPolicy` combines the ignore-deletion patterns, the protected
top-level names and the include/exclude selection into one object consulted
by :func:`~sitepub.compare.compare`.  :class:`NormalizationPolicy` decides
which files are copied as text with line-ending normalization.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Iterable, Sequence

from ._glob import PatternSet, split_patterns

logger = logging.getLogger(__name__)

DEFAULT_NORMALIZE_EXTENSIONS = ("html", "css", "js")


class PathPolicy:
    """Decides which relative paths take part in reconciliation."""

    def __init__(
        self,
        *,
        ignore_deletes: Sequence[str] = (),
        protected: Iterable[str] = (),
        includes: Sequence[str] = (),
        excludes: Sequence[str] = (),
    ) -> None:
        self._ignore = PatternSet(ignore_deletes)
        self.protected: frozenset[str] = frozenset(protected)
        self._includes = PatternSet(includes)
        self._excludes = PatternSet(excludes)

    @classmethod
    def from_strings(
        cls,
        *,
        ignore_deletes: Sequence[str] = (),
        protected: Iterable[str] = (),
        includes: str | Sequence[str] | None = None,
        excludes: str | Sequence[str] | None = None,
    ) -> PathPolicy:
        """Build a policy from comma-separated include/exclude strings."""
        return cls(
            ignore_deletes=ignore_deletes,
            protected=protected,
            includes=split_patterns(includes),
            excludes=split_patterns(excludes),
        )

    def __repr__(self) -> str:
        return (
            f"PathPolicy(ignore_deletes={list(self._ignore.patterns)!r}, "
            f"protected={sorted(self.protected)!r})"
        )

    # ------------------------------------------------------------------
    @property
    def active(self) -> bool:
        """True if any rule is configured."""
        return bool(self._ignore or self.protected or self._includes or self._excludes)

    # ------------------------------------------------------------------
    def is_deletion_ignored(self, rel_path: str) -> bool:
        """True if *rel_path* matches an ignore-deletion pattern."""
        if not self._ignore:
            return False
        if self._ignore.matches(rel_path):
            logger.debug("%s matches one of %s: not deleted", rel_path, list(self._ignore.patterns))
            return True
        return False

    def is_protected(self, rel_path: str) -> bool:
        """True if *rel_path* is a protected top-level name."""
        return rel_path in self.protected

    def is_selected(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """True if *rel_path* passes the include/exclude selection.

        Include patterns only narrow files; directories are always walked
        unless an exclude pattern matches them.
        """
        if self._excludes.matches(rel_path):
            return False
        if is_dir or not self._includes:
            return True
        return self._includes.matches(rel_path)


class NormalizationPolicy:
    """Case-insensitive set of extensions copied as normalized text."""

    __slots__ = ("extensions",)

    def __init__(self, extra: Iterable[str] = (), *, defaults: Iterable[str] = DEFAULT_NORMALIZE_EXTENSIONS):
        exts = {e.lower().lstrip(".") for e in defaults}
        exts.update(e.lower().lstrip(".") for e in extra if e)
        self.extensions: frozenset[str] = frozenset(exts)

    def __repr__(self) -> str:
        return f"NormalizationPolicy({sorted(self.extensions)!r})"

    def __contains__(self, name: str) -> bool:
        return self.requires_normalization(name)

    def requires_normalization(self, name: str) -> bool:
        """True if the file *name* has one of the configured extensions."""
        suffix = PurePosixPath(name).suffix
        return bool(suffix) and suffix[1:].lower() in self.extensions
