"""Ant-style path patterns.

A pattern is either an Ant glob (``*`` and ``?`` stay inside one path
segment, ``**`` spans any number of segments) or a full regular expression
wrapped as ``%regex[...]``.  ``%ant[...]`` forces glob syntax.  Matching is
case-sensitive and always covers the whole path.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

REGEX_PREFIX = "%regex["
ANT_PREFIX = "%ant["


def _translate_segment(seg: str) -> str:
    out = []
    for ch in seg:
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
    return "".join(out)


def _ant_to_regex(pattern: str) -> str:
    """Translate an Ant glob into an anchored-free regex body."""
    pattern = pattern.replace("\\", "/")
    if pattern.endswith("/"):
        pattern += "**"
    segs = pattern.split("/")
    last = len(segs) - 1
    out: list[str] = []
    for idx, seg in enumerate(segs):
        if seg == "**":
            if idx == 0 and idx == last:
                out.append(".*")
            elif idx == 0:
                out.append("(?:[^/]+/)*")
            elif idx == last:
                out.append("(?:/.*)?")
            else:
                out.append("(?:/[^/]+)*")
            continue
        # A leading ``**`` already consumed the separator.
        if idx > 0 and not (idx == 1 and segs[0] == "**"):
            out.append("/")
        out.append(_translate_segment(seg))
    return "".join(out)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile one Ant glob or ``%regex[...]`` pattern."""
    if pattern.startswith(REGEX_PREFIX) and pattern.endswith("]"):
        return re.compile(pattern[len(REGEX_PREFIX):-1])
    if pattern.startswith(ANT_PREFIX) and pattern.endswith("]"):
        pattern = pattern[len(ANT_PREFIX):-1]
    return re.compile(_ant_to_regex(pattern))


class PatternSet:
    """A list of compiled patterns; a path matches if any pattern does."""

    __slots__ = ("patterns", "_compiled")

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns: tuple[str, ...] = tuple(p for p in patterns if p)
        self._compiled = [compile_pattern(p) for p in self.patterns]

    def __bool__(self) -> bool:
        return bool(self._compiled)

    def __repr__(self) -> str:
        return f"PatternSet({list(self.patterns)!r})"

    def matches(self, path: str) -> bool:
        return any(rx.fullmatch(path) for rx in self._compiled)


def split_patterns(value: str | Sequence[str] | None) -> list[str]:
    """Split a comma-separated pattern string (or pass a list through)."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [p.strip() for p in value if p.strip()]
