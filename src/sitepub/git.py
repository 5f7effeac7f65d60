"""Git backend built on dulwich porcelain.

Checkout is a clone, update is a pull, and commit is a local commit of
every staged and modified tracked file followed by a push of the branch.
Directories are not tracked by git, so staging one is a no-op.

Only local remotes (plain paths and ``file://`` URLs) support remote path
probing and creation; network remotes are assumed to exist.
"""

from __future__ import annotations

import io
import logging
import os
import subprocess
from pathlib import Path
from typing import Sequence
from urllib.parse import unquote, urlparse

from dulwich import porcelain
from dulwich.diff_tree import tree_changes
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.ignore import IgnoreFilterManager
from dulwich.repo import Repo

from .backend import CommitResult, Repository, Result

logger = logging.getLogger(__name__)

_GIT_ERRORS = (porcelain.Error, GitProtocolError, NotGitRepository, OSError, KeyError, IndexError,
               ValueError)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _decode(buf: io.BytesIO) -> str:
    return buf.getvalue().decode("utf-8", errors="replace").strip()


def _local_remote_path(url: str) -> Path | None:
    """Filesystem path of a local remote, or ``None`` for network URLs."""
    if url.startswith("file://"):
        return Path(unquote(urlparse(url).path))
    if "://" in url:
        return None
    head = url.split("/", 1)[0]
    # scp-style "host:path" (but not a Windows drive letter)
    if ":" in head and not (len(head) == 2 and head[1] == ":"):
        return None
    return Path(url)


def _branch_ref(branch: str) -> str:
    return branch if branch.startswith("refs/") else f"refs/heads/{branch}"


def _shadowed(working_dir: Path, rel: str) -> bool:
    """True when a parent of *rel* is no longer a real directory.

    A symlink or file now stands in its place, so the working-tree
    location no longer names the tracked entry.
    """
    parent = working_dir
    for part in rel.split("/")[:-1]:
        parent = parent / part
        if parent.is_symlink() or not parent.is_dir():
            return True
    return False


def _is_empty_local_remote(url: str) -> bool:
    """True for a local remote repository without any branch."""
    path = _local_remote_path(url)
    if path is None:
        return False
    try:
        with Repo(str(path)) as remote:
            return not remote.refs.keys(base=b"refs/heads/")
    except NotGitRepository:
        return False


def _changed_paths(repo: Repo, commit_sha: bytes) -> list[str]:
    """Paths changed by *commit_sha* relative to its first parent."""
    commit = repo[commit_sha]
    parent_tree = repo[commit.parents[0]].tree if commit.parents else None
    paths = []
    for change in tree_changes(repo.object_store, parent_tree, commit.tree):
        entry = change.new if change.new is not None and change.new.path is not None else change.old
        paths.append(entry.path.decode("utf-8", errors="replace"))
    return sorted(paths)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def resolve_credentials(url: str, username: str | None = None,
                        password: str | None = None) -> tuple[str | None, str | None]:
    """Fill in missing credentials for an HTTPS *url*.

    Explicit values win.  Otherwise ``git credential fill`` is asked (works
    with any configured helper: osxkeychain, wincred, libsecret,
    ``gh auth setup-git``, etc.).  Non-HTTPS URLs are returned unchanged.
    """
    if (username and password) or not url.startswith("https://"):
        return username, password

    parsed = urlparse(url)
    if parsed.username:
        return username, password  # already in the URL

    try:
        stdin = f"protocol={parsed.scheme}\nhost={parsed.hostname}\n"
        if username:
            stdin += f"username={username}\n"
        proc = subprocess.run(
            ["git", "credential", "fill"],
            input=stdin + "\n", capture_output=True, text=True, timeout=5,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return username, password

    if proc.returncode != 0:
        return username, password
    creds = {}
    for line in proc.stdout.strip().splitlines():
        if "=" in line:
            k, _, v = line.partition("=")
            creds[k] = v
    return username or creds.get("username"), password or creds.get("password")


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class GitBackend:
    """:class:`~sitepub.backend.Backend` implementation for git."""

    metadata_names = (".git",)

    def __init__(self, *, author: str | None = None, committer: str | None = None):
        self.author = author
        self.committer = committer or author

    def __repr__(self) -> str:
        return f"GitBackend(author={self.author!r})"

    @staticmethod
    def _auth(repository: Repository) -> dict[str, str]:
        kwargs = {}
        if repository.username:
            kwargs["username"] = repository.username
        if repository.password:
            kwargs["password"] = repository.password
        return kwargs

    # -- checkout / update --------------------------------------------------

    def checkout(self, repository: Repository, working_dir: Path, branch: str | None) -> Result:
        if _is_empty_local_remote(repository.url):
            return self._init_working_copy(repository, working_dir, branch)
        err = io.BytesIO()
        try:
            repo = porcelain.clone(
                repository.url, str(working_dir), branch=branch,
                errstream=err, **self._auth(repository),
            )
            repo.close()
        except _GIT_ERRORS as exc:
            return Result.failure(f"clone of {repository.url} failed: {exc}", _decode(err))
        return Result.ok(f"Cloned {repository.url}", _decode(err))

    def _init_working_copy(self, repository: Repository, working_dir: Path,
                           branch: str | None) -> Result:
        """Start an empty working copy for a remote that has no commits yet."""
        try:
            with Repo.init(str(working_dir), mkdir=not working_dir.exists(),
                           default_branch=branch.encode() if branch else None) as repo:
                config = repo.get_config()
                config.set((b"remote", b"origin"), b"url", repository.url.encode())
                config.write_to_path()
        except _GIT_ERRORS as exc:
            return Result.failure(f"init of working copy for {repository.url} failed: {exc}")
        logger.info("Remote %s is empty: started a new working copy", repository.url)
        return Result.ok(f"Initialized empty working copy for {repository.url}")

    def update(self, repository: Repository, working_dir: Path, branch: str | None) -> Result:
        out = io.BytesIO()
        try:
            with Repo(str(working_dir)) as repo:
                porcelain.pull(
                    repo, repository.url,
                    refspecs=_branch_ref(branch) if branch else None,
                    outstream=out, errstream=out, **self._auth(repository),
                )
        except _GIT_ERRORS as exc:
            return Result.failure(f"pull from {repository.url} failed: {exc}", _decode(out))
        return Result.ok(f"Pulled {repository.url}", _decode(out))

    # -- staging ------------------------------------------------------------

    def add(self, repository: Repository, working_dir: Path, paths: Sequence[str],
            message: str, *, force: bool = False) -> Result:
        files = []
        for p in paths:
            full = working_dir / p
            if full.is_dir() and not full.is_symlink():
                continue
            files.append(p)
        try:
            with Repo(str(working_dir)) as repo:
                if not force:
                    ignore = IgnoreFilterManager.from_repo(repo)
                    kept = []
                    for p in files:
                        if ignore.is_ignored(p) is True:
                            logger.info("ignored by .gitignore, not added: %s", p)
                        else:
                            kept.append(p)
                    files = kept
                if files:
                    repo.get_worktree().stage(files)
        except _GIT_ERRORS as exc:
            return Result.failure(f"add failed: {exc}")
        return Result.ok(f"Staged {len(files)} path(s)")

    def remove(self, repository: Repository, working_dir: Path, paths: Sequence[str],
               message: str) -> Result:
        try:
            with Repo(str(working_dir)) as repo:
                index = repo.open_index()
                tracked = [p for p in paths if os.fsencode(p) in index]
                shadowed = [p for p in tracked if _shadowed(working_dir, p)]
                if shadowed:
                    # porcelain.remove resolves symlinked parents, so it would
                    # drop and unlink the link target's entry instead.
                    for p in shadowed:
                        del index[os.fsencode(p)]
                    index.write()
                in_place = [p for p in tracked if p not in shadowed]
                if in_place:
                    porcelain.remove(repo, paths=[str(working_dir / p) for p in in_place])
            tracked_set = set(tracked)
            # Deepest first so directories are empty by the time we reach them.
            for p in sorted(paths, key=lambda s: s.count("/"), reverse=True):
                if p in tracked_set or _shadowed(working_dir, p):
                    continue
                full = working_dir / p
                if full.is_symlink() or full.is_file():
                    full.unlink()
                elif full.is_dir() and not any(full.iterdir()):
                    full.rmdir()
        except _GIT_ERRORS as exc:
            return Result.failure(f"remove failed: {exc}")
        return Result.ok(f"Removed {len(paths)} path(s)")

    # -- commit -------------------------------------------------------------

    def commit(self, repository: Repository, working_dir: Path, branch: str | None,
               message: str) -> CommitResult:
        out = io.BytesIO()
        try:
            with Repo(str(working_dir)) as repo:
                status = porcelain.status(repo, untracked_files="no")
                if not any(status.staged.values()) and not status.unstaged:
                    try:
                        head = repo.head().decode()
                    except KeyError:
                        head = None
                    return CommitResult(True, "Nothing to commit", revision=head)
                sha = porcelain.commit(
                    repo, message=message, author=self.author,
                    committer=self.committer, all=True,
                )
                committed = _changed_paths(repo, sha)
                target = branch or porcelain.active_branch(repo).decode()
                porcelain.push(
                    repo, repository.url, refspecs=_branch_ref(target),
                    outstream=out, errstream=out, **self._auth(repository),
                )
        except _GIT_ERRORS as exc:
            return CommitResult(False, f"commit/push to {repository.url} failed: {exc}", _decode(out))
        return CommitResult(True, f"Pushed {target}", _decode(out),
                            revision=sha.decode(), committed=committed)

    # -- remote path support ------------------------------------------------

    def remote_exists(self, repository: Repository) -> bool:
        path = _local_remote_path(repository.url)
        if path is None:
            return True
        try:
            with Repo(str(path)):
                return True
        except NotGitRepository:
            return False

    def create_remote_path(self, repository: Repository, message: str) -> Result:
        path = _local_remote_path(repository.url)
        if path is None:
            return Result.failure(f"Cannot create network remote {repository.url}")
        try:
            Repo.init_bare(str(path), mkdir=not path.exists()).close()
        except _GIT_ERRORS as exc:
            return Result.failure(f"Cannot create {path}: {exc}")
        logger.info("%s: %s", message, path)
        return Result.ok(f"Created bare repository {path}")
