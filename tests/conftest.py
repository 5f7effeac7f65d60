"""Shared fixtures for sitepub tests."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from sitepub.backend import CommitResult, Result


def write_tree(root: Path, files: dict) -> Path:
    """Create *files* (``{"a/b.txt": "text"}``) under *root*.

    A value of ``None`` creates an empty directory.
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        p = root / rel
        if content is None:
            p.mkdir(parents=True, exist_ok=True)
            continue
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content)
    return root


def list_tree(root: Path) -> set:
    """All paths under *root* (forward slashes), skipping ``.git``."""
    out = set()
    for p in root.rglob("*"):
        rel = p.relative_to(root).as_posix()
        if rel == ".git" or rel.startswith(".git/"):
            continue
        out.add(rel)
    return out


class FakeBackend:
    """Records every call; checkout copies a seed tree into the working copy.

    ``checkout_results`` is consumed one per checkout call; an exception
    instance in it is raised instead of returned.
    """

    metadata_names = (".fake",)

    def __init__(self, seed=None, checkout_results=None):
        self.seed = seed or {}
        self.checkout_results = list(checkout_results or [])
        self.calls = []
        self.add_result = Result.ok()
        self.dir_add_result = Result.ok()
        self.remove_result = Result.ok()
        self.update_result = Result.ok()
        self.commit_result = None

    def names(self):
        return [c[0] for c in self.calls]

    def checkout(self, repository, working_dir, branch):
        self.calls.append(("checkout", Path(working_dir), branch))
        if self.checkout_results:
            result = self.checkout_results.pop(0)
            if isinstance(result, Exception):
                raise result
            if not result.success:
                return result
        write_tree(Path(working_dir), self.seed)
        (Path(working_dir) / ".fake").mkdir(exist_ok=True)
        return Result.ok("checked out")

    def update(self, repository, working_dir, branch):
        self.calls.append(("update", Path(working_dir), branch))
        return self.update_result

    def add(self, repository, working_dir, paths, message, *, force=False):
        self.calls.append(("add", list(paths), message, force))
        if not force:
            return self.dir_add_result
        return self.add_result

    def remove(self, repository, working_dir, paths, message):
        self.calls.append(("remove", list(paths), message))
        return self.remove_result

    def commit(self, repository, working_dir, branch, message):
        self.calls.append(("commit", branch, message))
        if self.commit_result is not None:
            return self.commit_result
        return CommitResult(True, "committed", revision="r42", committed=["a.txt"])


class FakeRemoteBackend(FakeBackend):
    """FakeBackend that also checks for and creates the remote."""

    def __init__(self, *args, exists=False, create_result=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.exists = exists
        self.create_result = create_result or Result.ok()

    def remote_exists(self, repository):
        self.calls.append(("remote_exists",))
        return self.exists

    def create_remote_path(self, repository, message):
        self.calls.append(("create_remote_path", message))
        if self.create_result.success:
            self.exists = True
        return self.create_result


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tree():
    """Tree builder: ``tree(root, {"a/b.txt": "text", "empty": None})``."""
    return write_tree


@pytest.fixture
def tree_paths():
    """Tree lister: ``tree_paths(root)`` -> set of relative paths."""
    return list_tree


@pytest.fixture
def fake_backend():
    """The recording :class:`FakeBackend` class; call it to build one."""
    return FakeBackend


@pytest.fixture
def fake_remote_backend():
    """The recording :class:`FakeRemoteBackend` class."""
    return FakeRemoteBackend


@pytest.fixture
def content(tmp_path):
    """Content tree: index.html, css/site.css, img/logo.png."""
    return write_tree(tmp_path / "site", {
        "index.html": "<html>\n</html>\n",
        "css/site.css": "body {}\n",
        "img/logo.png": b"\x89PNG\x00\x01",
    })
