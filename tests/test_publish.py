"""Tests for the Publisher state machine against a recording backend."""

import pytest

from sitepub.backend import CommitResult, Result
from sitepub.config import PublishConfig
from sitepub.exceptions import BackendError, ConfigurationError
from sitepub.publish import (
    ADD_DIRECTORIES_MESSAGE,
    ADD_DIRECTORY_MESSAGE,
    ADD_FILES_MESSAGE,
    DELETE_FILES_MESSAGE,
    PublishState,
    Publisher,
    _implied_directories,
)


SEED = {"a.txt": "same", "old/b.txt": "b"}


@pytest.fixture
def scenario(tmp_path, tree):
    """Content and config for the {a.txt, old/b.txt} -> {a.txt, new/c.txt} case."""
    content = tree(tmp_path / "site", {"a.txt": "same", "new/c.txt": "c"})
    config = PublishConfig(content_dir=content, url="file:///srv/site.git",
                           checkout_dir=tmp_path / "wc")
    return config


def _publisher(backend, config, sleeps=None):
    return Publisher(backend, config,
                     sleep=(sleeps.append if sleeps is not None else lambda s: None))


class TestRun:
    def test_full_sequence(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED)
        report = _publisher(backend, scenario).run()
        assert backend.names() == ["checkout", "add", "add", "remove", "commit"]
        assert report.state is PublishState.DONE
        assert report.commit.revision == "r42"
        assert sorted(report.changes.added) == ["new", "new/c.txt"]

    def test_working_copy_materialized(self, scenario, fake_backend, tree_paths):
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        wc = scenario.checkout_dir
        assert (wc / "new/c.txt").read_text() == "c"
        assert ".fake" in tree_paths(wc)

    def test_staging_calls(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        adds = [c for c in backend.calls if c[0] == "add"]
        assert adds[0] == ("add", ["new"], ADD_DIRECTORIES_MESSAGE, False)
        assert adds[1] == ("add", ["new/c.txt"], ADD_FILES_MESSAGE, True)
        remove = [c for c in backend.calls if c[0] == "remove"][0]
        assert remove == ("remove", ["old/b.txt", "old"], DELETE_FILES_MESSAGE)

    def test_commit_uses_message_and_branch(self, scenario, fake_backend):
        scenario.message = "Publish docs"
        scenario.branch = "gh-pages"
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        assert ("commit", "gh-pages", "Publish docs") in backend.calls
        assert backend.calls[0][2] == "gh-pages"

    def test_stats_recorded(self, scenario, fake_backend):
        report = _publisher(fake_backend(seed=SEED), scenario).run()
        assert report.changes.stats.files == 2
        assert report.changes.stats.directories == 1

    def test_elapsed_uses_clock(self, scenario, fake_backend):
        ticks = iter([10.0, 75.0])
        p = Publisher(fake_backend(seed=SEED), scenario, clock=lambda: next(ticks))
        assert p.run().elapsed == 65.0

    def test_skip(self, scenario, fake_backend):
        scenario.skip = True
        backend = fake_backend(seed=SEED)
        report = _publisher(backend, scenario).run()
        assert report.skipped
        assert backend.calls == []

    def test_nothing_added(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"a.txt": "same"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc")
        backend = fake_backend(seed={"a.txt": "same"})
        _publisher(backend, config).run()
        assert backend.names() == ["checkout", "commit"]


class TestDryRun:
    def test_no_mutating_calls(self, scenario, fake_backend):
        scenario.dry_run = True
        backend = fake_backend(seed=SEED)
        report = _publisher(backend, scenario).run()
        assert backend.names() == ["checkout"]
        assert report.dry_run
        assert report.commit is None
        assert report.state is PublishState.DONE
        assert sorted(report.changes.deleted) == ["old", "old/b.txt"]

    def test_no_materialization(self, scenario, fake_backend):
        scenario.dry_run = True
        _publisher(fake_backend(seed=SEED), scenario).run()
        assert not (scenario.checkout_dir / "new").exists()


class TestStagingOptions:
    def test_skip_commit(self, scenario, fake_backend):
        scenario.skip_commit = True
        backend = fake_backend(seed=SEED)
        report = _publisher(backend, scenario).run()
        assert "commit" not in backend.names()
        assert report.commit is None

    def test_skip_deletes(self, scenario, fake_backend):
        scenario.skip_deletes = True
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        assert "remove" not in backend.names()

    def test_add_unique_directory(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"x/y/z.txt": "z", "w/v.txt": "v"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc",
                               add_unique_directory=True)
        backend = fake_backend()
        _publisher(backend, config).run()
        dir_adds = [c for c in backend.calls if c[0] == "add" and not c[3]]
        assert dir_adds == [
            ("add", ["w"], ADD_DIRECTORY_MESSAGE, False),
            ("add", ["x"], ADD_DIRECTORY_MESSAGE, False),
            ("add", ["x/y"], ADD_DIRECTORY_MESSAGE, False),
        ]
        file_add = [c for c in backend.calls if c[0] == "add" and c[3]][0]
        assert file_add[1] == ["w/v.txt", "x/y/z.txt"]

    def test_directory_add_failure_is_only_a_warning(self, scenario, caplog, fake_backend):
        backend = fake_backend(seed=SEED)
        backend.dir_add_result = Result.failure("already under version control")
        with caplog.at_level("WARNING", logger="sitepub"):
            report = _publisher(backend, scenario).run()
        assert report.state is PublishState.DONE
        assert "Error adding directories" in caplog.text

    def test_file_add_failure_aborts(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED)
        backend.add_result = Result.failure("locked", "E: index.lock")
        p = _publisher(backend, scenario)
        with pytest.raises(BackendError, match="Failed to add new files to SCM: locked E: index.lock"):
            p.run()
        assert p.state is PublishState.ABORTED
        assert "commit" not in backend.names()

    def test_remove_failure_aborts(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED)
        backend.remove_result = Result.failure("nope")
        with pytest.raises(BackendError, match="delete files"):
            _publisher(backend, scenario).run()

    def test_commit_failure_aborts(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED)
        backend.commit_result = CommitResult(False, "rejected", "non-fast-forward")
        with pytest.raises(BackendError) as exc_info:
            _publisher(backend, scenario).run()
        assert exc_info.value.result is backend.commit_result

    def test_subdirectory(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"index.html": "i"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc",
                               subdirectory="api")
        backend = fake_backend(seed={"top.txt": "t"})
        report = _publisher(backend, config).run()
        assert report.changes.added == ["api/index.html"]
        assert report.changes.deleted == []
        assert (tmp_path / "wc/api/index.html").exists()

    def test_subdirectory_ignore_deletes_from_root(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"index.html": "i"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc",
                               subdirectory="api", ignore_deletes=("api/archive/**",))
        backend = fake_backend(seed={"api/archive/x.html": "x", "api/old.html": "o"})
        report = _publisher(backend, config).run()
        assert report.changes.deleted == ["api/old.html"]
        assert ("remove", ["api/old.html"], DELETE_FILES_MESSAGE) in backend.calls

    def test_protected_names(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"index.html": "i"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc",
                               protected=("module-a",), ignore_deletes=("CNAME",))
        backend = fake_backend(seed={"module-a/x.html": "x", "CNAME": "example.com"})
        report = _publisher(backend, config).run()
        assert report.changes.deleted == []
        assert "remove" not in backend.names()


class TestCheckoutRetry:
    def test_two_failures_then_success(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED, checkout_results=[
            Result.failure("timeout"), BackendError("connection reset"), Result.ok(),
        ])
        sleeps = []
        report = _publisher(backend, scenario, sleeps).run()
        assert backend.names().count("checkout") == 3
        assert sleeps == [3.0, 3.0]
        assert report.state is PublishState.DONE

    def test_three_failures_abort(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED, checkout_results=[Result.failure("timeout")] * 3)
        sleeps = []
        p = _publisher(backend, scenario, sleeps)
        with pytest.raises(BackendError, match="Failed to check out from SCM: timeout"):
            p.run()
        assert backend.names() == ["checkout"] * 3
        assert sleeps == [3.0, 3.0]
        assert p.state is PublishState.ABORTED

    def test_retry_settings(self, scenario, fake_backend):
        scenario.checkout_attempts = 2
        scenario.retry_delay = 0.5
        backend = fake_backend(seed=SEED, checkout_results=[Result.failure("x")] * 2)
        sleeps = []
        with pytest.raises(BackendError):
            _publisher(backend, scenario, sleeps).run()
        assert sleeps == [0.5]

    def test_interrupted_wait_still_retries(self, scenario, fake_backend, caplog):
        backend = fake_backend(seed=SEED, checkout_results=[Result.failure("x"), Result.ok()])

        def interrupted(delay):
            raise InterruptedError("signal")

        with caplog.at_level("WARNING", logger="sitepub"):
            report = Publisher(backend, scenario, sleep=interrupted).run()
        assert backend.names().count("checkout") == 2
        assert report.state is PublishState.DONE
        assert "Retry wait interrupted" in caplog.text

    def test_keyboard_interrupt_aborts(self, scenario, fake_backend):
        backend = fake_backend(seed=SEED, checkout_results=[Result.failure("x"), Result.ok()])

        def interrupted(delay):
            raise KeyboardInterrupt

        p = Publisher(backend, scenario, sleep=interrupted)
        with pytest.raises(KeyboardInterrupt):
            p.run()
        assert backend.names() == ["checkout"]
        assert p.state is PublishState.ABORTED

    def test_working_copy_emptied_between_attempts(self, scenario, fake_backend):
        seen = []

        class Partial(fake_backend):
            def checkout(self, repository, working_dir, branch):
                seen.append(sorted(p.name for p in working_dir.iterdir()))
                (working_dir / "partial").write_text("junk")
                return super().checkout(repository, working_dir, branch)

        backend = Partial(seed=SEED, checkout_results=[Result.failure("x"), Result.ok()])
        _publisher(backend, scenario).run()
        assert seen == [[], []]


class TestAcquire:
    def test_existing_working_copy_replaced(self, scenario, fake_backend, tree):
        tree(scenario.checkout_dir, {"stale.txt": "s"})
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        assert not (scenario.checkout_dir / "stale.txt").exists()

    def test_try_update_with_working_copy(self, scenario, fake_backend, tree):
        tree(scenario.checkout_dir, SEED)
        scenario.try_update = True
        backend = fake_backend()
        report = _publisher(backend, scenario).run()
        assert backend.names()[0] == "update"
        assert "checkout" not in backend.names()
        assert sorted(report.changes.deleted) == ["old", "old/b.txt"]

    def test_try_update_without_working_copy_checks_out(self, scenario, fake_backend):
        scenario.try_update = True
        backend = fake_backend(seed=SEED)
        _publisher(backend, scenario).run()
        assert backend.names()[0] == "checkout"

    def test_update_not_retried(self, scenario, fake_backend, tree):
        tree(scenario.checkout_dir, SEED)
        scenario.try_update = True
        backend = fake_backend()
        backend.update_result = Result.failure("conflict")
        sleeps = []
        with pytest.raises(BackendError, match="Failed to update from SCM"):
            _publisher(backend, scenario, sleeps).run()
        assert backend.names() == ["update"]
        assert sleeps == []

    def test_temporary_checkout_removed(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"a.txt": "a"})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=None)
        backend = fake_backend()
        _publisher(backend, config).run()
        wc = backend.calls[0][1]
        assert not wc.exists()

    def test_templated_checkout_removed_on_failure(self, tmp_path, fake_backend, tree):
        content = tree(tmp_path / "site", {"a.txt": "a"})
        config = PublishConfig(content_dir=content, url="u",
                               checkout_dir=tmp_path / "${project.build.directory}/wc")
        backend = fake_backend(checkout_results=[Result.failure("x")] * 3)
        with pytest.raises(BackendError):
            _publisher(backend, config).run()
        wc = backend.calls[0][1]
        assert "${" not in str(wc)
        assert not wc.exists()


class TestRemoteCreation:
    def test_missing_remote_created(self, scenario, fake_remote_backend):
        backend = fake_remote_backend(seed=SEED, exists=False)
        _publisher(backend, scenario).run()
        assert backend.names()[:3] == ["remote_exists", "create_remote_path", "checkout"]

    def test_existing_remote_untouched(self, scenario, fake_remote_backend):
        backend = fake_remote_backend(seed=SEED, exists=True)
        _publisher(backend, scenario).run()
        assert "create_remote_path" not in backend.names()

    def test_creation_disabled_proceeds(self, scenario, caplog, fake_remote_backend):
        scenario.auto_create_remote = False
        backend = fake_remote_backend(seed=SEED, exists=False)
        with caplog.at_level("WARNING", logger="sitepub"):
            _publisher(backend, scenario).run()
        assert "create_remote_path" not in backend.names()
        assert "checkout" in backend.names()
        assert "does not exist" in caplog.text

    def test_creation_failure_is_fatal(self, scenario, fake_remote_backend):
        backend = fake_remote_backend(seed=SEED, exists=False,
                                    create_result=Result.failure("permission denied"))
        with pytest.raises(BackendError, match="create remote path"):
            _publisher(backend, scenario).run()
        assert "checkout" not in backend.names()


class TestPreflight:
    def test_missing_content(self, tmp_path, fake_remote_backend):
        config = PublishConfig(content_dir=tmp_path / "nope", url="u",
                               checkout_dir=tmp_path / "wc")
        backend = fake_remote_backend()
        p = _publisher(backend, config)
        with pytest.raises(ConfigurationError, match="does not exist"):
            p.run()
        assert backend.calls == []
        assert p.state is PublishState.ABORTED

    def test_content_is_file(self, tmp_path, fake_backend):
        f = tmp_path / "file.txt"
        f.write_text("x")
        config = PublishConfig(content_dir=f, url="u", checkout_dir=tmp_path / "wc")
        backend = fake_backend()
        with pytest.raises(ConfigurationError, match="not a directory"):
            _publisher(backend, config).run()
        assert backend.calls == []

    @pytest.mark.parametrize("sub", ["../outside", "a/../../b", "/abs"])
    def test_subdirectory_escape(self, tmp_path, sub, fake_backend, tree):
        content = tree(tmp_path / "site", {})
        config = PublishConfig(content_dir=content, url="u", checkout_dir=tmp_path / "wc",
                               subdirectory=sub)
        backend = fake_backend()
        with pytest.raises(ConfigurationError, match="escapes"):
            _publisher(backend, config).run()
        assert backend.calls == []
        assert not (tmp_path / "wc").exists()


class TestImpliedDirectories:
    def test_parents_up_to_root(self):
        assert _implied_directories(["a/b/c.txt"]) == ["a", "a/b"]

    def test_top_level_file_has_none(self):
        assert _implied_directories(["x.txt"]) == []

    def test_shared_parents_once(self):
        assert _implied_directories(["a/b/c", "a/b/d", "a/e"]) == ["a", "a/b"]
