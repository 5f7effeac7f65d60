"""The publish command."""

from __future__ import annotations

import click

from ..config import DEFAULT_MESSAGE
from ._helpers import (
    main,
    _credentials_options,
    _dry_run_option,
    _no_create_option,
    _parse_url,
    _status,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _print_dry_run(changes) -> None:
    for path in changes.added:
        click.echo(f"- addition {path}")
    for path in changes.updated:
        click.echo(f"- update   {path}")
    for path in changes.deleted:
        click.echo(f"- delete   {path}")


def _print_summary(changes) -> None:
    click.echo(
        f"Publishing content will result in {len(changes.added)} addition(s), "
        f"{len(changes.updated)} update(s), {len(changes.deleted)} delete(s)"
    )


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------

@main.command("publish")
@click.argument("content", type=click.Path(file_okay=False, path_type=str))
@click.option("--url", required=True, envvar="SITEPUB_URL",
              help="Repository as scm:<provider>:<address> (or set SITEPUB_URL).")
@click.option("--checkout-dir", type=click.Path(file_okay=False), default=None,
              envvar="SITEPUB_CHECKOUT_DIR",
              help="Working-copy directory (default: a temporary directory).")
@click.option("--subdirectory", default=None, envvar="SITEPUB_SUBDIRECTORY",
              help="Publish into this subdirectory of the working copy.")
@click.option("--branch", "-b", default=None, envvar="SITEPUB_BRANCH",
              help="Branch to check out and push.")
@click.option("--message", "-m", default=DEFAULT_MESSAGE, show_default=True,
              envvar="SITEPUB_MESSAGE", help="Commit message.")
@_dry_run_option
@click.option("--try-update", is_flag=True, default=False, envvar="SITEPUB_TRY_UPDATE",
              help="Update an existing working copy instead of checking out again.")
@click.option("--skip-commit", is_flag=True, default=False, envvar="SITEPUB_SKIP_COMMIT",
              help="Stage changes but do not commit.")
@click.option("--skip-deletes", is_flag=True, default=False, envvar="SITEPUB_SKIP_DELETES",
              help="Never delete files from the repository.")
@click.option("--add-unique-directory", is_flag=True, default=False,
              envvar="SITEPUB_ADD_UNIQUE_DIRECTORY",
              help="Add new directories one at a time.")
@click.option("--ignore-delete", "ignore_deletes", multiple=True, envvar="SITEPUB_IGNORE_DELETE",
              help="Pattern of working-copy paths never deleted (repeatable; %regex[...] allowed).")
@click.option("--protect", "protected", multiple=True, envvar="SITEPUB_PROTECT",
              help="Top-level name never deleted (repeatable).")
@click.option("--includes", default=None, envvar="SITEPUB_INCLUDES",
              help="Comma-separated patterns of files to publish.")
@click.option("--excludes", default=None, envvar="SITEPUB_EXCLUDES",
              help="Comma-separated patterns of paths left alone.")
@click.option("--normalize-ext", "normalize_extensions", multiple=True,
              envvar="SITEPUB_NORMALIZE_EXT",
              help="Extra extension copied with line-ending normalization (repeatable).")
@click.option("--encoding", default="utf-8", show_default=True, envvar="SITEPUB_ENCODING",
              help="Encoding of normalized text files.")
@_no_create_option
@_credentials_options
@click.option("--skip", is_flag=True, default=False, envvar="SITEPUB_SKIP",
              help="Do nothing (useful to disable publishing from the environment).")
@click.pass_context
def publish_cmd(ctx, content, url, checkout_dir, subdirectory, branch, message, dry_run,
                try_update, skip_commit, skip_deletes, add_unique_directory, ignore_deletes,
                protected, includes, excludes, normalize_extensions, encoding,
                no_create_remote, username, password, skip):
    """Publish the CONTENT directory to the repository at --url.

    \b
    Examples:
      sitepub publish build/site --url scm:git:https://example.com/site.git
      sitepub publish build/site --url scm:git|file:///srv/site.git --dry-run
      sitepub publish apidocs --url scm:git:file:///srv/site.git \\
          --subdirectory api --ignore-delete 'api/archive/**'
    """
    from ..backend import get_backend
    from ..changes import format_duration, format_size
    from ..config import PublishConfig
    from ..exceptions import PublishError
    from ..publish import Publisher

    if skip:
        click.echo("Skipping publish.")
        return

    scm = _parse_url(url)
    if scm.provider == "git":
        from ..git import resolve_credentials
        username, password = resolve_credentials(scm.address, username, password)

    config = PublishConfig(
        content_dir=content,
        url=scm.address,
        checkout_dir=checkout_dir,
        subdirectory=subdirectory,
        branch=branch,
        message=message,
        dry_run=dry_run,
        try_update=try_update,
        skip_commit=skip_commit,
        skip_deletes=skip_deletes,
        add_unique_directory=add_unique_directory,
        ignore_deletes=tuple(ignore_deletes),
        protected=tuple(protected),
        includes=includes,
        excludes=excludes,
        normalize_extensions=tuple(normalize_extensions),
        encoding=encoding,
        auto_create_remote=not no_create_remote,
        username=username,
        password=password,
    )

    try:
        backend = get_backend(scm.provider)
        _status(ctx, f"Publishing {content} to {url}")
        report = Publisher(backend, config).run()
    except PublishError as exc:
        raise click.ClickException(str(exc))

    changes = report.changes
    if report.dry_run:
        _print_summary(changes)
        _print_dry_run(changes)
        return

    stats = changes.stats
    click.echo(
        f"Content consists of {stats.directories} directories and {stats.files} files"
        f" = {format_size(stats.total_bytes)}"
    )
    _print_summary(changes)
    if report.commit is not None:
        click.echo(
            f"Checked in {len(report.commit.committed)} file(s) to revision "
            f"{report.commit.revision} in {format_duration(report.elapsed)}"
        )
    else:
        _status(ctx, "Commit skipped")
