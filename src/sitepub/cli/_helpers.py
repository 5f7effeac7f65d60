"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging

import click

from ..backend import ScmUrl
from ..exceptions import PublishError


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class _ClickHandler(logging.Handler):
    """Route library log records through ``click.echo(err=True)``."""

    def emit(self, record):
        try:
            click.echo(self.format(record), err=True)
        except Exception:  # noqa: BLE001
            self.handleError(record)


def _setup_logging(verbose: int) -> None:
    """Attach a stderr handler to the ``sitepub`` logger.

    No flag shows warnings, ``-v`` adds step progress, ``-vv`` adds
    per-path decisions.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    log = logging.getLogger("sitepub")
    for h in list(log.handlers):
        if isinstance(h, _ClickHandler):
            log.removeHandler(h)
    handler = _ClickHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    log.addHandler(handler)
    log.setLevel(level)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _parse_url(url: str) -> ScmUrl:
    """Parse an ``scm:`` URL, raising a ClickException on failure."""
    try:
        return ScmUrl.parse(url)
    except PublishError as exc:
        raise click.ClickException(str(exc))


# ---------------------------------------------------------------------------
# Option decorators
# ---------------------------------------------------------------------------

def _dry_run_option(f):
    """Shared --dry-run flag."""
    return click.option(
        "--dry-run", is_flag=True, default=False, envvar="SITEPUB_DRY_RUN",
        help="Show what would change without touching the repository.",
    )(f)


def _no_create_option(f):
    """Shared --no-create-remote flag."""
    return click.option(
        "--no-create-remote", "no_create_remote", is_flag=True, default=False,
        envvar="SITEPUB_NO_CREATE_REMOTE",
        help="Do not create the remote path if it doesn't exist.",
    )(f)


def _credentials_options(f):
    """Shared --username/--password options."""
    f = click.option(
        "--password", envvar="SITEPUB_PASSWORD", default=None,
        help="Password for the remote (or set SITEPUB_PASSWORD).",
    )(f)
    f = click.option(
        "--username", envvar="SITEPUB_USERNAME", default=None,
        help="User name for the remote (or set SITEPUB_USERNAME).",
    )(f)
    return f


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", count=True, help="Verbose output on stderr (repeat for debug).")
@click.pass_context
def main(ctx, verbose):
    """sitepub: publish a generated site into a version-controlled repository.

    Compares the content directory with a fresh working copy, copies what
    changed, stages additions and deletions, then commits and pushes.

    \b
    Example:
      sitepub publish build/site --url scm:git:https://example.com/site.git
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)
