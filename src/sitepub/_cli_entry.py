"""Console script wrapper that explains a missing click install."""

import sys


def main():
    try:
        from .cli import main as cli_main
    except ImportError:
        print(
            "Error: the sitepub command line needs the 'cli' extra.\n"
            "Install it with:  pip install sitepub[cli]",
            file=sys.stderr,
        )
        raise SystemExit(1)
    cli_main()
