"""sitepub CLI: publish a generated site into a version-controlled repository."""

from ._helpers import main  # noqa: F401 (entry point)

# Registers the commands on the main group.
from . import _publish  # noqa: F401
