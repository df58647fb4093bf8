"""Package version, read by the CLI and by packaging."""

from __future__ import annotations

__version__ = "0.3.0"


def get_version() -> str:
    return __version__


def get_version_tuple() -> tuple[int, int, int]:
    """(major, minor, patch) parsed from __version__."""
    major, minor, patch = (int(part) for part in __version__.split("."))
    return major, minor, patch
