"""
Exception hierarchy for retriever-ng.

Parse and expansion errors are raised eagerly, before any derivation work
starts, and are fatal to a run. Derivation errors are raised per candidate
and handled by the match engine. Snapshot errors abort the index load.
"""

from __future__ import annotations


class RetrieverError(Exception):
    """Base class for all retriever errors."""


# =============================================================================
# Path parsing
# =============================================================================


class ParseError(RetrieverError, ValueError):
    """Malformed path syntax."""


class InvalidRangeError(ParseError):
    """A range step whose low bound is above its high bound."""


class InvalidBasePathError(ParseError):
    """A base path that does not start at the root or contains a non-fixed step."""


# =============================================================================
# Expansion
# =============================================================================


class ExpansionError(RetrieverError, ValueError):
    """The exploration cannot be expanded with the given settings."""


class ExpansionTooLargeError(ExpansionError):
    """The number of candidate paths exceeds the configured bound."""

    def __init__(self, total: int, limit: int) -> None:
        super().__init__(f"Exploration yields {total:,} candidate paths, limit is {limit:,}")
        self.total = total
        self.limit = limit


class InvalidDepthError(ExpansionError):
    """Exploration depth outside the valid child index range."""


# =============================================================================
# Derivation
# =============================================================================


class DerivationError(RetrieverError):
    """Key or script derivation failed for one candidate."""


# =============================================================================
# Snapshot loading
# =============================================================================


class SnapshotError(RetrieverError):
    """The UTXO snapshot could not be loaded."""


class CorruptDumpError(SnapshotError):
    """Snapshot header mismatch, truncation, or malformed record."""


class SnapshotIOError(SnapshotError):
    """The operating system failed to read the snapshot."""


__all__ = [
    "RetrieverError",
    "ParseError",
    "InvalidRangeError",
    "InvalidBasePathError",
    "ExpansionError",
    "ExpansionTooLargeError",
    "InvalidDepthError",
    "DerivationError",
    "SnapshotError",
    "CorruptDumpError",
    "SnapshotIOError",
]
