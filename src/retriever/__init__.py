"""
retriever - Recover funds of a BIP39 seed whose derivation paths are unknown

Explores BIP32 derivation paths, derives single-key scripts and looks them up
in a UTXO set snapshot.
"""

from retriever.version import __version__

from retriever.errors import RetrieverError
from retriever.matcher import MatchEngine
from retriever.models import MatchResult, PathSpec
from retriever.paths import parse_path_spec
from retriever.snapshot import UtxoIndex, load_snapshot

__all__ = [
    "__version__",
    "MatchEngine",
    "MatchResult",
    "PathSpec",
    "RetrieverError",
    "UtxoIndex",
    "load_snapshot",
    "parse_path_spec",
]
