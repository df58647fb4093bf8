"""
Data models shared across the retriever components.

Hot-path types (ConcretePath, UtxoRecord, MatchResult) are plain frozen
dataclasses with slots: they are created per candidate or per snapshot record,
at up to ~10^8 instances, so they skip pydantic validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# BIP32 hardened child offset
HARDENED_OFFSET = 0x80000000


class Hardening(str, Enum):
    """Hardening selector of an exploration step."""

    NORMAL = "normal"
    HARDENED = "hardened"
    BOTH = "both"


class DescriptorKind(str, Enum):
    """Single-key locking script forms that are matched against the UTXO set."""

    P2PK = "p2pk"
    P2PKH = "p2pkh"
    P2SHWPKH = "p2shwpkh"
    P2WPKH = "p2wpkh"
    P2TR = "p2tr"


# =============================================================================
# Path steps
# =============================================================================


@dataclass(frozen=True, slots=True)
class Fixed:
    """A single child index."""

    index: int
    hardening: Hardening = Hardening.NORMAL


@dataclass(frozen=True, slots=True)
class Range:
    """Inclusive range of child indices."""

    low: int
    high: int
    hardening: Hardening = Hardening.NORMAL


@dataclass(frozen=True, slots=True)
class Wildcard:
    """Range 0..exploration_depth, resolved at expansion time."""

    hardening: Hardening = Hardening.NORMAL


Step = Fixed | Range | Wildcard

# (index, hardened) with index below HARDENED_OFFSET
PathElement = tuple[int, bool]


def format_element(element: PathElement) -> str:
    index, hardened = element
    return f"{index}'" if hardened else str(index)


@dataclass(frozen=True, slots=True)
class PathSpec:
    """A fixed base path plus the exploration steps appended to it."""

    base: tuple[PathElement, ...]
    steps: tuple[Step, ...]

    def __str__(self) -> str:
        base = "/".join(["m", *(format_element(e) for e in self.base)])
        if not self.steps:
            return base
        from retriever.paths import format_exploration_path

        return f"{base}/{format_exploration_path(self.steps)}"


@dataclass(frozen=True, slots=True)
class ConcretePath:
    """A fully resolved derivation path."""

    elements: tuple[PathElement, ...]

    def __len__(self) -> int:
        return len(self.elements)

    def __str__(self) -> str:
        return "/".join(["m", *(format_element(e) for e in self.elements)])

    def child_numbers(self) -> list[int]:
        """BIP32 child numbers, with the hardened offset applied."""
        return [index + HARDENED_OFFSET if hardened else index for index, hardened in self.elements]


@dataclass(frozen=True, slots=True)
class DerivedKey:
    """Compressed public key derived at a concrete path."""

    path: ConcretePath
    public_key: bytes


# =============================================================================
# UTXO set and results
# =============================================================================


@dataclass(frozen=True, slots=True)
class UtxoRecord:
    """One unspent output from the snapshot."""

    txid: bytes  # internal byte order, as serialized
    vout: int
    amount: int  # satoshis
    height: int
    coinbase: bool
    script_pubkey: bytes

    @property
    def txid_hex(self) -> str:
        """Transaction ID in RPC (big-endian) hex format."""
        return self.txid[::-1].hex()

    @property
    def outpoint(self) -> str:
        return f"{self.txid_hex}:{self.vout}"


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A candidate script found in the UTXO set."""

    path: ConcretePath
    kind: DescriptorKind
    record: UtxoRecord
    public_key: bytes = b""


@dataclass(frozen=True, slots=True)
class DerivationFailure:
    """A candidate path that could not be derived, kept for audit."""

    path: ConcretePath
    reason: str
