"""
Bitcoin primitives used by the scanner.

Hashes (hash160, BIP340 tagged hashes), varints as they appear in snapshot
records, script opcodes, per-network parameters, and scriptPubKey to address
rendering for reports.

Address encoding uses bech32 (BIP173/BIP350) and base58 (Base58Check).
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

import base58
import bech32 as bech32_lib

SATS_PER_BTC = 100_000_000


class NetworkType(str, Enum):
    """Bitcoin network types."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


@dataclass(frozen=True)
class NetworkParams:
    """Address prefixes and P2P magic of a network."""

    hrp: str
    p2pkh_version: int
    p2sh_version: int
    magic: bytes  # P2P message start, also written into snapshot headers


NETWORK_PARAMS: dict[NetworkType, NetworkParams] = {
    NetworkType.MAINNET: NetworkParams("bc", 0x00, 0x05, bytes.fromhex("f9beb4d9")),
    NetworkType.TESTNET: NetworkParams("tb", 0x6F, 0xC4, bytes.fromhex("0b110907")),
    NetworkType.SIGNET: NetworkParams("tb", 0x6F, 0xC4, bytes.fromhex("0a03cf40")),
    NetworkType.REGTEST: NetworkParams("bcrt", 0x6F, 0xC4, bytes.fromhex("fabfb5da")),
}

NETWORK_MAGIC = {network: params.magic for network, params in NETWORK_PARAMS.items()}

# Script opcodes
OP_0 = 0x00
OP_1 = 0x51
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC


def network_from_magic(magic: bytes) -> NetworkType | None:
    """Map snapshot magic bytes back to a network, or None if unknown."""
    for network, value in NETWORK_MAGIC.items():
        if value == magic:
            return network
    return None


def format_amount(sats: int, include_unit: bool = True) -> str:
    """
    Format a satoshi amount for reports.

    Default: '1,000,000 sats (0.01000000 BTC)'
    """
    if not include_unit:
        return f"{sats:,}"
    return f"{sats:,} sats ({sats / SATS_PER_BTC:.8f} BTC)"


# =============================================================================
# Hashes
# =============================================================================


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)), the 20-byte hash in P2PKH/P2WPKH/P2SH scripts."""
    return hashlib.new("ripemd160", sha256(data)).digest()


def tagged_hash(tag: str, data: bytes) -> bytes:
    """BIP340 tagged hash: SHA256(SHA256(tag) || SHA256(tag) || data)."""
    tag_hash = sha256(tag.encode("utf-8"))
    return sha256(tag_hash + tag_hash + data)


# =============================================================================
# Varints
# =============================================================================

# Varint prefix byte -> width of the little-endian integer that follows
_VARINT_WIDTHS = {0xFD: 2, 0xFE: 4, 0xFF: 8}


def encode_varint(n: int) -> bytes:
    """Encode a non-negative integer as a Bitcoin CompactSize varint."""
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Decode a varint from a buffer.

    Args:
        data: Input bytes
        offset: Position of the varint prefix

    Returns:
        (value, offset just past the varint)

    Raises:
        EOFError: If data ends inside the varint
    """
    if offset >= len(data):
        raise EOFError("varint truncated")
    prefix = data[offset]
    width = _VARINT_WIDTHS.get(prefix)
    if width is None:
        return prefix, offset + 1
    end = offset + 1 + width
    if end > len(data):
        raise EOFError("varint truncated")
    return int.from_bytes(data[offset + 1 : end], "little"), end


def read_varint(stream: BinaryIO) -> int | None:
    """
    Read a varint from a binary stream.

    Returns None on a clean end of stream; raises EOFError if the stream ends
    inside the varint.
    """
    prefix = stream.read(1)
    if not prefix:
        return None
    width = _VARINT_WIDTHS.get(prefix[0])
    if width is None:
        return prefix[0]
    rest = stream.read(width)
    if len(rest) != width:
        raise EOFError("varint truncated")
    return int.from_bytes(rest, "little")


# =============================================================================
# Addresses
# =============================================================================


def get_hrp(network: str | NetworkType) -> str:
    """Bech32 human-readable part (bc, tb, bcrt)."""
    return NETWORK_PARAMS[NetworkType(network)].hrp


def _segwit_address(hrp: str, version: int, program: bytes) -> str:
    result = bech32_lib.encode(hrp, version, program)
    if result is None:
        raise ValueError(f"Failed to encode witness v{version} program: {program.hex()}")
    return result


def _base58_address(version: int, payload: bytes) -> str:
    return base58.b58encode_check(bytes([version]) + payload).decode("ascii")


def scriptpubkey_to_address(scriptpubkey: bytes, network: str | NetworkType = "mainnet") -> str:
    """
    Convert a scriptPubKey to its address.

    Supports P2WPKH, P2TR, P2PKH and P2SH. Bare P2PK outputs have no address.

    Raises:
        ValueError: If the script has no standard address form
    """
    params = NETWORK_PARAMS[NetworkType(network)]
    spk = scriptpubkey
    size = len(spk)

    if size == 22 and spk[:2] == bytes([OP_0, 0x14]):
        return _segwit_address(params.hrp, 0, spk[2:])
    if size == 34 and spk[:2] == bytes([OP_1, 0x20]):
        return _segwit_address(params.hrp, 1, spk[2:])
    if (
        size == 25
        and spk[:3] == bytes([OP_DUP, OP_HASH160, 0x14])
        and spk[23:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    ):
        return _base58_address(params.p2pkh_version, spk[3:23])
    if size == 23 and spk[:2] == bytes([OP_HASH160, 0x14]) and spk[22] == OP_EQUAL:
        return _base58_address(params.p2sh_version, spk[2:22])

    raise ValueError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")
