"""
Single-key descriptor to scriptPubKey mapping.

Each DescriptorKind maps a 33-byte compressed public key to the locking script
a wallet would have used for it. The mapping is a plain dispatch table of pure
functions.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import coincurve

from retriever.bitcoin import (
    OP_0,
    OP_1,
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUAL,
    OP_EQUALVERIFY,
    OP_HASH160,
    hash160,
    tagged_hash,
)
from retriever.errors import DerivationError
from retriever.models import DescriptorKind

DEFAULT_DESCRIPTOR_KINDS: tuple[DescriptorKind, ...] = tuple(DescriptorKind)

# Accepted spellings for user input
_KIND_ALIASES = {
    "pk": DescriptorKind.P2PK,
    "pkh": DescriptorKind.P2PKH,
    "wpkh": DescriptorKind.P2WPKH,
    "sh-wpkh": DescriptorKind.P2SHWPKH,
    "p2sh-p2wpkh": DescriptorKind.P2SHWPKH,
    "tr": DescriptorKind.P2TR,
}


def _check_pubkey(pubkey: bytes) -> None:
    if len(pubkey) != 33 or pubkey[0] not in (0x02, 0x03):
        raise DerivationError(f"Invalid compressed pubkey: {pubkey.hex()}")


def p2pk_script(pubkey: bytes) -> bytes:
    """<33-byte push> <pubkey> OP_CHECKSIG"""
    _check_pubkey(pubkey)
    return bytes([0x21]) + pubkey + bytes([OP_CHECKSIG])


def p2pkh_script(pubkey: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    _check_pubkey(pubkey)
    return bytes([OP_DUP, OP_HASH160, 0x14]) + hash160(pubkey) + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2wpkh_script(pubkey: bytes) -> bytes:
    """OP_0 <20-byte-pubkeyhash>"""
    _check_pubkey(pubkey)
    return bytes([OP_0, 0x14]) + hash160(pubkey)


def p2sh_p2wpkh_script(pubkey: bytes) -> bytes:
    """OP_HASH160 <20-byte hash of the P2WPKH witness program> OP_EQUAL"""
    redeem_script = p2wpkh_script(pubkey)
    return bytes([OP_HASH160, 0x14]) + hash160(redeem_script) + bytes([OP_EQUAL])


def taproot_output_key(pubkey: bytes) -> bytes:
    """
    BIP86 key-path-only output key: x(P + tagged_hash("TapTweak", x(P)) * G).

    P is the internal key lifted to even y, as BIP340 x-only keys are.
    """
    _check_pubkey(pubkey)
    x_only = pubkey[1:]
    tweak = tagged_hash("TapTweak", x_only)
    try:
        internal = coincurve.PublicKey(b"\x02" + x_only)
        output = internal.add(tweak)
    except ValueError as e:
        raise DerivationError(f"Taproot tweak failed for {pubkey.hex()}") from e
    return output.format(compressed=True)[1:]


def p2tr_script(pubkey: bytes) -> bytes:
    """OP_1 <32-byte x-only output key>"""
    return bytes([OP_1, 0x20]) + taproot_output_key(pubkey)


SCRIPT_BUILDERS: dict[DescriptorKind, Callable[[bytes], bytes]] = {
    DescriptorKind.P2PK: p2pk_script,
    DescriptorKind.P2PKH: p2pkh_script,
    DescriptorKind.P2SHWPKH: p2sh_p2wpkh_script,
    DescriptorKind.P2WPKH: p2wpkh_script,
    DescriptorKind.P2TR: p2tr_script,
}


def script_pubkey(kind: DescriptorKind, pubkey: bytes) -> bytes:
    """
    Build the scriptPubKey of a descriptor kind for a compressed public key.

    Raises:
        DerivationError: If the public key is malformed
    """
    return SCRIPT_BUILDERS[kind](pubkey)


def descriptor_string(kind: DescriptorKind, pubkey: bytes) -> str:
    """Output descriptor (without checksum) for reports, e.g. 'wpkh(02...)'."""
    key = pubkey.hex()
    if kind is DescriptorKind.P2PK:
        return f"pk({key})"
    if kind is DescriptorKind.P2PKH:
        return f"pkh({key})"
    if kind is DescriptorKind.P2SHWPKH:
        return f"sh(wpkh({key}))"
    if kind is DescriptorKind.P2WPKH:
        return f"wpkh({key})"
    return f"tr({key})"


def parse_descriptor_kind(name: str) -> DescriptorKind:
    """
    Parse a descriptor kind name ("p2wpkh", "wpkh", "p2sh-p2wpkh", ...).

    Raises:
        ValueError: If the name is unknown
    """
    normalized = name.strip().lower().replace("_", "-")
    if normalized in _KIND_ALIASES:
        return _KIND_ALIASES[normalized]
    try:
        return DescriptorKind(normalized.replace("-", ""))
    except ValueError:
        valid = ", ".join(kind.value for kind in DescriptorKind)
        raise ValueError(f"Unknown descriptor kind '{name}' (valid: {valid})") from None


def parse_descriptor_kinds(names: Iterable[str]) -> tuple[DescriptorKind, ...]:
    """Parse several names, dropping duplicates and keeping the first-seen order."""
    kinds: dict[DescriptorKind, None] = {}
    for name in names:
        kinds[parse_descriptor_kind(name)] = None
    return tuple(kinds)
