"""
Tests for descriptor kinds and scriptPubKey construction.
"""

from __future__ import annotations

import pytest
from _retriever_test_helpers import (
    BIP84_FIRST_ADDRESS,
    BIP84_FIRST_PUBKEY,
    BIP86_FIRST_ADDRESS,
    BIP86_FIRST_OUTPUT_KEY,
)

from retriever.bip32 import DerivationEngine, MasterSeed
from retriever.bitcoin import hash160, scriptpubkey_to_address
from retriever.descriptors import (
    DEFAULT_DESCRIPTOR_KINDS,
    descriptor_string,
    p2sh_p2wpkh_script,
    p2wpkh_script,
    parse_descriptor_kind,
    parse_descriptor_kinds,
    script_pubkey,
    taproot_output_key,
)
from retriever.errors import DerivationError
from retriever.models import ConcretePath, DescriptorKind
from retriever.paths import parse_base_path

PUBKEY = bytes.fromhex(BIP84_FIRST_PUBKEY)


def derive(master_seed: MasterSeed, path: str) -> bytes:
    with DerivationEngine(master_seed) as engine:
        return engine.derive(ConcretePath(parse_base_path(path))).public_key


class TestScripts:
    def test_p2pk(self) -> None:
        script = script_pubkey(DescriptorKind.P2PK, PUBKEY)
        assert script == b"\x21" + PUBKEY + b"\xac"

    def test_p2pkh(self) -> None:
        script = script_pubkey(DescriptorKind.P2PKH, PUBKEY)
        assert script == b"\x76\xa9\x14" + hash160(PUBKEY) + b"\x88\xac"

    def test_p2wpkh_bip84_vector(self) -> None:
        script = script_pubkey(DescriptorKind.P2WPKH, PUBKEY)
        assert script == b"\x00\x14" + hash160(PUBKEY)
        assert scriptpubkey_to_address(script, "mainnet") == BIP84_FIRST_ADDRESS

    def test_p2sh_p2wpkh_wraps_witness_program(self) -> None:
        script = script_pubkey(DescriptorKind.P2SHWPKH, PUBKEY)
        assert script == b"\xa9\x14" + hash160(p2wpkh_script(PUBKEY)) + b"\x87"
        assert scriptpubkey_to_address(script, "mainnet").startswith("3")

    def test_p2pkh_bip44_vector(self, master_seed: MasterSeed) -> None:
        pubkey = derive(master_seed, "m/44'/0'/0'/0/0")
        script = script_pubkey(DescriptorKind.P2PKH, pubkey)
        assert scriptpubkey_to_address(script, "mainnet") == "1LqBGSKuX5yYUonjxT5qGfpUsXKYYWeabA"

    def test_p2tr_bip86_vector(self, master_seed: MasterSeed) -> None:
        pubkey = derive(master_seed, "m/86'/0'/0'/0/0")
        assert taproot_output_key(pubkey).hex() == BIP86_FIRST_OUTPUT_KEY
        script = script_pubkey(DescriptorKind.P2TR, pubkey)
        assert script == b"\x51\x20" + bytes.fromhex(BIP86_FIRST_OUTPUT_KEY)
        assert scriptpubkey_to_address(script, "mainnet") == BIP86_FIRST_ADDRESS

    def test_taproot_ignores_parity_of_internal_key(self) -> None:
        odd = b"\x03" + PUBKEY[1:]
        even = b"\x02" + PUBKEY[1:]
        assert taproot_output_key(odd) == taproot_output_key(even)

    @pytest.mark.parametrize("kind", list(DescriptorKind))
    def test_pure(self, kind: DescriptorKind) -> None:
        assert script_pubkey(kind, PUBKEY) == script_pubkey(kind, PUBKEY)

    def test_kinds_give_distinct_scripts(self) -> None:
        scripts = {script_pubkey(kind, PUBKEY) for kind in DescriptorKind}
        assert len(scripts) == len(DescriptorKind)

    @pytest.mark.parametrize("kind", list(DescriptorKind))
    @pytest.mark.parametrize("bad", [b"", PUBKEY[:-1], b"\x04" + PUBKEY[1:]])
    def test_malformed_pubkey(self, kind: DescriptorKind, bad: bytes) -> None:
        with pytest.raises(DerivationError):
            script_pubkey(kind, bad)

    def test_p2sh_p2wpkh_direct(self) -> None:
        assert p2sh_p2wpkh_script(PUBKEY) == script_pubkey(DescriptorKind.P2SHWPKH, PUBKEY)


class TestDescriptorNames:
    def test_default_is_all_kinds(self) -> None:
        assert set(DEFAULT_DESCRIPTOR_KINDS) == set(DescriptorKind)

    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("p2wpkh", DescriptorKind.P2WPKH),
            ("WPKH", DescriptorKind.P2WPKH),
            ("pk", DescriptorKind.P2PK),
            ("pkh", DescriptorKind.P2PKH),
            ("sh-wpkh", DescriptorKind.P2SHWPKH),
            ("p2sh-p2wpkh", DescriptorKind.P2SHWPKH),
            ("p2sh_p2wpkh", DescriptorKind.P2SHWPKH),
            ("p2shwpkh", DescriptorKind.P2SHWPKH),
            ("tr", DescriptorKind.P2TR),
            (" p2tr ", DescriptorKind.P2TR),
        ],
    )
    def test_parse(self, name: str, kind: DescriptorKind) -> None:
        assert parse_descriptor_kind(name) is kind

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown descriptor kind"):
            parse_descriptor_kind("p2wsh")

    def test_parse_many_dedups(self) -> None:
        assert parse_descriptor_kinds(["wpkh", "tr", "p2wpkh"]) == (
            DescriptorKind.P2WPKH,
            DescriptorKind.P2TR,
        )

    def test_descriptor_string(self) -> None:
        key = PUBKEY.hex()
        assert descriptor_string(DescriptorKind.P2WPKH, PUBKEY) == f"wpkh({key})"
        assert descriptor_string(DescriptorKind.P2SHWPKH, PUBKEY) == f"sh(wpkh({key}))"
        assert descriptor_string(DescriptorKind.P2TR, PUBKEY) == f"tr({key})"
