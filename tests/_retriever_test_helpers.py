"""
Shared test helpers for retriever tests.

Constants and factory functions used across test files. Separated from
conftest.py to avoid import collisions.
"""

from __future__ import annotations

import io
from collections.abc import Sequence

from retriever.bitcoin import NetworkType
from retriever.models import UtxoRecord
from retriever.snapshot import write_snapshot

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"
)

# BIP84 test vector for TEST_MNEMONIC
BIP84_FIRST_PATH = "m/84'/0'/0'/0/0"
BIP84_FIRST_PUBKEY = "0330d54fd0dd420a6e5f8d3624f5f3482cae350f79d5f0753bf5beef9c2d91af3c"
BIP84_FIRST_ADDRESS = "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
BIP84_SECOND_PUBKEY = "03e775fd51f0dfb8cd865d9ff1cca2a158cf651fe997fdc9fee9c1d3b5e995ea77"
BIP84_SECOND_ADDRESS = "bc1qnjg0jd8228aq7egyzacy8cys3knf9xvrerkf9g"

# BIP86 test vector for TEST_MNEMONIC
BIP86_FIRST_PATH = "m/86'/0'/0'/0/0"
BIP86_FIRST_OUTPUT_KEY = "a60869f0dbcf1dc659c9cecbaf8050135ea9e8cdc487053f1dc6880949dc684c"
BIP86_FIRST_ADDRESS = "bc1p5cyxnuxmeuwuvkwfem96lqzszd02n6xdcjrs20cac6yqjjwudpxqkedrcr"

# Fake txid used across multiple tests
TEST_FAKE_TXID = bytes.fromhex("abc123" * 10 + "abcd")


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def make_record(
    script_pubkey: bytes,
    amount: int = 50_000,
    vout: int = 0,
    txid: bytes = TEST_FAKE_TXID,
    height: int = 800_000,
    coinbase: bool = False,
) -> UtxoRecord:
    return UtxoRecord(
        txid=txid,
        vout=vout,
        amount=amount,
        height=height,
        coinbase=coinbase,
        script_pubkey=script_pubkey,
    )


def snapshot_bytes(
    records: Sequence[UtxoRecord], network: NetworkType = NetworkType.MAINNET
) -> bytes:
    """Serialize records into an in-memory snapshot."""
    buffer = io.BytesIO()
    write_snapshot(buffer, records, network=network)
    return buffer.getvalue()
