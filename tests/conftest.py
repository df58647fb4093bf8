"""
Pytest configuration and fixtures for retriever tests.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Sequence
from pathlib import Path

import pytest
from _retriever_test_helpers import TEST_MNEMONIC, snapshot_bytes

from retriever.bip32 import MasterSeed, seed_from_mnemonic
from retriever.bitcoin import NetworkType
from retriever.models import UtxoRecord
from retriever.settings import reset_settings


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Keep tests away from the user's config file and environment."""
    monkeypatch.setenv("RETRIEVER_DATA_DIR", str(tmp_path / ".retriever-ng"))
    for var in (
        "RETRIEVER_CONFIG_FILE",
        "MNEMONIC",
        "BIP39_PASSPHRASE",
        "SEED__MNEMONIC",
        "SEED__BIP39_PASSPHRASE",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return TEST_MNEMONIC


@pytest.fixture
def master_seed(test_mnemonic: str) -> Generator[MasterSeed, None, None]:
    with seed_from_mnemonic(test_mnemonic) as seed:
        yield seed


@pytest.fixture
def write_snapshot_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing records to a snapshot file under tmp_path."""

    def _write(
        records: Sequence[UtxoRecord],
        network: NetworkType = NetworkType.MAINNET,
        name: str = "utxo_dump.dat",
    ) -> Path:
        path = tmp_path / name
        path.write_bytes(snapshot_bytes(records, network))
        return path

    return _write
