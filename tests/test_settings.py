"""
Tests for the settings module.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from retriever.bitcoin import NetworkType
from retriever.models import DescriptorKind
from retriever.settings import (
    RetrieverSettings,
    ensure_config_file,
    generate_config_template,
    get_config_path,
    get_settings,
    reset_settings,
)


@pytest.fixture
def temp_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary data directory and set it as RETRIEVER_DATA_DIR."""
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True)
    monkeypatch.setenv("RETRIEVER_DATA_DIR", str(data_dir))
    return data_dir


class TestConfigTemplate:
    """Tests for config template generation."""

    def test_generate_config_template(self) -> None:
        template = generate_config_template()

        assert "# retriever-ng configuration" in template
        assert "# Priority (highest to lowest):" in template
        for section in ("[exploration]", "[snapshot]", "[seed]", "[logging]"):
            assert section in template

        assert '# exploration_path = "*"' in template
        assert "# depth = 100" in template
        assert "# sweep = false" in template
        assert '# network = "mainnet"' in template
        assert '# descriptors = ["p2pk", "p2pkh", "p2shwpkh", "p2wpkh", "p2tr"]' in template
        assert "# bip39_passphrase = \n" in template

    def test_ensure_config_file_creates_template(self, temp_data_dir: Path) -> None:
        config_path = temp_data_dir / "config.toml"
        assert not config_path.exists()

        result = ensure_config_file(temp_data_dir)

        assert result == config_path
        assert "# retriever-ng configuration" in config_path.read_text()

    def test_ensure_config_file_does_not_overwrite(self, temp_data_dir: Path) -> None:
        config_path = temp_data_dir / "config.toml"
        config_path.write_text("# Custom config\n")

        ensure_config_file(temp_data_dir)

        assert config_path.read_text() == "# Custom config\n"

    def test_template_is_valid_toml_with_defaults(self, temp_data_dir: Path) -> None:
        ensure_config_file(temp_data_dir)
        settings = RetrieverSettings()
        assert settings.exploration.depth == 100


class TestSettingsDefaults:
    def test_defaults(self) -> None:
        settings = RetrieverSettings()

        assert settings.exploration.base_paths == ["m"]
        assert settings.exploration.wallets == []
        assert settings.exploration.exploration_path == "*"
        assert settings.exploration.depth == 100
        assert settings.exploration.sweep is False
        assert settings.exploration.descriptors == list(DescriptorKind)
        assert settings.snapshot.network == NetworkType.MAINNET
        assert settings.seed.bip39_passphrase is None
        assert settings.logging.level == "INFO"

    def test_snapshot_path_defaults_to_data_dir(self, temp_data_dir: Path) -> None:
        settings = RetrieverSettings()
        assert settings.get_data_dir() == temp_data_dir
        assert settings.get_snapshot_path() == temp_data_dir / "utxo_dump.dat"

    def test_config_path(self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        assert get_config_path() == temp_data_dir / "config.toml"
        monkeypatch.setenv("RETRIEVER_CONFIG_FILE", "/etc/retriever.toml")
        assert get_config_path() == Path("/etc/retriever.toml")


class TestSettingsFromEnv:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXPLORATION__DEPTH", "20")
        monkeypatch.setenv("EXPLORATION__SWEEP", "true")
        monkeypatch.setenv("SNAPSHOT__NETWORK", "signet")

        settings = RetrieverSettings()

        assert settings.exploration.depth == 20
        assert settings.exploration.sweep is True
        assert settings.snapshot.network == NetworkType.SIGNET

    def test_env_descriptor_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXPLORATION__DESCRIPTORS", '["wpkh", "tr"]')

        settings = RetrieverSettings()

        assert settings.exploration.descriptors == [DescriptorKind.P2WPKH, DescriptorKind.P2TR]

    def test_passphrase_is_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SEED__BIP39_PASSPHRASE", "hunter2")

        settings = RetrieverSettings()

        assert settings.seed.bip39_passphrase is not None
        assert settings.seed.bip39_passphrase.get_secret_value() == "hunter2"
        assert "hunter2" not in repr(settings)

    def test_negative_depth_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXPLORATION__DEPTH", "-1")
        with pytest.raises(ValueError):
            RetrieverSettings()


class TestSettingsFromToml:
    def test_toml_override(self, temp_data_dir: Path) -> None:
        (temp_data_dir / "config.toml").write_text("""
[exploration]
base_paths = ["m/84'/0'/0'", "m/44'/0'/0'"]
exploration_path = "0..1/*"
depth = 30
descriptors = ["p2sh-p2wpkh"]

[snapshot]
path = "/srv/utxo.dat"
network = "testnet"
""")

        settings = RetrieverSettings()

        assert settings.exploration.base_paths == ["m/84'/0'/0'", "m/44'/0'/0'"]
        assert settings.exploration.exploration_path == "0..1/*"
        assert settings.exploration.depth == 30
        assert settings.exploration.descriptors == [DescriptorKind.P2SHWPKH]
        assert settings.get_snapshot_path() == Path("/srv/utxo.dat")
        assert settings.snapshot.network == NetworkType.TESTNET

    def test_env_overrides_toml(self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (temp_data_dir / "config.toml").write_text("[exploration]\ndepth = 30\nsweep = true\n")
        monkeypatch.setenv("EXPLORATION__DEPTH", "5")

        settings = RetrieverSettings()

        assert settings.exploration.depth == 5
        assert settings.exploration.sweep is True

    def test_init_overrides_everything(
        self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (temp_data_dir / "config.toml").write_text("[logging]\nlevel = 'DEBUG'\n")
        monkeypatch.setenv("LOGGING__LEVEL", "WARNING")

        settings = RetrieverSettings(logging={"level": "ERROR"})

        assert settings.logging.level == "ERROR"

    def test_invalid_toml_exits(self, temp_data_dir: Path) -> None:
        (temp_data_dir / "config.toml").write_text("[exploration\n")
        with pytest.raises(SystemExit):
            RetrieverSettings()


class TestGlobalSettings:
    def test_cached_until_reset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        monkeypatch.setenv("EXPLORATION__DEPTH", "7")
        assert get_settings() is first
        reset_settings()
        assert get_settings().exploration.depth == 7

    def test_overrides_rebuild(self) -> None:
        settings = get_settings(exploration={"depth": 3})
        assert settings.exploration.depth == 3
