"""
Configuration for retriever-ng.

Values are resolved by pydantic-settings, highest priority first: CLI
arguments handed to get_settings(), environment variables, the TOML config
file, then the defaults declared below.

Nested settings use a double underscore in environment variables, so
EXPLORATION__DEPTH=20 is the same as ``depth = 20`` under ``[exploration]``
in config.toml.
"""

from __future__ import annotations

import os
import sys
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from retriever.bitcoin import NetworkType
from retriever.descriptors import DEFAULT_DESCRIPTOR_KINDS, parse_descriptor_kind
from retriever.models import HARDENED_OFFSET, DescriptorKind

DEFAULT_EXPLORATION_PATH = "*"
DEFAULT_EXPLORATION_DEPTH = 100
DEFAULT_MAX_CANDIDATES = 100_000_000
DEFAULT_SNAPSHOT_FILENAME = "utxo_dump.dat"


def get_default_data_dir() -> Path:
    """$RETRIEVER_DATA_DIR, falling back to ~/.retriever-ng."""
    override = os.getenv("RETRIEVER_DATA_DIR")
    return Path(override) if override else Path.home() / ".retriever-ng"


class ExplorationSettings(BaseModel):
    """Which derivation paths to explore and which scripts to test."""

    base_paths: list[str] = Field(
        default_factory=lambda: ["m"],
        description="Base derivation paths the exploration path is appended to",
    )
    wallets: list[str] = Field(
        default_factory=list,
        description='Wallet presets whose base paths are added (e.g. ["electrum"], or ["all"])',
    )
    exploration_path: str = Field(
        default=DEFAULT_EXPLORATION_PATH,
        description="Exploration path, e.g. '*', '0..1/*', '*a/*a'",
    )
    depth: int = Field(
        default=DEFAULT_EXPLORATION_DEPTH,
        ge=0,
        lt=HARDENED_OFFSET,
        description="Highest index tried by wildcard steps",
    )
    sweep: bool = Field(
        default=False,
        description="Also test every prefix of the exploration path",
    )
    descriptors: list[DescriptorKind] = Field(
        default_factory=lambda: list(DEFAULT_DESCRIPTOR_KINDS),
        description="Descriptor kinds to test: p2pk, p2pkh, p2shwpkh, p2wpkh, p2tr",
    )
    max_candidates: int = Field(
        default=DEFAULT_MAX_CANDIDATES,
        ge=1,
        description="Refuse explorations producing more candidate paths than this",
    )
    batch_size: int = Field(
        default=1000,
        ge=1,
        description="Candidates between progress updates and cancellation checks",
    )

    @field_validator("descriptors", mode="before")
    @classmethod
    def parse_descriptor_names(cls, v: Any) -> Any:
        """Accept descriptor aliases such as 'wpkh' or 'p2sh-p2wpkh'."""
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        if isinstance(v, list):
            return [parse_descriptor_kind(item) if isinstance(item, str) else item for item in v]
        return v


class SnapshotSettings(BaseModel):
    """UTXO set snapshot location."""

    path: Path | None = Field(
        default=None,
        description=f"Snapshot file (defaults to <data_dir>/{DEFAULT_SNAPSHOT_FILENAME})",
    )
    network: NetworkType = Field(
        default=NetworkType.MAINNET,
        description="Network the snapshot must belong to (mainnet, testnet, signet, regtest)",
    )


class SeedSettings(BaseModel):
    """Seed material sources."""

    mnemonic_file: str | None = Field(
        default=None,
        description="Path to a file containing the BIP39 mnemonic",
    )
    mnemonic: SecretStr | None = Field(
        default=None,
        description="BIP39 mnemonic. For security, prefer mnemonic_file or the SEED__MNEMONIC env var.",
    )
    bip39_passphrase: SecretStr | None = Field(
        default=None,
        description="BIP39 passphrase (13th/25th word). For security, prefer the env var.",
    )


class LoggingSettings(BaseModel):
    """Log output."""

    level: str = Field(
        default="INFO",
        description="Log level: TRACE, DEBUG, INFO, WARNING, ERROR",
    )


class RetrieverSettings(BaseSettings):
    """All retriever-ng settings; see the module docstring for source priority."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.retriever-ng)",
    )

    exploration: ExplorationSettings = Field(default_factory=ExplorationSettings)
    snapshot: SnapshotSettings = Field(default_factory=SnapshotSettings)
    seed: SeedSettings = Field(default_factory=SeedSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # No .env or secrets-dir support; TOML sits below the environment.
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    def get_data_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else get_default_data_dir()

    def get_snapshot_path(self) -> Path:
        """Configured snapshot file, or utxo_dump.dat inside the data directory."""
        if self.snapshot.path is None:
            return self.get_data_dir() / DEFAULT_SNAPSHOT_FILENAME
        return self.snapshot.path


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Reads the [section] tables of config.toml as nested settings."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._config = _read_config_file(get_config_path())

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        if field_name not in self._config:
            return None, field_name, False
        return self._config[field_name], field_name, True

    def __call__(self) -> dict[str, Any]:
        return self._config


def _read_config_file(config_path: Path) -> dict[str, Any]:
    """Parse config.toml, exiting the process when it cannot be used."""
    if not config_path.is_file():
        logger.debug(f"No config file at {config_path}, using defaults")
        return {}

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Config file {config_path} is not valid TOML: {e}")
        logger.error("Fix the file or remove it to fall back to defaults.")
        sys.exit(1)
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Cannot read config file {config_path}: {e}")
        sys.exit(1)

    logger.info(f"Loaded config from {config_path}")
    return data


def get_config_path() -> Path:
    """$RETRIEVER_CONFIG_FILE, else config.toml in the data directory."""
    override = os.environ.get("RETRIEVER_CONFIG_FILE")
    return Path(override) if override else get_default_data_dir() / "config.toml"


_TEMPLATE_HEADER = """\
# retriever-ng configuration
#
# Every setting below is commented out and shows its default value.
#
# Priority (highest to lowest):
#   1. CLI arguments
#   2. Environment variables (e.g. EXPLORATION__DEPTH=20)
#   3. This config file
#   4. Built-in defaults

# Data directory holding the snapshot file
# data_dir = 
"""

_TEMPLATE_SECTIONS: tuple[tuple[str, type[BaseModel]], ...] = (
    ("exploration", ExplorationSettings),
    ("snapshot", SnapshotSettings),
    ("seed", SeedSettings),
    ("logging", LoggingSettings),
)


def _toml_default(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return f'"{value.value}"'
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_default(item) for item in value) + "]"
    return str(value)


def generate_config_template() -> str:
    """
    Build a commented-out config.toml listing every setting with its default.

    Settings without a default (secrets, optional paths) are listed empty.
    """
    out = [_TEMPLATE_HEADER]
    for section, model_cls in _TEMPLATE_SECTIONS:
        out.append(f"# --- {section} ---")
        out.append(f"[{section}]")
        out.append("")
        for name, info in model_cls.model_fields.items():
            if info.description:
                out.append(f"# {info.description}")
            if info.default_factory is not None:
                default = info.default_factory()  # type: ignore[call-arg]
            else:
                default = info.default
            rendered = "" if default is None else _toml_default(default)
            out.append(f"# {name} = {rendered}")
            out.append("")
    return "\n".join(out)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """Write the config template into data_dir unless a config.toml is already there."""
    config_path = (data_dir or get_default_data_dir()) / "config.toml"
    if config_path.exists():
        return config_path

    logger.info(f"Writing config template to {config_path}")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(generate_config_template())
    return config_path


_settings: RetrieverSettings | None = None


def get_settings(**overrides: Any) -> RetrieverSettings:
    """
    Process-wide settings, loaded once.

    Passing overrides (CLI values) rebuilds the instance with them on top.
    """
    global _settings
    if overrides or _settings is None:
        _settings = RetrieverSettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None


__all__ = [
    "ExplorationSettings",
    "LoggingSettings",
    "RetrieverSettings",
    "SeedSettings",
    "SnapshotSettings",
    "ensure_config_file",
    "generate_config_template",
    "get_config_path",
    "get_default_data_dir",
    "get_settings",
    "reset_settings",
]
