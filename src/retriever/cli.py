"""
Command line interface for retriever-ng.

Options given on the command line override environment variables, which
override ~/.retriever-ng/config.toml.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from mnemonic import Mnemonic

from retriever.bip32 import seed_from_mnemonic
from retriever.bitcoin import NetworkType, format_amount, scriptpubkey_to_address
from retriever.descriptors import descriptor_string, parse_descriptor_kinds
from retriever.errors import RetrieverError
from retriever.expander import count_candidates
from retriever.matcher import MatchEngine
from retriever.models import DescriptorKind, MatchResult, PathSpec
from retriever.paths import parse_path_spec
from retriever.presets import WALLET_BASE_PATHS, base_paths_for, wallet_names
from retriever.settings import (
    RetrieverSettings,
    ensure_config_file,
    get_default_data_dir,
    get_settings,
    reset_settings,
)
from retriever.snapshot import load_snapshot
from retriever.version import get_version

app = typer.Typer(
    add_completion=False,
    help="Find funds of a BIP39 seed by exploring BIP32 derivation paths against a UTXO snapshot.",
)


# =============================================================================
# Setup
# =============================================================================


def setup_logging(level: str = "INFO") -> None:
    """Send loguru output to stderr at the given level."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level.upper(),
        colorize=True,
    )


def setup_cli(log_level: str | None = None, data_dir: Path | None = None) -> RetrieverSettings:
    """Reload settings and configure logging; --log-level beats the configured level."""
    reset_settings()
    settings = get_settings(data_dir=data_dir) if data_dir is not None else get_settings()
    setup_logging(log_level or settings.logging.level)
    return settings


# =============================================================================
# Resolvers
# =============================================================================


def load_mnemonic_from_file(path: Path) -> str:
    """
    Read a mnemonic from a plain text file.

    Raises:
        ValueError: If the file is missing or empty
    """
    if not path.exists():
        raise ValueError(f"Mnemonic file not found: {path}")
    words = " ".join(path.read_text().split())
    if not words:
        raise ValueError(f"Mnemonic file is empty: {path}")
    return words


def resolve_mnemonic(
    settings: RetrieverSettings,
    mnemonic: str | None = None,
    mnemonic_file: Path | None = None,
) -> str:
    """
    Resolve and validate the BIP39 mnemonic.

    Priority:
    1. --mnemonic argument (or MNEMONIC env)
    2. --mnemonic-file argument
    3. Config seed.mnemonic_file
    4. Config seed.mnemonic (or SEED__MNEMONIC env)

    Raises:
        ValueError: If no mnemonic is found or the words fail the BIP39 checksum
    """
    if mnemonic:
        words = " ".join(mnemonic.split())
        source = "--mnemonic argument"
    elif mnemonic_file:
        words = load_mnemonic_from_file(mnemonic_file)
        source = f"--mnemonic-file ({mnemonic_file})"
    elif settings.seed.mnemonic_file:
        config_path = Path(settings.seed.mnemonic_file).expanduser()
        words = load_mnemonic_from_file(config_path)
        source = f"config file ({config_path})"
    elif settings.seed.mnemonic is not None:
        words = " ".join(settings.seed.mnemonic.get_secret_value().split())
        source = "config seed.mnemonic"
    else:
        raise ValueError("No mnemonic provided. Use --mnemonic, --mnemonic-file or the config file.")

    if not Mnemonic("english").check(words):
        raise ValueError(f"Invalid BIP39 mnemonic from {source} (bad word or checksum)")

    logger.info(f"Using mnemonic from {source} ({len(words.split())} words)")
    return words


def resolve_passphrase(
    settings: RetrieverSettings,
    bip39_passphrase: str | None = None,
    prompt_bip39_passphrase: bool = False,
) -> str:
    """BIP39 passphrase: CLI/env > config > interactive prompt > empty."""
    if bip39_passphrase is not None:
        return bip39_passphrase
    if settings.seed.bip39_passphrase is not None:
        return settings.seed.bip39_passphrase.get_secret_value()
    if prompt_bip39_passphrase:
        return typer.prompt("BIP39 passphrase", default="", hide_input=True, show_default=False)
    return ""


def resolve_base_paths(
    settings: RetrieverSettings,
    base_paths: list[str] | None = None,
    wallets: list[str] | None = None,
) -> list[str]:
    """
    Collect base paths from --base and --wallet, falling back to the config.

    Duplicates are dropped, first occurrence wins.

    Raises:
        ValueError: If a wallet preset is unknown
    """
    if not base_paths and not wallets:
        base_paths = settings.exploration.base_paths
        wallets = settings.exploration.wallets

    collected: dict[str, None] = {}
    for path in base_paths or []:
        collected.setdefault(path.strip())
    for wallet in wallets or []:
        for path in base_paths_for(wallet):
            collected.setdefault(path)
    return list(collected) or ["m"]


def build_path_specs(base_paths: list[str], exploration_path: str) -> list[PathSpec]:
    """
    Parse every base path with the shared exploration path.

    Raises:
        ParseError: On the first malformed path
    """
    return [parse_path_spec(base, exploration_path) for base in base_paths]


def format_match(result: MatchResult, network: NetworkType) -> str:
    """One report line: path, descriptor, address, outpoint, amount."""
    record = result.record
    if result.kind is DescriptorKind.P2PK:
        address = "-"
    else:
        address = scriptpubkey_to_address(record.script_pubkey, network)
    descriptor = descriptor_string(result.kind, result.public_key)
    return (
        f"{result.path}  {descriptor}  {address}  {record.outpoint}  "
        f"{format_amount(record.amount)}"
    )


# =============================================================================
# Shared options
# =============================================================================

BaseOption = Annotated[
    list[str] | None,
    typer.Option("--base", "-b", help="Base derivation path, e.g. m/84'/0'/0' (repeatable)"),
]
WalletOption = Annotated[
    list[str] | None,
    typer.Option("--wallet", "-w", help="Wallet preset name, or 'all' (repeatable)"),
]
ExploreOption = Annotated[
    str | None,
    typer.Option("--explore", "-e", help="Exploration path, e.g. '*', '0..1/*', '*a/*a'"),
]
DepthOption = Annotated[
    int | None,
    typer.Option("--depth", "-d", min=0, help="Highest index tried by wildcard steps"),
]
SweepOption = Annotated[
    bool | None,
    typer.Option("--sweep/--no-sweep", help="Also test every prefix of the exploration path"),
]
LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", "-l", help="Log level"),
]


# =============================================================================
# Commands
# =============================================================================


@app.command()
def scan(
    base: BaseOption = None,
    wallet: WalletOption = None,
    explore: ExploreOption = None,
    depth: DepthOption = None,
    sweep: SweepOption = None,
    descriptor: Annotated[
        list[str] | None,
        typer.Option(
            "--descriptor",
            "-D",
            help="Descriptor kind to test: p2pk, p2pkh, p2shwpkh, p2wpkh, p2tr (repeatable)",
        ),
    ] = None,
    max_candidates: Annotated[
        int | None,
        typer.Option("--max-candidates", min=1, help="Refuse explorations larger than this"),
    ] = None,
    snapshot: Annotated[
        Path | None,
        typer.Option("--snapshot", "-s", help="UTXO snapshot file"),
    ] = None,
    network: Annotated[
        NetworkType | None,
        typer.Option(case_sensitive=False, help="Bitcoin network (mainnet, testnet, signet, regtest)"),
    ] = None,
    mnemonic: Annotated[
        str | None, typer.Option(help="BIP39 mnemonic phrase", envvar="MNEMONIC")
    ] = None,
    mnemonic_file: Annotated[
        Path | None, typer.Option("--mnemonic-file", "-f", help="Path to mnemonic file")
    ] = None,
    bip39_passphrase: Annotated[
        str | None,
        typer.Option(
            "--bip39-passphrase",
            envvar="BIP39_PASSPHRASE",
            help="BIP39 passphrase (13th/25th word)",
        ),
    ] = None,
    prompt_bip39_passphrase: Annotated[
        bool,
        typer.Option(
            "--prompt-bip39-passphrase",
            help="Prompt for BIP39 passphrase interactively",
        ),
    ] = False,
    shard: Annotated[int, typer.Option(min=0, help="Worker shard to scan (0-based)")] = 0,
    shards: Annotated[int, typer.Option(min=1, help="Total number of worker shards")] = 1,
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            envvar="RETRIEVER_DATA_DIR",
            help="Data directory. Defaults to ~/.retriever-ng",
        ),
    ] = None,
    log_level: LogLevelOption = None,
) -> None:
    """Scan candidate derivation paths against a UTXO snapshot."""
    settings = setup_cli(log_level, data_dir)

    try:
        mnemonic_words = resolve_mnemonic(settings, mnemonic=mnemonic, mnemonic_file=mnemonic_file)
        passphrase = resolve_passphrase(settings, bip39_passphrase, prompt_bip39_passphrase)
        kinds = (
            parse_descriptor_kinds(descriptor)
            if descriptor
            else tuple(settings.exploration.descriptors)
        )
        base_paths = resolve_base_paths(settings, base, wallet)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    effective_network = network if network is not None else settings.snapshot.network
    effective_depth = depth if depth is not None else settings.exploration.depth
    effective_sweep = sweep if sweep is not None else settings.exploration.sweep
    effective_explore = explore if explore is not None else settings.exploration.exploration_path
    effective_max = (
        max_candidates if max_candidates is not None else settings.exploration.max_candidates
    )
    snapshot_path = snapshot if snapshot is not None else settings.get_snapshot_path()

    matches: list[MatchResult] = []
    try:
        specs = build_path_specs(base_paths, effective_explore)
        index = load_snapshot(
            snapshot_path,
            network=effective_network,
            progress=lambda done, total: logger.info(f"Loaded {done:,}/{total:,} records"),
        )
        engine = MatchEngine(
            index,
            descriptor_kinds=kinds,
            progress=lambda done, total: logger.debug(f"Checked {done:,}/{total:,} paths"),
            batch_size=settings.exploration.batch_size,
        )
        with seed_from_mnemonic(mnemonic_words, passphrase) as master_seed:
            results = engine.run(
                specs,
                master_seed,
                effective_depth,
                sweep=effective_sweep,
                max_candidates=effective_max,
                shard=shard,
                shards=shards,
            )
            try:
                for result in results:
                    matches.append(result)
                    typer.echo(format_match(result, effective_network))
            except KeyboardInterrupt:
                logger.warning("Interrupted, reporting matches found so far")
            finally:
                results.close()
    except (RetrieverError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    total = sum(match.record.amount for match in matches)
    typer.echo(f"\nFound {len(matches)} UTXO(s), total {format_amount(total)}")
    if engine.failures:
        typer.echo(f"{len(engine.failures)} path(s) could not be derived and were skipped")


@app.command()
def count(
    base: BaseOption = None,
    wallet: WalletOption = None,
    explore: ExploreOption = None,
    depth: DepthOption = None,
    sweep: SweepOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Report how many candidate paths an exploration would test."""
    settings = setup_cli(log_level)

    effective_depth = depth if depth is not None else settings.exploration.depth
    effective_sweep = sweep if sweep is not None else settings.exploration.sweep
    effective_explore = explore if explore is not None else settings.exploration.exploration_path

    try:
        specs = build_path_specs(resolve_base_paths(settings, base, wallet), effective_explore)
        counts = [count_candidates(spec, effective_depth, effective_sweep) for spec in specs]
    except (RetrieverError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    for spec, n in zip(specs, counts, strict=True):
        typer.echo(f"{spec}: {n:,}")
    typer.echo(f"Total: {sum(counts):,} candidate paths")


@app.command()
def presets(
    wallet: Annotated[
        str | None, typer.Argument(help="Show a single wallet (default: all)")
    ] = None,
) -> None:
    """List wallet presets and their base derivation paths."""
    if wallet is not None:
        try:
            paths = base_paths_for(wallet)
        except ValueError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(1)
        for path in paths:
            typer.echo(path)
        return

    width = max(len(name) for name in WALLET_BASE_PATHS)
    for name in wallet_names():
        typer.echo(f"{name:<{width}}  {', '.join(WALLET_BASE_PATHS[name])}")


@app.command()
def init_config(
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            "-d",
            envvar="RETRIEVER_DATA_DIR",
            help="Data directory for retriever files",
        ),
    ] = None,
) -> None:
    """Write a commented config.toml template into the data directory."""
    reset_settings()
    config_path = ensure_config_file(data_dir or get_default_data_dir())
    typer.echo(f"Config file created at: {config_path}")
    typer.echo("Uncomment a setting to override its default.")


@app.command()
def version() -> None:
    """Show the retriever version."""
    typer.echo(f"retriever-ng {get_version()}")


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
