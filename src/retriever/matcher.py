"""
Match engine: expand candidate paths, derive keys, build scripts, probe the
UTXO index.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator, Iterable, Iterator

from loguru import logger

from retriever.bip32 import DEFAULT_MAX_CACHE_ENTRIES, DerivationEngine, MasterSeed
from retriever.descriptors import DEFAULT_DESCRIPTOR_KINDS, script_pubkey
from retriever.errors import DerivationError
from retriever.expander import count_candidates, expand_all
from retriever.models import (
    ConcretePath,
    DerivationFailure,
    DescriptorKind,
    MatchResult,
    PathSpec,
)
from retriever.snapshot import UtxoIndex

ProgressCallback = Callable[[int, int], None]

DEFAULT_BATCH_SIZE = 1000


class MatchEngine:
    """
    Scans candidate derivation paths against a UtxoIndex.

    The index is owned by the caller and only read. Per-candidate derivation
    failures are logged, recorded in ``failures`` and skipped. ``stop()``
    cancels a running scan at the next batch boundary; matches already
    yielded stay valid.
    """

    def __init__(
        self,
        index: UtxoIndex,
        descriptor_kinds: Iterable[DescriptorKind] = DEFAULT_DESCRIPTOR_KINDS,
        progress: ProgressCallback | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_cache_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
    ) -> None:
        self.index = index
        self.descriptor_kinds = tuple(descriptor_kinds)
        if not self.descriptor_kinds:
            raise ValueError("At least one descriptor kind is required")
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.progress = progress
        self.batch_size = batch_size
        self.max_cache_entries = max_cache_entries
        self.failures: list[DerivationFailure] = []
        self.processed = 0
        self._stop = threading.Event()

    def stop(self) -> None:
        """Request cancellation at the next batch boundary."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(
        self,
        path_specs: PathSpec | Iterable[PathSpec],
        master_seed: MasterSeed,
        exploration_depth: int,
        sweep: bool = False,
        max_candidates: int | None = None,
        shard: int = 0,
        shards: int = 1,
    ) -> Generator[MatchResult, None, None]:
        """
        Scan every candidate path and yield a MatchResult per UTXO hit.

        Path and expansion problems raise here, before any derivation starts.

        Raises:
            ExpansionError: If the exploration is invalid or too large
        """
        specs = [path_specs] if isinstance(path_specs, PathSpec) else list(path_specs)
        candidates = expand_all(specs, exploration_depth, sweep, max_candidates, shard, shards)
        total = sum(count_candidates(spec, exploration_depth, sweep) for spec in specs)
        total = len(range(shard, total, shards))

        self._stop.clear()
        self.failures = []
        self.processed = 0

        logger.info(
            f"Scanning {total:,} candidate paths for "
            f"{', '.join(kind.value for kind in self.descriptor_kinds)}"
        )
        return self._scan(candidates, master_seed, total)

    def _scan(
        self, candidates: Iterator[ConcretePath], master_seed: MasterSeed, total: int
    ) -> Generator[MatchResult, None, None]:
        matches = 0
        with DerivationEngine(master_seed, self.max_cache_entries) as engine:
            for path in candidates:
                if self.processed % self.batch_size == 0 and self._stop.is_set():
                    logger.warning(f"Scan stopped after {self.processed:,} of {total:,} paths")
                    break

                for result in self._probe(engine, path):
                    matches += 1
                    yield result

                self.processed += 1
                if self.progress is not None and self.processed % self.batch_size == 0:
                    self.progress(self.processed, total)

        if self.progress is not None:
            self.progress(self.processed, total)
        logger.info(
            f"Scan finished: {self.processed:,} paths, {matches} match(es), "
            f"{len(self.failures)} derivation failure(s)"
        )

    def _probe(self, engine: DerivationEngine, path: ConcretePath) -> Iterator[MatchResult]:
        try:
            derived = engine.derive(path)
            scripts = [
                (kind, script_pubkey(kind, derived.public_key)) for kind in self.descriptor_kinds
            ]
        except DerivationError as e:
            logger.warning(f"Skipping {path}: {e}")
            self.failures.append(DerivationFailure(path=path, reason=str(e)))
            return

        for kind, script in scripts:
            for record in self.index.lookup(script):
                logger.info(f"Found UTXO {record.outpoint} at {path} ({kind.value})")
                yield MatchResult(
                    path=path, kind=kind, record=record, public_key=derived.public_key
                )
