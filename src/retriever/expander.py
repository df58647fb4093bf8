"""
Lazy expansion of path specifications into concrete derivation paths.

The candidate sequence is the Cartesian product of the per-step candidate
sets, iterated left to right (the leftmost step varies slowest). Within a
"both" step each index yields its normal branch before its hardened branch.
With sweep enabled, every truncation of the product is emitted first, from the
base path alone outwards, followed by the full-depth product.

Nothing here materializes the product: candidate sets are index arithmetic
and the product is a recursive generator, so memory stays proportional to the
number of steps.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Iterator, Sequence
from math import prod

from loguru import logger

from retriever.errors import ExpansionError, ExpansionTooLargeError, InvalidDepthError
from retriever.models import (
    HARDENED_OFFSET,
    ConcretePath,
    Fixed,
    Hardening,
    PathElement,
    PathSpec,
    Range,
    Step,
)


class StepCandidates(Sequence[PathElement]):
    """The (index, hardened) choices of one resolved step."""

    __slots__ = ("low", "high", "hardening")

    def __init__(self, low: int, high: int, hardening: Hardening) -> None:
        self.low = low
        self.high = high
        self.hardening = hardening

    def __len__(self) -> int:
        width = self.high - self.low + 1
        return 2 * width if self.hardening is Hardening.BOTH else width

    def __getitem__(self, position):  # type: ignore[override]
        if isinstance(position, slice):
            return [self[i] for i in range(*position.indices(len(self)))]
        if position < 0:
            position += len(self)
        if not 0 <= position < len(self):
            raise IndexError(position)
        if self.hardening is Hardening.BOTH:
            return (self.low + position // 2, position % 2 == 1)
        return (self.low + position, self.hardening is Hardening.HARDENED)

    def __iter__(self) -> Iterator[PathElement]:
        if self.hardening is Hardening.BOTH:
            for index in range(self.low, self.high + 1):
                yield (index, False)
                yield (index, True)
        else:
            hardened = self.hardening is Hardening.HARDENED
            for index in range(self.low, self.high + 1):
                yield (index, hardened)

    def __repr__(self) -> str:
        return f"StepCandidates({self.low}..{self.high}, {self.hardening.value})"


def validate_depth(exploration_depth: int) -> None:
    if exploration_depth < 0:
        raise InvalidDepthError(f"Exploration depth must be non-negative, got {exploration_depth}")
    if exploration_depth >= HARDENED_OFFSET:
        raise InvalidDepthError(f"Exploration depth must be below 2^31, got {exploration_depth}")


def resolve_step(step: Step, exploration_depth: int) -> StepCandidates:
    """Resolve a parsed step into its candidate set."""
    if isinstance(step, Fixed):
        return StepCandidates(step.index, step.index, step.hardening)
    if isinstance(step, Range):
        return StepCandidates(step.low, step.high, step.hardening)
    return StepCandidates(0, exploration_depth, step.hardening)


def count_candidates(path_spec: PathSpec, exploration_depth: int, sweep: bool = False) -> int:
    """
    Number of concrete paths expand() will produce, computed without expanding.

    Without sweep this is the product of the per-step sizes; with sweep it is
    the sum over k = 0..n of the product of the first k sizes.
    """
    validate_depth(exploration_depth)
    sizes = [len(resolve_step(step, exploration_depth)) for step in path_spec.steps]
    if not sweep:
        return prod(sizes)
    return sum(prod(sizes[:k]) for k in range(len(sizes) + 1))


def _product(
    sets: Sequence[StepCandidates], prefix: tuple[PathElement, ...]
) -> Iterator[tuple[PathElement, ...]]:
    if not sets:
        yield prefix
        return
    head, rest = sets[0], sets[1:]
    for element in head:
        yield from _product(rest, prefix + (element,))


def _generate(path_spec: PathSpec, sets: list[StepCandidates], sweep: bool) -> Iterator[ConcretePath]:
    depths = range(len(sets) + 1) if sweep else (len(sets),)
    for k in depths:
        for elements in _product(sets[:k], path_spec.base):
            yield ConcretePath(elements)


def _check_bounds(total: int, max_candidates: int | None) -> None:
    if max_candidates is not None and total > max_candidates:
        raise ExpansionTooLargeError(total, max_candidates)


def _check_shard(shard: int, shards: int) -> None:
    if shards < 1 or not 0 <= shard < shards:
        raise ExpansionError(f"Invalid shard {shard} of {shards}")


def expand(
    path_spec: PathSpec,
    exploration_depth: int,
    sweep: bool = False,
    max_candidates: int | None = None,
    shard: int = 0,
    shards: int = 1,
) -> Iterator[ConcretePath]:
    """
    Expand a PathSpec into a lazy, deterministic sequence of ConcretePaths.

    Validation happens immediately, before the first candidate is produced.

    Args:
        path_spec: Parsed base and exploration path
        exploration_depth: Upper bound (inclusive) for wildcard steps
        sweep: Also emit every prefix of the exploration, base path first
        max_candidates: Upper bound on the total number of candidates
        shard: Which partition of the sequence to produce
        shards: Number of partitions; candidate i goes to shard i % shards

    Raises:
        InvalidDepthError: If the depth is negative or not below 2^31
        ExpansionTooLargeError: If the total exceeds max_candidates
    """
    return expand_all([path_spec], exploration_depth, sweep, max_candidates, shard, shards)


def expand_all(
    path_specs: Iterable[PathSpec],
    exploration_depth: int,
    sweep: bool = False,
    max_candidates: int | None = None,
    shard: int = 0,
    shards: int = 1,
) -> Iterator[ConcretePath]:
    """
    Expand several PathSpecs (typically one per base path) in order.

    The combined total is checked against max_candidates up front.
    """
    validate_depth(exploration_depth)
    _check_shard(shard, shards)

    specs = list(path_specs)
    resolved = [[resolve_step(step, exploration_depth) for step in spec.steps] for spec in specs]
    total = sum(count_candidates(spec, exploration_depth, sweep) for spec in specs)
    _check_bounds(total, max_candidates)

    logger.debug(
        f"Expanding {len(specs)} path spec(s) into {total:,} candidate paths "
        f"(depth={exploration_depth}, sweep={sweep})"
    )

    paths = itertools.chain.from_iterable(
        _generate(spec, sets, sweep) for spec, sets in zip(specs, resolved, strict=True)
    )
    if shards == 1:
        return paths
    return itertools.islice(paths, shard, None, shards)
