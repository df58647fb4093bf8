"""
Derivation path expression parser.

Exploration paths describe which child indices to try at each level below a
base path:

    step       := fixed | range | open_range | wildcard, each with optional suffix
    fixed      := N            e.g. "0", "44h"
    range      := N..M         e.g. "0..19", "3..5'"  (inclusive, N <= M)
    open_range := ..M          e.g. "..2" (same as 0..2)
    wildcard   := *            0..exploration_depth, resolved by the expander

Suffixes: none = normal, "h" or "'" = hardened, "a" = both (normal and
hardened branches for every index).

Base paths are plain BIP32 paths starting at the root ("m", "m/84'/0'/0'").
"""

from __future__ import annotations

import re

from retriever.errors import InvalidBasePathError, InvalidRangeError, ParseError
from retriever.models import (
    HARDENED_OFFSET,
    Fixed,
    Hardening,
    PathElement,
    PathSpec,
    Range,
    Step,
    Wildcard,
    format_element,
)

_STEP_RE = re.compile(
    r"(?:(?P<wildcard>\*)|(?P<low>[0-9]+)?\.\.(?P<high>[0-9]+)|(?P<index>[0-9]+))(?P<suffix>[h'a])?"
)

_SUFFIX_TO_HARDENING = {
    None: Hardening.NORMAL,
    "h": Hardening.HARDENED,
    "'": Hardening.HARDENED,
    "a": Hardening.BOTH,
}

_HARDENING_TO_SUFFIX = {
    Hardening.NORMAL: "",
    Hardening.HARDENED: "'",
    Hardening.BOTH: "a",
}


def _parse_index(text: str, step: str) -> int:
    index = int(text)
    if index >= HARDENED_OFFSET:
        raise ParseError(f"Index {index} in step '{step}' is not below 2^31")
    return index


def parse_step(text: str) -> Step:
    """
    Parse a single exploration step.

    Raises:
        InvalidRangeError: If a range has low > high
        ParseError: For any other malformed step
    """
    match = _STEP_RE.fullmatch(text)
    if match is None:
        raise ParseError(f"Invalid path step: '{text}'")

    hardening = _SUFFIX_TO_HARDENING[match.group("suffix")]

    if match.group("wildcard"):
        return Wildcard(hardening)

    if match.group("index") is not None:
        return Fixed(_parse_index(match.group("index"), text), hardening)

    low_text = match.group("low")
    low = _parse_index(low_text, text) if low_text is not None else 0
    high = _parse_index(match.group("high"), text)
    if low > high:
        raise InvalidRangeError(f"Invalid range '{text}': {low} is greater than {high}")
    return Range(low, high, hardening)


def parse_exploration_path(text: str) -> tuple[Step, ...]:
    """
    Parse an exploration path such as "0h/*/..19a".

    An empty string yields no steps, in which case only the base path itself
    is explored.
    """
    text = text.strip()
    if not text:
        return ()
    return tuple(parse_step(part) for part in text.split("/"))


def parse_base_path(text: str) -> tuple[PathElement, ...]:
    """
    Parse a base derivation path such as "m/84'/0'/0'".

    Raises:
        InvalidBasePathError: If the path does not start at "m" or contains a
            range, wildcard or "both" step
        ParseError: For malformed steps
    """
    parts = text.strip().split("/")
    if parts[0] != "m":
        raise InvalidBasePathError(f"Base path must start at the root 'm': '{text}'")

    elements: list[PathElement] = []
    for part in parts[1:]:
        step = parse_step(part)
        if not isinstance(step, Fixed) or step.hardening is Hardening.BOTH:
            raise InvalidBasePathError(
                f"Base path '{text}' may only contain fixed normal or hardened steps, got '{part}'"
            )
        elements.append((step.index, step.hardening is Hardening.HARDENED))
    return tuple(elements)


def parse_path_spec(base: str, exploration: str) -> PathSpec:
    """Parse a base path and an exploration path into a PathSpec."""
    return PathSpec(base=parse_base_path(base), steps=parse_exploration_path(exploration))


# =============================================================================
# Serialization
# =============================================================================


def format_step(step: Step) -> str:
    suffix = _HARDENING_TO_SUFFIX[step.hardening]
    if isinstance(step, Wildcard):
        return f"*{suffix}"
    if isinstance(step, Fixed):
        return f"{step.index}{suffix}"
    return f"{step.low}..{step.high}{suffix}"


def format_exploration_path(steps: tuple[Step, ...]) -> str:
    return "/".join(format_step(step) for step in steps)


def format_base_path(elements: tuple[PathElement, ...]) -> str:
    return "/".join(["m", *(format_element(e) for e in elements)])
