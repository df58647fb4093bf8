"""
BIP32 HD key derivation for path exploration.

Explored paths share long prefixes (the base path, and usually the first
exploration levels), so DerivationEngine caches the extended private key of
every intermediate prefix it computes and only derives the remaining suffix
for each new candidate. Private material stays inside this module; callers
only ever receive compressed public keys.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
from types import TracebackType

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from loguru import logger
from mnemonic import Mnemonic

from retriever.errors import DerivationError
from retriever.models import HARDENED_OFFSET, ConcretePath, DerivedKey, PathElement

SECP256K1_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

DEFAULT_MAX_CACHE_ENTRIES = 100_000


def _wipe(buffer: bytearray) -> None:
    for i in range(len(buffer)):
        buffer[i] = 0


class MasterSeed:
    """
    BIP39 seed held in a mutable buffer so it can be zeroed.

    Use as a context manager to guarantee the seed is wiped on every exit path.
    """

    __slots__ = ("_seed",)

    def __init__(self, seed: bytes | bytearray) -> None:
        if not 16 <= len(seed) <= 64:
            raise DerivationError(f"Seed must be 16 to 64 bytes, got {len(seed)}")
        self._seed = bytearray(seed)

    @property
    def wiped(self) -> bool:
        return not any(self._seed)

    def wipe(self) -> None:
        _wipe(self._seed)

    def __enter__(self) -> MasterSeed:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return "MasterSeed(<redacted>)"


def seed_from_mnemonic(mnemonic: str, passphrase: str = "") -> MasterSeed:
    """
    Convert a BIP39 mnemonic and optional passphrase to a master seed.

    The mnemonic is expected to be validated by the caller.
    """
    return MasterSeed(Mnemonic.to_seed(mnemonic, passphrase))


class HDKey:
    """
    Extended private key for Bitcoin.
    Implements BIP32 derivation.
    """

    __slots__ = ("_secret", "_chain_code", "depth", "_public_key")

    def __init__(self, secret: bytearray, chain_code: bytearray, depth: int = 0) -> None:
        self._secret = secret
        self._chain_code = chain_code
        self.depth = depth
        self._public_key: bytes | None = None

    @classmethod
    def from_seed(cls, seed: bytes | bytearray) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = bytearray(hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest())
        key_int = int.from_bytes(hmac_result[:32], "big")
        if key_int == 0 or key_int >= SECP256K1_ORDER:
            _wipe(hmac_result)
            raise DerivationError("Seed produces an invalid master key")

        key = cls(hmac_result[:32], hmac_result[32:], depth=0)
        _wipe(hmac_result)
        return key

    def derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given child number (hardened if >= 2^31)"""
        if self.wiped:
            raise DerivationError("Cannot derive from a wiped key")

        if index >= HARDENED_OFFSET:
            data = b"\x00" + bytes(self._secret) + index.to_bytes(4, "big")
        else:
            data = self.public_key() + index.to_bytes(4, "big")

        hmac_result = bytearray(hmac.new(self._chain_code, data, hashlib.sha512).digest())
        offset_int = int.from_bytes(hmac_result[:32], "big")
        if offset_int >= SECP256K1_ORDER:
            _wipe(hmac_result)
            raise DerivationError(f"Invalid child key at index {index}")

        parent_key_int = int.from_bytes(self._secret, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_ORDER
        if child_key_int == 0:
            _wipe(hmac_result)
            raise DerivationError(f"Invalid child key at index {index}")

        child = HDKey(
            bytearray(child_key_int.to_bytes(32, "big")),
            hmac_result[32:],
            depth=self.depth + 1,
        )
        _wipe(hmac_result)
        return child

    def public_key(self) -> bytes:
        """Compressed 33-byte public key"""
        if self._public_key is None:
            private_key = ec.derive_private_key(
                int.from_bytes(self._secret, "big"), ec.SECP256K1()
            )
            self._public_key = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.X962,
                format=serialization.PublicFormat.CompressedPoint,
            )
        return self._public_key

    def copy(self) -> HDKey:
        """Independent copy; wiping either key leaves the other intact."""
        if self.wiped:
            raise DerivationError("Cannot copy a wiped key")
        clone = HDKey(bytearray(self._secret), bytearray(self._chain_code), self.depth)
        clone._public_key = self._public_key
        return clone

    @property
    def wiped(self) -> bool:
        return not any(self._secret)

    def wipe(self) -> None:
        _wipe(self._secret)
        _wipe(self._chain_code)
        self._public_key = None

    def __repr__(self) -> str:
        return f"HDKey(depth={self.depth}, <redacted>)"


class DerivationEngine:
    """
    Derives public keys for concrete paths from one master seed.

    Extended private keys of intermediate prefixes are cached, keyed by the
    prefix itself. The cache is bounded; the oldest entries are evicted (and
    wiped) first, which suits the depth-first order the expander produces.
    Cached keys are only touched under the lock: a lookup hands out a private
    copy, so evicting an entry never affects a derivation already using it.
    """

    def __init__(
        self,
        master_seed: MasterSeed,
        max_cache_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
    ) -> None:
        if master_seed.wiped:
            raise DerivationError("Master seed has been wiped")
        self._master: HDKey | None = HDKey.from_seed(master_seed._seed)
        self._cache: dict[tuple[PathElement, ...], HDKey] = {}
        self._lock = threading.Lock()
        self.max_cache_entries = max_cache_entries
        self.cache_hits = 0
        self.cache_misses = 0

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def derive(self, path: ConcretePath) -> DerivedKey:
        """
        Derive the compressed public key at a concrete path.

        Raises:
            DerivationError: If the engine is closed or BIP32 yields an invalid key
        """
        elements = path.elements
        key, start = self._longest_cached_prefix(elements)
        try:
            for k in range(start, len(elements)):
                index, hardened = elements[k]
                child = key.derive_child(index + HARDENED_OFFSET if hardened else index)
                key.wipe()
                key = child
                if k + 1 < len(elements):
                    self._store(elements[: k + 1], key)
            return DerivedKey(path=path, public_key=key.public_key())
        finally:
            key.wipe()

    def _longest_cached_prefix(self, elements: tuple[PathElement, ...]) -> tuple[HDKey, int]:
        """Copy of the deepest cached ancestor (or the master key) and its depth."""
        with self._lock:
            if self._master is None:
                raise DerivationError("Derivation engine is closed")
            for k in range(len(elements), 0, -1):
                cached = self._cache.get(elements[:k])
                if cached is not None:
                    self.cache_hits += 1
                    return cached.copy(), k
            self.cache_misses += 1
            return self._master.copy(), 0

    def _store(self, prefix: tuple[PathElement, ...], key: HDKey) -> bool:
        if self.max_cache_entries <= 0:
            return False
        with self._lock:
            if self._master is None or prefix in self._cache:
                return False
            while len(self._cache) >= self.max_cache_entries:
                oldest = next(iter(self._cache))
                self._cache.pop(oldest).wipe()
            self._cache[prefix] = key.copy()
        return True

    def close(self) -> None:
        """Wipe every cached private key and the master key."""
        with self._lock:
            for key in self._cache.values():
                key.wipe()
            self._cache.clear()
            if self._master is not None:
                self._master.wipe()
                self._master = None
        logger.debug(
            f"Derivation engine closed (cache hits={self.cache_hits:,}, "
            f"misses={self.cache_misses:,})"
        )

    def __enter__(self) -> DerivationEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
