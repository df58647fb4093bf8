"""
UTXO set snapshot loading and the in-memory scriptPubKey index.

Snapshot layout (all integers little-endian):

    header:
        magic          5 bytes   b"utxo\\xff"
        version        u16       1
        network magic  4 bytes   P2P message start of the chain
        base block     32 bytes  block hash the snapshot was taken at
        record count   u64
    record (repeated record-count times):
        length         varint    byte length of the payload below
        txid           32 bytes  internal byte order
        vout           u32
        amount         u64       satoshis
        code           u32       height << 1 | coinbase
        script length  varint
        scriptPubKey   script-length bytes

Loading is a single forward-only pass. Any deviation from the layout raises
CorruptDumpError and the partially built index is dropped.
"""

from __future__ import annotations

import struct
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from loguru import logger

from retriever.bitcoin import (
    NETWORK_MAGIC,
    NetworkType,
    decode_varint,
    encode_varint,
    network_from_magic,
    read_varint,
)
from retriever.errors import CorruptDumpError, SnapshotIOError
from retriever.models import UtxoRecord

SNAPSHOT_MAGIC = b"utxo\xff"
SNAPSHOT_VERSION = 1

_HEADER = struct.Struct("<5sH4s32sQ")
_RECORD_FIXED = struct.Struct("<32sIQI")

# Consensus limit on script size; bounds the record length prefix
MAX_SCRIPT_SIZE = 10_000
_MAX_RECORD_SIZE = _RECORD_FIXED.size + 9 + MAX_SCRIPT_SIZE

DEFAULT_PROGRESS_INTERVAL = 1_000_000

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class SnapshotHeader:
    """Parsed snapshot header."""

    version: int
    network: NetworkType
    base_block: bytes  # internal byte order
    record_count: int

    @property
    def base_block_hex(self) -> str:
        return self.base_block[::-1].hex()


class UtxoIndex:
    """
    Read-only mapping from scriptPubKey to the unspent outputs locked by it.

    Each distinct script is stored once. Scripts held by a single output (the
    overwhelmingly common case) map straight to their record; reused scripts
    map to a tuple of records.
    """

    __slots__ = ("_scripts", "header", "record_count")

    def __init__(
        self,
        scripts: dict[bytes, UtxoRecord | tuple[UtxoRecord, ...]],
        header: SnapshotHeader,
        record_count: int,
    ) -> None:
        self._scripts = scripts
        self.header = header
        self.record_count = record_count

    def lookup(self, script_pubkey: bytes) -> tuple[UtxoRecord, ...]:
        """All records locked by script_pubkey (empty if none)."""
        entry = self._scripts.get(script_pubkey)
        if entry is None:
            return ()
        if isinstance(entry, UtxoRecord):
            return (entry,)
        return entry

    def __contains__(self, script_pubkey: object) -> bool:
        return script_pubkey in self._scripts

    def __len__(self) -> int:
        return len(self._scripts)

    def scripts(self) -> Iterator[bytes]:
        return iter(self._scripts)

    def __repr__(self) -> str:
        return f"UtxoIndex(scripts={len(self):,}, records={self.record_count:,})"


# =============================================================================
# Reading
# =============================================================================


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise CorruptDumpError(f"Snapshot truncated while reading {what}")
    return data


def read_header(stream: BinaryIO, network: NetworkType | str | None = None) -> SnapshotHeader:
    """
    Read and validate the snapshot header.

    Raises:
        CorruptDumpError: On magic, version or network mismatch, or truncation
    """
    magic, version, network_magic, base_block, record_count = _HEADER.unpack(
        _read_exact(stream, _HEADER.size, "header")
    )
    if magic != SNAPSHOT_MAGIC:
        raise CorruptDumpError(f"Bad snapshot magic: {magic.hex()}")
    if version != SNAPSHOT_VERSION:
        raise CorruptDumpError(f"Unsupported snapshot version {version}")

    snapshot_network = network_from_magic(network_magic)
    if snapshot_network is None:
        raise CorruptDumpError(f"Unknown network magic: {network_magic.hex()}")
    if network is not None and snapshot_network != NetworkType(network):
        raise CorruptDumpError(
            f"Snapshot is for {snapshot_network.value}, expected {NetworkType(network).value}"
        )

    return SnapshotHeader(
        version=version,
        network=snapshot_network,
        base_block=base_block,
        record_count=record_count,
    )


def parse_record(payload: bytes) -> UtxoRecord:
    """
    Decode one record payload (without its length prefix).

    Raises:
        CorruptDumpError: If the payload is malformed
    """
    if len(payload) < _RECORD_FIXED.size + 1:
        raise CorruptDumpError(f"Record payload too short: {len(payload)} bytes")
    txid, vout, amount, code = _RECORD_FIXED.unpack_from(payload, 0)
    try:
        script_len, offset = decode_varint(payload, _RECORD_FIXED.size)
    except EOFError as e:
        raise CorruptDumpError("Record script length truncated") from e
    if offset + script_len != len(payload):
        raise CorruptDumpError(
            f"Record length mismatch: script of {script_len} bytes in a "
            f"{len(payload)}-byte payload"
        )
    return UtxoRecord(
        txid=txid,
        vout=vout,
        amount=amount,
        height=code >> 1,
        coinbase=bool(code & 1),
        script_pubkey=payload[offset:],
    )


def _read_records(
    stream: BinaryIO,
    header: SnapshotHeader,
    progress: ProgressCallback | None,
    progress_interval: int,
) -> dict[bytes, UtxoRecord | tuple[UtxoRecord, ...]]:
    scripts: dict[bytes, UtxoRecord | tuple[UtxoRecord, ...]] = {}
    reused: dict[bytes, list[UtxoRecord]] = {}
    total = header.record_count

    for loaded in range(total):
        try:
            length = read_varint(stream)
        except EOFError as e:
            raise CorruptDumpError(f"Snapshot truncated in record {loaded:,} of {total:,}") from e
        if length is None:
            raise CorruptDumpError(f"Snapshot ended after {loaded:,} of {total:,} records")
        if length > _MAX_RECORD_SIZE:
            raise CorruptDumpError(
                f"Record {loaded:,} claims {length:,} bytes, more than {_MAX_RECORD_SIZE:,}"
            )

        record = parse_record(_read_exact(stream, length, f"record {loaded:,}"))
        script = record.script_pubkey

        existing = scripts.get(script)
        if existing is None:
            scripts[script] = record
        elif script in reused:
            reused[script].append(record)
        else:
            assert isinstance(existing, UtxoRecord)
            reused[script] = [existing, record]

        if progress is not None and (loaded + 1) % progress_interval == 0:
            progress(loaded + 1, total)

    if stream.read(1):
        raise CorruptDumpError(f"Unexpected data after {total:,} records")

    for script, records in reused.items():
        scripts[script] = tuple(records)

    if progress is not None:
        progress(total, total)
    return scripts


def load_snapshot(
    source: str | Path | BinaryIO,
    network: NetworkType | str | None = None,
    progress: ProgressCallback | None = None,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
) -> UtxoIndex:
    """
    Load a UTXO snapshot into a UtxoIndex.

    Args:
        source: Snapshot file path or an open binary stream
        network: Expected network; None accepts any known network
        progress: Called with (records loaded, records declared)
        progress_interval: Records between progress calls

    Returns:
        Fully built, read-only UtxoIndex

    Raises:
        CorruptDumpError: If the snapshot deviates from the layout
        SnapshotIOError: If the file cannot be read
    """
    started = time.monotonic()

    if isinstance(source, (str, Path)):
        logger.info(f"Loading UTXO snapshot from {source}")
        try:
            stream: BinaryIO = open(source, "rb", buffering=1 << 20)  # noqa: SIM115
        except OSError as e:
            raise SnapshotIOError(f"Cannot open snapshot {source}: {e}") from e
        owns_stream = True
    else:
        stream = source
        owns_stream = False

    try:
        header = read_header(stream, network)
        logger.info(
            f"Snapshot: {header.record_count:,} records on {header.network.value} "
            f"at block {header.base_block_hex}"
        )
        scripts = _read_records(stream, header, progress, progress_interval)
    except OSError as e:
        raise SnapshotIOError(f"Failed reading snapshot: {e}") from e
    finally:
        if owns_stream:
            stream.close()

    index = UtxoIndex(scripts, header, header.record_count)
    logger.info(
        f"UTXO index ready: {len(index):,} distinct scripts from "
        f"{index.record_count:,} records in {time.monotonic() - started:.1f}s"
    )
    return index


# =============================================================================
# Writing
# =============================================================================


def encode_record(record: UtxoRecord) -> bytes:
    """Encode one record, including its length prefix."""
    code = (record.height << 1) | int(record.coinbase)
    payload = (
        _RECORD_FIXED.pack(record.txid, record.vout, record.amount, code)
        + encode_varint(len(record.script_pubkey))
        + record.script_pubkey
    )
    return encode_varint(len(payload)) + payload


def write_snapshot(
    stream: BinaryIO,
    records: Sequence[UtxoRecord],
    network: NetworkType | str = NetworkType.MAINNET,
    base_block: bytes = bytes(32),
) -> int:
    """
    Write records as a snapshot.

    Returns:
        Number of bytes written
    """
    if len(base_block) != 32:
        raise ValueError(f"Base block hash must be 32 bytes, got {len(base_block)}")
    written = stream.write(
        _HEADER.pack(
            SNAPSHOT_MAGIC,
            SNAPSHOT_VERSION,
            NETWORK_MAGIC[NetworkType(network)],
            base_block,
            len(records),
        )
    )
    for record in records:
        written += stream.write(encode_record(record))
    return written
