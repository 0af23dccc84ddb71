"""Shared helpers for payload handling in the SQL backend.

Key utilities:
- Content digests stored in the ``checksum`` column
- Coercion of write payloads (bytes, str, binary or text streams)
- Chunk accumulation for streaming writes
- Timestamp coercion to aware UTC datetimes

Example usage:
    >>> from f9_sql_backend.utils import compute_checksum_from_bytes
    >>> compute_checksum_from_bytes(b"hello")
    'aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d'

    >>> from f9_sql_backend.utils import coerce_to_bytes
    >>> coerce_to_bytes("héllo")
    b'h\\xc3\\xa9llo'
"""

from __future__ import annotations

import hashlib
import io
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, BinaryIO

from .interfaces import DEFAULT_CHUNK_SIZE, ChecksumAlgorithm

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_HASHLIB_ALGORITHMS = frozenset(("md5", "sha1", "sha256", "sha512"))


def get_hasher(algorithm: ChecksumAlgorithm) -> Any:
    """Return a fresh hasher exposing ``update()`` and ``hexdigest()``.

    Raises:
        ImportError: If blake3 is requested but not installed.
        ValueError: If the algorithm is not supported.

    """
    if algorithm in _HASHLIB_ALGORITHMS:
        return hashlib.new(algorithm, usedforsecurity=False)
    if algorithm != "blake3":
        message = f"Unsupported checksum algorithm: {algorithm}"
        raise ValueError(message)
    try:
        import blake3
    except ImportError as exc:
        message = "blake3 is not installed. Install it with: pip install blake3"
        raise ImportError(message) from exc
    return blake3.blake3()


def compute_checksum_from_bytes(
    payload: bytes,
    algorithm: ChecksumAlgorithm = "sha1",
) -> str:
    """Return the hex digest of ``payload``."""
    hasher = get_hasher(algorithm)
    hasher.update(payload)
    return hasher.hexdigest()


def _as_bytes(chunk: bytes | bytearray | memoryview | str) -> bytes:
    """Encode text as UTF-8 and pass binary chunks through."""
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    message = f"Unsupported payload type: {type(chunk).__name__}"
    raise TypeError(message)


def coerce_to_bytes(data: bytes | str | BinaryIO) -> bytes:
    """Return the complete payload of a write as bytes.

    Streams are read to the end and rewound when they support seeking.

    Raises:
        TypeError: If the data (or what a stream returns) is not bytes or text.

    """
    if not hasattr(data, "read"):
        return _as_bytes(data)

    payload = data.read()
    if hasattr(data, "seek"):
        try:
            data.seek(0)
        except (OSError, io.UnsupportedOperation):
            pass
    return _as_bytes(payload)


def _iter_chunks(
    source: Iterator[bytes | str] | BinaryIO,
    chunk_size: int,
) -> Iterable[bytes | str]:
    if not hasattr(source, "read"):
        return source
    return iter(lambda: source.read(chunk_size), source.read(0))


def accumulate_chunks(
    chunk_source: Iterator[bytes | str] | BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> bytes:
    """Join an iterator of chunks, or a stream read ``chunk_size`` at a time."""
    buffer = io.BytesIO()
    for chunk in _iter_chunks(chunk_source, chunk_size):
        buffer.write(_as_bytes(chunk))
    return buffer.getvalue()


def coerce_timestamp(value: datetime | int | float | None) -> datetime:
    """Return an aware UTC datetime, defaulting to now for empty values."""
    if value is None or (not isinstance(value, datetime) and not value):
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.fromtimestamp(float(value), tz=timezone.utc)
