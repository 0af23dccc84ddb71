"""Relational database implementation of FileBackend.

Files are rows of a single table keyed by ``(bucket, path)``; the row holds
the bytes, their checksum and the metadata columns. Directories are never
stored: they are synthesised from path prefixes when listing, and an empty
directory is kept visible by a zero-byte marker record.

Key Features:
    - Any database supported by SQLAlchemy (native upserts on SQLite,
      PostgreSQL and MySQL/MariaDB)
    - Several independent buckets in one table
    - Optional write-through disk cache validated against stored checksums
    - Lazy directory listings, shallow or deep

Cache Coherence:
    Writes go to the database first and are then copied into the cache.
    Reads trust a cached copy only after the checksum column, fetched on
    its own without the contents, matches the digest of the cached bytes.
    Any mismatch or lookup failure falls back to fetching the contents and
    repopulates the cache. Writes made by other processes are therefore
    noticed on the next read.

Atomicity:
    Each call issues single statements that the database commits on their
    own. Sequences such as ``move`` (read, write, delete) are not
    transactional: a failure between the steps leaves both copies or the
    original in place.

Example:

    >>> from sqlalchemy import create_engine
    >>> from f9_sql_backend import BackendConfig, SqlFileBackend
    >>> backend = SqlFileBackend(
    ...     create_engine("sqlite:///files.db"),
    ...     BackendConfig(bucket="docs", cache_directory="/tmp/f9-cache"),
    ...     create_schema=True,
    ... )
    >>> backend.write("/readme.txt", b"hello")
    >>> backend.read("readme.txt")
    b'hello'
    >>> [entry.path for entry in backend.list_contents("/")]
    ['readme.txt']

See Also:
    - RecordStore: The statements issued against the table
    - LocalCache: The disk cache
    - DirectoryListingSynthesizer: Directory synthesis for listings

"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, BinaryIO

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from .cache import LocalCache
from .config import BackendConfig
from .interfaces import (
    DEFAULT_CHUNK_SIZE,
    DIRECTORY_MARKER,
    FileAttributes,
    FileBackend,
    FileBackendError,
    InvalidOperationError,
    MetadataRetrievalError,
    NotFoundError,
    PathLike,
    StorageEntry,
    Visibility,
    WriteOptions,
)
from .listing import DirectoryListingSynthesizer, to_file_attributes
from .mime import MimeTypeDetector, MimetypesDetector
from .path_utils import directory_prefix, normalize_path
from .records import PATH_LENGTH, FileRecord, RecordStore
from .utils import (
    accumulate_chunks,
    coerce_timestamp,
    coerce_to_bytes,
    compute_checksum_from_bytes,
)
from .validation import (
    validate_copy,
    validate_mime_type,
    validate_move,
    validate_record_exists,
)

if TYPE_CHECKING:
    import random
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


class SqlFileBackend(FileBackend):
    """Backend storing files as rows of a relational table."""

    def __init__(
        self,
        engine: Engine | str,
        config: BackendConfig | None = None,
        *,
        mime_detector: MimeTypeDetector | None = None,
        create_schema: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise the backend on an engine (or database URL).

        Args:
            engine: SQLAlchemy engine, or a URL passed to ``create_engine``.
            config: Bucket, table and cache settings.
            mime_detector: Classifier used on every write.
            create_schema: Create the records table if it is missing.
            rng: Random source for cache sweeps.

        """
        if isinstance(engine, str):
            engine = create_engine(engine)
        self._config = config or BackendConfig()
        self._store = RecordStore(engine, table_name=self._config.table_name)
        self._mime_detector = mime_detector or MimetypesDetector()
        self._cache: LocalCache | None = None
        if self._config.cache_directory is not None:
            self._cache = LocalCache(
                self._config.cache_directory,
                prefix=self._config.cache_prefix,
                max_age=self._config.cache_max_age,
                cleanup_chance=self._config.cache_cleanup_chance,
                rng=rng,
            )
        if create_schema:
            self._store.create_schema()

    @property
    def config(self) -> BackendConfig:
        """Settings the backend was created with."""
        return self._config

    @property
    def bucket(self) -> str:
        """Namespace every path of this backend lives in."""
        return self._config.bucket

    @property
    def store(self) -> RecordStore:
        """Underlying record store."""
        return self._store

    @property
    def cache(self) -> LocalCache | None:
        """Local read cache, None when caching is disabled."""
        return self._cache

    def write(
        self,
        path: PathLike,
        contents: bytes | str | BinaryIO,
        options: WriteOptions | None = None,
    ) -> None:
        """Create or replace a file, then copy it into the cache."""
        path_str = normalize_path(path)
        if len(path_str) > PATH_LENGTH:
            raise InvalidOperationError.path_too_long(path_str, PATH_LENGTH)
        payload = coerce_to_bytes(contents)
        record = self._build_record(path_str, payload, options or WriteOptions())
        self._store.upsert(record)
        if self._cache is not None:
            self._cache.write(self.bucket, path_str, payload)
        logger.debug(
            "Wrote %s bucket=%s size=%d checksum=%s",
            path_str,
            self.bucket,
            record.size,
            record.checksum,
        )

    def write_stream(
        self,
        path: PathLike,
        source: Iterator[bytes | str] | BinaryIO,
        options: WriteOptions | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Write a file from a binary stream or an iterator of chunks."""
        self.write(path, accumulate_chunks(source, chunk_size), options)

    def read(self, path: PathLike) -> bytes:
        """Return file contents, served from the cache when still current."""
        path_str = normalize_path(path)
        if self._cache is not None:
            self._cache.maybe_cleanup()
            cached = self._read_cached(path_str)
            if cached is not None:
                return cached
        return self._fetch_contents(path_str)

    def read_stream(self, path: PathLike) -> BinaryIO:
        """Return file contents as a seekable binary stream."""
        return io.BytesIO(self.read(path))

    def delete(self, path: PathLike) -> None:
        """Delete a file; deleting a missing file does nothing."""
        path_str = normalize_path(path)
        self._store.delete(self.bucket, path_str)
        if self._cache is not None:
            self._cache.delete(self.bucket, path_str)

    def delete_directory(self, path: PathLike) -> None:
        """Delete every file below ``path`` and any record named ``path``."""
        prefix = directory_prefix(path)
        removed = self._store.delete_prefix(self.bucket, prefix)
        own_path = prefix.rstrip("/")
        if own_path:
            self.delete(own_path)
        logger.debug(
            "Deleted directory %s bucket=%s rows=%d",
            prefix,
            self.bucket,
            removed,
        )

    def create_directory(
        self,
        path: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Write the marker record that keeps ``path`` listable."""
        self.write(directory_prefix(path) + DIRECTORY_MARKER, b"", options)

    def file_exists(self, path: PathLike) -> bool:
        """Return True when exactly one record is stored for ``path``."""
        return self._store.count(self.bucket, normalize_path(path)) == 1

    def directory_exists(self, path: PathLike) -> bool:
        """Return True when any record is stored below ``path``."""
        return self._store.prefix_exists(self.bucket, directory_prefix(path))

    def set_visibility(self, path: PathLike, visibility: Visibility | str) -> None:
        """Update the visibility flag of an existing file."""
        value = Visibility.coerce(visibility)
        path_str = normalize_path(path)
        validate_record_exists(self._store.count(self.bucket, path_str), path_str)
        self._store.update_visibility(self.bucket, path_str, value)

    def checksum(self, path: PathLike) -> str:
        """Return the stored checksum without fetching the contents."""
        path_str = normalize_path(path)
        stored = self._store.checksum(self.bucket, path_str)
        if stored is None:
            raise NotFoundError(path_str)
        return stored

    def visibility(self, path: PathLike) -> FileAttributes:
        """Return attributes carrying the visibility flag."""
        return self._attributes(path, "visibility")

    def mime_type(self, path: PathLike) -> FileAttributes:
        """Return attributes carrying a non-empty MIME type."""
        attributes = self._attributes(path, "mime_type")
        validate_mime_type(attributes.mime_type, attributes.path)
        return attributes

    def last_modified(self, path: PathLike) -> FileAttributes:
        """Return attributes carrying the modification time."""
        return self._attributes(path, "last_modified")

    def file_size(self, path: PathLike) -> FileAttributes:
        """Return attributes carrying the file size."""
        return self._attributes(path, "file_size")

    def list_contents(
        self,
        path: PathLike,
        deep: bool = False,
    ) -> Iterator[StorageEntry]:
        """Yield directories and files below ``path``.

        Directories come out in the order records first imply them, files in
        the database's iteration order. The query runs when iteration starts.
        """
        prefix = directory_prefix(path)
        synthesizer = DirectoryListingSynthesizer(prefix, deep=deep)
        yield from synthesizer.entries(self._store.iter_prefix(self.bucket, prefix))

    def move(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Move a file; the destination must not exist yet.

        Raises:
            MoveConflictError: If the source is missing or the destination exists.

        """
        source_str = normalize_path(source)
        destination_str = normalize_path(destination)
        validate_move(
            source_str,
            destination_str,
            source_exists=self.file_exists(source_str),
            destination_exists=self.file_exists(destination_str),
        )
        contents = self._fetch_contents(source_str)
        self.write(destination_str, contents, options)
        self.delete(source_str)

    def copy(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Copy a file, replacing an existing destination.

        Raises:
            CopyConflictError: If the source is missing.

        """
        source_str = normalize_path(source)
        destination_str = normalize_path(destination)
        validate_copy(
            source_str,
            destination_str,
            source_exists=self.file_exists(source_str),
        )
        contents = self._fetch_contents(source_str)
        self.write(destination_str, contents, options)

    def delete_everything(self) -> None:
        """Delete every record of the bucket."""
        removed = self._store.delete_bucket(self.bucket)
        logger.info("Deleted all %d records of bucket %s", removed, self.bucket)

    def _build_record(
        self,
        path: str,
        payload: bytes,
        options: WriteOptions,
    ) -> FileRecord:
        """Compute every stored column for ``payload`` written at ``path``."""
        if options.visibility is None:
            visibility = self._config.default_visibility
        else:
            visibility = Visibility.coerce(options.visibility)
        return FileRecord(
            bucket=self.bucket,
            path=path,
            contents=payload,
            size=len(payload),
            mime_type=self._mime_detector.detect(path, payload) or "",
            visibility=visibility,
            last_modified=coerce_timestamp(options.timestamp),
            checksum=self._compute_checksum(payload),
        )

    def _read_cached(self, path: str) -> bytes | None:
        """Return cached bytes only if they match the stored checksum."""
        cached = self._cache.read(self.bucket, path)
        if cached is None:
            return None
        try:
            stored = self._store.checksum(self.bucket, path)
        except SQLAlchemyError:
            logger.warning("Checksum lookup failed for %s", path, exc_info=True)
            return None
        if stored is not None and stored == self._compute_checksum(cached):
            return cached
        logger.debug("Stale cache entry for %s bucket=%s", path, self.bucket)
        return None

    def _fetch_contents(self, path: str) -> bytes:
        """Load contents from the database and refresh the cache."""
        contents = self._store.contents(self.bucket, path)
        if contents is None:
            if self._cache is not None:
                self._cache.delete(self.bucket, path)
            raise NotFoundError(path)
        if self._cache is not None:
            self._cache.write(self.bucket, path, contents)
        return contents

    def _attributes(self, path: PathLike, attribute: str) -> FileAttributes:
        """Load metadata, reporting every failure as MetadataRetrievalError."""
        try:
            path_str = normalize_path(path)
            record = self._store.fetch_metadata(self.bucket, path_str)
        except (FileBackendError, SQLAlchemyError) as exc:
            raise MetadataRetrievalError(str(path), attribute=attribute) from exc
        if record is None:
            raise MetadataRetrievalError(
                path_str,
                attribute=attribute,
                reason="file does not exist",
            )
        return to_file_attributes(record)

    def _compute_checksum(self, payload: bytes) -> str:
        """Digest ``payload`` with the configured algorithm."""
        return compute_checksum_from_bytes(
            payload,
            algorithm=self._config.checksum_algorithm,
        )
