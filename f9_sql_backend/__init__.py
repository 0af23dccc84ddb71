"""File storage on top of a relational database table.

This package exposes file-system-like operations over files stored as rows
of a single table keyed by ``(bucket, path)``. Directories are synthesised
from path prefixes, and an optional local disk cache avoids refetching
unchanged contents.

Core Components:
    - FileBackend: Abstract interface of the operation set
    - SqlFileBackend: Implementation over any SQLAlchemy engine
    - AsyncSqlFileBackend: asyncio wrapper running operations in threads
    - RecordStore: The statements issued against the records table
    - LocalCache: Checksum-validated disk cache with probabilistic expiry
    - DirectoryListingSynthesizer: Directory entries derived from paths

Quick Start:

    >>> from sqlalchemy import create_engine
    >>> from f9_sql_backend import SqlFileBackend
    >>> engine = create_engine("sqlite:///files.db")
    >>> backend = SqlFileBackend(engine, create_schema=True)
    >>> backend.write("/docs/readme.txt", b"hello")
    >>> backend.read("/docs/readme.txt")
    b'hello'
    >>> [entry.path for entry in backend.list_contents("/", deep=True)]
    ['docs', 'docs/readme.txt']

Exception Handling:

    >>> from f9_sql_backend import NotFoundError
    >>> try:
    ...     backend.read("/missing.txt")
    ... except NotFoundError:
    ...     print("File not found")

Supported Operations:
    - write() / write_stream() - Create or replace files
    - read() / read_stream() - Read file contents
    - delete() / delete_directory() - Remove files or whole trees
    - create_directory() - Keep an empty directory listable
    - file_exists() / directory_exists() - Existence checks
    - set_visibility() / visibility() - Visibility flag
    - mime_type() / last_modified() / file_size() - Metadata
    - move() / copy() - Transfer files
    - list_contents() - Shallow or deep listings
    - checksum() - Stored content digest
    - delete_everything() - Empty the bucket

"""

from .async_backend import AsyncSqlFileBackend
from .cache import LocalCache
from .config import BackendConfig
from .interfaces import (
    DEFAULT_CHUNK_SIZE,
    DIRECTORY_MARKER,
    ChecksumAlgorithm,
    CopyConflictError,
    DirectoryAttributes,
    ErrorKind,
    FileAttributes,
    FileBackend,
    FileBackendError,
    InvalidOperationError,
    MetadataRetrievalError,
    MoveConflictError,
    NotFoundError,
    PathLike,
    StorageEntry,
    Visibility,
    WriteOptions,
)
from .listing import DirectoryListingSynthesizer
from .mime import MimeTypeDetector, MimetypesDetector
from .records import FileRecord, RecordMetadata, RecordStore
from .sql_backend import SqlFileBackend

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DIRECTORY_MARKER",
    "AsyncSqlFileBackend",
    "BackendConfig",
    "ChecksumAlgorithm",
    "CopyConflictError",
    "DirectoryAttributes",
    "DirectoryListingSynthesizer",
    "ErrorKind",
    "FileAttributes",
    "FileBackend",
    "FileBackendError",
    "FileRecord",
    "InvalidOperationError",
    "LocalCache",
    "MetadataRetrievalError",
    "MimeTypeDetector",
    "MimetypesDetector",
    "MoveConflictError",
    "NotFoundError",
    "PathLike",
    "RecordMetadata",
    "RecordStore",
    "SqlFileBackend",
    "StorageEntry",
    "Visibility",
    "WriteOptions",
]
