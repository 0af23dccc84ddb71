"""Core interfaces and data structures for the SQL file backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Literal, Union

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime
    from pathlib import Path

PathLike = Union[str, "Path"]

ChecksumAlgorithm = Literal["md5", "sha1", "sha256", "sha512", "blake3"]

DEFAULT_CHUNK_SIZE = 64 * 1024

# Reserved filename that keeps an otherwise empty directory listable.
DIRECTORY_MARKER = "______DUMMY_FILE_FOR_FORCED_LISTING"


class Visibility(str, Enum):
    """Visibility flag stored alongside each record."""

    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def coerce(cls, value: Visibility | str) -> Visibility:
        """Return the enum member for a raw value, rejecting unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise InvalidOperationError.invalid_visibility(value) from exc


class ErrorKind(str, Enum):
    """Closed set of failure categories raised by backend operations."""

    NOT_FOUND = "not_found"
    METADATA_RETRIEVAL = "metadata_retrieval"
    MOVE_CONFLICT = "move_conflict"
    COPY_CONFLICT = "copy_conflict"
    INVALID_OPERATION = "invalid_operation"


class FileBackendError(RuntimeError):
    """Base exception for backend operations."""

    kind: ErrorKind = ErrorKind.INVALID_OPERATION

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
    ) -> None:
        """Initialise the base error with an optional storage path context."""
        detail = message if path is None else ": ".join((message, path))
        super().__init__(detail)
        self.message = message
        self.path = path


class NotFoundError(FileBackendError):
    """Raised when an operation requires a record that does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, path: str) -> None:
        """Create a not-found error for the provided path."""
        super().__init__("Path not found", path=path)


class MetadataRetrievalError(FileBackendError):
    """Raised when a metadata getter cannot produce a usable value."""

    kind = ErrorKind.METADATA_RETRIEVAL

    def __init__(self, path: str, *, attribute: str, reason: str | None = None) -> None:
        """Create a metadata error naming the attribute that was requested."""
        message = f"Unable to retrieve {attribute}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, path=path)
        self.attribute = attribute
        self.reason = reason


class _TransferConflictError(FileBackendError):
    """Shared shape of move and copy precondition failures."""

    verb = "transfer"

    def __init__(
        self,
        source: str,
        destination: str,
        *,
        source_missing: bool,
    ) -> None:
        """Describe which side of the transfer violated the precondition."""
        reason = "source does not exist" if source_missing else "destination exists"
        super().__init__(
            f"Unable to {self.verb} {source} to {destination}: {reason}",
            path=source,
        )
        self.source = source
        self.destination = destination
        self.source_missing = source_missing


class MoveConflictError(_TransferConflictError):
    """Raised when a move source is missing or its destination exists."""

    kind = ErrorKind.MOVE_CONFLICT
    verb = "move"


class CopyConflictError(_TransferConflictError):
    """Raised when a copy source is missing."""

    kind = ErrorKind.COPY_CONFLICT
    verb = "copy"


class InvalidOperationError(FileBackendError):
    """Raised when an operation is not allowed for the given input."""

    kind = ErrorKind.INVALID_OPERATION

    def __init__(self, message: str, *, path: str | None = None) -> None:
        """Initialise an invalid operation error scoped to a path."""
        super().__init__(message, path=path)

    @classmethod
    def empty_path_not_allowed(cls, path: object) -> InvalidOperationError:
        """Return an error when an operation targets an empty path."""
        return cls("Path cannot be empty", path=repr(path))

    @classmethod
    def invalid_visibility(cls, value: object) -> InvalidOperationError:
        """Return an error for a visibility value outside the enum."""
        return cls(f"Unknown visibility {value!r}")

    @classmethod
    def path_too_long(cls, path: str, limit: int) -> InvalidOperationError:
        """Return an error for a path longer than the path column allows."""
        return cls(f"Path exceeds {limit} characters", path=path)


@dataclass(frozen=True)
class WriteOptions:
    """Optional per-write overrides.

    ``timestamp`` accepts an aware ``datetime`` or POSIX seconds; ``None``
    (or ``0``) means the current time. ``visibility`` falls back to the
    backend's configured default.
    """

    timestamp: datetime | int | float | None = None
    visibility: Visibility | str | None = None


@dataclass(frozen=True)
class FileAttributes:
    """Metadata projection of a stored record, without its contents."""

    path: str
    file_size: int
    visibility: Visibility
    last_modified: datetime
    mime_type: str
    checksum: str

    is_dir = False

    def as_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {
            "type": "file",
            "path": self.path,
            "file_size": self.file_size,
            "visibility": self.visibility.value,
            "last_modified": self.last_modified.isoformat(),
            "mime_type": self.mime_type,
            "checksum": self.checksum,
        }


@dataclass(frozen=True)
class DirectoryAttributes:
    """Directory synthesised from the paths of existing records."""

    path: str

    is_dir = True

    def as_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {"type": "dir", "path": self.path}


StorageEntry = Union[FileAttributes, DirectoryAttributes]


class FileBackend(ABC):
    """Filesystem-shaped operation set over a flat key/value store.

    Paths are normalised to a single leading ``/``; directories only exist
    as prefixes of stored paths.
    """

    @abstractmethod
    def write(
        self,
        path: PathLike,
        contents: bytes | str | BinaryIO,
        options: WriteOptions | None = None,
    ) -> None:
        """Create or replace the file at ``path``."""

    @abstractmethod
    def read(self, path: PathLike) -> bytes:
        """Return the file contents.

        Raises:
            NotFoundError: If no record exists for the path.

        """

    @abstractmethod
    def delete(self, path: PathLike) -> None:
        """Remove a file; missing files are ignored."""

    @abstractmethod
    def delete_directory(self, path: PathLike) -> None:
        """Remove every file below ``path`` and the entry for ``path`` itself."""

    @abstractmethod
    def create_directory(
        self,
        path: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Make ``path`` appear as a directory even when it holds no files."""

    @abstractmethod
    def file_exists(self, path: PathLike) -> bool:
        """Return True when a record exists for ``path``."""

    @abstractmethod
    def directory_exists(self, path: PathLike) -> bool:
        """Return True when any record lives below ``path``."""

    @abstractmethod
    def set_visibility(self, path: PathLike, visibility: Visibility | str) -> None:
        """Update the stored visibility flag."""

    @abstractmethod
    def visibility(self, path: PathLike) -> FileAttributes:
        """Return attributes for reading the visibility flag."""

    @abstractmethod
    def mime_type(self, path: PathLike) -> FileAttributes:
        """Return attributes for reading the MIME type."""

    @abstractmethod
    def last_modified(self, path: PathLike) -> FileAttributes:
        """Return attributes for reading the modification time."""

    @abstractmethod
    def file_size(self, path: PathLike) -> FileAttributes:
        """Return attributes for reading the file size."""

    @abstractmethod
    def list_contents(
        self,
        path: PathLike,
        deep: bool = False,
    ) -> Iterator[StorageEntry]:
        """Yield the directories and files found below ``path``."""

    @abstractmethod
    def move(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Move a file to a destination that must not exist yet."""

    @abstractmethod
    def copy(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Copy a file, replacing any existing destination."""

    @abstractmethod
    def delete_everything(self) -> None:
        """Remove every file of the backend's bucket."""
