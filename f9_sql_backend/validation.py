"""Precondition checks shared by backend operations.

Each helper raises the matching error from :mod:`f9_sql_backend.interfaces`
and returns quietly otherwise, so callers read as a list of requirements:

    >>> validate_record_exists(store.count(bucket, path), path)
    >>> validate_move(source, destination, source_exists=True, destination_exists=False)

"""

from __future__ import annotations

from .interfaces import (
    CopyConflictError,
    MetadataRetrievalError,
    MoveConflictError,
    NotFoundError,
)


def validate_record_exists(count: int, path: str) -> None:
    """Validate that exactly one record is stored for ``path``.

    Raises:
        NotFoundError: If no (or an ambiguous number of) records match.

    """
    if count != 1:
        raise NotFoundError(path)


def validate_move(
    source: str,
    destination: str,
    *,
    source_exists: bool,
    destination_exists: bool,
) -> None:
    """Validate that a move has a source and a free destination.

    Raises:
        MoveConflictError: If the source is missing or the destination exists.

    """
    if not source_exists or destination_exists:
        raise MoveConflictError(
            source,
            destination,
            source_missing=not source_exists,
        )


def validate_copy(source: str, destination: str, *, source_exists: bool) -> None:
    """Validate that a copy has a source.

    Raises:
        CopyConflictError: If the source is missing.

    """
    if not source_exists:
        raise CopyConflictError(source, destination, source_missing=True)


def validate_mime_type(mime_type: str, path: str) -> None:
    """Validate that a stored MIME type is usable.

    Raises:
        MetadataRetrievalError: If the stored value is empty.

    """
    if not mime_type:
        raise MetadataRetrievalError(path, attribute="mime_type", reason="unknown")
