"""Immutable configuration for :class:`~f9_sql_backend.SqlFileBackend`."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .interfaces import ChecksumAlgorithm, Visibility
from .records import BUCKET_LENGTH

DEFAULT_BUCKET = "default"
DEFAULT_TABLE_NAME = "files"
DEFAULT_CACHE_PREFIX = "f9sql_"
DEFAULT_CACHE_MAX_AGE = 24 * 60 * 60.0
DEFAULT_CACHE_CLEANUP_CHANCE = 100


@dataclass(frozen=True)
class BackendConfig:
    """Settings fixed for the lifetime of a backend instance.

    Attributes:
        bucket: Namespace all stored paths belong to.
        table_name: Name of the table holding the records.
        default_visibility: Visibility used when a write does not set one.
        cache_directory: Directory for the local read cache; ``None``
            disables caching.
        cache_prefix: Filename prefix marking entries owned by the cache.
        cache_max_age: Seconds since last access after which an entry may
            be swept.
        cache_cleanup_chance: A sweep runs on roughly one in this many reads.
        checksum_algorithm: Digest stored with every record.

    """

    bucket: str = DEFAULT_BUCKET
    table_name: str = DEFAULT_TABLE_NAME
    default_visibility: Visibility = Visibility.PUBLIC
    cache_directory: Path | None = None
    cache_prefix: str = DEFAULT_CACHE_PREFIX
    cache_max_age: float = DEFAULT_CACHE_MAX_AGE
    cache_cleanup_chance: int = DEFAULT_CACHE_CLEANUP_CHANCE
    checksum_algorithm: ChecksumAlgorithm = "sha1"

    def __post_init__(self) -> None:
        """Coerce loosely typed values and reject unusable settings."""
        if not self.bucket:
            message = "bucket must be a non-empty string"
            raise ValueError(message)
        if len(self.bucket) > BUCKET_LENGTH:
            message = f"bucket must not exceed {BUCKET_LENGTH} characters"
            raise ValueError(message)
        object.__setattr__(
            self,
            "default_visibility",
            Visibility.coerce(self.default_visibility),
        )
        if self.cache_directory is not None:
            object.__setattr__(
                self,
                "cache_directory",
                Path(self.cache_directory).expanduser(),
            )
        if not self.cache_prefix:
            message = "cache_prefix must be a non-empty string"
            raise ValueError(message)
        if self.cache_max_age <= 0:
            message = "cache_max_age must be positive"
            raise ValueError(message)
        if int(self.cache_cleanup_chance) < 1:
            message = "cache_cleanup_chance must be at least 1"
            raise ValueError(message)

    @property
    def cache_enabled(self) -> bool:
        """Whether reads and writes go through the local cache."""
        return self.cache_directory is not None

    def with_overrides(self, **changes: Any) -> BackendConfig:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
