"""Disk-backed read cache for record contents.

Entries live as plain files named ``<prefix><sha1(bucket, path)>`` inside a
single directory. The cache never decides whether an entry is fresh: the
backend compares the digest of the cached bytes with the checksum stored in
the records table before trusting them.

Expired entries are removed without a background worker. Each read gives
:meth:`LocalCache.maybe_cleanup` a one-in-``cleanup_chance`` opportunity to
sweep the directory and delete entries whose last access is older than
``max_age`` seconds.

Every filesystem failure is logged and swallowed: losing the cache only
costs an extra round trip to the database.

Example:

    >>> from pathlib import Path
    >>> cache = LocalCache(Path("/tmp/f9-cache"))
    >>> cache.write("default", "/docs/readme.txt", b"hello")
    >>> cache.read("default", "/docs/readme.txt")
    b'hello'

"""

from __future__ import annotations

import hashlib
import logging
import os
import random
import time
from pathlib import Path

from .config import (
    DEFAULT_CACHE_CLEANUP_CHANCE,
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_CACHE_PREFIX,
)

logger = logging.getLogger(__name__)


def cache_key(bucket: str, path: str) -> str:
    """Return the stable digest naming the entry for ``(bucket, path)``."""
    digest = hashlib.sha1(usedforsecurity=False)
    digest.update(bucket.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(path.encode("utf-8"))
    return digest.hexdigest()


class LocalCache:
    """Process-local byte cache keyed by bucket and normalised path."""

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = DEFAULT_CACHE_PREFIX,
        max_age: float = DEFAULT_CACHE_MAX_AGE,
        cleanup_chance: int = DEFAULT_CACHE_CLEANUP_CHANCE,
        rng: random.Random | None = None,
    ) -> None:
        """Initialise the cache, creating its directory when possible."""
        if max_age <= 0:
            message = "max_age must be positive"
            raise ValueError(message)
        if cleanup_chance < 1:
            message = "cleanup_chance must be at least 1"
            raise ValueError(message)

        self.directory = Path(directory).expanduser()
        self.prefix = prefix
        self.max_age = float(max_age)
        self.cleanup_chance = int(cleanup_chance)
        self._rng = rng or random.Random()

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.warning(
                "Unable to create cache directory %s",
                self.directory,
                exc_info=True,
            )

    def cache_file(self, bucket: str, path: str) -> Path:
        """Return the location of the entry for ``(bucket, path)``."""
        return self.directory / f"{self.prefix}{cache_key(bucket, path)}"

    def read(self, bucket: str, path: str) -> bytes | None:
        """Return the cached bytes, or None on a miss or unreadable entry."""
        target = self.cache_file(bucket, path)
        try:
            payload = target.read_bytes()
        except FileNotFoundError:
            logger.debug("cache miss bucket=%s path=%s", bucket, path)
            return None
        except OSError:
            logger.warning("Unable to read cache entry %s", target, exc_info=True)
            return None

        self._touch(target)
        logger.debug("cache hit bucket=%s path=%s", bucket, path)
        return payload

    def write(self, bucket: str, path: str, contents: bytes) -> None:
        """Store ``contents`` for ``(bucket, path)``, replacing any entry."""
        target = self.cache_file(bucket, path)
        try:
            with target.open("wb") as fh:
                fh.write(contents)
        except OSError:
            logger.warning("Unable to write cache entry %s", target, exc_info=True)
            return
        logger.debug("cache set bucket=%s path=%s size=%d", bucket, path, len(contents))

    def delete(self, bucket: str, path: str) -> None:
        """Remove the entry for ``(bucket, path)`` if it exists."""
        self._unlink(self.cache_file(bucket, path))

    def maybe_cleanup(self) -> int | None:
        """Sweep expired entries on roughly one in ``cleanup_chance`` calls.

        Returns:
            Number of entries removed, or None when no sweep ran.

        """
        if self._rng.randint(1, self.cleanup_chance) != 1:
            return None
        return self.cleanup()

    def cleanup(self) -> int:
        """Delete every owned entry not accessed within ``max_age`` seconds."""
        now = time.time()
        removed = 0
        try:
            entries = list(os.scandir(self.directory))
        except OSError:
            logger.warning(
                "Unable to scan cache directory %s",
                self.directory,
                exc_info=True,
            )
            return 0

        for entry in entries:
            if not entry.name.startswith(self.prefix):
                continue
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                accessed_at = entry.stat(follow_symlinks=False).st_atime
            except FileNotFoundError:
                continue
            except OSError:
                logger.warning(
                    "Unable to stat cache entry %s",
                    entry.path,
                    exc_info=True,
                )
                continue
            if now - accessed_at > self.max_age and self._unlink(Path(entry.path)):
                removed += 1

        logger.debug("cache sweep directory=%s removed=%d", self.directory, removed)
        return removed

    def _touch(self, target: Path) -> None:
        """Set the entry's atime to now; mounts with noatime never do it."""
        try:
            stat_result = target.stat()
            os.utime(target, (time.time(), stat_result.st_mtime))
        except OSError:
            logger.debug("Unable to update access time of %s", target, exc_info=True)

    @staticmethod
    def _unlink(target: Path) -> bool:
        """Delete ``target``; an entry that is already gone counts as deleted."""
        try:
            target.unlink()
        except FileNotFoundError:
            return True
        except OSError:
            logger.warning("Unable to delete cache entry %s", target, exc_info=True)
            return False
        return True
