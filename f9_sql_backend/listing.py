"""Directory listing synthesised from flat record paths.

The records table only knows full paths, so directories are derived while
the prefix-filtered records stream past:

* every record below ``prefix`` contributes the directories between
  ``prefix`` and its file name (only the first level for shallow listings);
* a directory is emitted the first time any record implies it;
* files are emitted in the order the store returns them, except directory
  markers which only ever contribute directories.

Listing ``/a/`` deeply over records ``/a/b/c.txt`` and ``/a/d.txt`` yields
the directory ``a/b`` followed by the files ``a/b/c.txt`` and ``a/d.txt``.

"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .interfaces import (
    DIRECTORY_MARKER,
    DirectoryAttributes,
    FileAttributes,
    StorageEntry,
)
from .path_utils import dirname, to_entry_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from .records import RecordMetadata


def to_file_attributes(record: RecordMetadata) -> FileAttributes:
    """Project stored metadata onto the public attribute type."""
    return FileAttributes(
        path=to_entry_path(record.path),
        file_size=record.size,
        visibility=record.visibility,
        last_modified=record.last_modified,
        mime_type=record.mime_type,
        checksum=record.checksum,
    )


def is_directory_marker(path: str) -> bool:
    """Return True for the placeholder records written by create_directory."""
    return path.endswith(DIRECTORY_MARKER)


class DirectoryListingSynthesizer:
    """Single-pass producer of directory and file entries below a prefix."""

    def __init__(self, prefix: str, *, deep: bool = False) -> None:
        """Prepare a listing of ``prefix``, which must end with ``/``."""
        if not prefix.endswith("/"):
            message = f"Listing prefix must end with '/': {prefix!r}"
            raise ValueError(message)
        self.prefix = prefix
        self.deep = deep

    def entries(self, records: Iterable[RecordMetadata]) -> Iterator[StorageEntry]:
        """Yield entries lazily while consuming ``records`` once."""
        prefix = self.prefix
        listed: set[str] = set()

        for record in records:
            path = record.path
            if not path.startswith(prefix):
                continue
            sub_path = path[len(prefix):]

            parent = dirname(sub_path)
            if parent != ".":
                accumulated = ""
                for index, segment in enumerate(parent.split("/")):
                    if not self.deep and index >= 1:
                        break
                    accumulated += segment + "/"
                    if accumulated in listed:
                        continue
                    listed.add(accumulated)
                    yield DirectoryAttributes(to_entry_path(prefix + accumulated))

            if is_directory_marker(path):
                continue

            if self.deep or "/" not in sub_path:
                yield to_file_attributes(record)
