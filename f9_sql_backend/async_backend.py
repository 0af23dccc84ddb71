"""Asynchronous wrapper around SqlFileBackend.

Every operation runs the synchronous backend in a worker thread via
``asyncio.to_thread()`` so database and cache I/O never block the event
loop. Operations keep the synchronous semantics exactly, including the
lack of atomicity across the steps of ``move``.

Example:

    >>> import asyncio
    >>> from f9_sql_backend import AsyncSqlFileBackend, BackendConfig
    >>>
    >>> async def main():
    ...     backend = AsyncSqlFileBackend("sqlite:///files.db", create_schema=True)
    ...     await backend.write("/notes/todo.txt", b"milk")
    ...     print(await backend.read("/notes/todo.txt"))
    ...     print(await backend.list_contents("/notes"))
    >>>
    >>> asyncio.run(main())

"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, BinaryIO

from .sql_backend import SqlFileBackend

if TYPE_CHECKING:
    from .interfaces import (
        FileAttributes,
        PathLike,
        StorageEntry,
        Visibility,
        WriteOptions,
    )


class AsyncSqlFileBackend:
    """Asynchronous SQL file backend running operations in a thread pool."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Create the wrapped backend with SqlFileBackend's arguments."""
        self._sync_backend = SqlFileBackend(*args, **kwargs)

    @classmethod
    def wrap(cls, backend: SqlFileBackend) -> AsyncSqlFileBackend:
        """Return an async view of an existing synchronous backend."""
        instance = cls.__new__(cls)
        instance._sync_backend = backend
        return instance

    @property
    def sync_backend(self) -> SqlFileBackend:
        """The wrapped synchronous backend."""
        return self._sync_backend

    async def write(
        self,
        path: PathLike,
        contents: bytes | str | BinaryIO,
        options: WriteOptions | None = None,
    ) -> None:
        """Create or replace a file asynchronously."""
        await asyncio.to_thread(self._sync_backend.write, path, contents, options)

    async def read(self, path: PathLike) -> bytes:
        """Return file contents asynchronously."""
        return await asyncio.to_thread(self._sync_backend.read, path)

    async def delete(self, path: PathLike) -> None:
        """Delete a file asynchronously."""
        await asyncio.to_thread(self._sync_backend.delete, path)

    async def delete_directory(self, path: PathLike) -> None:
        """Delete a directory tree asynchronously."""
        await asyncio.to_thread(self._sync_backend.delete_directory, path)

    async def create_directory(
        self,
        path: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Create a directory marker asynchronously."""
        await asyncio.to_thread(self._sync_backend.create_directory, path, options)

    async def file_exists(self, path: PathLike) -> bool:
        """Check file existence asynchronously."""
        return await asyncio.to_thread(self._sync_backend.file_exists, path)

    async def directory_exists(self, path: PathLike) -> bool:
        """Check directory existence asynchronously."""
        return await asyncio.to_thread(self._sync_backend.directory_exists, path)

    async def set_visibility(
        self,
        path: PathLike,
        visibility: Visibility | str,
    ) -> None:
        """Update the visibility flag asynchronously."""
        await asyncio.to_thread(self._sync_backend.set_visibility, path, visibility)

    async def visibility(self, path: PathLike) -> FileAttributes:
        """Return visibility attributes asynchronously."""
        return await asyncio.to_thread(self._sync_backend.visibility, path)

    async def mime_type(self, path: PathLike) -> FileAttributes:
        """Return MIME type attributes asynchronously."""
        return await asyncio.to_thread(self._sync_backend.mime_type, path)

    async def last_modified(self, path: PathLike) -> FileAttributes:
        """Return modification time attributes asynchronously."""
        return await asyncio.to_thread(self._sync_backend.last_modified, path)

    async def file_size(self, path: PathLike) -> FileAttributes:
        """Return file size attributes asynchronously."""
        return await asyncio.to_thread(self._sync_backend.file_size, path)

    async def list_contents(
        self,
        path: PathLike,
        deep: bool = False,
    ) -> list[StorageEntry]:
        """Return the complete listing of ``path`` asynchronously."""
        return await asyncio.to_thread(
            lambda: list(self._sync_backend.list_contents(path, deep)),
        )

    async def move(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Move a file asynchronously."""
        await asyncio.to_thread(self._sync_backend.move, source, destination, options)

    async def copy(
        self,
        source: PathLike,
        destination: PathLike,
        options: WriteOptions | None = None,
    ) -> None:
        """Copy a file asynchronously."""
        await asyncio.to_thread(self._sync_backend.copy, source, destination, options)

    async def checksum(self, path: PathLike) -> str:
        """Return the stored checksum asynchronously."""
        return await asyncio.to_thread(self._sync_backend.checksum, path)

    async def delete_everything(self) -> None:
        """Delete every record of the bucket asynchronously."""
        await asyncio.to_thread(self._sync_backend.delete_everything)
