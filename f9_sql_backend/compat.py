"""Exception translation to standard Python ``OSError`` subclasses.

Code written against the built-in file API expects ``FileNotFoundError``
and friends. The mapping is decided by :class:`ErrorKind`:

    ==================== ===============================================
    kind                 translated to
    ==================== ===============================================
    NOT_FOUND            FileNotFoundError
    METADATA_RETRIEVAL   OSError
    MOVE_CONFLICT        FileNotFoundError (source missing) or
                         FileExistsError (destination exists)
    COPY_CONFLICT        FileNotFoundError
    INVALID_OPERATION    OSError
    ==================== ===============================================
"""

from __future__ import annotations

import functools
import inspect
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from .interfaces import ErrorKind, FileBackendError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .interfaces import FileBackend


T = TypeVar("T")

_TRANSFER_KINDS = (ErrorKind.MOVE_CONFLICT, ErrorKind.COPY_CONFLICT)


def translate_backend_exception(exc: FileBackendError) -> OSError:
    """Return the OSError subclass matching the kind of ``exc``."""
    if exc.kind is ErrorKind.NOT_FOUND:
        return FileNotFoundError(str(exc))
    if exc.kind in _TRANSFER_KINDS and not getattr(exc, "source_missing", True):
        return FileExistsError(str(exc))
    if exc.kind in _TRANSFER_KINDS:
        return FileNotFoundError(str(exc))
    return OSError(str(exc))


@contextmanager
def translate_exceptions() -> Iterator[None]:
    """Turn backend errors raised inside the block into OSError subclasses.

        >>> with translate_exceptions():
        ...     backend.read("/missing.txt")
        Traceback (most recent call last):
        FileNotFoundError: Path not found: /missing.txt

    """
    try:
        yield
    except FileBackendError as exc:
        raise translate_backend_exception(exc) from exc


def translate_method(method: Callable[..., T]) -> Callable[..., T]:
    """Decorate ``method`` so it raises OSError subclasses.

    Generators returned by the method (``list_contents``) are wrapped too,
    because their queries only run while they are consumed.
    """

    @functools.wraps(method)
    def translated(*args: object, **kwargs: object) -> T:
        with translate_exceptions():
            result = method(*args, **kwargs)
        if inspect.isgenerator(result):
            return _translated_iteration(result)  # type: ignore[return-value]
        return result

    return translated


def _translated_iteration(iterator: Iterator[T]) -> Iterator[T]:
    with translate_exceptions():
        yield from iterator


class CompatibleFileBackend:
    """View of a backend that raises built-in OSError subclasses.

        >>> backend = CompatibleFileBackend(SqlFileBackend("sqlite:///files.db"))
        >>> backend.read("/missing.txt")
        Traceback (most recent call last):
        FileNotFoundError: Path not found: /missing.txt

    Attributes that are not callable are returned unchanged.
    """

    def __init__(self, backend: FileBackend) -> None:
        """Wrap ``backend``."""
        self._backend = backend

    def __getattr__(self, name: str) -> object:
        """Return the backend attribute, translating errors of methods."""
        value = getattr(self._backend, name)
        return translate_method(value) if callable(value) else value

    def __repr__(self) -> str:
        """Name the wrapped backend."""
        return f"{type(self).__name__}({self._backend!r})"
