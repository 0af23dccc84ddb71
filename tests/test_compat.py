"""Tests for exception translation and compatibility module."""

import pytest

from f9_sql_backend import SqlFileBackend
from f9_sql_backend.compat import (
    CompatibleFileBackend,
    translate_backend_exception,
    translate_exceptions,
    translate_method,
)
from f9_sql_backend.interfaces import (
    CopyConflictError,
    FileBackendError,
    InvalidOperationError,
    MetadataRetrievalError,
    MoveConflictError,
    NotFoundError,
)
from tests.fakes import memory_engine


class TestTranslateBackendException:
    """Test translate_backend_exception function."""

    def test_translate_notfound_error(self) -> None:
        """NotFoundError becomes FileNotFoundError."""
        result = translate_backend_exception(NotFoundError("/missing.txt"))
        assert isinstance(result, FileNotFoundError)
        assert "/missing.txt" in str(result)

    def test_translate_move_missing_source(self) -> None:
        """A move without a source becomes FileNotFoundError."""
        exc = MoveConflictError("/a", "/b", source_missing=True)
        assert isinstance(translate_backend_exception(exc), FileNotFoundError)

    def test_translate_move_existing_destination(self) -> None:
        """A move onto an existing file becomes FileExistsError."""
        exc = MoveConflictError("/a", "/b", source_missing=False)
        assert isinstance(translate_backend_exception(exc), FileExistsError)

    def test_translate_copy_conflict(self) -> None:
        """A copy without a source becomes FileNotFoundError."""
        exc = CopyConflictError("/a", "/b", source_missing=True)
        assert isinstance(translate_backend_exception(exc), FileNotFoundError)

    @pytest.mark.parametrize(
        "exc",
        [
            MetadataRetrievalError("/a", attribute="visibility"),
            InvalidOperationError("Path cannot be empty"),
        ],
    )
    def test_translate_other_errors(self, exc: FileBackendError) -> None:
        """Remaining kinds become a plain OSError."""
        result = translate_backend_exception(exc)
        assert type(result) is OSError
        assert str(exc) == str(result)


class TestTranslateExceptions:
    """Test the translate_exceptions context manager."""

    def test_chains_original(self) -> None:
        """The translated error keeps the backend error as its cause."""
        with pytest.raises(FileNotFoundError) as excinfo:
            with translate_exceptions():
                raise NotFoundError("/a")
        assert isinstance(excinfo.value.__cause__, NotFoundError)

    def test_other_exceptions_pass_through(self) -> None:
        """Errors outside the hierarchy are untouched."""
        with pytest.raises(KeyError):
            with translate_exceptions():
                raise KeyError("x")

    def test_translate_method_decorator(self) -> None:
        """Decorated callables raise OSError subclasses."""

        @translate_method
        def failing() -> None:
            raise NotFoundError("/a")

        with pytest.raises(FileNotFoundError):
            failing()


class TestCompatibleFileBackend:
    """Test CompatibleFileBackend wrapper."""

    @pytest.fixture
    def backend(self) -> CompatibleFileBackend:
        """Provide a wrapped in-memory backend."""
        inner = SqlFileBackend(memory_engine(), create_schema=True)
        return CompatibleFileBackend(inner)

    def test_successful_calls_pass_through(
        self,
        backend: CompatibleFileBackend,
    ) -> None:
        """Working operations behave like the wrapped backend."""
        backend.write("/a.txt", b"x")
        assert backend.read("/a.txt") == b"x"
        assert backend.bucket == "default"

    def test_read_missing(self, backend: CompatibleFileBackend) -> None:
        """Reading a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            backend.read("/missing.txt")

    def test_move_onto_existing(self, backend: CompatibleFileBackend) -> None:
        """Moving onto an existing file raises FileExistsError."""
        backend.write("/a.txt", b"a")
        backend.write("/b.txt", b"b")
        with pytest.raises(FileExistsError):
            backend.move("/a.txt", "/b.txt")

    def test_metadata_failure(self, backend: CompatibleFileBackend) -> None:
        """Metadata failures raise OSError."""
        with pytest.raises(OSError, match="Unable to retrieve file_size"):
            backend.file_size("/missing.txt")

    def test_listing_is_wrapped(self, backend: CompatibleFileBackend) -> None:
        """Listings stay iterable through the wrapper."""
        backend.write("/dir/a.txt", b"a")
        assert [entry.path for entry in backend.list_contents("/dir")] == ["dir/a.txt"]

    def test_repr(self, backend: CompatibleFileBackend) -> None:
        """The wrapper names itself in its repr."""
        assert repr(backend).startswith("CompatibleFileBackend(")
