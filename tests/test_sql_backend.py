"""Tests for SqlFileBackend operation contracts."""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from f9_sql_backend import (
    DIRECTORY_MARKER,
    BackendConfig,
    CopyConflictError,
    DirectoryAttributes,
    FileAttributes,
    InvalidOperationError,
    MetadataRetrievalError,
    MoveConflictError,
    NotFoundError,
    SqlFileBackend,
    Visibility,
    WriteOptions,
)
from f9_sql_backend.records import PATH_LENGTH
from f9_sql_backend.utils import compute_checksum_from_bytes
from tests.fakes import FixedMimeDetector, memory_engine


@pytest.fixture
def backend() -> SqlFileBackend:
    """Provide an uncached backend on a fresh in-memory database."""
    return SqlFileBackend(memory_engine(), create_schema=True)


def _entries(
    backend: SqlFileBackend,
    path: str,
    *,
    deep: bool,
) -> list[tuple[str, str]]:
    return [
        ("dir" if entry.is_dir else "file", entry.path)
        for entry in backend.list_contents(path, deep=deep)
    ]


def _broken(*_args: object, **_kwargs: object) -> None:
    raise OperationalError("SELECT", {}, Exception("database is gone"))


class TestWriteRead:
    """Tests for writing and reading contents."""

    def test_round_trip(self, backend: SqlFileBackend) -> None:
        """Written bytes are read back unchanged."""
        backend.write("/docs/readme.txt", b"hello")
        assert backend.file_exists("/docs/readme.txt")
        assert backend.read("/docs/readme.txt") == b"hello"

    def test_paths_are_normalised(self, backend: SqlFileBackend) -> None:
        """Leading slashes are collapsed before the path is stored."""
        backend.write("docs/readme.txt", b"hello")
        assert backend.read("///docs/readme.txt") == b"hello"
        assert backend.store.count(backend.bucket, "/docs/readme.txt") == 1

    def test_string_and_stream_contents(self, backend: SqlFileBackend) -> None:
        """Text and binary streams are accepted as contents."""
        backend.write("/text.txt", "héllo")
        backend.write("/stream.bin", io.BytesIO(b"\x00\x01"))

        assert backend.read("/text.txt") == "héllo".encode()
        assert backend.read("/stream.bin") == b"\x00\x01"

    def test_write_stream_from_chunks(self, backend: SqlFileBackend) -> None:
        """Chunk iterators are joined before being stored."""
        backend.write_stream("/chunks.txt", iter([b"ab", b"cd"]))
        assert backend.read("/chunks.txt") == b"abcd"
        assert backend.file_size("/chunks.txt").file_size == 4

    def test_read_stream(self, backend: SqlFileBackend) -> None:
        """read_stream wraps the contents in a binary stream."""
        backend.write("/a.txt", b"stream me")
        assert backend.read_stream("/a.txt").read() == b"stream me"

    def test_overwrite_replaces(self, backend: SqlFileBackend) -> None:
        """Writing an existing path replaces the record."""
        backend.write("/a.txt", b"first")
        backend.write("/a.txt", b"second")
        assert backend.read("/a.txt") == b"second"
        assert backend.file_size("/a.txt").file_size == 6

    def test_stored_columns(self, backend: SqlFileBackend) -> None:
        """Size and checksum always describe the stored bytes."""
        backend.write("/a.txt", b"hello")
        record = backend.store.fetch_metadata(backend.bucket, "/a.txt")
        assert record.size == 5
        assert record.checksum == compute_checksum_from_bytes(b"hello")
        assert backend.checksum("/a.txt") == record.checksum

    def test_missing_file(self, backend: SqlFileBackend) -> None:
        """Reading a missing file raises NotFoundError."""
        with pytest.raises(NotFoundError) as excinfo:
            backend.read("/missing.txt")
        assert excinfo.value.path == "/missing.txt"

    def test_missing_checksum(self, backend: SqlFileBackend) -> None:
        """Asking for the checksum of a missing file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            backend.checksum("/missing.txt")

    def test_empty_path_rejected(self, backend: SqlFileBackend) -> None:
        """Empty paths are invalid for every operation."""
        with pytest.raises(InvalidOperationError):
            backend.write("", b"x")

    def test_path_longer_than_column_rejected(self, backend: SqlFileBackend) -> None:
        """Paths that would not fit the path column are refused before storing."""
        too_long = "/" + "a" * PATH_LENGTH
        with pytest.raises(InvalidOperationError, match="exceeds"):
            backend.write(too_long, b"x")
        assert backend.store.count(backend.bucket, too_long) == 0

        backend.write(too_long[:PATH_LENGTH], b"fits")
        assert backend.read(too_long[:PATH_LENGTH]) == b"fits"

    def test_store_failure_propagates(
        self,
        backend: SqlFileBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Database errors on write reach the caller unwrapped."""
        monkeypatch.setattr(backend.store, "upsert", _broken)
        with pytest.raises(OperationalError):
            backend.write("/a.txt", b"x")


class TestWriteOptions:
    """Tests for per-write timestamp and visibility."""

    def test_explicit_timestamp(self, backend: SqlFileBackend) -> None:
        """An explicit timestamp is stored as given."""
        when = datetime(2020, 2, 2, 2, 2, 2, tzinfo=timezone.utc)
        backend.write("/a.txt", b"x", WriteOptions(timestamp=when))
        assert backend.last_modified("/a.txt").last_modified == when

    def test_default_timestamp_is_now(self, backend: SqlFileBackend) -> None:
        """Without a timestamp the current time is stored."""
        before = datetime.now(timezone.utc).replace(microsecond=0)
        backend.write("/a.txt", b"x")
        assert backend.last_modified("/a.txt").last_modified >= before

    def test_explicit_visibility(self, backend: SqlFileBackend) -> None:
        """Visibility given on write overrides the default."""
        backend.write("/a.txt", b"x", WriteOptions(visibility="private"))
        assert backend.visibility("/a.txt").visibility is Visibility.PRIVATE

    def test_configured_default_visibility(self) -> None:
        """The configured default applies when a write sets none."""
        backend = SqlFileBackend(
            memory_engine(),
            BackendConfig(default_visibility="private"),
            create_schema=True,
        )
        backend.write("/a.txt", b"x")
        assert backend.visibility("/a.txt").visibility is Visibility.PRIVATE

    def test_unknown_visibility(self, backend: SqlFileBackend) -> None:
        """Visibility values outside the enum are rejected."""
        with pytest.raises(InvalidOperationError):
            backend.write("/a.txt", b"x", WriteOptions(visibility="secret"))


class TestMimeType:
    """Tests for MIME type detection and retrieval."""

    def test_detected_from_extension(self, backend: SqlFileBackend) -> None:
        """Known extensions give a MIME type."""
        backend.write("/docs/readme.txt", b"hello")
        assert backend.mime_type("/docs/readme.txt").mime_type == "text/plain"

    def test_detected_from_contents(self, backend: SqlFileBackend) -> None:
        """Content signatures win over a misleading extension."""
        backend.write("/image.txt", b"\x89PNG\r\n\x1a\n" + b"\x00" * 8)
        assert backend.mime_type("/image.txt").mime_type == "image/png"

    def test_undetectable_type_fails(self, backend: SqlFileBackend) -> None:
        """An empty stored MIME type cannot be retrieved."""
        backend.write("/blob", b"\x00\xff\x00")
        assert backend.store.fetch_metadata(backend.bucket, "/blob").mime_type == ""
        with pytest.raises(MetadataRetrievalError) as excinfo:
            backend.mime_type("/blob")
        assert excinfo.value.attribute == "mime_type"

    def test_custom_detector(self) -> None:
        """A supplied detector is consulted with the normalised path."""
        detector = FixedMimeDetector("application/x-custom")
        backend = SqlFileBackend(
            memory_engine(),
            mime_detector=detector,
            create_schema=True,
        )
        backend.write("a.bin", b"123")
        assert detector.calls == [("/a.bin", b"123")]
        assert backend.mime_type("/a.bin").mime_type == "application/x-custom"


class TestMetadataGetters:
    """Tests for visibility, last_modified, file_size and mime_type."""

    @pytest.mark.parametrize(
        "getter",
        ["visibility", "mime_type", "last_modified", "file_size"],
    )
    def test_missing_record(self, backend: SqlFileBackend, getter: str) -> None:
        """Every getter reports a missing record as MetadataRetrievalError."""
        with pytest.raises(MetadataRetrievalError) as excinfo:
            getattr(backend, getter)("/missing.txt")
        assert excinfo.value.path == "/missing.txt"

    def test_lookup_errors_are_wrapped(
        self,
        backend: SqlFileBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Database errors inside getters are re-signalled uniformly."""
        backend.write("/a.txt", b"x")
        monkeypatch.setattr(backend.store, "fetch_metadata", _broken)
        with pytest.raises(MetadataRetrievalError) as excinfo:
            backend.file_size("/a.txt")
        assert isinstance(excinfo.value.__cause__, OperationalError)

    def test_attributes_shape(self, backend: SqlFileBackend) -> None:
        """Getters return the full attribute projection of the record."""
        backend.write("/docs/readme.txt", b"hello")
        attributes = backend.file_size("/docs/readme.txt")
        assert isinstance(attributes, FileAttributes)
        assert attributes.path == "docs/readme.txt"
        assert attributes.file_size == 5
        assert attributes.checksum == backend.checksum("/docs/readme.txt")


class TestVisibility:
    """Tests for set_visibility."""

    def test_updates_flag(self, backend: SqlFileBackend) -> None:
        """The stored visibility changes and the contents do not."""
        backend.write("/a.txt", b"x")
        backend.set_visibility("/a.txt", Visibility.PRIVATE)
        assert backend.visibility("/a.txt").visibility is Visibility.PRIVATE
        assert backend.read("/a.txt") == b"x"

    def test_missing_record(self, backend: SqlFileBackend) -> None:
        """Setting visibility of a missing file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            backend.set_visibility("/missing.txt", "public")


class TestDelete:
    """Tests for delete, delete_directory and delete_everything."""

    def test_delete_file(self, backend: SqlFileBackend) -> None:
        """Deleted files no longer exist."""
        backend.write("/a.txt", b"x")
        backend.delete("/a.txt")
        assert not backend.file_exists("/a.txt")

    def test_delete_missing_is_noop(self, backend: SqlFileBackend) -> None:
        """Deleting a missing path is not an error."""
        backend.delete("/missing.txt")
        backend.delete_directory("/missing")

    def test_delete_directory(self, backend: SqlFileBackend) -> None:
        """The whole subtree and the record named like the directory go."""
        backend.write("/a", b"file named like the directory")
        backend.write("/a/1.txt", b"1")
        backend.write("/a/b/2.txt", b"2")
        backend.write("/ab/3.txt", b"3")

        backend.delete_directory("/a")

        assert not backend.file_exists("/a")
        assert not backend.directory_exists("/a")
        assert backend.file_exists("/ab/3.txt")

    def test_delete_everything_is_bucket_scoped(self) -> None:
        """Only the backend's own bucket is emptied."""
        engine = memory_engine()
        docs = SqlFileBackend(engine, BackendConfig(bucket="docs"), create_schema=True)
        media = SqlFileBackend(engine, BackendConfig(bucket="media"))
        docs.write("/a.txt", b"docs")
        media.write("/a.txt", b"media")

        docs.delete_everything()

        assert not docs.file_exists("/a.txt")
        assert media.read("/a.txt") == b"media"


class TestDirectories:
    """Tests for directory markers and existence checks."""

    def test_create_directory_writes_marker(self, backend: SqlFileBackend) -> None:
        """An empty directory is kept alive by a zero-byte marker record."""
        backend.create_directory("/empty")

        assert backend.directory_exists("/empty")
        assert backend.file_exists(f"/empty/{DIRECTORY_MARKER}")
        assert backend.read(f"/empty/{DIRECTORY_MARKER}") == b""

    def test_directory_exists_from_descendants(self, backend: SqlFileBackend) -> None:
        """Any descendant makes every ancestor exist."""
        backend.write("/a/b/c.txt", b"x")
        assert backend.directory_exists("/a")
        assert backend.directory_exists("a/b/")
        assert not backend.directory_exists("/a/b/c.txt")
        assert not backend.directory_exists("/missing")

    def test_directory_exists_with_many_children(self, backend: SqlFileBackend) -> None:
        """Several records below the prefix still count as one directory."""
        backend.write("/a/1.txt", b"1")
        backend.write("/a/2.txt", b"2")
        assert backend.directory_exists("/a")

    def test_file_exists_is_exact(self, backend: SqlFileBackend) -> None:
        """Only the exact path counts as a file."""
        backend.write("/a/b.txt", b"x")
        assert not backend.file_exists("/a")
        assert not backend.file_exists("/a/b")


class TestListContents:
    """Tests for listings synthesised from stored paths."""

    def test_nested_file_is_not_a_root_child(self, backend: SqlFileBackend) -> None:
        """A file one level down shows up as its directory at the root."""
        backend.write("/docs/readme.txt", b"hello")

        assert _entries(backend, "/", deep=False) == [("dir", "docs")]
        assert _entries(backend, "/docs", deep=False) == [("file", "docs/readme.txt")]

    def test_deep_listing(self, backend: SqlFileBackend) -> None:
        """Deep listings emit each directory once, before its first file."""
        backend.write("/a/b/c.txt", b"c")
        backend.write("/a/d.txt", b"d")

        entries = _entries(backend, "/a", deep=True)

        assert entries[0] == ("dir", "a/b")
        assert sorted(entries[1:]) == [("file", "a/b/c.txt"), ("file", "a/d.txt")]

    def test_marker_directory(self, backend: SqlFileBackend) -> None:
        """A marker-only directory lists as a directory with no files."""
        backend.create_directory("/a/empty")

        assert _entries(backend, "/a", deep=True) == [("dir", "a/empty")]
        assert _entries(backend, "/a/empty", deep=True) == []

    def test_empty_listing(self, backend: SqlFileBackend) -> None:
        """Listing a path without descendants yields nothing."""
        assert list(backend.list_contents("/nothing", deep=True)) == []

    def test_listing_is_bucket_scoped(self) -> None:
        """Records of other buckets never appear."""
        engine = memory_engine()
        docs = SqlFileBackend(engine, BackendConfig(bucket="docs"), create_schema=True)
        media = SqlFileBackend(engine, BackendConfig(bucket="media"))
        media.write("/a.txt", b"x")
        assert list(docs.list_contents("/")) == []

    def test_entry_types(self, backend: SqlFileBackend) -> None:
        """Listings mix DirectoryAttributes and FileAttributes."""
        backend.write("/a/b.txt", b"x")
        backend.write("/c.txt", b"y")

        kinds = {type(entry) for entry in backend.list_contents("/", deep=True)}

        assert kinds == {DirectoryAttributes, FileAttributes}

    def test_listing_is_lazy(
        self,
        backend: SqlFileBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """No query runs until iteration starts."""
        monkeypatch.setattr(backend.store, "iter_prefix", _broken)
        iterator = backend.list_contents("/")
        with pytest.raises(OperationalError):
            next(iterator)


class TestMove:
    """Tests for move."""

    def test_moves_contents(self, backend: SqlFileBackend) -> None:
        """The destination holds the contents and the source is gone."""
        backend.write("/a.txt", b"payload")
        backend.move("/a.txt", "/b.txt")
        assert not backend.file_exists("/a.txt")
        assert backend.read("/b.txt") == b"payload"

    def test_missing_source(self, backend: SqlFileBackend) -> None:
        """Moving a missing file is a conflict naming the source."""
        with pytest.raises(MoveConflictError) as excinfo:
            backend.move("/missing.txt", "/b.txt")
        assert excinfo.value.source_missing
        assert not backend.file_exists("/b.txt")

    def test_existing_destination(self, backend: SqlFileBackend) -> None:
        """Moving onto an existing file is a conflict and changes nothing."""
        backend.write("/a.txt", b"a")
        backend.write("/b.txt", b"b")

        with pytest.raises(MoveConflictError) as excinfo:
            backend.move("/a.txt", "/b.txt")

        assert not excinfo.value.source_missing
        assert backend.read("/a.txt") == b"a"
        assert backend.read("/b.txt") == b"b"

    def test_failed_delete_leaves_both_copies(
        self,
        backend: SqlFileBackend,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failure after the write is not rolled back."""
        backend.write("/a.txt", b"a")
        monkeypatch.setattr(backend.store, "delete", _broken)

        with pytest.raises(OperationalError):
            backend.move("/a.txt", "/b.txt")

        assert backend.read("/a.txt") == b"a"
        assert backend.read("/b.txt") == b"a"

    def test_move_applies_options(self, backend: SqlFileBackend) -> None:
        """The destination gets fresh metadata from the options."""
        backend.write("/a.txt", b"a", WriteOptions(visibility="private"))
        backend.move("/a.txt", "/b.txt", WriteOptions(visibility="public"))
        assert backend.visibility("/b.txt").visibility is Visibility.PUBLIC


class TestCopy:
    """Tests for copy."""

    def test_copies_contents(self, backend: SqlFileBackend) -> None:
        """Both paths hold the same bytes afterwards."""
        backend.write("/a.txt", b"payload")
        backend.copy("/a.txt", "/b.txt")
        assert backend.read("/a.txt") == b"payload"
        assert backend.read("/b.txt") == b"payload"

    def test_overwrites_destination(self, backend: SqlFileBackend) -> None:
        """An existing destination is replaced."""
        backend.write("/a.txt", b"new")
        backend.write("/b.txt", b"old")
        backend.copy("/a.txt", "/b.txt")
        assert backend.read("/b.txt") == b"new"

    def test_missing_source(self, backend: SqlFileBackend) -> None:
        """Copying a missing file is a conflict."""
        with pytest.raises(CopyConflictError) as excinfo:
            backend.copy("/missing.txt", "/b.txt")
        assert excinfo.value.source == "/missing.txt"
        assert excinfo.value.destination == "/b.txt"


def test_accepts_database_url(tmp_path) -> None:
    """A URL string is turned into an engine."""
    backend = SqlFileBackend(f"sqlite:///{tmp_path / 'files.db'}", create_schema=True)
    backend.write("/a.txt", b"x")
    assert backend.read("/a.txt") == b"x"
