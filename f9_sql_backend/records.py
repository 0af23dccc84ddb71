"""Relational record store holding one row per ``(bucket, path)``.

Every public method issues exactly one SQL statement inside its own
``engine.begin()`` block, so each call is committed atomically on its own
and nothing spans several statements.

Schema:

    ========== ======================= ===============================
    column     type                    notes
    ========== ======================= ===============================
    bucket     String(64)              unique together with ``path``
    path       String(700)             always starts with ``/``
    contents   LargeBinary             LONGBLOB on MySQL and MariaDB
    mime_type  String(255)             ``""`` when undetectable
    size       BigInteger              ``len(contents)``
    visibility String(16)              ``public`` or ``private``
    last_modified DateTime(tz)         stored in UTC
    checksum   String(128)             hex digest of ``contents``
    ========== ======================= ===============================

Example:

    >>> from sqlalchemy import create_engine
    >>> store = RecordStore(create_engine("sqlite://"))
    >>> store.create_schema()
    >>> store.checksum("default", "/missing.txt") is None
    True

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.dialects.mysql import LONGBLOB

from .interfaces import Visibility

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine, Row

logger = logging.getLogger(__name__)

# (64 + 700) characters stay below the 3072 byte InnoDB key limit in utf8mb4.
BUCKET_LENGTH = 64
PATH_LENGTH = 700

_CONTENTS_TYPE = LargeBinary().with_variant(LONGBLOB(), "mysql", "mariadb")


@dataclass(frozen=True)
class RecordMetadata:
    """Every stored column of a record except its contents."""

    bucket: str
    path: str
    size: int
    mime_type: str
    visibility: Visibility
    last_modified: datetime
    checksum: str


@dataclass(frozen=True)
class FileRecord:
    """Every column of a row as passed to :meth:`RecordStore.upsert`."""

    bucket: str
    path: str
    contents: bytes
    size: int
    mime_type: str
    visibility: Visibility
    last_modified: datetime
    checksum: str


def build_files_table(metadata: MetaData, name: str = "files") -> Table:
    """Declare the records table on ``metadata``."""
    return Table(
        name,
        metadata,
        Column("bucket", String(BUCKET_LENGTH), nullable=False),
        Column("path", String(PATH_LENGTH), nullable=False),
        Column("contents", _CONTENTS_TYPE, nullable=False),
        Column("mime_type", String(255), nullable=False, default=""),
        Column("size", BigInteger, nullable=False),
        Column("visibility", String(16), nullable=False),
        Column("last_modified", DateTime(timezone=True), nullable=False),
        Column("checksum", String(128), nullable=False),
        UniqueConstraint("bucket", "path", name=f"uq_{name}_bucket_path"),
    )


_METADATA_COLUMNS = (
    "bucket",
    "path",
    "size",
    "mime_type",
    "visibility",
    "last_modified",
    "checksum",
)


class RecordStore:
    """Statements against the records table, scoped by bucket on every call."""

    def __init__(
        self,
        engine: Engine,
        *,
        table_name: str = "files",
        metadata: MetaData | None = None,
    ) -> None:
        """Bind the store to an engine and declare its table."""
        self._engine = engine
        self._metadata = metadata if metadata is not None else MetaData()
        if table_name in self._metadata.tables:
            self._table = self._metadata.tables[table_name]
        else:
            self._table = build_files_table(self._metadata, table_name)

    @property
    def engine(self) -> Engine:
        """Engine all statements run on."""
        return self._engine

    @property
    def table(self) -> Table:
        """The records table."""
        return self._table

    def create_schema(self) -> None:
        """Create the records table when it does not exist yet."""
        self._metadata.create_all(self._engine, tables=[self._table])
        logger.debug("Records table %s created/verified", self._table.name)

    def fetch_metadata(self, bucket: str, path: str) -> RecordMetadata | None:
        """Return every column except ``contents`` for ``path`` or None."""
        stmt = select(*self._metadata_columns()).where(self._key(bucket, path))
        with self._engine.begin() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        return RecordMetadata(**self._metadata_values(row))

    def contents(self, bucket: str, path: str) -> bytes | None:
        """Return only the stored bytes for ``path`` or None."""
        stmt = select(self._table.c.contents).where(self._key(bucket, path))
        with self._engine.begin() as conn:
            value = conn.execute(stmt).scalar_one_or_none()
        return None if value is None else bytes(value)

    def checksum(self, bucket: str, path: str) -> str | None:
        """Return only the stored checksum for ``path`` or None."""
        stmt = select(self._table.c.checksum).where(self._key(bucket, path))
        with self._engine.begin() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def count(self, bucket: str, path: str) -> int:
        """Return how many rows are stored under exactly ``path``."""
        stmt = (
            select(func.count())
            .select_from(self._table)
            .where(self._key(bucket, path))
        )
        with self._engine.begin() as conn:
            return int(conn.execute(stmt).scalar_one())

    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        """Return True when at least one path starts with ``prefix``."""
        stmt = (
            select(self._table.c.path)
            .where(self._prefix(bucket, prefix))
            .limit(1)
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).first() is not None

    def iter_prefix(self, bucket: str, prefix: str) -> Iterator[RecordMetadata]:
        """Yield metadata for every path starting with ``prefix``.

        Rows come in the database's natural iteration order. The result is
        read completely before the first row is yielded so the connection
        is released even when the caller stops iterating early.
        """
        stmt = select(*self._metadata_columns()).where(self._prefix(bucket, prefix))
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).all()
        for row in rows:
            yield RecordMetadata(**self._metadata_values(row))

    def upsert(self, record: FileRecord) -> None:
        """Insert ``record`` or replace the row stored under its key."""
        values = {
            "bucket": record.bucket,
            "path": record.path,
            "contents": record.contents,
            "mime_type": record.mime_type,
            "size": record.size,
            "visibility": record.visibility.value,
            "last_modified": record.last_modified,
            "checksum": record.checksum,
        }
        dialect = self._engine.dialect.name
        with self._engine.begin() as conn:
            if dialect in ("sqlite", "postgresql"):
                conn.execute(self._on_conflict_upsert(dialect, values))
            elif dialect in ("mysql", "mariadb"):
                conn.execute(self._on_duplicate_upsert(values))
            else:
                # No native upsert: replace inside the block's transaction.
                conn.execute(
                    delete(self._table).where(self._key(record.bucket, record.path)),
                )
                conn.execute(insert(self._table).values(**values))

    def delete(self, bucket: str, path: str) -> int:
        """Delete the row stored under exactly ``path``."""
        stmt = delete(self._table).where(self._key(bucket, path))
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Delete every row whose path starts with ``prefix``."""
        stmt = delete(self._table).where(self._prefix(bucket, prefix))
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def delete_bucket(self, bucket: str) -> int:
        """Delete every row of ``bucket``."""
        stmt = delete(self._table).where(self._table.c.bucket == bucket)
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def update_visibility(
        self,
        bucket: str,
        path: str,
        visibility: Visibility,
    ) -> int:
        """Overwrite the visibility column of ``path``."""
        stmt = (
            update(self._table)
            .where(self._key(bucket, path))
            .values(visibility=visibility.value)
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def _key(self, bucket: str, path: str):
        return and_(self._table.c.bucket == bucket, self._table.c.path == path)

    def _prefix(self, bucket: str, prefix: str):
        # autoescape keeps "%" and "_" inside literal paths from acting as
        # wildcards; the substr comparison rejects case-insensitive LIKE hits.
        return and_(
            self._table.c.bucket == bucket,
            self._table.c.path.startswith(prefix, autoescape=True),
            func.substr(self._table.c.path, 1, len(prefix)) == prefix,
        )

    def _metadata_columns(self) -> list[Column]:
        return [self._table.c[name] for name in _METADATA_COLUMNS]

    @staticmethod
    def _metadata_values(row: Row) -> dict:
        return {
            "bucket": row.bucket,
            "path": row.path,
            "size": int(row.size),
            "mime_type": row.mime_type or "",
            "visibility": Visibility.coerce(row.visibility),
            "last_modified": _as_utc(row.last_modified),
            "checksum": row.checksum,
        }

    def _on_conflict_upsert(self, dialect: str, values: dict):
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        stmt = dialect_insert(self._table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[self._table.c.bucket, self._table.c.path],
            set_={
                name: stmt.excluded[name]
                for name in values
                if name not in ("bucket", "path")
            },
        )

    def _on_duplicate_upsert(self, values: dict):
        from sqlalchemy.dialects.mysql import insert as mysql_insert

        stmt = mysql_insert(self._table).values(**values)
        return stmt.on_duplicate_key_update(
            **{
                name: stmt.inserted[name]
                for name in values
                if name not in ("bucket", "path")
            },
        )


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values returned by drivers without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
