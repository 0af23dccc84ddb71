"""Backend factory for URL-based backend resolution and instantiation.

The URL is a regular SQLAlchemy database URL. Query parameters naming a
backend option are consumed by the factory; every other parameter is left
in the URL for the database driver.

Backend Options:
    - bucket: Namespace for all paths (default ``default``)
    - table: Records table name (default ``files``)
    - visibility: Default visibility, ``public`` or ``private``
    - cache_dir: Enables the local read cache in this directory
    - cache_prefix: Filename prefix of cache entries
    - cache_max_age: Seconds before an unused cache entry may be swept
    - cache_cleanup_chance: A sweep runs on one in this many reads
    - checksum: Digest algorithm (``sha1``, ``sha256``, ...)
    - create_schema: ``true`` to create the records table on startup

Example:
    >>> from f9_sql_backend.factory import resolve_backend
    >>> backend = resolve_backend("sqlite:///files.db?bucket=media&create_schema=true")
    >>> backend = resolve_backend(
    ...     "postgresql+psycopg://app@db/files?bucket=docs&cache_dir=/var/cache/f9"
    ... )

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .config import BackendConfig

if TYPE_CHECKING:
    from sqlalchemy.engine import URL

    from .sql_backend import SqlFileBackend

_CONFIG_OPTIONS = {
    "bucket": ("bucket", str),
    "table": ("table_name", str),
    "visibility": ("default_visibility", str),
    "cache_dir": ("cache_directory", str),
    "cache_prefix": ("cache_prefix", str),
    "cache_max_age": ("cache_max_age", float),
    "cache_cleanup_chance": ("cache_cleanup_chance", int),
    "checksum": ("checksum_algorithm", str),
}
BACKEND_OPTIONS = frozenset((*_CONFIG_OPTIONS, "create_schema"))


def build_config(options: dict[str, str]) -> BackendConfig:
    """Translate URL options into a BackendConfig.

    Raises:
        ValueError: If an option value cannot be converted.

    """
    kwargs: dict[str, Any] = {}
    for option, (field_name, convert) in _CONFIG_OPTIONS.items():
        if option not in options:
            continue
        try:
            kwargs[field_name] = convert(options[option])
        except ValueError as exc:
            msg = f"Invalid value for '{option}': {options[option]!r}"
            raise ValueError(msg) from exc
    return BackendConfig(**kwargs)


class BackendFactory:
    """Factory for creating backends from database URLs."""

    def __init__(self) -> None:
        """Initialize the factory with no driver-specific handlers."""
        self._factories: dict[str, Callable[[URL, dict[str, str]], Any]] = {}

    def parse_uri(self, uri: str) -> tuple[URL, dict[str, str]]:
        """Split a URL into the database URL and backend options.

        Args:
            uri: SQLAlchemy URL, optionally carrying backend options

        Returns:
            Tuple of (url, options) where url no longer contains the options

        Raises:
            ValueError: If the URL cannot be parsed

        """
        try:
            url = make_url(uri)
        except ArgumentError as exc:
            msg = f"Invalid database URL: '{uri}'"
            raise ValueError(msg) from exc

        options: dict[str, str] = {}
        for key, value in url.query.items():
            if key not in BACKEND_OPTIONS:
                continue
            # Repeated parameters arrive as tuples; the first one wins
            options[key] = value[0] if isinstance(value, tuple) else value

        return url.difference_update_query(BACKEND_OPTIONS), options

    def resolve(self, uri: str) -> SqlFileBackend:
        """Create a backend instance from a URL string.

        Raises:
            ValueError: If the URL or one of its options is invalid
            InvalidOperationError: If the visibility option is unknown

        """
        url, options = self.parse_uri(uri)
        factory_func = self._factories.get(
            url.get_backend_name(),
            self._create_sql_backend,
        )
        return factory_func(url, options)

    def register(
        self,
        backend_name: str,
        factory_func: Callable[[URL, dict[str, str]], Any],
    ) -> None:
        """Register a custom constructor for a database backend name.

        Args:
            backend_name: Dialect name such as "sqlite" or "postgresql"
            factory_func: Callable taking (url, options) and returning a backend

        """
        if not callable(factory_func):
            msg = "factory_func must be callable"
            raise TypeError(msg)
        self._factories[backend_name] = factory_func

    def _create_sql_backend(
        self,
        url: URL,
        options: dict[str, str],
    ) -> SqlFileBackend:
        """Create a SqlFileBackend from URL components."""
        from .sql_backend import SqlFileBackend

        create_schema = options.get("create_schema", "false").lower() == "true"
        return SqlFileBackend(
            create_engine(url),
            build_config(options),
            create_schema=create_schema,
        )


_default_factory = BackendFactory()


def resolve_backend(uri: str) -> SqlFileBackend:
    """Create a backend from a URL using the default factory."""
    return _default_factory.resolve(uri)


def register_backend_factory(
    backend_name: str,
    factory_func: Callable[[URL, dict[str, str]], Any],
) -> None:
    """Register a custom constructor on the default factory."""
    _default_factory.register(backend_name, factory_func)
