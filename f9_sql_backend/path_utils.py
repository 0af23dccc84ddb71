"""Path normalisation utilities.

Stored paths are plain strings that always start with exactly one ``/``.
Nothing else about a path is interpreted: percent escapes, repeated
slashes and ``..`` segments are kept verbatim, because the backing table
has no directory semantics of its own.

Key utilities:
- Empty/whitespace path validation
- Leading slash normalisation
- Directory prefix construction
"""

from __future__ import annotations

from typing import Any

from .interfaces import InvalidOperationError


def validate_not_empty(path: Any) -> None:
    """Validate that path is not empty or whitespace-only.

    Args:
        path: Path to validate

    Raises:
        InvalidOperationError: If path is empty or whitespace.

    """
    path_str = str(path)
    if not path_str or path_str.strip() == "":
        raise InvalidOperationError.empty_path_not_allowed(path)


def normalize_path(path: Any) -> str:
    """Return ``path`` with exactly one leading slash.

    Example:

        >>> normalize_path("docs/readme.txt")
        '/docs/readme.txt'
        >>> normalize_path("///docs//readme.txt")
        '/docs//readme.txt'

    """
    validate_not_empty(path)
    return "/" + str(path).lstrip("/")


def directory_prefix(path: Any) -> str:
    """Return the normalised prefix shared by every entry below ``path``.

    Example:

        >>> directory_prefix("docs/")
        '/docs/'
        >>> directory_prefix("/")
        '/'

    """
    return normalize_path(path).rstrip("/") + "/"


def to_entry_path(path: str) -> str:
    """Return the path form reported in listings and attributes."""
    return path.strip("/")


def dirname(sub_path: str) -> str:
    """Return ``sub_path`` without its last segment, ``"."`` when it has none."""
    head, sep, _ = sub_path.rpartition("/")
    if not sep:
        return "."
    return head.rstrip("/") or "/"
