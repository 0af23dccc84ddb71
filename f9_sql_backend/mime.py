"""MIME type detection for stored files."""

from __future__ import annotations

import mimetypes
from typing import Protocol

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
)


class MimeTypeDetector(Protocol):
    """Classifier deciding the MIME type of a file from its path and bytes."""

    def detect(self, path: str, contents: bytes) -> str | None:
        """Return a MIME type, or None when it cannot be decided."""
        ...


class MimetypesDetector:
    """Detect by content signature first, then by file extension.

    Unrecognised payloads that decode as UTF-8 text are reported as
    ``text/plain``; anything else yields None.
    """

    def detect(self, path: str, contents: bytes) -> str | None:
        """Return the detected MIME type for ``path`` holding ``contents``."""
        for signature, mime_type in _SIGNATURES:
            if contents.startswith(signature):
                return mime_type

        guessed, _ = mimetypes.guess_type(path, strict=False)
        if guessed:
            return guessed

        if contents and self._looks_like_text(contents):
            return "text/plain"
        return None

    @staticmethod
    def _looks_like_text(payload: bytes) -> bool:
        """Best-effort detection for textual payloads."""
        if b"\x00" in payload:
            return False
        try:
            payload.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return True
