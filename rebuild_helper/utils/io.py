"""File IO utilities."""

from __future__ import annotations

import os
import unicodedata
from pathlib import Path

import chardet

_SAMPLE_BYTES = 256 * 1024


def detect_encoding(path: os.PathLike[str] | str, *, sample_size: int = _SAMPLE_BYTES) -> str:
    """Guess the encoding of a roster export from its first bytes."""

    with open(path, "rb") as handle:
        raw = handle.read(sample_size)
    if raw.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    detection = chardet.detect(raw)
    return detection.get("encoding") or "utf-8"


def safe_filename(filename: str, *, default: str = "upload") -> str:
    """Return a filesystem safe filename."""

    normalized = unicodedata.normalize("NFKD", filename)
    sanitized = "".join(c for c in normalized if c.isalnum() or c in {"-", "_", "."})
    sanitized = sanitized.lstrip(".")
    return sanitized or default


def ensure_directory(path: os.PathLike[str] | str) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory
