"""Utility helpers for the rebuild helper project."""

from .formatting import format_coordinate, leading_number, normalize_house_number
from .io import detect_encoding, ensure_directory, safe_filename

__all__ = [
    "format_coordinate",
    "leading_number",
    "normalize_house_number",
    "detect_encoding",
    "ensure_directory",
    "safe_filename",
]
