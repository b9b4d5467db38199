"""Formatting helpers."""

from __future__ import annotations

import re

_WHITESPACE_PATTERN = re.compile(r"\s+")
_PUNCTUATION_PATTERN = re.compile(r"[._]")
_DASH_PATTERN = re.compile(r"[–—]")
_LEADING_NUMBER_PATTERN = re.compile(r"^([0-9]+)(.*)$")


def normalize_house_number(value: object) -> str:
    """Return the comparison key for a house number.

    ``"007A"``, ``"7-A"`` and ``"7 a"`` all become ``"7A"``. Hyphens are
    dropped rather than kept as separators and a leading run of digits loses
    its zero padding; anything after the digits is kept verbatim. Values
    without leading digits are returned cleaned but otherwise unchanged.
    """

    if value is None:
        return ""
    text = str(value).strip().upper()
    text = _WHITESPACE_PATTERN.sub("", text)
    text = _PUNCTUATION_PATTERN.sub("", text)
    text = _DASH_PATTERN.sub("-", text).replace("-", "")

    match = _LEADING_NUMBER_PATTERN.match(text)
    if match:
        return f"{match.group(1).lstrip('0') or '0'}{match.group(2)}"
    return text


def leading_number(key: str) -> str | None:
    """Return the leading digit run of a normalized key, if any."""

    match = _LEADING_NUMBER_PATTERN.match(key or "")
    return match.group(1) if match else None


def format_coordinate(value: float) -> str:
    """Render a coordinate for KML without float noise."""

    return f"{value:.8f}".rstrip("0").rstrip(".") or "0"
