"""Roster (ABD Existing) CSV ingestion service."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Sequence

from ..core import ParseError, RosterRow, ValidationError
from ..utils import detect_encoding

logger = logging.getLogger(__name__)


class RosterIngestor:
    """Load the ABD Existing CSV into :class:`RosterRow` objects."""

    REQUIRED_COLUMNS: Sequence[str] = ("ST_NUM",)

    def __init__(self, *, encoding: str | None = None):
        self.encoding = encoding or "utf-8-sig"

    def load(self, path: Path | str | None) -> list[RosterRow]:
        if not path:
            raise ValidationError("Upload the ABD Existing roster (CSV) first.")
        path = Path(path)
        if not path.exists():
            raise ValidationError(f"Roster CSV not found: {path.name}", details={"path": str(path)})

        encoding = self.encoding
        if encoding == "auto":
            encoding = detect_encoding(path)

        try:
            with path.open("r", newline="", encoding=encoding) as handle:
                reader = csv.DictReader(handle)
                headers = [header.strip() for header in reader.fieldnames or [] if header]
                rows = [
                    RosterRow.from_row(index, row)
                    for index, row in enumerate(r for r in reader if _has_content(r))
                ]
        except (UnicodeDecodeError, csv.Error) as exc:
            raise ParseError(
                "Roster CSV could not be read",
                details={"path": str(path), "encoding": encoding, "reason": str(exc)},
            ) from exc

        if not rows:
            raise ValidationError("Roster CSV is empty or unreadable.", details={"path": str(path)})
        self._validate_headers(headers, path)

        logger.info("Loaded %s roster rows from %s", len(rows), path.name)
        return rows

    def _validate_headers(self, headers: Sequence[str], path: Path) -> None:
        missing = [column for column in self.REQUIRED_COLUMNS if column not in headers]
        if missing:
            raise ValidationError(
                "Roster CSV must have an ST_NUM (house number) column.",
                details={"path": str(path), "missing": missing},
            )


def _has_content(row: dict) -> bool:
    return any(str(value).strip() for value in row.values() if value is not None)
