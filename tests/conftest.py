from __future__ import annotations

import csv
import zipfile
from pathlib import Path
from typing import Callable, Sequence

import pytest


@pytest.fixture()
def write_kmz(tmp_path: Path) -> Callable[..., Path]:
    def _write(kml: str, *, inner_name: str = "doc.kml", filename: str = "abd.kmz") -> Path:
        path = tmp_path / filename
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr(inner_name, kml)
        return path

    return _write


@pytest.fixture()
def write_roster(tmp_path: Path) -> Callable[..., Path]:
    def _write(
        rows: Sequence[dict],
        *,
        fieldnames: Sequence[str] = ("ST_NUM", "ST_NAME", "RT", "RW", "BLOCK"),
        filename: str = "roster.csv",
    ) -> Path:
        path = tmp_path / filename
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=list(fieldnames))
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
        return path

    return _write
