"""Runtime configuration for the FTTH Rebuild Helper."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

EXPORT_STRATEGIES: tuple[str, ...] = ("append", "enrich")


@dataclass(frozen=True)
class StoragePaths:
    """Collection of filesystem paths used by the application."""

    uploads: Path
    outputs: Path

    def ensure(self) -> None:
        """Ensure the backing directories exist."""
        self.uploads.mkdir(parents=True, exist_ok=True)
        self.outputs.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class AppConfig:
    """High level runtime configuration values."""

    max_csv_size_mb: int = 50
    max_kmz_size_mb: int = 50
    allowed_csv_extensions: tuple[str, ...] = ("csv",)
    allowed_kmz_extensions: tuple[str, ...] = ("kmz",)
    output_filename: str = "ABD_KMZ_UPDATED.kmz"
    export_strategy: str = "append"
    csv_encoding: str = "utf-8-sig"

    @property
    def max_upload_bytes(self) -> int:
        """Maximum upload payload in bytes."""
        return (self.max_csv_size_mb + self.max_kmz_size_mb) * 1024 * 1024


@dataclass(frozen=True)
class KmlLayout:
    """Folder names, style ids and roster fields used when editing KML."""

    home_folder_path: tuple[str, ...] = ("HP", "HOME")
    matched_folder_path: tuple[str, ...] = ("REBUILD_HELPER", "MATCHED")
    added_folder_path: tuple[str, ...] = ("REBUILD_HELPER", "ADDED")
    matched_style_id: str = "rebuild_helper_matched"
    matched_icon_href: str = "http://maps.google.com/mapfiles/kml/paddle/grn-circle.png"
    roster_fields: tuple[str, ...] = ("ST_NAME", "ST_NUM", "BLOCK", "FRACT", "OV_UG", "RT", "RW")
    source_field: str = "SOURCE"
    source_existing: str = "ABD_EXISTING"
    source_added: str = "ADDED_BY_TOOL"


@dataclass(frozen=True)
class QueueConfig:
    """Configuration for the Redis-backed task queue."""

    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "rebuild-helper"
    default_timeout: int = 60 * 10  # seconds


def _export_strategy() -> str:
    strategy = os.environ.get("REBUILD_HELPER_EXPORT_STRATEGY", AppConfig.export_strategy).strip().lower()
    if strategy not in EXPORT_STRATEGIES:
        raise ValueError(
            f"REBUILD_HELPER_EXPORT_STRATEGY must be one of {', '.join(EXPORT_STRATEGIES)}, got {strategy!r}"
        )
    return strategy


APP_CONFIG = AppConfig(
    output_filename=os.environ.get("REBUILD_HELPER_OUTPUT_FILENAME", AppConfig.output_filename),
    export_strategy=_export_strategy(),
    csv_encoding=os.environ.get("REBUILD_HELPER_CSV_ENCODING", AppConfig.csv_encoding),
)
KML_LAYOUT = KmlLayout()
STORAGE_PATHS = StoragePaths(
    uploads=Path(os.environ.get("REBUILD_HELPER_UPLOADS", "uploads")),
    outputs=Path(os.environ.get("REBUILD_HELPER_OUTPUTS", "outputs")),
)
QUEUE_CONFIG = QueueConfig(
    redis_url=os.environ.get("REBUILD_HELPER_REDIS_URL", QueueConfig.redis_url),
    queue_name=os.environ.get("REBUILD_HELPER_QUEUE", QueueConfig.queue_name),
    default_timeout=int(
        os.environ.get("REBUILD_HELPER_QUEUE_TIMEOUT", QueueConfig.default_timeout)
    ),
)

STORAGE_PATHS.ensure()
