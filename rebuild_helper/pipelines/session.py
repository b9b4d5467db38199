"""Operator session: owns the loaded data and drives every command."""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

from ..config import APP_CONFIG, STORAGE_PATHS
from ..core import (
    NEEDS_PLACEMENT,
    PLACEABLE,
    AddedPoint,
    ExportPayload,
    MatchResult,
    MatchStatus,
    ProcessingError,
    RosterRow,
    SessionStatus,
    ValidationError,
)
from ..services import (
    BulkQueue,
    HouseNumberMatcher,
    KmlMutator,
    KmzDocument,
    KmzExporter,
    KmzLoader,
    RosterIngestor,
)

logger = logging.getLogger(__name__)

VIEWS: dict[str, frozenset[MatchStatus] | None] = {
    "missing": NEEDS_PLACEMENT,
    "matched": frozenset({MatchStatus.MATCHED, MatchStatus.REVIEW}),
    "added": frozenset({MatchStatus.ADDED}),
    "all": None,
}


@dataclass(slots=True)
class ReconciliationSession:
    """State of one operator reconciling one roster against one KMZ.

    Every command returns a :class:`SessionStatus`; failures raised by the
    services are reported through it instead of propagating.
    """

    ingestor: RosterIngestor
    loader: KmzLoader
    matcher: HouseNumberMatcher
    mutator: KmlMutator
    exporter: KmzExporter
    export_strategy: str = APP_CONFIG.export_strategy
    output_filename: str = APP_CONFIG.output_filename

    rows: list[RosterRow] = field(default_factory=list)
    document: KmzDocument | None = None
    matches: list[MatchResult] = field(default_factory=list)
    added_points: dict[int, AddedPoint] = field(default_factory=dict)
    # (row index, point replaced by the placement, whether it advanced the bulk
    # cursor) for each placement, oldest first.
    history: list[tuple[int, AddedPoint | None, bool]] = field(default_factory=list)
    bulk: BulkQueue = field(default_factory=BulkQueue)
    selected: int | None = None
    export_path: Path | None = None
    export_job_id: str | None = None
    busy: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    status: SessionStatus = field(
        default_factory=lambda: SessionStatus.success("Upload the roster CSV and the KMZ, then process.")
    )

    @classmethod
    def default(cls, *, export_strategy: str | None = None) -> "ReconciliationSession":
        return cls(
            ingestor=RosterIngestor(encoding=APP_CONFIG.csv_encoding),
            loader=KmzLoader(),
            matcher=HouseNumberMatcher(),
            mutator=KmlMutator(),
            exporter=KmzExporter(),
            export_strategy=export_strategy or APP_CONFIG.export_strategy,
        )

    # ---------------------------------------------------------------- loading
    def load(self, csv_path: Path | str | None, kmz_path: Path | str | None) -> SessionStatus:
        def action() -> str:
            with self._exclusive("load"):
                self.reset()
                rows = self.ingestor.load(csv_path)
                document = self.loader.load(kmz_path)
                matches = self.matcher.match(rows, document.points)

                self.rows = rows
                self.document = document
                self.matches = matches
                self.selected = next((m.row.index for m in matches if m.needs_placement), None)
            return self._summary_message(len(document.points))

        return self._guard("Load", action)

    def reset(self) -> None:
        self.rows = []
        self.document = None
        self.matches = []
        self.added_points = {}
        self.history = []
        self.bulk.stop()
        self.selected = None
        self.export_path = None
        self.export_job_id = None

    def _summary_message(self, point_count: int) -> str:
        summary = self.summary()
        lines = [
            "Done.",
            f"KMZ points: {point_count}",
            f"CSV rows: {summary['total']}",
        ]
        lines.extend(f"{status.value}: {summary[status.value]}" for status in MatchStatus if status is not MatchStatus.ADDED)
        lines.append("")
        lines.append("Pick a street and start bulk placement to add missing points quickly.")
        return "\n".join(lines)

    # ------------------------------------------------------------------- bulk
    def start_bulk(self, street: str | None) -> SessionStatus:
        def action() -> str | SessionStatus:
            self._require_matches()
            if not self.bulk.start(self.matches, street):
                return SessionStatus(ok=False, message=f"No rows need a point on street: {(street or '').strip()}")
            self.selected = self.bulk.current_target()
            # Earlier placements belong to a previous queue and must not rewind this one.
            self.history = [(row_index, previous, False) for row_index, previous, _ in self.history]
            return (
                f"Bulk started: {self.bulk.street}\n"
                f"Queue: {len(self.bulk.queue)} item(s).\n"
                "Place a point for each row; the queue moves on automatically."
            )

        return self._guard("Bulk start", action)

    def skip(self) -> SessionStatus:
        def action() -> str | SessionStatus:
            if not self.bulk.active:
                return SessionStatus(ok=False, message="Bulk placement is not running.")
            upcoming = self.bulk.skip()
            if upcoming is None:
                self.bulk.stop()
                return "Bulk finished (after skip)."
            self.selected = upcoming
            return "Skipped. Place the next point."

        return self._guard("Skip", action)

    def stop_bulk(self, message: str = "Bulk stopped.") -> SessionStatus:
        def action() -> str:
            self.bulk.stop()
            return message

        return self._guard("Bulk stop", action)

    # -------------------------------------------------------------- placement
    def select(self, row_index: object) -> SessionStatus:
        def action() -> str:
            self._require_matches()
            index = self._row_index(row_index)
            self.selected = index
            return f"Selected row {index}: {self.selection_label()}"

        return self._guard("Select", action)

    def target_row(self) -> int | None:
        """Row that the next placement applies to, if any."""

        if self.bulk.active:
            return self.bulk.current_target()
        if self.selected is None or self.selected >= len(self.matches):
            return None
        if self.matches[self.selected].status not in PLACEABLE:
            return None
        return self.selected

    def place_at(self, latitude: object, longitude: object, row_index: object = None) -> SessionStatus:
        def action() -> str:
            self._require_matches()
            target = self.target_row() if row_index is None else self._row_index(row_index)
            if target is None:
                raise ValidationError("Select a row that still needs a point before placing one.")
            result = self.matches[target]
            if result.status not in PLACEABLE:
                raise ValidationError(
                    f"Row {target} is {result.status.value}; only MISSING or REVIEW_ADD rows take a new point.",
                    details={"row_index": target, "status": result.status.value},
                )
            added = AddedPoint(
                row_index=target,
                latitude=_coordinate(latitude, "latitude", 90.0),
                longitude=_coordinate(longitude, "longitude", 180.0),
            )

            advances = self.bulk.active and self.bulk.current_target() == target
            self.history.append((target, self.added_points.pop(target, None), advances))
            self.added_points[target] = added
            result.attach(added)
            message = f"Added HP for row index={target}."

            if advances:
                upcoming = self.bulk.advance()
                if upcoming is None:
                    self.bulk.stop()
                    return f"{message}\nBulk finished."
                self.selected = upcoming
            return message

        return self._guard("Place", action)

    def undo(self) -> SessionStatus:
        def action() -> str | SessionStatus:
            if not self.history:
                return SessionStatus(ok=False, message="Nothing to undo.")
            row_index, previous, advanced = self.history.pop()
            result = self.matches[row_index]
            if previous is None:
                self.added_points.pop(row_index, None)
                result.detach()
            else:
                self.added_points[row_index] = previous
                result.attach(previous)

            if advanced and self.bulk.active:
                current = self.bulk.step_back()
                if current is not None:
                    self.selected = current
            return f"Undid last add for row index={row_index}."

        return self._guard("Undo", action)

    # ----------------------------------------------------------------- export
    def prepare_export(self, *, strategy: str | None = None) -> ExportPayload:
        """Apply the export strategy and serialize the document (raises)."""

        with self._exclusive("export"):
            return self._build_payload(strategy)

    def export(self, output_path: Path | str | None = None, *, strategy: str | None = None) -> SessionStatus:
        def action() -> str:
            with self._exclusive("export"):
                payload = self._build_payload(strategy)
                target = Path(output_path) if output_path else STORAGE_PATHS.outputs / payload.filename
                self.export_path = self.exporter.write(payload.kml_bytes, payload.kml_name, target)
            return f"Export done: {self.export_path.name}"

        return self._guard("Export", action)

    def _build_payload(self, strategy: str | None) -> ExportPayload:
        if self.document is None:
            raise ValidationError("Nothing to export yet. Process the roster and KMZ first.")
        self.mutator.apply(self.document, self.matches, strategy=strategy or self.export_strategy)
        return ExportPayload(
            kml_bytes=self.exporter.serialize(self.document),
            kml_name=self.document.kml_name,
            filename=self.output_filename,
        )

    # ---------------------------------------------------------------- queries
    def summary(self) -> dict[str, int]:
        counts = Counter(result.status for result in self.matches)
        summary = {status.value: counts.get(status, 0) for status in MatchStatus}
        summary["total"] = len(self.matches)
        return summary

    def streets(self) -> list[str]:
        return sorted({row.street for row in self.rows if row.street}, key=lambda s: (s.casefold(), s))

    def filter_rows(self, view: str = "missing", street: str = "", query: str = "") -> list[MatchResult]:
        if view not in VIEWS:
            raise ValidationError(f"Unknown view: {view}", details={"allowed": sorted(VIEWS)})
        statuses = VIEWS[view]
        street = (street or "").strip()
        query = (query or "").strip().upper()

        selected: list[MatchResult] = []
        for result in self.matches:
            if statuses is not None and result.status not in statuses:
                continue
            if street and result.row.street != street:
                continue
            if query and query not in result.row.get("ST_NUM").upper() and query not in result.row.get("ST_NAME").upper():
                continue
            selected.append(result)
        return selected

    def focus(self, row_index: int | None = None) -> tuple[float, float] | None:
        """Coordinate the map should centre on for a row (matched, else added)."""

        index = self.selected if row_index is None else row_index
        if index is None or not 0 <= index < len(self.matches):
            return None
        result = self.matches[index]
        if result.point is not None:
            return result.point.latitude, result.point.longitude
        added = self.added_points.get(index)
        if added is not None:
            return added.latitude, added.longitude
        return None

    def selection_label(self) -> str:
        if self.selected is None or self.selected >= len(self.matches):
            return "-"
        row = self.matches[self.selected].row
        return f"{row.get('ST_NUM') or '-'} • {row.get('ST_NAME') or '-'}"

    def bulk_label(self) -> str:
        if not self.bulk.active:
            return "off"
        position, total = self.bulk.progress()
        return f"{self.bulk.street} ({position}/{total})"

    def snapshot(self) -> dict:
        return {
            "status": self.status.as_dict(),
            "loaded": self.document is not None,
            "kml_name": self.document.kml_name if self.document else None,
            "summary": self.summary(),
            "streets": self.streets(),
            "selected": self.selected,
            "selection_label": self.selection_label(),
            "target": self.target_row(),
            "focus": self.focus(),
            "bulk": self.bulk.as_dict(),
            "bulk_label": self.bulk_label(),
            "can_undo": bool(self.history),
            "export_strategy": self.export_strategy,
            "export_file": self.export_path.name if self.export_path else None,
        }

    # ---------------------------------------------------------------- helpers
    def _guard(self, label: str, action: Callable[[], "str | SessionStatus"]) -> SessionStatus:
        try:
            outcome = action()
        except ProcessingError as exc:
            logger.warning("%s failed: %s", label, exc)
            status = SessionStatus.failure(exc)
        except Exception as exc:
            logger.exception("%s failed unexpectedly", label)
            status = SessionStatus.failure(ProcessingError(f"{label} failed: {exc}"))
        else:
            status = outcome if isinstance(outcome, SessionStatus) else SessionStatus.success(outcome)
        self.status = status
        return status

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self.busy:
                raise ValidationError(f"Another {self.busy} is still running; wait for it to finish.")
            self.busy = operation
        try:
            yield
        finally:
            self.busy = None

    def _require_matches(self) -> None:
        if not self.matches:
            raise ValidationError("No data yet. Process the roster and KMZ first.")

    def _row_index(self, value: object) -> int:
        try:
            index = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid row index: {value!r}") from exc
        if not 0 <= index < len(self.matches):
            raise ValidationError(f"Row index {index} is out of range.", details={"rows": len(self.matches)})
        return index


def _coordinate(value: object, name: str, limit: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number) or abs(number) > limit:
        raise ValidationError(f"{name} out of range: {number}")
    return number
