"""Domain models used throughout the rebuild helper."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .exceptions import ProcessingError


class MatchStatus(str, Enum):
    MATCHED = "MATCHED"
    REVIEW = "REVIEW"
    REVIEW_ADD = "REVIEW_ADD"
    MISSING = "MISSING"
    ADDED = "ADDED"


class MatchReason(str, Enum):
    EXACT = "EXACT"
    DUPLICATE_KMZ = "DUPLICATE_KMZ"
    NUMERIC_ONLY = "NUMERIC_ONLY"
    NOT_FOUND = "NOT_FOUND"


# Statuses whose rows still need a point placed by the operator.
NEEDS_PLACEMENT = frozenset({MatchStatus.MISSING, MatchStatus.REVIEW_ADD})
# Statuses that may receive operator coordinates (re-placing an ADDED row replaces it).
PLACEABLE = NEEDS_PLACEMENT | {MatchStatus.ADDED}
# Statuses backed by an existing placemark in the source document.
LINKED = frozenset({MatchStatus.MATCHED, MatchStatus.REVIEW, MatchStatus.REVIEW_ADD})


@dataclass(slots=True)
class RosterRow:
    """Representation of a row inside the ABD Existing roster CSV."""

    index: int
    fields: dict[str, str]
    key: str = ""

    @classmethod
    def from_row(cls, index: int, row: Mapping[str | None, object]) -> "RosterRow":
        fields: dict[str, str] = {}
        for name, value in row.items():
            # DictReader stores surplus cells under a ``None`` key.
            if name is None:
                continue
            fields[name.strip()] = "" if value is None else str(value)
        return cls(index=index, fields=fields)

    def get(self, name: str) -> str:
        return self.fields.get(name) or ""

    @property
    def house_number(self) -> str:
        return self.get("ST_NUM").strip()

    @property
    def street(self) -> str:
        return self.get("ST_NAME").strip()


@dataclass(slots=True)
class GeoPoint:
    """A placemark extracted from the loaded KML document.

    ``node_index`` addresses the placemark element inside
    :attr:`KmzDocument.placemarks`; the document owns the element.
    """

    name: str
    key: str
    latitude: float
    longitude: float
    node_index: int


@dataclass(slots=True)
class AddedPoint:
    """Coordinates placed by the operator for a roster row."""

    row_index: int
    latitude: float
    longitude: float


@dataclass(slots=True)
class MatchResult:
    """Classification of one roster row against the point index."""

    row: RosterRow
    status: MatchStatus
    reason: MatchReason
    point: GeoPoint | None = None
    added_latitude: float | None = None
    added_longitude: float | None = None

    @property
    def needs_placement(self) -> bool:
        return self.status in NEEDS_PLACEMENT

    @property
    def added(self) -> AddedPoint | None:
        if self.added_latitude is None or self.added_longitude is None:
            return None
        return AddedPoint(self.row.index, self.added_latitude, self.added_longitude)

    def attach(self, added: AddedPoint) -> None:
        self.status = MatchStatus.ADDED
        self.added_latitude = added.latitude
        self.added_longitude = added.longitude

    def detach(self) -> None:
        self.status = MatchStatus.REVIEW_ADD if self.point is not None else MatchStatus.MISSING
        self.added_latitude = None
        self.added_longitude = None

    def as_dict(self) -> dict:
        return {
            "index": self.row.index,
            "st_num": self.row.house_number,
            "st_name": self.row.street,
            "key": self.row.key,
            "status": self.status.value,
            "reason": self.reason.value,
            "kmz_name": self.point.name if self.point else None,
            "added": (
                {"latitude": self.added_latitude, "longitude": self.added_longitude}
                if self.added_latitude is not None
                else None
            ),
        }


@dataclass(slots=True)
class ExportPayload:
    """Serialized KML ready to be packaged into a KMZ archive."""

    kml_bytes: bytes
    kml_name: str
    filename: str


@dataclass(slots=True)
class SessionStatus:
    """Outcome of a session command, reported to the operator."""

    ok: bool
    message: str
    error: ProcessingError | None = field(default=None, repr=False)

    @classmethod
    def success(cls, message: str) -> "SessionStatus":
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, error: ProcessingError) -> "SessionStatus":
        return cls(ok=False, message=str(error), error=error)

    def as_dict(self) -> dict:
        payload: dict[str, object] = {"ok": self.ok, "message": self.message}
        if self.error is not None:
            payload["error"] = self.error.as_dict()
        return payload
