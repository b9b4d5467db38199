"""Core domain primitives for the rebuild helper."""

from .models import (
    LINKED,
    NEEDS_PLACEMENT,
    PLACEABLE,
    AddedPoint,
    ExportPayload,
    GeoPoint,
    MatchReason,
    MatchResult,
    MatchStatus,
    RosterRow,
    SessionStatus,
)
from .exceptions import (
    NotFoundError,
    ParseError,
    ProcessingError,
    StructuralError,
    ValidationError,
)

__all__ = [
    "LINKED",
    "NEEDS_PLACEMENT",
    "PLACEABLE",
    "AddedPoint",
    "ExportPayload",
    "GeoPoint",
    "MatchReason",
    "MatchResult",
    "MatchStatus",
    "RosterRow",
    "SessionStatus",
    "NotFoundError",
    "ParseError",
    "ProcessingError",
    "StructuralError",
    "ValidationError",
]
