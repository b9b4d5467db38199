"""Custom exception hierarchy for the rebuild helper domain."""

from __future__ import annotations


class ProcessingError(RuntimeError):
    """Base class for failures surfaced to the operator."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def as_dict(self) -> dict:
        """Return a serializable representation."""
        payload = {"type": self.kind, "message": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ProcessingError):
    """User-correctable input problem (missing file, column, street...)."""


class ParseError(ProcessingError):
    """Malformed tabular or markup input."""


class StructuralError(ProcessingError):
    """The KML document lacks a container required for export."""


class NotFoundError(ProcessingError):
    """A referenced entry is absent from the KMZ archive."""
