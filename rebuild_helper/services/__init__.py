"""Service layer exports."""

from .roster_ingestor import RosterIngestor
from .kmz_loader import KmzDocument, KmzLoader
from .matching import HouseNumberMatcher, PointIndex
from .bulk_queue import BulkQueue
from .kml_mutator import KmlMutator
from .kmz_exporter import KmzExporter

__all__ = [
    "RosterIngestor",
    "KmzDocument",
    "KmzLoader",
    "HouseNumberMatcher",
    "PointIndex",
    "BulkQueue",
    "KmlMutator",
    "KmzExporter",
]
