"""KMZ parsing helpers."""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence
from xml.etree import ElementTree as ET
from zipfile import BadZipFile, ZipFile

from ..config import KML_LAYOUT
from ..core import GeoPoint, NotFoundError, ParseError, ValidationError
from ..utils import normalize_house_number
from ..utils.kml import child_text, find_folder_path, namespace_of

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class KmzDocument:
    """A parsed KML document together with the points extracted from it.

    ``placemarks`` is the addressable node table: every ``Placemark`` of the
    source document in document order. :class:`GeoPoint` objects refer to
    entries of this table by index.
    """

    root: ET.Element
    kml_name: str
    namespace: str
    namespaces: dict[str, str]
    placemarks: list[ET.Element]
    points: list[GeoPoint]
    home_folder: ET.Element | None = None
    # (parent, placemark) pairs appended by a previous export of this session.
    generated: list[tuple[ET.Element, ET.Element]] = field(default_factory=list)
    # Strategy of the first export; later exports of this document must reuse it.
    applied_strategy: str | None = None

    def placemark(self, point: GeoPoint) -> ET.Element:
        return self.placemarks[point.node_index]


class KmzLoader:
    """Load placemarks from KMZ files."""

    def __init__(
        self,
        *,
        home_folder_path: Sequence[str] = KML_LAYOUT.home_folder_path,
        generated_folder: str | None = KML_LAYOUT.matched_folder_path[0],
    ):
        self.home_folder_path = tuple(home_folder_path)
        self.generated_folder = generated_folder

    def load(self, path: Path | str | None) -> KmzDocument:
        if not path:
            raise ValidationError("Upload the ABD KMZ first.")
        path = Path(path)
        if not path.exists():
            raise ValidationError(f"KMZ file not found: {path.name}", details={"path": str(path)})

        kml_name, kml_bytes = self._read_kml(path)
        root, namespaces = self.parse_kml(kml_bytes, source=kml_name)

        placemarks = list(root.iterfind(".//{*}Placemark"))
        home_folder = find_folder_path(root, self.home_folder_path)
        scope = home_folder if home_folder is not None else root
        points = self.extract_points(scope, placemarks)

        logger.info(
            "Loaded %s point(s) from %s (%s placemark(s), scope=%s)",
            len(points),
            kml_name,
            len(placemarks),
            "/".join(self.home_folder_path) if home_folder is not None else "document",
        )
        return KmzDocument(
            root=root,
            kml_name=kml_name,
            namespace=namespace_of(root),
            namespaces=namespaces,
            placemarks=placemarks,
            points=points,
            home_folder=home_folder,
        )

    def _read_kml(self, path: Path) -> tuple[str, bytes]:
        try:
            with ZipFile(path) as archive:
                kml_files = [name for name in archive.namelist() if name.lower().endswith(".kml")]
                if not kml_files:
                    raise NotFoundError(
                        "No .kml file found inside the KMZ archive.",
                        details={"path": str(path), "entries": archive.namelist()},
                    )
                kml_name = "doc.kml" if "doc.kml" in kml_files else kml_files[0]
                return kml_name, archive.read(kml_name)
        except BadZipFile as exc:
            raise ParseError("KMZ file is not a valid ZIP archive", details={"path": str(path)}) from exc

    @staticmethod
    def parse_kml(kml_bytes: bytes, *, source: str = "doc.kml") -> tuple[ET.Element, dict[str, str]]:
        """Parse KML keeping comments and processing instructions."""

        try:
            namespaces: dict[str, str] = {}
            for _, (prefix, uri) in ET.iterparse(io.BytesIO(kml_bytes), events=("start-ns",)):
                namespaces.setdefault(prefix, uri)
            parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
            parser.feed(kml_bytes)
            root = parser.close()
        except ET.ParseError as exc:
            raise ParseError(f"Failed to parse {source}", details={"reason": str(exc)}) from exc
        return root, namespaces

    def extract_points(self, scope: ET.Element, placemarks: Sequence[ET.Element]) -> list[GeoPoint]:
        positions = {node: index for index, node in enumerate(placemarks)}
        excluded = self._generated_placemarks(scope)
        points: list[GeoPoint] = []
        skipped = 0
        for node in scope.iterfind(".//{*}Placemark"):
            if node in excluded:
                continue
            point = self._parse_placemark(node, positions[node])
            if point is None:
                skipped += 1
                continue
            points.append(point)
        if skipped:
            logger.warning("Skipped %s placemark(s) without usable Point coordinates", skipped)
        return points

    def _generated_placemarks(self, scope: ET.Element) -> set[ET.Element]:
        # Tag placemarks written by an earlier export are not household points.
        if not self.generated_folder:
            return set()
        folder = find_folder_path(scope, (self.generated_folder,))
        if folder is None:
            return set()
        return set(folder.iterfind(".//{*}Placemark"))

    def _parse_placemark(self, node: ET.Element, node_index: int) -> GeoPoint | None:
        point = node.find(".//{*}Point")
        if point is None:
            return None
        coordinates = child_text(point, "coordinates")
        parsed = parse_coordinates(coordinates)
        if parsed is None:
            logger.debug("Invalid coordinates %r in placemark #%s", coordinates, node_index)
            return None
        longitude, latitude = parsed

        name = child_text(node, "name")
        return GeoPoint(
            name=name,
            key=normalize_house_number(name),
            latitude=latitude,
            longitude=longitude,
            node_index=node_index,
        )


def parse_coordinates(text: str | None) -> tuple[float, float] | None:
    """Parse ``lon,lat[,alt]`` into ``(lon, lat)``; ``None`` when unusable."""

    if not text:
        return None
    parts = [part.strip() for part in text.strip().split(",")]
    if len(parts) < 2:
        return None
    try:
        longitude = float(parts[0])
        latitude = float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(longitude) and math.isfinite(latitude)):
        return None
    return longitude, latitude
