"""Non-destructive edits applied to a loaded KML document before export.

Two strategies are supported:

``append``
    Leaves every original folder and placemark untouched. Generated tag
    placemarks live in ``REBUILD_HELPER/MATCHED`` (rows matched exactly) and
    ``REBUILD_HELPER/ADDED`` (rows placed by the operator). Both folders are
    emptied and rebuilt on every export so repeated exports converge on the
    same document.

``enrich``
    Writes the roster fields into the ``ExtendedData`` of the matched
    placemarks and appends operator-placed rows to the ``HP/HOME`` folder.
    Placemarks appended by an earlier export of the same session are
    removed first.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence
from xml.etree import ElementTree as ET

from ..config import EXPORT_STRATEGIES, KML_LAYOUT, KmlLayout
from ..core import LINKED, MatchResult, MatchStatus, RosterRow, StructuralError, ValidationError
from ..utils import format_coordinate
from ..utils.kml import find_child_folder, find_document, local_name, qualify
from .kmz_loader import KmzDocument

logger = logging.getLogger(__name__)

_FEATURE_TAGS = frozenset(
    {"Folder", "Document", "Placemark", "NetworkLink", "GroundOverlay", "ScreenOverlay", "PhotoOverlay"}
)
_GEOMETRY_TAGS = frozenset(
    {"Point", "LineString", "LinearRing", "Polygon", "MultiGeometry", "Model", "Track", "MultiTrack"}
)


class KmlMutator:
    """Apply matching results to a :class:`KmzDocument` tree."""

    def __init__(self, layout: KmlLayout = KML_LAYOUT):
        self.layout = layout

    def apply(self, document: KmzDocument, matches: Sequence[MatchResult], *, strategy: str = "append") -> None:
        if strategy in EXPORT_STRATEGIES and document.applied_strategy not in (None, strategy):
            raise ValidationError(
                f"This KMZ was already exported with the {document.applied_strategy} strategy; "
                "reload it to export with another one.",
                details={"applied": document.applied_strategy, "requested": strategy},
            )
        if strategy == "append":
            self.append_matched(document, matches)
        elif strategy == "enrich":
            self.enrich_in_place(document, matches)
        else:
            raise ValidationError(
                f"Unknown export strategy: {strategy}",
                details={"allowed": list(EXPORT_STRATEGIES)},
            )
        document.applied_strategy = strategy

    # ------------------------------------------------------------------ append
    def append_matched(self, document: KmzDocument, matches: Sequence[MatchResult]) -> None:
        container = self.root_container(document)
        ns = document.namespace

        self.ensure_style(document, container)
        matched_folder = self.ensure_folder_path(container, self.layout.matched_folder_path, ns)
        added_folder = self.ensure_folder_path(container, self.layout.added_folder_path, ns)
        removed = self._clear_placemarks(matched_folder) + self._clear_placemarks(added_folder)

        style_url = f"#{self.layout.matched_style_id}"
        written = 0
        for result in matches:
            if result.status is MatchStatus.MATCHED and result.point is not None:
                placemark = self.build_placemark(
                    result.row,
                    ns,
                    latitude=result.point.latitude,
                    longitude=result.point.longitude,
                    source=self.layout.source_existing,
                    style_url=style_url,
                )
                matched_folder.append(placemark)
                written += 1
            elif result.status is MatchStatus.ADDED and result.added is not None:
                added = result.added
                placemark = self.build_placemark(
                    result.row,
                    ns,
                    latitude=added.latitude,
                    longitude=added.longitude,
                    source=self.layout.source_added,
                )
                added_folder.append(placemark)
                written += 1

        logger.info("Append export: replaced %s generated placemark(s) with %s", removed, written)

    def ensure_style(self, document: KmzDocument, container: ET.Element) -> ET.Element:
        style_id = self.layout.matched_style_id
        for element in document.root.iter():
            if element.get("id") == style_id:
                return element

        ns = document.namespace
        style = ET.Element(qualify(ns, "Style"), {"id": style_id})
        icon_style = ET.SubElement(style, qualify(ns, "IconStyle"))
        ET.SubElement(icon_style, qualify(ns, "color")).text = "ff00ff00"
        ET.SubElement(icon_style, qualify(ns, "scale")).text = "1.1"
        icon = ET.SubElement(icon_style, qualify(ns, "Icon"))
        ET.SubElement(icon, qualify(ns, "href")).text = self.layout.matched_icon_href

        # Shared styles go ahead of the features that reference them.
        position = len(container)
        for offset, child in enumerate(container):
            if local_name(child) in _FEATURE_TAGS:
                position = offset
                break
        container.insert(position, style)
        return style

    @staticmethod
    def _clear_placemarks(folder: ET.Element) -> int:
        stale = [child for child in folder if local_name(child) == "Placemark"]
        for child in stale:
            folder.remove(child)
        return len(stale)

    # ------------------------------------------------------------------ enrich
    def enrich_in_place(self, document: KmzDocument, matches: Sequence[MatchResult]) -> None:
        container = self.root_container(document)
        ns = document.namespace

        for parent, placemark in document.generated:
            if placemark in list(parent):
                parent.remove(placemark)
        document.generated.clear()

        enriched = 0
        for result in matches:
            if result.status not in LINKED or result.point is None:
                continue
            node = document.placemark(result.point)
            self.upsert_extended_data(node, ns, self._row_items(result.row), self.layout.source_existing)
            enriched += 1

        home = document.home_folder
        if home is None:
            home = self.ensure_folder_path(container, self.layout.home_folder_path, ns)

        appended = 0
        seen: set[int] = set()
        for result in matches:
            added = result.added
            if result.status is not MatchStatus.ADDED or added is None or added.row_index in seen:
                continue
            seen.add(added.row_index)
            placemark = self.build_placemark(
                result.row,
                ns,
                latitude=added.latitude,
                longitude=added.longitude,
                source=self.layout.source_added,
            )
            home.append(placemark)
            document.generated.append((home, placemark))
            appended += 1

        logger.info("Enrich export: updated %s placemark(s), appended %s", enriched, appended)

    def upsert_extended_data(
        self,
        placemark: ET.Element,
        ns: str,
        items: Iterable[tuple[str, str]],
        source: str,
    ) -> ET.Element:
        extended = placemark.find("./{*}ExtendedData")
        if extended is None:
            extended = ET.Element(qualify(ns, "ExtendedData"))
            position = len(placemark)
            for offset, child in enumerate(placemark):
                if local_name(child) in _GEOMETRY_TAGS:
                    position = offset
                    break
            placemark.insert(position, extended)

        for name, value in items:
            self.upsert_data(extended, ns, name, value)
        self.upsert_data(extended, ns, self.layout.source_field, source)
        return extended

    @staticmethod
    def upsert_data(extended: ET.Element, ns: str, name: str, value: str) -> None:
        target = name.upper()
        for data in extended.findall("./{*}Data"):
            if (data.get("name") or "").upper() != target:
                continue
            value_node = data.find("./{*}value")
            if value_node is None:
                value_node = ET.SubElement(data, qualify(ns, "value"))
            value_node.text = value
            return

        data = ET.SubElement(extended, qualify(ns, "Data"), {"name": name})
        ET.SubElement(data, qualify(ns, "value")).text = value

    # ------------------------------------------------------------------ shared
    @staticmethod
    def root_container(document: KmzDocument) -> ET.Element:
        container = find_document(document.root)
        if container is None:
            raise StructuralError(
                "KML has no <Document> to attach folders to.",
                details={"kml_name": document.kml_name},
            )
        return container

    @staticmethod
    def ensure_folder_path(parent: ET.Element, names: Sequence[str], ns: str) -> ET.Element:
        current = parent
        for name in names:
            folder = find_child_folder(current, name)
            if folder is None:
                folder = ET.SubElement(current, qualify(ns, "Folder"))
                ET.SubElement(folder, qualify(ns, "name")).text = name
            current = folder
        return current

    def build_placemark(
        self,
        row: RosterRow,
        ns: str,
        *,
        latitude: float,
        longitude: float,
        source: str,
        style_url: str | None = None,
    ) -> ET.Element:
        placemark = ET.Element(qualify(ns, "Placemark"))
        ET.SubElement(placemark, qualify(ns, "name")).text = row.house_number
        if style_url:
            ET.SubElement(placemark, qualify(ns, "styleUrl")).text = style_url

        extended = ET.SubElement(placemark, qualify(ns, "ExtendedData"))
        for name, value in self._row_items(row):
            self.upsert_data(extended, ns, name, value)
        self.upsert_data(extended, ns, self.layout.source_field, source)

        point = ET.SubElement(placemark, qualify(ns, "Point"))
        ET.SubElement(point, qualify(ns, "coordinates")).text = (
            f"{format_coordinate(longitude)},{format_coordinate(latitude)},0"
        )
        return placemark

    def _row_items(self, row: RosterRow) -> list[tuple[str, str]]:
        return [
            (name, row.get(name))
            for name in self.layout.roster_fields
            if row.get(name).strip()
        ]
