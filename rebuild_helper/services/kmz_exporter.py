"""Serialize edited KML documents and package them as KMZ archives."""

from __future__ import annotations

import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from .kmz_loader import KmzDocument

logger = logging.getLogger(__name__)

# ElementTree reserves ``ns<digits>`` for its own generated prefixes.
_RESERVED_PREFIX = re.compile(r"ns\d+$")


@dataclass(slots=True)
class KmzExporter:
    """Turn a :class:`KmzDocument` back into KML bytes and KMZ archives."""

    def serialize(self, document: KmzDocument) -> bytes:
        # The default namespace is passed per call; only named prefixes go
        # into ElementTree's process-wide registry.
        for prefix, uri in document.namespaces.items():
            if not prefix or _RESERVED_PREFIX.match(prefix):
                continue
            ET.register_namespace(prefix, uri)
        return ET.tostring(
            document.root,
            encoding="utf-8",
            xml_declaration=True,
            default_namespace=_default_namespace(document),
        )

    def package(self, kml_bytes: bytes, kml_name: str = "doc.kml") -> bytes:
        buffer = io.BytesIO()
        with ZipFile(buffer, "w", compression=ZIP_DEFLATED) as archive:
            archive.writestr(kml_name, kml_bytes)
        return buffer.getvalue()

    def write(self, kml_bytes: bytes, kml_name: str, output_path: Path | str) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.package(kml_bytes, kml_name))
        logger.info("Wrote %s (%s bytes of KML as %s)", output_path.name, len(kml_bytes), kml_name)
        return output_path


def _default_namespace(document: KmzDocument) -> str | None:
    uri = document.namespaces.get("")
    if not uri:
        return None
    # ElementTree refuses a default namespace while any element is unqualified.
    for element in document.root.iter():
        if isinstance(element.tag, str) and not element.tag.startswith("{"):
            return None
    return uri
