"""KML and KMZ builders shared by the test modules."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Iterable

KML_NS = "http://www.opengis.net/kml/2.2"


def placemark_xml(name: str, coordinates: str | None = "112.75,-7.25,0") -> str:
    point = f"<Point><coordinates>{coordinates}</coordinates></Point>" if coordinates is not None else ""
    return f"<Placemark><name>{name}</name>{point}</Placemark>"


def build_kml(home: Iterable[str] = (), *, extra: str = "", with_home: bool = True, namespace: str = KML_NS) -> str:
    """Return a KML document with an ``HP/HOME`` folder holding ``home``."""

    body = "".join(home)
    if with_home:
        body = f"<Folder><name>HP</name><Folder><name>HOME</name>{body}</Folder></Folder>"
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<kml xmlns="{namespace}" xmlns:gx="http://www.google.com/kml/ext/2.2">'
        "<Document><name>ABD</name><!-- exported by survey tool -->"
        f"{body}{extra}"
        "</Document></kml>"
    )


def read_kml(kmz_path: Path, inner_name: str = "doc.kml") -> str:
    with zipfile.ZipFile(kmz_path) as archive:
        return archive.read(inner_name).decode("utf-8")
